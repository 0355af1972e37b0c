from __future__ import annotations
import os, json, pathlib, logging, math
from typing import Any, Dict, List, Mapping, Optional

from .types import (
    CATEGORIES,
    Caps,
    CategoryWeights,
    RuleEntry,
    ScoringConfig,
)
from .rules import map_rule_category

log = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


DEFAULT_SCORING: Dict[str, Any] = {
    "base": 100,
    "penalty_per_lab": 5,
    "penalty_per_imaging": 8,
    "penalty_per_procedure": 10,
    "penalty_unnecessary": 6,
    "penalty_wrong_dx": 25,
    "bonus_correct_dx": 50,
    "penalty_on_missing_default": 10,
    "speed_bonus_window_sec": 120,
    "speed_max_bonus": 25,
    "required": [],
    "unnecessary": [],
    "bonus": [],
    "category_weights": {"exam": 1, "request": 1, "treatment": 1, "diagnosis": 1},
    "caps": {
        "overall_min": 0,
        "overall_max": 100,
        "category_max": {"exam": 100, "request": 100, "treatment": 100, "diagnosis": 100},
    },
}

_NUMERIC_KEYS: tuple[str, ...] = (
    "base",
    "penalty_per_lab",
    "penalty_per_imaging",
    "penalty_per_procedure",
    "penalty_unnecessary",
    "penalty_wrong_dx",
    "bonus_correct_dx",
    "penalty_on_missing_default",
    "speed_bonus_window_sec",
    "speed_max_bonus",
)

# per rule list: which optional field carries the amount, and where its default comes from
_RULE_AMOUNT_FIELDS: Dict[str, tuple[str, Optional[str]]] = {
    "required": ("penalty_on_skip", "penalty_on_missing_default"),
    "unnecessary": ("penalty", "penalty_unnecessary"),
    "bonus": ("bonus", None),
}

DATA_DIR = pathlib.Path(os.getenv("DATA_DIR", "data")).resolve()
SCORES_PATH = pathlib.Path(os.getenv("SCORES_PATH", str(DATA_DIR / "scores.json")))
SCORES_NAMESPACE: str = "vaka:scores"
CASES_PATH: Optional[str] = os.getenv("CASES_PATH") or None

FLOW_TIMER_DURATION_MS: int = 3 * 60 * 1000
HOST_ACTIONS: tuple[str, ...] = ("startCase", "endCase", "nextCase", "startTimer", "stopTimer")

AUDIT_EXPORT_ENABLED: bool = True
DEBUG_TRACE: bool = False
TRACE_FIELDS: tuple[str, ...] = ("category", "delta", "before", "after", "reason")

# // env overrides for staging/ops
FLOW_TIMER_DURATION_MS = _env_int("FLOW_TIMER_DURATION_MS", FLOW_TIMER_DURATION_MS)
AUDIT_EXPORT_ENABLED = _env_bool("AUDIT_EXPORT_ENABLED", AUDIT_EXPORT_ENABLED)
DEBUG_TRACE = _env_bool("DEBUG_TRACE", DEBUG_TRACE)
for _k in _NUMERIC_KEYS:
    DEFAULT_SCORING[_k] = _env_float(f"SCORING_{_k.upper()}", float(DEFAULT_SCORING[_k]))


def _num(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return out


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = dict(base)
    for k, v in override.items():
        if v is None:
            continue
        if isinstance(out.get(k), Mapping) and isinstance(v, Mapping):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _build_rules(kind: str, raw_rules: Any, merged: Mapping[str, Any]) -> List[RuleEntry]:
    field_name, default_key = _RULE_AMOUNT_FIELDS[kind]
    default_amount = _num(merged.get(default_key), float(DEFAULT_SCORING[default_key])) if default_key else 0.0
    out: List[RuleEntry] = []
    if not isinstance(raw_rules, list):
        return out
    for raw in raw_rules:
        if isinstance(raw, RuleEntry):
            if raw.key.strip():
                out.append(raw)
            continue
        if not isinstance(raw, Mapping):
            continue
        key = str(raw.get("key") or "")
        if not key.strip():
            # blank keys never match and never penalize
            continue
        rtype = str(raw.get("type") or "")
        amount = raw.get(field_name)
        out.append(
            RuleEntry(
                kind=kind,  # type: ignore[arg-type]
                type=rtype,
                key=key,
                amount=default_amount if amount is None else _num(amount, default_amount),
                category=map_rule_category(rtype),
            )
        )
    return out


def resolve_scoring(overrides: Optional[Mapping[str, Any]] = None) -> ScoringConfig:
    """Deep-merge a (possibly partial) case scoring block over DEFAULT_SCORING.

    Never raises for missing or malformed fields: anything that is not a
    usable number falls back to its default. Negative category weights are
    clamped to 0.
    """
    if isinstance(overrides, ScoringConfig):
        return overrides
    merged = _deep_merge(DEFAULT_SCORING, overrides if isinstance(overrides, Mapping) else {})
    nums = {k: _num(merged.get(k), float(DEFAULT_SCORING[k])) for k in _NUMERIC_KEYS}

    w_raw = merged.get("category_weights") if isinstance(merged.get("category_weights"), Mapping) else {}
    w_def = DEFAULT_SCORING["category_weights"]
    weights = CategoryWeights(**{c: max(0.0, _num(w_raw.get(c), float(w_def[c]))) for c in CATEGORIES})

    caps_raw = merged.get("caps") if isinstance(merged.get("caps"), Mapping) else {}
    caps_def = DEFAULT_SCORING["caps"]
    cmax_raw = caps_raw.get("category_max") if isinstance(caps_raw.get("category_max"), Mapping) else {}
    lo = _num(caps_raw.get("overall_min"), float(caps_def["overall_min"]))
    hi = _num(caps_raw.get("overall_max"), float(caps_def["overall_max"]))
    if lo > hi:
        log.warning("caps.overall_min %s > overall_max %s, swapping", lo, hi)
        lo, hi = hi, lo
    caps = Caps(
        overall_min=lo,
        overall_max=hi,
        category_max={
            c: max(0.0, _num(cmax_raw.get(c), float(caps_def["category_max"][c]))) for c in CATEGORIES
        },
    )

    return ScoringConfig(
        **nums,
        required=_build_rules("required", merged.get("required"), merged),
        unnecessary=_build_rules("unnecessary", merged.get("unnecessary"), merged),
        bonus=_build_rules("bonus", merged.get("bonus"), merged),
        category_weights=weights,
        caps=caps,
    )


def _env_true(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes", "on")


def load_config() -> dict:
    cfg: dict = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try:
            cfg = json.loads(p.read_text(encoding="utf-8"))
        except Exception:
            log.warning("config.json unreadable, using environment only")
            cfg = {}
    e = os.environ
    if e.get("USE_LLM_ADVISORY"): cfg["USE_LLM_ADVISORY"] = _env_true("USE_LLM_ADVISORY")
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    if e.get("LLM_LOG_PATH"): cfg["LLM_LOG_PATH"] = e.get("LLM_LOG_PATH")
    for k in ("AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_DEPLOYMENT"):
        if e.get(k): cfg[k] = e.get(k)
    return cfg


def get_backend(cfg: dict) -> str | None:
    if not cfg.get("USE_LLM_ADVISORY"): return None
    b = (cfg.get("LLM_BACKEND") or "").lower().strip()
    return b if b == "azure" else None
