# case_core/evaluator.py
"""End-of-case evaluation.

``evaluate`` is the authoritative scorer: it re-derives every category from the
full action snapshot (presence, not order), so calling it twice with the same
arguments yields identical results. Category deltas are clamped into
``[0, category_max]`` as they are applied, which makes the order of the steps
below significant:

1. volume penalty per request section (labs, imaging, procedures)
2. required rules that were skipped
3. unnecessary rules that were performed
4. bonus rules that were performed
5. diagnosis verdict
6. speed bonus
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging, math

from .config import resolve_scoring, DEBUG_TRACE, TRACE_FIELDS
from .normalize import normalize_key
from .rules import SelectionIndex, is_performed
from .scoring import diagnosis_delta, speed_bonus, round_half_up
from .types import (
    CATEGORIES,
    DiagnosisVerdict,
    EvaluationResult,
    Finding,
    RuleEntry,
    ScoringConfig,
    SelectionState,
)

log = logging.getLogger(__name__)

_SECTION_PENALTY_FIELD: Dict[str, str] = {
    "labs": "penalty_per_lab",
    "imaging": "penalty_per_imaging",
    "procedures": "penalty_per_procedure",
}


def _emit_trace(**values: object) -> None:
    if not DEBUG_TRACE:
        return
    ordered = [f"{key}={values[key]}" for key in TRACE_FIELDS if key in values]
    if ordered:
        log.info("trace %s", " ".join(ordered))


def _fmt(x: float) -> str:
    return str(int(x)) if float(x).is_integer() else f"{x:g}"


class _Ledger:
    """Category scores plus the findings that moved them."""

    def __init__(self, cfg: ScoringConfig):
        self.cfg = cfg
        self.scores: Dict[str, float] = {
            c: min(100.0, float(cfg.caps.category_max.get(c, 100.0))) for c in CATEGORIES
        }
        self.findings: List[Finding] = []

    def apply(self, category: str, delta: float, reason: str) -> None:
        cap = float(self.cfg.caps.category_max.get(category, 100.0))
        before = self.scores[category]
        after = max(0.0, min(cap, before + delta))
        self.scores[category] = after
        self.findings.append(Finding(category=category, delta=delta, reason=reason))  # type: ignore[arg-type]
        _emit_trace(category=category, delta=delta, before=before, after=after, reason=reason)


def _clamp_int(x: float, lo: float, hi: float) -> int:
    return int(max(math.ceil(lo), min(math.floor(hi), round_half_up(x))))


def _rule_reason(rule: RuleEntry, verb: str) -> str:
    return f"{rule.kind} {rule.type or 'request'} '{rule.key}' {verb}"


def is_correct_diagnosis(diagnosis_input: Optional[str], expected: Optional[str]) -> bool:
    """Substring match on normalised text: extra words in the answer are tolerated."""
    given = normalize_key(diagnosis_input)
    want = normalize_key(expected)
    return bool(given) and bool(want) and want in given


def evaluate(
    scoring_config: Union[ScoringConfig, Mapping[str, Any], None],
    selection_state: Union[SelectionState, Mapping[str, Any], None],
    flow_history: Optional[Iterable[Any]] = None,
    diagnosis_input: Optional[str] = "",
    expected_diagnosis: Optional[str] = "",
    elapsed_ms: Optional[float] = None,
) -> EvaluationResult:
    cfg = resolve_scoring(scoring_config)
    selection = selection_state if isinstance(selection_state, SelectionState) else SelectionState.from_dict(selection_state)
    weight_sum = cfg.category_weights.total() or 1.0

    index = SelectionIndex.build(selection, flow_history or (), diagnosis_input or "")
    ledger = _Ledger(cfg)

    for section, field_name in _SECTION_PENALTY_FIELD.items():
        count = index.request_count(section)
        if not count:
            continue
        per = float(getattr(cfg, field_name))
        ledger.apply("request", -count * per, f"{count} {section} request(s) x {_fmt(per)} penalty")

    for rule in cfg.required:
        if not is_performed(rule, index):
            ledger.apply(rule.category, -rule.amount, _rule_reason(rule, "was skipped"))

    for rule in cfg.unnecessary:
        if is_performed(rule, index):
            ledger.apply(rule.category, -rule.amount, _rule_reason(rule, "was not indicated"))

    for rule in cfg.bonus:
        if is_performed(rule, index):
            ledger.apply(rule.category, rule.amount, _rule_reason(rule, "was performed"))

    correct = is_correct_diagnosis(diagnosis_input, expected_diagnosis)
    ledger.apply(
        "diagnosis",
        diagnosis_delta(correct, cfg),
        f"diagnosis correct ({expected_diagnosis})" if correct else f"diagnosis incorrect, expected {expected_diagnosis}",
    )

    speed = speed_bonus(elapsed_ms, cfg)
    if speed:
        secs = max(float(elapsed_ms or 0), 0.0) / 1000.0
        ledger.apply("diagnosis", speed, f"speed bonus after {secs:.0f}s")

    categories = {
        c: _clamp_int(ledger.scores[c], 0.0, cfg.caps.category_max.get(c, 100.0)) for c in CATEGORIES
    }
    weighted = sum(ledger.scores[c] * cfg.category_weights.get(c) for c in CATEGORIES) / weight_sum
    total = _clamp_int(weighted, cfg.caps.overall_min, cfg.caps.overall_max)

    return EvaluationResult(
        total=total,
        categories=categories,
        findings=list(ledger.findings),
        diagnosis=DiagnosisVerdict(
            input=diagnosis_input or "",
            expected=expected_diagnosis or "",
            is_correct=correct,
        ),
        speed_bonus=speed,
    )


__all__ = ["evaluate", "is_correct_diagnosis"]
