from __future__ import annotations
import json, os, time, logging, pathlib
from dataclasses import dataclass
from typing import Dict, Any, Optional

from openai import AzureOpenAI

from .config import load_config, get_backend

log = logging.getLogger(__name__)

_SYSTEM = (
    "Sen bir acil tıp simülasyonunda hasta verisini sunan asistansın. "
    "İstenen tetkik, görüntüleme, işlem veya ilaç için yalnızca kısa, klinik bir sonuç metni yaz. "
    "Tanı önerme, puan verme."
)


@dataclass(frozen=True)
class AzureSettings:
    endpoint: str
    api_key: str
    deployment: str
    api_version: str


def azure_settings(cfg: Optional[Dict[str, Any]] = None) -> Optional[AzureSettings]:
    """Azure credentials from env/config.json, or from ``.azure_config.json``; None if incomplete."""
    cfg = cfg if cfg is not None else load_config()
    vals = {
        "endpoint": cfg.get("AZURE_OPENAI_ENDPOINT", ""),
        "api_key": cfg.get("AZURE_OPENAI_API_KEY", ""),
        "api_version": cfg.get("AZURE_OPENAI_API_VERSION", ""),
        "deployment": cfg.get("AZURE_OPENAI_DEPLOYMENT", ""),
    }
    if not all(vals.values()):
        p = pathlib.Path(".azure_config.json")
        if p.exists():
            try:
                j = json.loads(p.read_text(encoding="utf-8"))
                for k in vals:
                    if not vals[k]:
                        vals[k] = str(j.get(k, ""))
            except Exception:
                log.warning(".azure_config.json unreadable")
    if not all(vals.values()):
        return None
    return AzureSettings(**vals)


def _ask_azure(s: AzureSettings, payload: Dict[str, Any]) -> str:
    cli = AzureOpenAI(azure_endpoint=s.endpoint, api_key=s.api_key, api_version=s.api_version)
    user = json.dumps(payload, ensure_ascii=False)
    resp = cli.chat.completions.create(
        model=s.deployment,
        messages=[{"role": "system", "content": _SYSTEM}, {"role": "user", "content": user}],
        temperature=0.2, max_tokens=200,
    )
    return (resp.choices[0].message.content or "").strip()


def _log_call(cfg: Dict[str, Any], payload: Dict[str, Any], answer: Optional[str], error: Optional[str], t0: float) -> None:
    path = cfg.get("LLM_LOG_PATH")
    if not path:
        return
    entry = {
        "ts": round(time.time(), 3),
        "case": payload.get("caseId"),
        "section": payload.get("section"),
        "key": payload.get("key"),
        "answer": (answer or "")[:1200],
        "error": error,
        "rt_ms": int((time.time() - t0) * 1000),
    }
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    except OSError as exc:
        log.debug("advisory log not written: %s", exc)


def advisory_text(payload: Dict[str, Any], cfg: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Optional free-text result for an action, shown instead of the static answer.

    Returns None when advisory text is switched off, not configured, or the
    call fails. Scoring never looks at this text.
    """
    cfg = cfg if cfg is not None else load_config()
    if get_backend(cfg) != "azure":
        return None
    s = azure_settings(cfg)
    if s is None:
        log.warning("advisory text enabled but Azure OpenAI is not configured")
        return None
    t0 = time.time()
    try:
        answer = _ask_azure(s, payload)
    except Exception as exc:
        log.warning("advisory text request failed, using static answer: %s", exc)
        _log_call(cfg, payload, None, str(exc), t0)
        return None
    _log_call(cfg, payload, answer, None, t0)
    return answer or None


__all__ = ["AzureSettings", "azure_settings", "advisory_text"]
