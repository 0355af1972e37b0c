from __future__ import annotations
import json, logging, importlib.resources as ir
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import CASES_PATH
from .normalize import normalize_key

log = logging.getLogger(__name__)

NO_ANSWER_TEXT = "Bu işlem için tanımlı yanıt yok."
KEYED_SECTIONS: tuple[str, ...] = ("labs", "imaging", "procedures")


def _fallback_cases() -> Dict[str, Any]:
    return {
        "featured_case_id": "case-000",
        "cases": [
            {
                "id": "case-000",
                "title": "Örnek Vaka",
                "story": "Vaka verisi yüklenemedi; örnek vaka gösteriliyor.",
                "labs": {"default": "Bu tetkik için sonuç yok."},
                "imaging": {"default": "Bu görüntüleme için kayıt yok."},
                "procedures": {"default": "Prosedür sonucu kaydı yok."},
                "drugs": [],
                "final_diagnosis": "",
                "scoring": {},
            }
        ],
    }


def _valid(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("cases"), list)


def load_cases(path: Optional[str] = None) -> Dict[str, Any]:
    """External file (``path`` or ``CASES_PATH``) first, then the bundled bank,
    then a one-case placeholder so callers always get something playable."""
    src = path or CASES_PATH
    if src:
        try:
            data = json.loads(Path(src).read_text(encoding="utf-8"))
            if _valid(data):
                return data
            log.warning("case file %s has no 'cases' list, using bundled cases", src)
        except Exception as exc:
            log.warning("case file %s unreadable (%s), using bundled cases", src, exc)
    try:
        raw = ir.files(__package__).joinpath("data/cases.json").read_text(encoding="utf-8")
        data = json.loads(raw)
        if _valid(data):
            return data
    except Exception as exc:
        log.error("bundled cases unreadable, falling back to placeholder: %s", exc)
    return _fallback_cases()


def featured_case_id(data: Optional[Dict[str, Any]]) -> Optional[str]:
    if not data:
        return None
    if data.get("featured_case_id"):
        return data["featured_case_id"]
    cases: List[Dict[str, Any]] = data.get("cases") or []
    return cases[0].get("id") if cases else None


def find_case(data: Optional[Dict[str, Any]], case_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not data or not data.get("cases"):
        return None
    return next((c for c in data["cases"] if c.get("id") == case_id), None)


def section_keys(case: Dict[str, Any], section: str) -> List[str]:
    src = case.get(section) or {}
    if not isinstance(src, dict):
        return []
    return [k for k in src.keys() if k != "default"]


def static_result(case: Dict[str, Any], section: str, key: str) -> Tuple[str, bool]:
    """Case-defined answer for an ordered item and whether one was defined.

    Items without their own answer get the section's ``default`` text (or a
    generic message) and count as not clinically indicated.
    """
    src = case.get(section) or {}
    if isinstance(src, dict):
        if key in src and key != "default":
            return str(src[key]), True
        wanted = normalize_key(key)
        for k, v in src.items():
            if k != "default" and wanted and normalize_key(k) == wanted:
                return str(v), True
    if isinstance(src, dict) and src.get("default"):
        return str(src["default"]), False
    return NO_ANSWER_TEXT, False


def find_drug(case: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    wanted = normalize_key(name)
    for d in case.get("drugs") or []:
        if isinstance(d, dict) and wanted and normalize_key(d.get("name")) == wanted:
            return d
    return None


__all__ = [
    "NO_ANSWER_TEXT",
    "KEYED_SECTIONS",
    "load_cases",
    "featured_case_id",
    "find_case",
    "section_keys",
    "static_result",
    "find_drug",
]
