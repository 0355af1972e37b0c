"""Helpers to export evaluation findings in JSON/CSV formats."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

from .types import Finding

_FIELDS: tuple[str, ...] = (
    "seq",
    "category",
    "delta",
    "reason",
)


def _normalize_finding(seq: int, finding: Any) -> Dict[str, Any]:
    if isinstance(finding, Finding):
        raw: Dict[str, Any] = {"category": finding.category, "delta": finding.delta, "reason": finding.reason}
    else:
        raw = dict(finding or {})
    try:
        delta = float(raw.get("delta"))
    except (TypeError, ValueError):
        delta = 0.0
    return {
        "seq": seq,
        "category": "" if raw.get("category") is None else str(raw.get("category")),
        "delta": delta,
        "reason": "" if raw.get("reason") is None else str(raw.get("reason")),
    }


def to_json(findings: Iterable[Any]) -> Dict[str, Any]:
    """Return a JSON-safe payload for findings export."""

    normalized: List[Dict[str, Any]] = [_normalize_finding(i, f) for i, f in enumerate(findings, start=1)]
    return {"findings": normalized}


def to_csv(findings: Iterable[Any]) -> str:
    """Render findings as CSV with a fixed header."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for i, f in enumerate(findings, start=1):
        writer.writerow(_normalize_finding(i, f))
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
