"""Durable best-score records, one per case id.

The file plays the part of a browser's local key-value store: its top level
maps a namespace (``vaka:scores`` by default) to ``{caseId: {bestScore,
attempts}}``. Reads never raise; a corrupt or missing file simply means "no
record yet". Writes go through a temp file and an atomic rename, one attempt,
no retry.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import SCORES_PATH, SCORES_NAMESPACE
from .types import BestScoreRecord

log = logging.getLogger(__name__)

_LOCK = threading.Lock()


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        log.warning("best-score file %s unreadable (%s); treating as empty", path, exc)
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def _coerce_record(entry: Any) -> BestScoreRecord:
    if not isinstance(entry, dict):
        return BestScoreRecord()
    best = entry.get("bestScore")
    try:
        best = None if best is None else float(best)
    except (TypeError, ValueError):
        best = None
    try:
        attempts = max(0, int(entry.get("attempts") or 0))
    except (TypeError, ValueError):
        attempts = 0
    if best is not None and best.is_integer():
        best = int(best)
    return BestScoreRecord(best_score=best, attempts=attempts)


class BestScoreStore:
    def __init__(self, path: Union[str, Path, None] = None, namespace: str = SCORES_NAMESPACE):
        self.path = Path(path) if path is not None else SCORES_PATH
        self.namespace = namespace

    def _table(self) -> Dict[str, Any]:
        data = _read_json(self.path, {})
        if not isinstance(data, dict):
            return {}
        table = data.get(self.namespace)
        return table if isinstance(table, dict) else {}

    def load(self, case_id: str) -> BestScoreRecord:
        return _coerce_record(self._table().get(str(case_id)))

    def save(self, case_id: str, record: BestScoreRecord) -> None:
        with _LOCK:
            data = _read_json(self.path, {})
            if not isinstance(data, dict):
                data = {}
            table = data.get(self.namespace)
            if not isinstance(table, dict):
                table = {}
            table[str(case_id)] = record.to_dict()
            data[self.namespace] = table
            try:
                _write_json(self.path, data)
            except OSError as exc:
                log.warning("could not persist best score for %s: %s", case_id, exc)

    def commit(self, case_id: str, score: float) -> BestScoreRecord:
        """Count one finished attempt and keep the higher of old best and ``score``."""
        current = self.load(case_id)
        best: Optional[float] = current.best_score
        if best is None or score > best:
            best = score
        updated = BestScoreRecord(best_score=best, attempts=current.attempts + 1)
        self.save(case_id, updated)
        return updated

    def all_records(self) -> Dict[str, BestScoreRecord]:
        return {cid: _coerce_record(entry) for cid, entry in self._table().items()}


__all__ = ["BestScoreStore"]
