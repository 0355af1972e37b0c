from __future__ import annotations

import json

from case_core.best_scores import BestScoreStore
from case_core.types import BestScoreRecord


def test_missing_file_is_no_record(tmp_path):
    rec = BestScoreStore(tmp_path / "none.json").load("case-001")

    assert rec == BestScoreRecord(best_score=None, attempts=0)


def test_commit_keeps_max_and_counts(store):
    store.commit("case-001", 60)
    store.commit("case-001", 40)
    rec = store.commit("case-001", 75)

    assert rec.best_score == 75
    assert rec.attempts == 3
    assert store.load("case-001") == rec


def test_file_layout_is_namespaced(tmp_path):
    path = tmp_path / "scores.json"
    BestScoreStore(path, namespace="vaka:scores").commit("case-002", 88)
    BestScoreStore(path, namespace="vaka:scores:u2").commit("case-002", 10)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["vaka:scores"] == {"case-002": {"bestScore": 88, "attempts": 1}}
    assert data["vaka:scores:u2"]["case-002"]["attempts"] == 1


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "scores.json"
    path.write_text("{not json", encoding="utf-8")
    store = BestScoreStore(path)

    assert store.load("case-001").best_score is None
    assert store.commit("case-001", 50).attempts == 1


def test_garbage_record_is_coerced(tmp_path):
    path = tmp_path / "scores.json"
    path.write_text(json.dumps({"vaka:scores": {"case-001": {"bestScore": "high", "attempts": -4}}}), encoding="utf-8")

    rec = BestScoreStore(path).load("case-001")
    assert rec.best_score is None
    assert rec.attempts == 0
