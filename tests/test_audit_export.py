from __future__ import annotations

import csv
import io

from case_core.audit_export import to_csv, to_json
from case_core.evaluator import evaluate
from case_core.types import Finding


def test_findings_json_is_sequenced():
    res = evaluate({"required": [{"type": "lab", "key": "Troponin", "penalty_on_skip": 10}]}, None, [], "", "STEMI")
    payload = to_json(res.findings)

    rows = payload["findings"]
    assert [r["seq"] for r in rows] == [1, 2]
    assert rows[0] == {"seq": 1, "category": "request", "delta": -10.0, "reason": "required lab 'Troponin' was skipped"}
    assert rows[1]["category"] == "diagnosis"


def test_findings_accept_plain_dicts_and_bad_deltas():
    rows = to_json([{"category": "exam", "delta": "oops", "reason": None}])["findings"]

    assert rows == [{"seq": 1, "category": "exam", "delta": 0.0, "reason": ""}]


def test_findings_csv_header_and_rows():
    body = to_csv([Finding(category="request", delta=-5, reason="1 labs request(s) x 5 penalty")])
    rows = list(csv.DictReader(io.StringIO(body)))

    assert body.splitlines()[0] == "seq,category,delta,reason"
    assert rows == [{"seq": "1", "category": "request", "delta": "-5.0", "reason": "1 labs request(s) x 5 penalty"}]


def test_empty_findings_export():
    assert to_json([]) == {"findings": []}
    assert to_csv([]).strip() == "seq,category,delta,reason"
