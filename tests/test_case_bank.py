from __future__ import annotations

import json

from case_core.case_bank import (
    NO_ANSWER_TEXT,
    featured_case_id,
    find_case,
    find_drug,
    load_cases,
    section_keys,
    static_result,
)
from tests.conftest import build_case


def test_bundled_bank_loads():
    data = load_cases()

    assert featured_case_id(data) == "case-001"
    assert find_case(data, "case-002")["final_diagnosis"] == "Hemorajik şok"
    assert find_case(data, "nope") is None


def test_external_file_wins(tmp_path):
    path = tmp_path / "cases.json"
    path.write_text(json.dumps({"cases": [build_case(case_id="x-1")]}), encoding="utf-8")
    data = load_cases(str(path))

    assert featured_case_id(data) == "x-1"


def test_broken_external_file_falls_back(tmp_path):
    path = tmp_path / "cases.json"
    path.write_text("{}", encoding="utf-8")

    assert featured_case_id(load_cases(str(path))) == "case-001"


def test_static_result_lookup():
    case = build_case()

    assert static_result(case, "labs", "troponin") == ("Yüksek", True)
    assert static_result(case, "imaging", "EKG") == ("ST elevasyonu", True)
    assert static_result(case, "labs", "D-Dimer") == ("Normal", True)
    assert static_result(case, "labs", "laktat") == ("Bu tetkik için sonuç yok.", False)
    assert static_result(case, "labs", "default") == ("Bu tetkik için sonuç yok.", False)
    assert static_result({"labs": {}}, "labs", "hb") == (NO_ANSWER_TEXT, False)


def test_section_keys_hide_default():
    assert section_keys(build_case(), "labs") == ["troponin", "d_dimer"]


def test_find_drug_by_any_spelling():
    case = build_case()

    assert find_drug(case, "aspirin")["name"] == "Aspirin"
    assert find_drug(case, "Heparin") is None
