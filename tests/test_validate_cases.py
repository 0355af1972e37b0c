from __future__ import annotations

from tools.validate_cases import check_case
from tests.conftest import build_case


def test_bundled_style_case_is_clean():
    assert check_case(build_case()) == []


def test_rule_types_are_checked_in_any_spelling():
    case = build_case(scoring={"required": [
        {"type": "Lab", "key": "Laktat"},
        {"type": "labs", "key": "Troponin"},
        {"type": "İlaç", "key": "Heparin"},
        {"type": "lab_test", "key": "CK-MB"},
    ]})
    problems = check_case(case)

    assert any("Laktat" in p and "'labs'" in p for p in problems)
    assert any("Heparin" in p and "drug list" in p for p in problems)
    assert any("CK-MB" in p for p in problems)
    assert not any("Troponin" in p for p in problems)
