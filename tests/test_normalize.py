from __future__ import annotations

import pytest

from case_core.normalize import normalize_drug, normalize_key, strip_dose
from case_core.rules import map_rule_category, rule_section


@pytest.mark.parametrize("raw", ["D-Dimer", "d dimer", "D_DİMER", " ddimer ", "D - Dimer"])
def test_spellings_fold_together(raw):
    assert normalize_key(raw) == "ddimer"


def test_turkish_letters_fold_to_ascii():
    assert normalize_key("Göğüs Ağrısı") == "gogusagrisi"
    assert normalize_key("IŞIK") == normalize_key("ışık") == "isik"


def test_none_and_empty():
    assert normalize_key(None) == ""
    assert normalize_key("  \t_-") == ""


def test_dose_is_stripped_only_at_the_end():
    assert strip_dose("Aspirin (300 mg)") == "Aspirin"
    assert strip_dose("Nitrogliserin (0.4 mg dil altı) ") == "Nitrogliserin"
    assert strip_dose("(test) Aspirin") == "(test) Aspirin"
    assert normalize_drug("ASPİRİN (300 mg)") == "aspirin"


@pytest.mark.parametrize("rtype,category", [
    ("lab", "request"),
    ("Imaging", "request"),
    ("anamnez", "exam"),
    ("Muayene", "exam"),
    ("drug", "treatment"),
    ("İlaç", "treatment"),
    ("procedure", "treatment"),
    ("diagnosis", "diagnosis"),
    ("Tanı", "diagnosis"),
    ("consult", "request"),
    ("physical_exam", "exam"),
    ("History taking", "exam"),
    ("lab_test", "request"),
    ("drug-therapy", "treatment"),
    ("differential diagnosis", "diagnosis"),
    ("consult_note", "request"),
    ("", "request"),
])
def test_rule_category_table(rtype, category):
    assert map_rule_category(rtype) == category


@pytest.mark.parametrize("rtype,section", [
    ("lab", "labs"),
    ("lab_test", "labs"),
    ("Görüntüleme", "imaging"),
    ("İlaç", "drugs"),
    ("procedure-bedside", "procedures"),
    ("physical_exam", None),
    ("consult", None),
])
def test_rule_section_for_compound_types(rtype, section):
    assert rule_section(rtype) == section
