from __future__ import annotations

import pytest

from case_core.engine import CaseSession
from tests.conftest import build_case


class _Collect:
    def __init__(self):
        self.payloads = []

    def publish(self, payload):
        self.payloads.append(payload)


def _session(store, clock, **case_kwargs):
    return CaseSession(build_case(**case_kwargs), "u1", display_name="Ayşe", store=store, clock=clock)


def test_request_defined_item(store, clock):
    sess = _session(store, clock)
    out = sess.request("labs", "troponin")

    assert out == {"result": "Yüksek", "scoreDelta": -5, "unnecessary": False, "score": 95}
    assert [r.key for r in sess.selection.requests] == ["troponin"]
    assert [r.result for r in sess.selection.results] == ["Yüksek"]


def test_request_without_case_answer_is_unnecessary(store, clock):
    sess = _session(store, clock)
    out = sess.request("imaging", "MR")

    assert out["unnecessary"] is True
    assert out["result"] == "Bu görüntüleme için kayıt yok."
    assert out["scoreDelta"] == -(8 + 6)


def test_unknown_section_rejected(store, clock):
    with pytest.raises(ValueError):
        _session(store, clock).request("consults", "Kardiyoloji")


def test_drugs_record_dose_and_cost_nothing(store, clock):
    sess = _session(store, clock)
    out = sess.give_drug("Aspirin", "300 mg")

    assert out == {"result": "Ağrı azalır.", "scoreDelta": 0}
    assert sess.selection.choices[0].key == "Aspirin (300 mg)"
    assert sess.manager.current_score == 100
    with pytest.raises(ValueError):
        sess.give_drug("Heparin")


def test_advisory_only_changes_displayed_text(store, clock):
    sess = CaseSession(build_case(), "u1", store=store, clock=clock, advisory=lambda p: f"LLM: {p['key']}")
    out = sess.request("labs", "troponin")

    assert out["result"] == "LLM: troponin"
    assert sess.selection.results[0].result == "Yüksek"


def test_full_attempt_scores_and_commits_once(store, clock):
    sink = _Collect()
    sess = CaseSession(build_case(), "u1", display_name="Ayşe", store=store, broadcaster=sink, clock=clock)
    sess.record_choice("anamnez", "Ağrı karakteri")
    sess.request("imaging", "EKG")
    sess.request("labs", "d_dimer")
    sess.give_drug("Aspirin", "300 mg")
    clock.advance(60_000)

    out = sess.submit_diagnosis("inferior STEMI")

    ev = out["evaluation"]
    assert ev["diagnosis"]["isCorrect"] is True
    assert ev["speedBonus"] == 13
    # imaging -8, labs -5, unnecessary D-Dimer -4
    assert ev["categories"]["request"] == 83
    assert ev["categories"]["treatment"] == 100
    assert ev["categories"]["exam"] == 100
    assert out["message"] == "Doğru: STEMI. Bonus +50 puan."
    assert out["attempts"] == 1
    assert out["bestScore"] == ev["total"]
    assert store.load("case-t").attempts == 1
    assert sink.payloads[-1]["score"] == ev["total"]
    assert sink.payloads[-1]["displayName"] == "Ayşe"
    assert sink.payloads[-1]["elapsedMs"] == 60_000


def test_wrong_diagnosis_message(store, clock):
    sess = _session(store, clock)
    out = sess.submit_diagnosis("pnömoni")

    assert out["message"] == "Beklenen tanı: STEMI. Girilen: pnömoni."
    assert out["evaluation"]["diagnosis"]["isCorrect"] is False


def test_no_actions_after_submission(store, clock):
    sess = _session(store, clock)
    sess.submit_diagnosis("STEMI")

    assert sess.finished
    with pytest.raises(RuntimeError):
        sess.request("labs", "troponin")
    with pytest.raises(RuntimeError):
        sess.submit_diagnosis("STEMI")
    assert store.load("case-t").attempts == 1


def test_empty_diagnosis_rejected(store, clock):
    with pytest.raises(ValueError):
        _session(store, clock).submit_diagnosis("   ")


def test_reset_clears_attempt_but_keeps_best(store, clock):
    sess = _session(store, clock)
    sess.request("labs", "troponin")
    sess.submit_diagnosis("STEMI")

    sess.reset()

    snap = sess.snapshot()
    assert snap["finished"] is False
    assert snap["score"] == 100
    assert snap["selection"] == {"secimler": [], "istekler": [], "sonuclar": []}
    assert snap["attempts"] == 1
    sess.request("labs", "troponin")


def test_disposition_has_no_score_effect(store, clock):
    sess = _session(store, clock)

    assert sess.set_disposition("  PCI merkezine sevk ") == "PCI merkezine sevk"
    assert sess.set_disposition("") == "Plan kaydedildi."
    assert sess.manager.current_score == 100


def test_flow_steps_count_for_exam_rules(store, clock):
    sess = _session(store, clock, scoring={
        "caps": {"category_max": {"exam": 120}},
        "bonus": [{"type": "hikaye", "key": "Aile öyküsü", "bonus": 10}],
    })
    sess.record_step({"section": "hikaye", "choice": "aile oykusu"})

    out = sess.submit_diagnosis("STEMI")

    assert out["evaluation"]["categories"]["exam"] == 110
