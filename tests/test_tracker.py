from __future__ import annotations

from case_core.best_scores import BestScoreStore
from case_core.evaluator import evaluate
from case_core.tracker import ScoreManager


def test_construction_defaults(store, clock):
    mgr = ScoreManager("u1", "case-001", {"base": 120}, store=store, clock=clock)

    assert mgr.base_score == 120
    assert mgr.current_score == 120
    assert (mgr.penalty_total, mgr.speed_bonus, mgr.diagnosis_score) == (0, 0, 0)
    assert mgr.best_score is None and mgr.attempts == 0
    assert mgr.get_elapsed_ms() == 0


def test_timer_restarts(store, clock):
    mgr = ScoreManager("u1", "c", store=store, clock=clock)
    mgr.start_case_timer()
    clock.advance(5_000)
    assert mgr.get_elapsed_ms() == 5_000

    mgr.start_case_timer()
    clock.advance(1_000)
    assert mgr.get_elapsed_ms() == 1_000


def test_penalties_accumulate_in_call_order(store, clock):
    mgr = ScoreManager("u1", "c", {"penalty_per_lab": 5, "penalty_unnecessary": 6}, store=store, clock=clock)

    assert mgr.apply_penalty("lab") == -5
    assert mgr.apply_penalty("lab", unnecessary=True) == -11
    assert mgr.apply_penalty("unknown") == 0
    assert mgr.penalty_total == -16
    assert mgr.current_score == 84


def test_preview_never_touches_storage(store, clock):
    mgr = ScoreManager("u1", "c", store=store, clock=clock)
    mgr.start_case_timer()
    mgr.apply_penalty("imaging")
    preview = mgr.apply_diagnosis(True)

    assert preview == {"diagnosisDelta": 50, "speedDelta": 25, "total": 75}
    assert mgr.current_score == 100 - 8 + 50 + 25
    assert store.load("c").attempts == 0


def test_preview_without_timer_gets_no_speed_bonus(store, clock):
    mgr = ScoreManager("u1", "c", store=store, clock=clock)

    assert mgr.apply_diagnosis(False)["speedDelta"] == 0
    assert mgr.current_score == 75


def test_final_evaluation_replaces_preview(store, clock):
    mgr = ScoreManager("u1", "c", store=store, clock=clock)
    mgr.start_case_timer()
    for _ in range(4):
        mgr.apply_penalty("procedure")
    mgr.apply_diagnosis(True)
    preview_total = mgr.current_score

    res = evaluate(mgr.scoring, None, [], "STEMI", "STEMI", mgr.get_elapsed_ms())
    mgr.apply_final_evaluation(res)

    # live preview and authoritative score diverge on purpose
    assert preview_total == 100 - 40 + 50 + 25
    assert mgr.current_score == res.total == 100
    assert mgr.get_breakdown().evaluation is res
    assert mgr.best_score == 100 and mgr.attempts == 1


def test_best_score_monotone_across_attempts(tmp_path, clock):
    path = tmp_path / "scores.json"
    totals = []
    for dx in ["STEMI", "pnömoni", "STEMI"]:
        mgr = ScoreManager("u1", "case-001", store=BestScoreStore(path), clock=clock)
        before = mgr.attempts
        res = evaluate(mgr.scoring, None, [], dx, "STEMI", None)
        mgr.apply_final_evaluation(res)
        totals.append(mgr.best_score)
        assert mgr.attempts == before + 1

    assert totals == sorted(totals)
    assert ScoreManager("u1", "case-001", store=BestScoreStore(path), clock=clock).attempts == 3


def test_corrupt_storage_means_no_record(tmp_path, clock):
    path = tmp_path / "scores.json"
    path.write_text("]]]", encoding="utf-8")
    mgr = ScoreManager("u1", "c", store=BestScoreStore(path), clock=clock)

    assert mgr.best_score is None
    assert mgr.attempts == 0


class _BrokenStore:
    def load(self, case_id):
        raise OSError("disk gone")


def test_store_read_errors_never_escape(clock):
    mgr = ScoreManager("u1", "c", store=_BrokenStore(), clock=clock)

    assert mgr.best_score is None


def test_reset_restores_running_fields_only(store, clock):
    mgr = ScoreManager("u1", "c", store=store, clock=clock)
    mgr.start_case_timer()
    mgr.apply_penalty("lab")
    mgr.apply_final_evaluation(evaluate(mgr.scoring, None, [], "x", "STEMI"))
    clock.advance(10_000)

    mgr.reset()

    b = mgr.get_breakdown()
    assert (b.base, b.penalty_total, b.speed_bonus, b.diagnosis_score, b.total) == (100, 0, 0, 0, 100)
    assert b.evaluation is None
    assert mgr.get_elapsed_ms() == 0
    assert mgr.attempts == 1
    assert store.load("c").attempts == 1
