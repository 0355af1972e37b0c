# case_core/tracker.py
from __future__ import annotations
from typing import Any, Callable, Dict, Mapping, Optional
import logging
import time

from .best_scores import BestScoreStore
from .config import resolve_scoring
from .scoring import base_score, action_penalty, diagnosis_delta, speed_bonus
from .types import EvaluationResult, ScoreBreakdown, ScoringConfig

log = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000.0


class ScoreManager:
    """Running score for one (learner, case) attempt.

    ``apply_penalty`` / ``apply_diagnosis`` keep a cheap live preview
    (base + penalties + diagnosis + speed) that ignores categories, weights and
    caps. The authoritative number only arrives through
    ``apply_final_evaluation``, which is also the single place an attempt is
    committed to the best-score store.
    """

    def __init__(
        self,
        user_id: str,
        case_id: str,
        scoring: Optional[Mapping[str, Any] | ScoringConfig] = None,
        *,
        store: Optional[BestScoreStore] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        self.user_id = user_id
        self.case_id = case_id
        self.scoring = resolve_scoring(scoring)
        self.store = store if store is not None else BestScoreStore()
        self._clock = clock
        self.case_started_at: Optional[float] = None
        self.best_score: Optional[float] = None
        self.attempts: int = 0
        self._reset_running()
        self.load_best_score()

    def _reset_running(self) -> None:
        self.base_score = base_score(self.scoring)
        self.penalty_total = 0.0
        self.speed_bonus = 0
        self.diagnosis_score = 0.0
        self.current_score = self.base_score
        self.evaluation: Optional[EvaluationResult] = None

    def _recompute(self) -> None:
        self.current_score = self.base_score + self.penalty_total + self.diagnosis_score + self.speed_bonus

    # ---- timing ----
    def start_case_timer(self) -> None:
        self.case_started_at = self._clock()

    def get_elapsed_ms(self) -> float:
        if self.case_started_at is None:
            return 0
        return max(self._clock() - self.case_started_at, 0)

    # ---- persistence ----
    def load_best_score(self) -> None:
        try:
            rec = self.store.load(self.case_id)
        except Exception as exc:
            log.warning("best score for %s unavailable: %s", self.case_id, exc)
            self.best_score, self.attempts = None, 0
            return
        self.best_score, self.attempts = rec.best_score, rec.attempts

    def save_best_score(self) -> None:
        rec = self.store.commit(self.case_id, self.current_score)
        self.best_score, self.attempts = rec.best_score, rec.attempts

    # ---- live preview ----
    def apply_penalty(self, action_type: str, *, unnecessary: bool = False) -> float:
        delta = action_penalty(action_type, self.scoring, unnecessary=unnecessary)
        self.penalty_total += delta
        self._recompute()
        return delta

    def apply_diagnosis(self, is_correct: bool) -> Dict[str, float]:
        """Preview the diagnosis step; nothing is persisted here."""
        dx = diagnosis_delta(is_correct, self.scoring)
        elapsed = self.get_elapsed_ms() if self.case_started_at is not None else None
        speed = speed_bonus(elapsed, self.scoring)
        self.diagnosis_score = dx
        self.speed_bonus = speed
        self._recompute()
        return {"diagnosisDelta": dx, "speedDelta": speed, "total": dx + speed}

    # ---- final ----
    def apply_final_evaluation(self, evaluation: EvaluationResult) -> EvaluationResult:
        self.evaluation = evaluation
        self.speed_bonus = evaluation.speed_bonus
        self.current_score = evaluation.total
        self.save_best_score()
        return evaluation

    def get_breakdown(self) -> ScoreBreakdown:
        return ScoreBreakdown(
            base=self.base_score,
            penalty_total=self.penalty_total,
            speed_bonus=self.speed_bonus,
            diagnosis_score=self.diagnosis_score,
            total=self.current_score,
            evaluation=self.evaluation,
        )

    def reset(self) -> None:
        self._reset_running()
        self.start_case_timer()


__all__ = ["ScoreManager"]
