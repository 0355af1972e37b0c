"""Outbound score updates for a live classroom session.

The core only builds the payload; whatever publishes it (a JSON file store, a
realtime database, nothing at all) sits behind ``ScoreBroadcaster``.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from .types import ScoreBreakdown

log = logging.getLogger(__name__)


class ScoreBroadcaster(Protocol):
    def publish(self, payload: Dict[str, Any]) -> None: ...


class NullBroadcaster:
    def publish(self, payload: Dict[str, Any]) -> None:
        return None


class CallbackBroadcaster:
    """Adapts a plain callable; publish failures are logged and dropped."""

    def __init__(self, fn: Callable[[Dict[str, Any]], Any]):
        self._fn = fn

    def publish(self, payload: Dict[str, Any]) -> None:
        try:
            self._fn(payload)
        except Exception as exc:
            log.warning("score broadcast failed for %s: %s", payload.get("userId"), exc)


def score_payload(
    breakdown: ScoreBreakdown,
    *,
    user_id: str,
    case_id: str,
    elapsed_ms: float,
    display_name: Optional[str] = None,
) -> Dict[str, Any]:
    b = breakdown.to_dict()
    return {
        "userId": user_id,
        "displayName": display_name or "Katılımcı",
        "currentCaseId": case_id,
        "score": breakdown.total,
        "speedBonus": breakdown.speed_bonus,
        "penaltyTotal": breakdown.penalty_total,
        "diagnosisScore": breakdown.diagnosis_score,
        "baseScore": breakdown.base,
        "elapsedMs": int(elapsed_ms),
        "scoreBreakdown": b,
    }


__all__ = ["ScoreBroadcaster", "NullBroadcaster", "CallbackBroadcaster", "score_payload"]
