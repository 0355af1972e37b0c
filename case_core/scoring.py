from __future__ import annotations
from typing import Optional, Dict
import math

from .types import ScoringConfig
from .config import resolve_scoring


def round_half_up(x: float) -> int:
    """Round .5 away from zero for positives (browser ``Math.round`` semantics)."""
    return int(math.floor(float(x) + 0.5))


def _cfg(config) -> ScoringConfig:
    return config if isinstance(config, ScoringConfig) else resolve_scoring(config)


def base_score(config=None) -> float:
    return _cfg(config).base


def action_penalty(action_type: str, config=None, *, unnecessary: bool = False) -> float:
    """Penalty (<= 0) for ordering a lab, imaging study or procedure.

    Unknown action types cost nothing; ``unnecessary`` adds ``penalty_unnecessary``
    on top of the flat per-type penalty.
    """
    cfg = _cfg(config)
    penalties: Dict[str, float] = {
        "lab": cfg.penalty_per_lab,
        "imaging": cfg.penalty_per_imaging,
        "procedure": cfg.penalty_per_procedure,
    }
    if action_type not in penalties:
        return 0.0
    extra = cfg.penalty_unnecessary if unnecessary else 0.0
    return -(penalties[action_type] + extra)


def diagnosis_delta(is_correct: bool, config=None) -> float:
    cfg = _cfg(config)
    if is_correct:
        return cfg.bonus_correct_dx
    return -cfg.penalty_wrong_dx


def speed_bonus(elapsed_ms: Optional[float], config=None) -> int:
    """Linearly decaying bonus: full ``speed_max_bonus`` at 0 ms, nothing once
    the window has elapsed. ``None`` means the attempt was never timed."""
    cfg = _cfg(config)
    window = cfg.speed_bonus_window_sec
    if elapsed_ms is None or cfg.speed_max_bonus <= 0 or not window or window <= 0:
        return 0
    elapsed_sec = max(float(elapsed_ms), 0.0) / 1000.0
    remaining = max(window - elapsed_sec, 0.0)
    if remaining <= 0:
        return 0
    return round_half_up(cfg.speed_max_bonus * remaining / window)


__all__ = ["round_half_up", "base_score", "action_penalty", "diagnosis_delta", "speed_bonus"]
