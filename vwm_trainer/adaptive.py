from __future__ import annotations

import logging
from enum import StrEnum
from typing import Protocol

from .cognitive_core import SeededRng, clamp_int, median
from .session import (
    ANCHOR_MAX,
    ANCHOR_MIN,
    COMPARE_DELTA_MAX,
    COMPARE_DELTA_MIN,
    EXPOSURE_MS_MAX,
    EXPOSURE_MS_MIN,
    MIN_SEP_PX_MAX,
    MIN_SEP_PX_MIN,
    SET_MAX,
    SET_MIN,
    SPATIAL_SET_MAX,
    SPATIAL_SET_MIN,
    NumerositySubmode,
    Session,
    TrainingMode,
)
from .stimuli import NUM_COUNT_MAX, NUM_COUNT_MIN

logger = logging.getLogger(__name__)

STREAK_TO_STEP_UP = 3
BLOCK_ACCURACY_TO_STEP_UP = 0.9
BLOCK_STEP_UP = 2

TARGET_ACCURACY = 0.75
EASE_ACCURACY = 0.65
FAST_MEDIAN_RT_MS = 900.0
SLOW_MEDIAN_RT_MS = 1150.0

EXPOSURE_STEP_MS = 20
MIN_SEP_STEP_PX = 2
SIMILARITY_STEP = 0.06


class Adjustment(StrEnum):
    HARDER = "harder"
    EASIER = "easier"
    HOLD = "hold"


class DifficultyController(Protocol):
    def on_trial(self, session: Session, *, correct: bool, rt_ms: float) -> Adjustment: ...

    def on_block_end(self, session: Session, *, accuracy: float) -> Adjustment: ...


class PerTrialStaircase:
    """3-up/1-down set-size staircase (orientation, color, saccade)."""

    def on_trial(self, session: Session, *, correct: bool, rt_ms: float) -> Adjustment:
        _ = rt_ms
        if not correct:
            session.set_size = max(SET_MIN, session.effective_set_size() - 1)
            session.correct_streak = 0
            return Adjustment.EASIER
        session.correct_streak += 1
        if session.correct_streak >= STREAK_TO_STEP_UP:
            session.set_size = min(SET_MAX, session.effective_set_size() + 1)
            session.correct_streak = 0
            return Adjustment.HARDER
        return Adjustment.HOLD

    def on_block_end(self, session: Session, *, accuracy: float) -> Adjustment:
        return Adjustment.HOLD


class BlockStaircase:
    """Block rule for spatial frequency: >= 90 % over a block -> +2, else -1."""

    def on_trial(self, session: Session, *, correct: bool, rt_ms: float) -> Adjustment:
        return Adjustment.HOLD

    def on_block_end(self, session: Session, *, accuracy: float) -> Adjustment:
        if accuracy >= BLOCK_ACCURACY_TO_STEP_UP:
            session.set_size = min(SPATIAL_SET_MAX, session.effective_set_size() + BLOCK_STEP_UP)
            return Adjustment.HARDER
        session.set_size = max(SPATIAL_SET_MIN, session.effective_set_size() - 1)
        return Adjustment.EASIER


class NumerosityController:
    """Windowed multi-parameter controller for both numerosity submodes.

    Tracks the last 16 (correct, RT) outcomes and moves exposure, spacing,
    similarity, anchor count and (compare only) count delta together.
    Between the two bands every parameter is held.
    """

    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng

    def on_trial(self, session: Session, *, correct: bool, rt_ms: float) -> Adjustment:
        window = session.recent_outcomes
        window.append((bool(correct), float(rt_ms)))
        accuracy = sum(1 for ok, _ in window if ok) / float(max(1, len(window)))
        median_rt = median([rt for _, rt in window])
        if median_rt is None:
            median_rt = float(rt_ms)

        compare = session.numerosity_submode is NumerositySubmode.COMPARE
        p = session.numerosity
        if accuracy >= TARGET_ACCURACY and median_rt <= FAST_MEDIAN_RT_MS:
            p.exposure_ms = max(EXPOSURE_MS_MIN, p.exposure_ms - EXPOSURE_STEP_MS)
            p.min_separation_px = max(MIN_SEP_PX_MIN, p.min_separation_px - MIN_SEP_STEP_PX)
            p.similarity = min(1.0, p.similarity + SIMILARITY_STEP)
            p.anchor_set_size = min(ANCHOR_MAX, p.anchor_set_size + 1)
            if compare:
                p.compare_delta = max(COMPARE_DELTA_MIN, p.compare_delta - 1)
            adjustment = Adjustment.HARDER
        elif accuracy < EASE_ACCURACY or median_rt > SLOW_MEDIAN_RT_MS:
            p.exposure_ms = min(EXPOSURE_MS_MAX, p.exposure_ms + EXPOSURE_STEP_MS)
            p.min_separation_px = min(MIN_SEP_PX_MAX, p.min_separation_px + MIN_SEP_STEP_PX)
            p.similarity = max(0.0, p.similarity - SIMILARITY_STEP)
            p.anchor_set_size = max(ANCHOR_MIN, p.anchor_set_size - 1)
            if compare:
                p.compare_delta = min(COMPARE_DELTA_MAX, p.compare_delta + 1)
            adjustment = Adjustment.EASIER
        else:
            adjustment = Adjustment.HOLD

        if not compare:
            # Jitter the next count around the anchor so it cannot be anticipated.
            jitter = self._rng.randint(-1, 1)
            session.set_size = clamp_int(p.anchor_set_size + jitter, NUM_COUNT_MIN, NUM_COUNT_MAX)
        session.correct_streak = 0

        logger.debug(
            "numerosity window acc=%.2f median_rt=%.0fms -> %s (%s)",
            accuracy,
            median_rt,
            adjustment.value,
            p,
        )
        return adjustment

    def on_block_end(self, session: Session, *, accuracy: float) -> Adjustment:
        return Adjustment.HOLD


class AdaptiveController:
    """Routes trial and block outcomes to the policy of the active mode."""

    def __init__(self, rng: SeededRng) -> None:
        self._per_trial = PerTrialStaircase()
        self._block = BlockStaircase()
        self._numerosity = NumerosityController(rng)

    def controller_for(self, mode: TrainingMode) -> DifficultyController:
        if mode is TrainingMode.SPATIAL:
            return self._block
        if mode is TrainingMode.NUMEROSITY:
            return self._numerosity
        return self._per_trial

    def on_trial(self, session: Session, *, correct: bool, rt_ms: float) -> Adjustment:
        return self.controller_for(session.mode).on_trial(session, correct=correct, rt_ms=rt_ms)

    def on_block_end(self, session: Session, *, accuracy: float) -> Adjustment:
        return self.controller_for(session.mode).on_block_end(session, accuracy=accuracy)
