from __future__ import annotations

import pytest

from vwm_trainer.adaptive import (
    AdaptiveController,
    Adjustment,
    BlockStaircase,
    NumerosityController,
    PerTrialStaircase,
)
from vwm_trainer.cognitive_core import SeededRng
from vwm_trainer.session import NumerositySubmode, Session, TrainingMode


def test_per_trial_staircase_three_up_one_down() -> None:
    s = Session(set_size=4)
    stair = PerTrialStaircase()

    assert stair.on_trial(s, correct=True, rt_ms=500.0) is Adjustment.HOLD
    assert stair.on_trial(s, correct=True, rt_ms=500.0) is Adjustment.HOLD
    assert s.correct_streak == 2
    assert stair.on_trial(s, correct=True, rt_ms=500.0) is Adjustment.HARDER
    assert s.set_size == 5
    assert s.correct_streak == 0

    stair.on_trial(s, correct=True, rt_ms=500.0)
    assert stair.on_trial(s, correct=False, rt_ms=500.0) is Adjustment.EASIER
    assert s.set_size == 4
    assert s.correct_streak == 0


def test_per_trial_staircase_respects_bounds() -> None:
    stair = PerTrialStaircase()
    top = Session(set_size=10)
    for _ in range(3):
        stair.on_trial(top, correct=True, rt_ms=300.0)
    assert top.set_size == 10

    bottom = Session(set_size=2)
    stair.on_trial(bottom, correct=False, rt_ms=300.0)
    assert bottom.set_size == 2


def test_per_trial_staircase_starts_from_clamped_set_size() -> None:
    # A set size of 1 left over from spatial mode counts as 2 here.
    s = Session(set_size=1)
    stair = PerTrialStaircase()
    for _ in range(3):
        stair.on_trial(s, correct=True, rt_ms=300.0)
    assert s.set_size == 3


@pytest.mark.parametrize(
    ("start", "accuracy", "expected"),
    [(3, 0.95, 5), (6, 0.9, 7), (7, 1.0, 7), (3, 0.85, 2), (1, 0.5, 1), (10, 1.0, 7)],
)
def test_block_staircase(start: int, accuracy: float, expected: int) -> None:
    s = Session(set_size=start, mode=TrainingMode.SPATIAL)
    stair = BlockStaircase()
    assert stair.on_trial(s, correct=True, rt_ms=100.0) is Adjustment.HOLD
    stair.on_block_end(s, accuracy=accuracy)
    assert s.set_size == expected


def _numerosity_session(submode: NumerositySubmode) -> Session:
    return Session(mode=TrainingMode.NUMEROSITY, numerosity_submode=submode)


def test_numerosity_fast_accurate_window_makes_enumerate_harder() -> None:
    s = _numerosity_session(NumerositySubmode.ENUMERATE)
    ctrl = NumerosityController(SeededRng(5))
    assert ctrl.on_trial(s, correct=True, rt_ms=700.0) is Adjustment.HARDER

    p = s.numerosity
    assert p.exposure_ms == 180
    assert p.min_separation_px == 26
    assert p.similarity == pytest.approx(0.26)
    assert p.anchor_set_size == 6
    assert p.compare_delta == 2  # enumerate never moves delta
    assert abs(s.set_size - p.anchor_set_size) <= 1
    assert 4 <= s.set_size <= 10


def test_numerosity_slow_or_inaccurate_window_makes_compare_easier() -> None:
    s = _numerosity_session(NumerositySubmode.COMPARE)
    ctrl = NumerosityController(SeededRng(5))
    assert ctrl.on_trial(s, correct=False, rt_ms=700.0) is Adjustment.EASIER

    p = s.numerosity
    assert p.exposure_ms == 220
    assert p.min_separation_px == 30
    assert p.similarity == pytest.approx(0.14)
    assert p.anchor_set_size == 5  # already at the lower bound
    assert p.compare_delta == 3
    assert s.set_size == 2  # compare leaves the shared set size alone


def test_numerosity_holds_between_bands() -> None:
    s = _numerosity_session(NumerositySubmode.COMPARE)
    ctrl = NumerosityController(SeededRng(5))
    # 7 of 10 correct (70 %) with fast responses sits between the bands.
    outcomes = [True] * 7 + [False] * 3
    results = [ctrl.on_trial(s, correct=ok, rt_ms=500.0) for ok in outcomes]
    assert results[-1] is Adjustment.HOLD


def test_numerosity_window_keeps_last_sixteen_outcomes() -> None:
    s = _numerosity_session(NumerositySubmode.ENUMERATE)
    ctrl = NumerosityController(SeededRng(9))
    for _ in range(20):
        ctrl.on_trial(s, correct=True, rt_ms=2000.0)
    assert len(s.recent_outcomes) == 16


def test_numerosity_parameters_stay_in_bounds_under_long_runs() -> None:
    s = _numerosity_session(NumerositySubmode.COMPARE)
    ctrl = NumerosityController(SeededRng(11))
    for _ in range(40):
        ctrl.on_trial(s, correct=True, rt_ms=300.0)
    p = s.numerosity
    assert (p.exposure_ms, p.min_separation_px, p.anchor_set_size, p.compare_delta) == (120, 18, 9, 1)
    assert p.similarity == pytest.approx(1.0)

    for _ in range(40):
        ctrl.on_trial(s, correct=False, rt_ms=3000.0)
    assert (p.exposure_ms, p.min_separation_px, p.anchor_set_size, p.compare_delta) == (350, 48, 5, 3)
    assert p.similarity == pytest.approx(0.0)


def test_adaptive_controller_routes_by_mode() -> None:
    ctrl = AdaptiveController(SeededRng(1))
    assert isinstance(ctrl.controller_for(TrainingMode.ORIENTATION), PerTrialStaircase)
    assert isinstance(ctrl.controller_for(TrainingMode.COLOR), PerTrialStaircase)
    assert isinstance(ctrl.controller_for(TrainingMode.SACCADE), PerTrialStaircase)
    assert isinstance(ctrl.controller_for(TrainingMode.SPATIAL), BlockStaircase)
    assert isinstance(ctrl.controller_for(TrainingMode.NUMEROSITY), NumerosityController)

    s = Session(mode=TrainingMode.SPATIAL, set_size=3)
    for _ in range(5):
        ctrl.on_trial(s, correct=True, rt_ms=100.0)
    assert s.set_size == 3
    ctrl.on_block_end(s, accuracy=1.0)
    assert s.set_size == 5
