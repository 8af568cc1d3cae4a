from __future__ import annotations

import logging
import math

import pytest

from vwm_trainer.cognitive_core import SeededRng, circular_diff, relative_separation
from vwm_trainer.stimuli import (
    ANGLE_MIN_SEP_DEG,
    FREQ_MAX,
    FREQ_MIN,
    FREQ_MIN_SEP_FRAC,
    HUE_MIN_SEP_DEG,
    NUM_COUNT_MAX,
    NUM_COUNT_MIN,
    Bar,
    ColoredBar,
    GaborPatch,
    StimulusGenerator,
)

CX, CY, RADIUS = 512.0, 370.0, 700.0 / 3.0


def _gen(seed: int) -> StimulusGenerator:
    return StimulusGenerator(SeededRng(seed))


@pytest.mark.parametrize("n", [2, 4, 5])
def test_orientations_are_pairwise_separated_and_in_range(n: int) -> None:
    for seed in range(20):
        angles = _gen(seed).orientations(n)
        assert len(angles) == n
        assert all(0 <= a < 180 for a in angles)
        for i in range(n):
            for j in range(i + 1, n):
                assert circular_diff(angles[i], angles[j], 180) >= ANGLE_MIN_SEP_DEG


def test_hues_are_pairwise_separated_and_in_range() -> None:
    for seed in range(20):
        hues = _gen(seed).hues(6)
        assert all(0 <= h < 360 for h in hues)
        for i in range(6):
            for j in range(i + 1, 6):
                assert circular_diff(hues[i], hues[j], 360) >= HUE_MIN_SEP_DEG


def test_frequencies_respect_range_and_relative_separation() -> None:
    for seed in range(20):
        freqs = _gen(seed).frequencies(7)
        assert all(FREQ_MIN <= f <= FREQ_MAX for f in freqs)
        for i in range(7):
            for j in range(i + 1, 7):
                assert relative_separation(freqs[i], freqs[j]) >= FREQ_MIN_SEP_FRAC


def test_ten_orientations_cannot_all_be_separated_and_fall_back(caplog: pytest.LogCaptureFixture) -> None:
    # 180 / 20 leaves room for nine; the tenth is a best-spread fill.
    with caplog.at_level(logging.WARNING, logger="vwm_trainer.stimuli"):
        angles = _gen(7).orientations(10)
    assert len(angles) == 10
    assert all(0 <= a < 180 for a in angles)
    assert "best-spread" in caplog.text


def test_arrays_sit_on_the_ring_with_matching_item_types() -> None:
    g = _gen(11)
    bars = g.orientation_array(6, cx=CX, cy=CY, radius=RADIUS)
    colored = g.color_array(4, cx=CX, cy=CY, radius=RADIUS)
    gabors = g.gabor_array(3, cx=CX, cy=CY, radius=RADIUS)

    assert all(type(b) is Bar for b in bars)
    assert all(isinstance(c, ColoredBar) for c in colored)
    assert all(isinstance(p, GaborPatch) for p in gabors)
    for item in (*bars, *colored, *gabors):
        assert math.hypot(item.x - CX, item.y - CY) == pytest.approx(RADIUS)
    # Position 0 is at angle 0.
    assert bars[0].x == pytest.approx(CX + RADIUS)
    assert bars[0].y == pytest.approx(CY)


def test_generator_determinism_same_seed_same_arrays() -> None:
    a = _gen(2468)
    b = _gen(2468)
    assert a.color_array(5, cx=CX, cy=CY, radius=RADIUS) == b.color_array(5, cx=CX, cy=CY, radius=RADIUS)
    assert a.gabor_array(4, cx=CX, cy=CY, radius=RADIUS) == b.gabor_array(4, cx=CX, cy=CY, radius=RADIUS)


@pytest.mark.parametrize("n", [NUM_COUNT_MIN, 7, NUM_COUNT_MAX])
def test_numerosity_shapes_keep_min_separation_inside_disc(n: int) -> None:
    for seed in range(10):
        placement = _gen(seed).numerosity_shapes(
            n, cx=CX, cy=CY, radius=RADIUS, min_separation=28.0, similarity=0.2
        )
        shapes = placement.shapes
        assert len(shapes) == n
        assert placement.used_fallback is False
        for s in shapes:
            assert math.hypot(s.x - CX, s.y - CY) <= RADIUS * 0.9 + 1e-9
            assert 12.0 <= s.size <= 30.0
            assert 0.0 <= s.hue < 360.0
        for i in range(n):
            for j in range(i + 1, n):
                assert math.hypot(shapes[i].x - shapes[j].x, shapes[i].y - shapes[j].y) >= 28.0


def test_infeasible_separation_completes_with_ring_fallback(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="vwm_trainer.stimuli"):
        placement = _gen(3).numerosity_shapes(
            10, cx=CX, cy=CY, radius=RADIUS, min_separation=1000.0, similarity=0.5
        )
    assert len(placement.shapes) == 10
    assert placement.fallback_count == 9
    assert placement.used_fallback is True
    ring = placement.shapes[1:]
    for s in ring:
        assert math.hypot(s.x - CX, s.y - CY) == pytest.approx(RADIUS * 0.75)
        assert s.size == pytest.approx(21.0)
    assert "ring fallback" in caplog.text


def test_full_similarity_makes_shapes_mostly_one_kind() -> None:
    placement = _gen(99).numerosity_shapes(
        10, cx=CX, cy=CY, radius=RADIUS, min_separation=18.0, similarity=1.0
    )
    kinds = [s.kind for s in placement.shapes]
    most_common = max(kinds.count(k) for k in set(kinds))
    assert most_common >= 5


@pytest.mark.parametrize(
    ("anchor", "delta", "expected"),
    [(5, 2, {4, 6}), (5, 1, {5, 6}), (9, 3, {8, 10}), (5, 3, {4, 7})],
)
def test_compare_counts(anchor: int, delta: int, expected: set[int]) -> None:
    seen_orders = set()
    for seed in range(30):
        a, b = _gen(seed).compare_counts(anchor=anchor, delta=delta)
        assert {a, b} == expected
        seen_orders.add(a < b)
    assert seen_orders == {True, False}


def test_saccade_target_lies_on_inner_ring() -> None:
    for seed in range(10):
        x, y = _gen(seed).saccade_target(cx=CX, cy=CY, radius=RADIUS)
        assert math.hypot(x - CX, y - CY) == pytest.approx(RADIUS * 0.78)
