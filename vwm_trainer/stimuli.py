from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import StrEnum

from .cognitive_core import SeededRng, circular_diff, relative_separation, ring_positions

logger = logging.getLogger(__name__)

ANGLE_PERIOD_DEG = 180
ANGLE_MIN_SEP_DEG = 20
HUE_PERIOD_DEG = 360
HUE_MIN_SEP_DEG = 30

# Spatial frequency in cycles per stimulus diameter.
FREQ_MIN = 1.0
FREQ_MAX = 6.0
FREQ_MIN_SEP_FRAC = 0.12

NUM_COUNT_MIN = 4
NUM_COUNT_MAX = 10
NUM_SIZE_MIN = 12.0
NUM_SIZE_MAX = 30.0
NUM_HUE_JITTER_DEG = 24.0
SAME_KIND_PROB_CAP = 0.84

# Retry budgets bound worst-case generation latency; tune freely.
DISTINCT_RETRY_BUDGET = 999
PLACEMENT_RETRY_BUDGET = 5000

_PLACEMENT_DISC_FRAC = 0.9
_FALLBACK_RING_FRAC = 0.75
_SACCADE_RING_FRAC = 0.78


class ShapeKind(StrEnum):
    CIRCLE = "circle"
    SQUARE = "square"
    TRIANGLE = "triangle"
    BAR = "bar"


@dataclass(frozen=True, slots=True)
class Bar:
    x: float
    y: float
    angle: float  # degrees in [0, 180)


@dataclass(frozen=True, slots=True)
class ColoredBar:
    x: float
    y: float
    angle: float
    hue: float  # degrees in [0, 360)


@dataclass(frozen=True, slots=True)
class GaborPatch:
    x: float
    y: float
    spatial_frequency: float  # cycles per stimulus diameter


@dataclass(frozen=True, slots=True)
class Shape:
    x: float
    y: float
    kind: ShapeKind
    size: float  # radius for circles, half-size otherwise
    rotation: float
    hue: float


StimulusItem = Bar | ColoredBar | GaborPatch | Shape


@dataclass(frozen=True, slots=True)
class ShapePlacement:
    shapes: tuple[Shape, ...]
    min_separation: float
    fallback_count: int  # shapes placed by the ring layout

    @property
    def used_fallback(self) -> bool:
        return self.fallback_count > 0


class StimulusGenerator:
    """Deterministic memory-array synthesis for every training mode.

    Feature values are drawn by rejection sampling under each mode's
    distinctness constraint. When a retry budget runs out the generator
    completes the array with a deterministic construction and logs the
    degraded result instead of failing.
    """

    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng

    # Feature values

    def orientations(self, n: int) -> tuple[int, ...]:
        return self._distinct_circular(
            n, period=ANGLE_PERIOD_DEG, min_sep=ANGLE_MIN_SEP_DEG, label="orientation"
        )

    def hues(self, n: int) -> tuple[int, ...]:
        return self._distinct_circular(n, period=HUE_PERIOD_DEG, min_sep=HUE_MIN_SEP_DEG, label="hue")

    def frequencies(self, n: int) -> tuple[float, ...]:
        out: list[float] = []
        for i in range(n):
            for _ in range(DISTINCT_RETRY_BUDGET):
                f = FREQ_MIN + self._rng.random() * (FREQ_MAX - FREQ_MIN)
                if all(relative_separation(f, o) >= FREQ_MIN_SEP_FRAC for o in out):
                    out.append(f)
                    break
            else:
                f = FREQ_MIN + (i * (FREQ_MAX - FREQ_MIN)) / max(1, n - 1)
                logger.warning(
                    "spatial frequency sampling exhausted at item %d/%d; linear fill %.3f", i + 1, n, f
                )
                out.append(f)
        return tuple(out)

    # Arrays

    def orientation_array(self, n: int, *, cx: float, cy: float, radius: float) -> tuple[Bar, ...]:
        positions = ring_positions(cx, cy, radius, n)
        angles = self.orientations(n)
        return tuple(Bar(x=x, y=y, angle=float(a)) for (x, y), a in zip(positions, angles))

    def color_array(self, n: int, *, cx: float, cy: float, radius: float) -> tuple[ColoredBar, ...]:
        positions = ring_positions(cx, cy, radius, n)
        angles = self.orientations(n)
        hues = self.hues(n)
        return tuple(
            ColoredBar(x=x, y=y, angle=float(a), hue=float(h))
            for (x, y), a, h in zip(positions, angles, hues)
        )

    def gabor_array(self, n: int, *, cx: float, cy: float, radius: float) -> tuple[GaborPatch, ...]:
        positions = ring_positions(cx, cy, radius, n)
        freqs = self.frequencies(n)
        return tuple(GaborPatch(x=x, y=y, spatial_frequency=f) for (x, y), f in zip(positions, freqs))

    def numerosity_shapes(
        self,
        n: int,
        *,
        cx: float,
        cy: float,
        radius: float,
        min_separation: float,
        similarity: float,
    ) -> ShapePlacement:
        """Place ``n`` shapes in a disc with pairwise spacing >= ``min_separation``.

        ``similarity`` in [0, 1] pushes shape kinds towards one base kind and
        narrows hue jitter, making the items harder to individuate.
        """

        hue_jitter = max(0.0, NUM_HUE_JITTER_DEG * (1.0 - similarity))
        same_kind_prob = similarity * SAME_KIND_PROB_CAP
        base_kind = self._random_kind()

        shapes: list[Shape] = []
        attempts = 0
        while len(shapes) < n and attempts < PLACEMENT_RETRY_BUDGET:
            attempts += 1
            x, y = self._point_in_disc(cx, cy, radius * _PLACEMENT_DISC_FRAC)
            size = NUM_SIZE_MIN + self._rng.random() * (NUM_SIZE_MAX - NUM_SIZE_MIN)
            if any(math.hypot(s.x - x, s.y - y) < min_separation for s in shapes):
                continue
            rotation = float(self._rng.randrange(180))
            base_hue = float(self._rng.randrange(360))
            hue = (base_hue + (self._rng.random() * 2.0 - 1.0) * hue_jitter + 360.0) % 360.0
            kind = base_kind if self._rng.random() < same_kind_prob else self._random_kind()
            shapes.append(Shape(x=x, y=y, kind=kind, size=size, rotation=rotation, hue=hue))

        placed = len(shapes)
        if placed < n:
            logger.warning(
                "shape placement exhausted after %d attempts (%d/%d placed, min sep %.1f); ring fallback",
                attempts,
                placed,
                n,
                min_separation,
            )
        for i in range(placed, n):
            th = (2.0 * math.pi * i) / n
            rr = radius * _FALLBACK_RING_FRAC
            shapes.append(
                Shape(
                    x=cx + math.cos(th) * rr,
                    y=cy + math.sin(th) * rr,
                    kind=base_kind,
                    size=(NUM_SIZE_MIN + NUM_SIZE_MAX) / 2.0,
                    rotation=0.0,
                    hue=float(self._rng.randrange(360)),
                )
            )
        return ShapePlacement(
            shapes=tuple(shapes),
            min_separation=float(min_separation),
            fallback_count=n - placed,
        )

    def compare_counts(self, *, anchor: int, delta: int) -> tuple[int, int]:
        """Counts for arrays A and B differing by ``delta``; a coin flip picks the larger."""

        smaller = max(NUM_COUNT_MIN, anchor - delta // 2)
        larger = min(NUM_COUNT_MAX, smaller + delta)
        if self._rng.coin():
            return larger, smaller
        return smaller, larger

    def saccade_target(self, *, cx: float, cy: float, radius: float) -> tuple[float, float]:
        th = self._rng.random() * math.pi * 2.0
        r = radius * _SACCADE_RING_FRAC
        return cx + math.cos(th) * r, cy + math.sin(th) * r

    # Internals

    def _distinct_circular(self, n: int, *, period: int, min_sep: int, label: str) -> tuple[int, ...]:
        out: list[int] = []
        for i in range(n):
            for _ in range(DISTINCT_RETRY_BUDGET):
                v = self._rng.randrange(period)
                if all(circular_diff(o, v, period) >= min_sep for o in out):
                    out.append(v)
                    break
            else:
                v = _best_spread(out, period)
                logger.warning(
                    "%s sampling exhausted at item %d/%d; best-spread fill %d", label, i + 1, n, v
                )
                out.append(v)
        return tuple(out)

    def _point_in_disc(self, cx: float, cy: float, r: float) -> tuple[float, float]:
        th = self._rng.random() * math.pi * 2.0
        rr = math.sqrt(self._rng.random()) * r  # area-uniform
        return cx + math.cos(th) * rr, cy + math.sin(th) * rr

    def _random_kind(self) -> ShapeKind:
        return self._rng.choice(tuple(ShapeKind))


def _best_spread(existing: list[int], period: int) -> int:
    """Whole-degree value farthest (circularly) from every existing value."""

    if not existing:
        return 0
    best = 0
    best_gap = -1.0
    for v in range(period):
        gap = min(circular_diff(o, v, period) for o in existing)
        if gap > best_gap:
            best, best_gap = v, gap
    return best
