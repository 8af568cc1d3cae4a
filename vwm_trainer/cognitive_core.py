from __future__ import annotations

import math
import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def randrange(self, n: int) -> int:
        return self._rng.randrange(n)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def coin(self) -> bool:
        return self._rng.random() < 0.5

    def sign(self) -> int:
        return 1 if self._rng.random() < 0.5 else -1


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x <= lo else hi if x >= hi else x


def clamp_int(x: int, lo: int, hi: int) -> int:
    return lo if x <= lo else hi if x >= hi else int(x)


def circular_diff(a: float, b: float, period: float) -> float:
    """Shortest distance between two values on a circle of the given period."""

    d = abs(a - b) % period
    return min(d, period - d)


def relative_separation(a: float, b: float) -> float:
    mean = (a + b) / 2.0
    if mean <= 0.0:
        return 0.0
    return abs(a - b) / mean


def median(values: Sequence[float]) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return float(ordered[mid])
    return float(ordered[mid - 1] + ordered[mid]) / 2.0


def ring_positions(
    cx: float, cy: float, radius: float, n: int
) -> tuple[tuple[float, float], ...]:
    """``n`` points evenly spaced on a circle, starting at angle 0."""

    out: list[tuple[float, float]] = []
    for i in range(n):
        th = (2.0 * math.pi * i) / n
        out.append((cx + math.cos(th) * radius, cy + math.sin(th) * radius))
    return tuple(out)
