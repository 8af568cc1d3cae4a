from __future__ import annotations

from dataclasses import dataclass, replace

from .cognitive_core import SeededRng, clamp
from .stimuli import (
    ANGLE_PERIOD_DEG,
    FREQ_MAX,
    FREQ_MIN,
    HUE_PERIOD_DEG,
    Bar,
    ColoredBar,
    GaborPatch,
    StimulusItem,
)

ANGLE_CHANGE_DEG = 20
HUE_CHANGE_DEG = 30
FREQ_STEP_FRAC = 0.25


@dataclass(frozen=True, slots=True)
class ChangeDecision:
    change: bool
    probe_index: int
    test_array: tuple[StimulusItem, ...]


def perturb_orientation(angle: float, sign: int) -> float:
    return (angle + sign * ANGLE_CHANGE_DEG + ANGLE_PERIOD_DEG) % ANGLE_PERIOD_DEG


def perturb_hue(hue: float, sign: int) -> float:
    return (hue + sign * HUE_CHANGE_DEG + HUE_PERIOD_DEG) % HUE_PERIOD_DEG


def perturb_frequency(freq: float, sign: int) -> float:
    return float(clamp(freq * (1.0 + sign * FREQ_STEP_FRAC), FREQ_MIN, FREQ_MAX))


class ChangeInjector:
    """Decides same/different for binary trials and builds the test array.

    The probed item's cued feature depends on its type: bars change
    orientation, coloured bars change hue, Gabor patches change spatial
    frequency. "Same" trials return the memory array untouched.
    """

    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng

    def inject(self, memory_array: tuple[StimulusItem, ...]) -> ChangeDecision:
        if not memory_array:
            raise ValueError("memory_array must not be empty")
        change = self._rng.coin()
        probe = self._rng.randrange(len(memory_array))
        if not change:
            return ChangeDecision(change=False, probe_index=probe, test_array=memory_array)

        items = list(memory_array)
        items[probe] = self._perturb(items[probe], self._rng.sign())
        return ChangeDecision(change=True, probe_index=probe, test_array=tuple(items))

    def _perturb(self, item: StimulusItem, sign: int) -> StimulusItem:
        if isinstance(item, ColoredBar):
            return replace(item, hue=perturb_hue(item.hue, sign))
        if isinstance(item, Bar):
            return replace(item, angle=perturb_orientation(item.angle, sign))
        if isinstance(item, GaborPatch):
            return replace(item, spatial_frequency=perturb_frequency(item.spatial_frequency, sign))
        raise TypeError(f"no probed feature for {type(item).__name__}")
