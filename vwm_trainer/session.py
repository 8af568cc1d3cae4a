from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from .cognitive_core import clamp, clamp_int
from .stimuli import NUM_COUNT_MAX, NUM_COUNT_MIN

logger = logging.getLogger(__name__)

BLOCK_SIZE = 20

SET_MIN = 2
SET_MAX = 10
SPATIAL_SET_MIN = 1
SPATIAL_SET_MAX = 7
SET_SIZE_DEFAULT = 2

EXPOSURE_MS_MIN = 120
EXPOSURE_MS_MAX = 350
MIN_SEP_PX_MIN = 18
MIN_SEP_PX_MAX = 48
ANCHOR_MIN = NUM_COUNT_MIN + 1
ANCHOR_MAX = NUM_COUNT_MAX - 1
COMPARE_DELTA_MIN = 1
COMPARE_DELTA_MAX = 3

RECENT_WINDOW = 16


class TrainingMode(StrEnum):
    ORIENTATION = "orientation"
    COLOR = "color"
    SPATIAL = "spatial"
    NUMEROSITY = "numerosity"
    SACCADE = "saccade"


class NumerositySubmode(StrEnum):
    ENUMERATE = "enumerate"
    COMPARE = "compare"


class ContrastCondition(StrEnum):
    BLURRED = "blurred"
    SHARP = "sharp"


class SettingsStore(Protocol):
    """Key/value persistence port. Values travel as strings."""

    def load(self, key: str, default: str | None = None) -> str | None: ...

    def save(self, key: str, value: str) -> None: ...


# Persisted keys.
K_SET_SIZE = "set_size"
K_POINTS = "points"
K_TRIAL = "set_trial"
K_BLOCK_TOTAL = "bar_total"
K_BLOCK_CORRECT = "bar_correct"
K_MODE = "mode"
K_BLUR = "blur_on"
K_SUBMODE = "numerosity_submode"
K_SAC_TOTAL = "sac_total"
K_SAC_HITS = "sac_hits"
K_NUM_EXPOSURE = "num_exposure_ms"
K_NUM_MIN_SEP = "num_min_sep"
K_NUM_SIMILARITY = "num_similarity01"
K_NUM_ANCHOR = "num_anchor_setsize"
K_NUM_DELTA = "num_compare_delta"


@dataclass(slots=True)
class NumerosityParameters:
    exposure_ms: int = 200
    min_separation_px: int = 28
    similarity: float = 0.2  # 0 easy (heterogeneous) .. 1 hard (homogeneous)
    anchor_set_size: int = 5
    compare_delta: int = 2


@dataclass(slots=True)
class Session:
    """Process-lifetime training state.

    Mutated only at trial completion boundaries (scoring and adaptation) or
    by explicit commands (mode switch, reset). Every mutation is followed by
    ``save()`` when a store is attached.
    """

    points: int = 0
    trial_index: int = 0
    block_correct: int = 0
    block_total: int = 0
    set_size: int = SET_SIZE_DEFAULT
    correct_streak: int = 0
    mode: TrainingMode = TrainingMode.ORIENTATION
    numerosity_submode: NumerositySubmode = NumerositySubmode.ENUMERATE
    contrast: ContrastCondition = ContrastCondition.BLURRED
    numerosity: NumerosityParameters = field(default_factory=NumerosityParameters)
    saccade_total: int = 0
    saccade_hits: int = 0
    recent_outcomes: deque[tuple[bool, float]] = field(
        default_factory=lambda: deque(maxlen=RECENT_WINDOW)
    )
    store: SettingsStore | None = field(default=None, repr=False, compare=False)

    @classmethod
    def load(cls, store: SettingsStore) -> "Session":
        """Build a session from persisted values, clamping each into its domain."""

        block_total = _load_int(store, K_BLOCK_TOTAL, 0, 0, BLOCK_SIZE - 1)
        sac_total = _load_int(store, K_SAC_TOTAL, 0, 0, None)
        return cls(
            points=_load_int(store, K_POINTS, 0, 0, None),
            trial_index=_load_int(store, K_TRIAL, 0, 0, None),
            block_total=block_total,
            block_correct=_load_int(store, K_BLOCK_CORRECT, 0, 0, block_total),
            set_size=_load_int(store, K_SET_SIZE, SET_SIZE_DEFAULT, SPATIAL_SET_MIN, SET_MAX),
            mode=_load_enum(store, K_MODE, TrainingMode, TrainingMode.ORIENTATION),
            numerosity_submode=_load_enum(
                store, K_SUBMODE, NumerositySubmode, NumerositySubmode.ENUMERATE
            ),
            contrast=_load_contrast(store),
            numerosity=NumerosityParameters(
                exposure_ms=_load_int(store, K_NUM_EXPOSURE, 200, EXPOSURE_MS_MIN, EXPOSURE_MS_MAX),
                min_separation_px=_load_int(store, K_NUM_MIN_SEP, 28, MIN_SEP_PX_MIN, MIN_SEP_PX_MAX),
                similarity=_load_float(store, K_NUM_SIMILARITY, 0.2, 0.0, 1.0),
                anchor_set_size=_load_int(store, K_NUM_ANCHOR, 5, ANCHOR_MIN, ANCHOR_MAX),
                compare_delta=_load_int(
                    store, K_NUM_DELTA, 2, COMPARE_DELTA_MIN, COMPARE_DELTA_MAX
                ),
            ),
            saccade_total=sac_total,
            saccade_hits=_load_int(store, K_SAC_HITS, 0, 0, sac_total),
            store=store,
        )

    def save(self) -> None:
        if self.store is None:
            return
        n = self.numerosity
        values = {
            K_SET_SIZE: str(self.set_size),
            K_POINTS: str(self.points),
            K_TRIAL: str(self.trial_index),
            K_BLOCK_TOTAL: str(self.block_total),
            K_BLOCK_CORRECT: str(self.block_correct),
            K_MODE: self.mode.value,
            K_BLUR: "1" if self.contrast is ContrastCondition.BLURRED else "0",
            K_SUBMODE: self.numerosity_submode.value,
            K_SAC_TOTAL: str(self.saccade_total),
            K_SAC_HITS: str(self.saccade_hits),
            K_NUM_EXPOSURE: str(n.exposure_ms),
            K_NUM_MIN_SEP: str(n.min_separation_px),
            K_NUM_SIMILARITY: repr(float(n.similarity)),
            K_NUM_ANCHOR: str(n.anchor_set_size),
            K_NUM_DELTA: str(n.compare_delta),
        }
        for key, value in values.items():
            self.store.save(key, value)

    def reset_stats(self) -> None:
        """Zero points, trial and block counters; mode and difficulty are kept."""

        self.points = 0
        self.trial_index = 0
        self.block_correct = 0
        self.block_total = 0
        self.set_size = SET_SIZE_DEFAULT
        self.correct_streak = 0
        self.save()

    @property
    def is_compare(self) -> bool:
        return (
            self.mode is TrainingMode.NUMEROSITY
            and self.numerosity_submode is NumerositySubmode.COMPARE
        )

    @property
    def is_enumerate(self) -> bool:
        return (
            self.mode is TrainingMode.NUMEROSITY
            and self.numerosity_submode is NumerositySubmode.ENUMERATE
        )

    def effective_set_size(self) -> int:
        """Set size (or item count) the next trial uses under the current mode."""

        if self.mode is TrainingMode.SPATIAL:
            return clamp_int(self.set_size, SPATIAL_SET_MIN, SPATIAL_SET_MAX)
        if self.mode is TrainingMode.NUMEROSITY:
            return clamp_int(self.set_size, NUM_COUNT_MIN, NUM_COUNT_MAX)
        return clamp_int(self.set_size, SET_MIN, SET_MAX)

    def block_progress(self) -> float:
        return (self.trial_index % BLOCK_SIZE) / float(BLOCK_SIZE)


def _parse_number(store: SettingsStore, key: str) -> float | None:
    raw = store.load(key, None)
    if raw is None or str(raw).strip() == "":
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        logger.warning("ignoring malformed persisted value %s=%r", key, raw)
        return None
    if not math.isfinite(value):
        logger.warning("ignoring non-finite persisted value %s=%r", key, raw)
        return None
    return value


def _load_int(store: SettingsStore, key: str, default: int, lo: int, hi: int | None) -> int:
    value = _parse_number(store, key)
    if value is None:
        return default
    out = int(value)
    if out < lo:
        return lo
    if hi is not None and out > hi:
        return hi
    return out


def _load_float(store: SettingsStore, key: str, default: float, lo: float, hi: float) -> float:
    value = _parse_number(store, key)
    if value is None:
        return default
    return float(clamp(value, lo, hi))


def _load_enum(store: SettingsStore, key: str, enum_cls, default):
    raw = store.load(key, None)
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).strip())
    except ValueError:
        logger.warning("ignoring unknown persisted value %s=%r", key, raw)
        return default


def _load_contrast(store: SettingsStore) -> ContrastCondition:
    raw = store.load(K_BLUR, None)
    if raw == "0":
        return ContrastCondition.SHARP
    if raw not in (None, "1"):
        logger.warning("ignoring malformed persisted value %s=%r", K_BLUR, raw)
    return ContrastCondition.BLURRED
