from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

ENUMERATE_MIN = 4
ENUMERATE_MAX = 10


class InputKind(StrEnum):
    SAME = "same"
    DIFFERENT = "different"
    DIGIT = "digit"
    A_LARGER = "a_larger"
    B_LARGER = "b_larger"
    TOGGLE_HELP = "toggle_help"
    TOGGLE_PAUSE = "toggle_pause"
    RESET_STATS = "reset_stats"


class ResponseKind(StrEnum):
    BINARY = "binary"  # same / different
    ENUMERATE = "enumerate"  # integer count
    COMPARE = "compare"  # A larger / B larger


@dataclass(frozen=True, slots=True)
class InputEvent:
    kind: InputKind
    value: int | None = None

    @classmethod
    def digit(cls, n: int) -> "InputEvent":
        return cls(InputKind.DIGIT, int(n))


# Binary: True means "different". Compare: True means "B is larger".
Answer = bool | int


def interpret(event: InputEvent, kind: ResponseKind) -> Answer | None:
    """Map a raw input event to an answer for the given response kind, or None."""

    if kind is ResponseKind.BINARY:
        if event.kind is InputKind.SAME:
            return False
        if event.kind is InputKind.DIFFERENT:
            return True
        return None
    if kind is ResponseKind.COMPARE:
        if event.kind is InputKind.A_LARGER:
            return False
        if event.kind is InputKind.B_LARGER:
            return True
        return None
    if event.kind is InputKind.DIGIT and event.value is not None:
        if ENUMERATE_MIN <= event.value <= ENUMERATE_MAX:
            return int(event.value)
    return None


class ResponseGate:
    """Accepts at most one qualifying response per armed test window.

    ``accept`` and ``expire`` race for the same window; whichever runs first
    closes it, so a trial can never be scored twice.
    """

    def __init__(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def arm(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    def accept(
        self,
        event: InputEvent,
        *,
        kind: ResponseKind,
        paused: bool,
        help_visible: bool,
    ) -> Answer | None:
        if not self._open or paused or help_visible:
            return None
        answer = interpret(event, kind)
        if answer is None:
            return None
        self._open = False
        return answer

    def expire(self) -> bool:
        if not self._open:
            return False
        self._open = False
        return True
