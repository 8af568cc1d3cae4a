from __future__ import annotations

from dataclasses import dataclass

from .cognitive_core import median
from .session import NumerositySubmode, TrainingMode


@dataclass(frozen=True, slots=True)
class TrialOutcome:
    """One scored trial, as logged and summarised."""

    index: int
    mode: TrainingMode
    submode: NumerositySubmode | None
    set_size: int
    expected: str
    response: str  # "" when the window expired
    is_correct: bool
    timed_out: bool
    rt_ms: float
    points_awarded: int
    total_points: int
    rank: str
    saccade_hit: bool | None = None
    completed_at_s: float = 0.0


@dataclass(frozen=True, slots=True)
class SessionSummary:
    attempted: int
    correct: int
    accuracy: float
    timeouts: int
    points_awarded: int
    mean_rt_ms: float | None
    median_rt_ms: float | None


def summarize_outcomes(outcomes: list[TrialOutcome]) -> SessionSummary:
    """Aggregate accuracy and RT over the given trials.

    RT statistics use answered trials only; timeouts carry the full window
    and would otherwise swamp the distribution.
    """

    attempted = len(outcomes)
    correct = sum(1 for o in outcomes if o.is_correct)
    rts = [o.rt_ms for o in outcomes if not o.timed_out]
    mean_rt = None if not rts else sum(rts) / float(len(rts))
    return SessionSummary(
        attempted=attempted,
        correct=correct,
        accuracy=0.0 if attempted == 0 else correct / float(attempted),
        timeouts=sum(1 for o in outcomes if o.timed_out),
        points_awarded=sum(o.points_awarded for o in outcomes),
        mean_rt_ms=mean_rt,
        median_rt_ms=median(rts),
    )
