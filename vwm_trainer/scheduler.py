from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from .clock import Clock
from .session import NumerositySubmode, TrainingMode

# Float tolerance when comparing a virtual clock against a deadline.
_EPSILON_S = 1e-9


class TrialPhase(StrEnum):
    IDLE = "idle"
    FIX = "fix"
    PREBLANK = "preblank"
    MEM = "mem"
    MEM_A = "memA"
    ISI_A = "isiA"
    MEM_B = "memB"
    ISI_B = "isiB"
    SACCADE = "saccade"
    ISI = "isi"
    TEST = "test"


@dataclass(frozen=True, slots=True)
class TrialTimingConfig:
    fix_s: float = 0.5
    pre_blank_s: float = 0.5
    mem_s: float = 0.5
    isi_s: float = 0.8
    response_window_s: float = 2.5
    saccade_on_s: float = 0.35
    saccade_blank_s: float = 0.45
    inter_trial_s: float = 0.04

    def validate(self) -> None:
        for name in (
            "fix_s",
            "pre_blank_s",
            "mem_s",
            "isi_s",
            "response_window_s",
            "saccade_on_s",
            "saccade_blank_s",
        ):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be > 0")
        if self.inter_trial_s < 0.0:
            raise ValueError("inter_trial_s must be >= 0")


@dataclass(frozen=True, slots=True)
class PhaseStep:
    phase: TrialPhase
    duration_s: float


def build_phase_plan(
    *,
    mode: TrainingMode,
    submode: NumerositySubmode,
    exposure_s: float,
    timing: TrialTimingConfig,
) -> tuple[PhaseStep, ...]:
    """Timed phase sequence of one trial, ending with the response window."""

    steps = [
        PhaseStep(TrialPhase.FIX, timing.fix_s),
        PhaseStep(TrialPhase.PREBLANK, timing.pre_blank_s),
    ]
    if mode is TrainingMode.NUMEROSITY and submode is NumerositySubmode.COMPARE:
        half_isi = timing.isi_s / 2.0
        steps += [
            PhaseStep(TrialPhase.MEM_A, exposure_s),
            PhaseStep(TrialPhase.ISI_A, half_isi),
            PhaseStep(TrialPhase.MEM_B, exposure_s),
            PhaseStep(TrialPhase.ISI_B, half_isi),
        ]
    elif mode is TrainingMode.NUMEROSITY:
        steps += [
            PhaseStep(TrialPhase.MEM, exposure_s),
            PhaseStep(TrialPhase.ISI, timing.isi_s),
        ]
    elif mode is TrainingMode.SACCADE:
        # The blank after the saccade target is the retention interval.
        steps += [
            PhaseStep(TrialPhase.MEM, timing.mem_s),
            PhaseStep(TrialPhase.SACCADE, timing.saccade_on_s),
            PhaseStep(TrialPhase.ISI, timing.saccade_blank_s),
        ]
    else:
        steps += [
            PhaseStep(TrialPhase.MEM, timing.mem_s),
            PhaseStep(TrialPhase.ISI, timing.isi_s),
        ]
    steps.append(PhaseStep(TrialPhase.TEST, timing.response_window_s))
    return tuple(steps)


@dataclass(slots=True)
class TimerHandle:
    token: int
    fires_at_s: float
    remaining_s: float | None = None  # set while suspended
    cancelled: bool = False


class PhaseScheduler:
    """Consumes a list of timed phase steps through a single timer handle.

    Only one timer is ever outstanding. Starting a new plan invalidates the
    pending one first, and cancelling twice is a no-op, so a stale callback
    can never advance a phase. A step starts at the previous deadline, or at
    the poll that noticed it when that poll came late.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._steps: tuple[PhaseStep, ...] = ()
        self._index = -1
        self._timer: TimerHandle | None = None
        self._next_token = 1
        self._step_started_at_s: float | None = None
        self._paused_elapsed_s: float | None = None
        self._firing_at_s: float | None = None
        self._on_enter: Callable[[PhaseStep], None] | None = None
        self._on_finish: Callable[[], None] | None = None

    @property
    def current(self) -> PhaseStep | None:
        if 0 <= self._index < len(self._steps):
            return self._steps[self._index]
        return None

    @property
    def timer(self) -> TimerHandle | None:
        return self._timer

    @property
    def suspended(self) -> bool:
        return self._timer is not None and self._timer.remaining_s is not None

    def run(
        self,
        steps: tuple[PhaseStep, ...],
        *,
        on_enter: Callable[[PhaseStep], None] | None = None,
        on_finish: Callable[[], None] | None = None,
    ) -> None:
        if not steps:
            raise ValueError("steps must not be empty")
        started_at = self._firing_at_s if self._firing_at_s is not None else self._clock.now()
        self.cancel()
        self._steps = tuple(steps)
        self._on_enter = on_enter
        self._on_finish = on_finish
        self._enter(0, started_at)

    def cancel(self) -> bool:
        timer = self._timer
        if timer is None or timer.cancelled:
            return False
        timer.cancelled = True
        self._timer = None
        self._steps = ()
        self._index = -1
        self._step_started_at_s = None
        self._paused_elapsed_s = None
        self._on_enter = None
        self._on_finish = None
        return True

    def suspend(self) -> bool:
        timer = self._timer
        if timer is None or timer.remaining_s is not None:
            return False
        assert self._step_started_at_s is not None
        now = self._clock.now()
        timer.remaining_s = max(0.0, timer.fires_at_s - now)
        self._paused_elapsed_s = max(0.0, now - self._step_started_at_s)
        return True

    def resume(self) -> bool:
        timer = self._timer
        if timer is None or timer.remaining_s is None:
            return False
        assert self._paused_elapsed_s is not None
        now = self._clock.now()
        timer.fires_at_s = now + timer.remaining_s
        timer.remaining_s = None
        # Time spent suspended is excluded from the step's elapsed time.
        self._step_started_at_s = now - self._paused_elapsed_s
        self._paused_elapsed_s = None
        return True

    def elapsed_s(self) -> float | None:
        if self._step_started_at_s is None:
            return None
        if self._paused_elapsed_s is not None:
            return self._paused_elapsed_s
        return max(0.0, self._clock.now() - self._step_started_at_s)

    def remaining_s(self) -> float | None:
        timer = self._timer
        if timer is None:
            return None
        if timer.remaining_s is not None:
            return timer.remaining_s
        return max(0.0, timer.fires_at_s - self._clock.now())

    def poll(self) -> bool:
        """Fire the pending timer if it is due; True when a transition happened.

        At most one transition happens per call. A late poll starts the next
        step now rather than at the missed deadline, so a stalled frame loop
        delays the following phases instead of shortening or skipping them.
        """

        timer = self._timer
        if timer is None or timer.remaining_s is not None:
            return False
        if self._clock.now() + _EPSILON_S < timer.fires_at_s:
            return False
        self._fire(timer)
        return True

    def _enter(self, index: int, started_at_s: float) -> None:
        step = self._steps[index]
        self._index = index
        self._step_started_at_s = started_at_s
        self._paused_elapsed_s = None
        self._timer = TimerHandle(token=self._next_token, fires_at_s=started_at_s + step.duration_s)
        self._next_token += 1
        if self._on_enter is not None:
            self._on_enter(step)

    def _fire(self, timer: TimerHandle) -> None:
        timer.cancelled = True
        self._timer = None
        self._firing_at_s = max(timer.fires_at_s, self._clock.now())
        try:
            nxt = self._index + 1
            if nxt < len(self._steps):
                self._enter(nxt, self._firing_at_s)
                return
            on_finish = self._on_finish
            self._steps = ()
            self._index = -1
            self._step_started_at_s = None
            self._on_enter = None
            self._on_finish = None
            if on_finish is not None:
                on_finish()
        finally:
            self._firing_at_s = None
