from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol

from .adaptive import AdaptiveController
from .change import ChangeInjector
from .clock import Clock, to_ms, to_s
from .cognitive_core import SeededRng
from .response import Answer, InputEvent, InputKind, ResponseGate, ResponseKind
from .results import TrialOutcome
from .scheduler import PhaseScheduler, PhaseStep, TrialPhase, TrialTimingConfig, build_phase_plan
from .scoring import ScoringEngine
from .session import (
    BLOCK_SIZE,
    ContrastCondition,
    NumerositySubmode,
    Session,
    SettingsStore,
    TrainingMode,
)
from .stimuli import Shape, StimulusGenerator, StimulusItem

logger = logging.getLogger(__name__)

RANK_NOTICE_S = 1.2
BLOCK_NOTICE_S = 1.5


@dataclass(frozen=True, slots=True)
class DisplayGeometry:
    """Logical canvas the stimulus coordinates live in."""

    width: int = 1024
    height: int = 700
    saccade_hit_radius: float = 45.0

    @property
    def cx(self) -> float:
        return float(self.width // 2)

    @property
    def cy(self) -> float:
        return float(self.height // 2 + 20)

    @property
    def array_radius(self) -> float:
        return min(self.width, self.height) / 3.0


@dataclass(frozen=True, slots=True)
class Trial:
    """Everything one repetition shows and scores; built once, never mutated."""

    mode: TrainingMode
    submode: NumerositySubmode | None
    set_size: int
    memory_array: tuple[StimulusItem, ...]
    test_array: tuple[StimulusItem, ...]
    probe_index: int = 0
    change_flag: bool = False
    memory_array_b: tuple[Shape, ...] = ()
    target_count: int | None = None
    count_a: int | None = None
    count_b: int | None = None
    b_larger: bool | None = None
    saccade_target: tuple[float, float] | None = None
    placement_fallback: bool = False

    @property
    def response_kind(self) -> ResponseKind:
        if self.submode is NumerositySubmode.COMPARE:
            return ResponseKind.COMPARE
        if self.submode is NumerositySubmode.ENUMERATE:
            return ResponseKind.ENUMERATE
        return ResponseKind.BINARY

    @property
    def expected_answer(self) -> Answer:
        kind = self.response_kind
        if kind is ResponseKind.COMPARE:
            if self.b_larger is None:
                raise RuntimeError("compare trial built without b_larger")
            return self.b_larger
        if kind is ResponseKind.ENUMERATE:
            if self.target_count is None:
                raise RuntimeError("enumerate trial built without target_count")
            return int(self.target_count)
        return bool(self.change_flag)


class FeedbackSink(Protocol):
    """Fire-and-forget feedback; implementations swallow their own failures."""

    def on_correct(self) -> None: ...
    def on_incorrect(self) -> None: ...
    def on_rank_up(self) -> None: ...
    def on_saccade_hit(self) -> None: ...
    def on_saccade_miss(self) -> None: ...


class NullFeedback:
    def on_correct(self) -> None:
        pass

    def on_incorrect(self) -> None:
        pass

    def on_rank_up(self) -> None:
        pass

    def on_saccade_hit(self) -> None:
        pass

    def on_saccade_miss(self) -> None:
        pass


class RenderSink(Protocol):
    def render(self, phase: TrialPhase, session: Session, trial: Trial | None) -> None: ...


@dataclass(frozen=True, slots=True)
class EngineSnapshot:
    """View model for the UI (pure data)."""

    phase: TrialPhase
    mode: TrainingMode
    submode: NumerositySubmode
    contrast: ContrastCondition
    trial: Trial | None
    points: int
    rank: str
    next_rank: str
    points_to_next_rank: int | None
    set_size: int
    trial_number: int
    block_progress: float
    paused: bool
    help_visible: bool
    notice: str | None
    response_remaining_s: float | None
    saccade_target: tuple[float, float] | None
    saccade_hits: int
    saccade_total: int
    exposure_ms: int


class ChangeDetectionEngine:
    """Trial phase machine for the change-detection trainer.

    fix -> preblank -> memory phase(s) -> [saccade] -> isi -> test -> idle,
    then straight into the next trial. Every transition comes from the
    scheduler's single timer or from the one accepted response of a trial.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        session: Session,
        feedback: FeedbackSink | None = None,
        render: RenderSink | None = None,
        timing: TrialTimingConfig | None = None,
        geometry: DisplayGeometry | None = None,
        scoring: ScoringEngine | None = None,
        show_help: bool = True,
    ) -> None:
        self._timing = timing or TrialTimingConfig()
        self._timing.validate()
        self._geometry = geometry or DisplayGeometry()
        if self._geometry.width <= 0 or self._geometry.height <= 0:
            raise ValueError("geometry must have a positive size")

        self._clock = clock
        self._seed = int(seed)
        self._session = session
        self._feedback: FeedbackSink = feedback or NullFeedback()
        self._render = render
        self._scoring = scoring or ScoringEngine()

        rng = SeededRng(self._seed)
        self._stimuli = StimulusGenerator(rng)
        self._injector = ChangeInjector(rng)
        self._adaptive = AdaptiveController(rng)

        self._scheduler = PhaseScheduler(clock)
        self._gate = ResponseGate()

        self._trial: Trial | None = None
        self._started = False
        self._shut_down = False
        self._paused = False
        self._help_visible = bool(show_help)
        self._saccade_hit = False
        self._notice: str | None = None
        self._notice_until_s = 0.0
        self._events: list[TrialOutcome] = []

    # State

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def session(self) -> Session:
        return self._session

    @property
    def trial(self) -> Trial | None:
        return self._trial

    @property
    def phase(self) -> TrialPhase:
        step = self._scheduler.current
        return TrialPhase.IDLE if step is None else step.phase

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def help_visible(self) -> bool:
        return self._help_visible

    @property
    def timing(self) -> TrialTimingConfig:
        return self._timing

    @property
    def geometry(self) -> DisplayGeometry:
        return self._geometry

    def events(self) -> list[TrialOutcome]:
        return list(self._events)

    def phase_remaining_s(self) -> float | None:
        return self._scheduler.remaining_s()

    def response_time_remaining_s(self) -> float | None:
        if self.phase is not TrialPhase.TEST:
            return None
        return self._scheduler.remaining_s()

    # Commands

    def start(self) -> None:
        if self._started or self._shut_down:
            return
        self._started = True
        self._start_trial()

    def update(self) -> None:
        if self._shut_down:
            return
        self._scheduler.poll()
        if self._notice is not None and self._clock.now() >= self._notice_until_s:
            self._notice = None

    def handle_input(self, event: InputEvent) -> bool:
        if self._shut_down:
            return False
        if event.kind is InputKind.TOGGLE_HELP:
            self.toggle_help()
            return True
        if event.kind is InputKind.TOGGLE_PAUSE:
            self.toggle_pause()
            return True
        if event.kind is InputKind.RESET_STATS:
            self.reset_stats()
            return True
        return self.submit_response(event)

    def submit_response(self, event: InputEvent) -> bool:
        """Score the trial from a response; False when the input does not apply."""

        if self._shut_down or self._trial is None or self.phase is not TrialPhase.TEST:
            return False
        answer = self._gate.accept(
            event,
            kind=self._trial.response_kind,
            paused=self._paused,
            help_visible=self._help_visible,
        )
        if answer is None:
            return False
        elapsed_s = self._scheduler.elapsed_s() or 0.0
        self._scheduler.cancel()
        self._complete_trial(answer=answer, rt_ms=to_ms(elapsed_s), timed_out=False)
        return True

    def register_click(self, x: float, y: float) -> bool:
        """Pointer click during the saccade cue; True when it counts as a hit."""

        if self._shut_down or self._help_visible or self._paused:
            return False
        if self._session.mode is not TrainingMode.SACCADE or self.phase is not TrialPhase.SACCADE:
            return False
        if self._trial is None or self._trial.saccade_target is None or self._saccade_hit:
            return False
        tx, ty = self._trial.saccade_target
        if math.hypot(x - tx, y - ty) > self._geometry.saccade_hit_radius:
            return False
        self._saccade_hit = True
        self._session.saccade_hits += 1
        self._session.save()
        self._feedback.on_saccade_hit()
        return True

    def toggle_help(self) -> None:
        self._help_visible = not self._help_visible
        if not self._help_visible and not self._started:
            self.start()

    def toggle_pause(self) -> None:
        if self._shut_down:
            return
        if self._paused:
            self._scheduler.resume()
            self._paused = False
        elif self._scheduler.suspend():
            self._paused = True
        else:
            return
        logger.debug("paused=%s phase=%s", self._paused, self.phase.value)

    def reset_stats(self) -> None:
        self._session.reset_stats()
        logger.info("session stats reset")

    def set_mode(self, mode: TrainingMode, submode: NumerositySubmode | None = None) -> None:
        """Switch training mode; a running trial is abandoned unscored."""

        self._session.mode = TrainingMode(mode)
        if submode is not None:
            self._session.numerosity_submode = NumerositySubmode(submode)
        self._session.correct_streak = 0
        self._session.save()
        self._abandon_trial()
        if self._started and not self._shut_down:
            self._start_trial()

    def toggle_contrast(self) -> None:
        s = self._session
        s.contrast = (
            ContrastCondition.SHARP if s.contrast is ContrastCondition.BLURRED else ContrastCondition.BLURRED
        )
        s.save()

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._abandon_trial()
        self._shut_down = True
        self._session.save()

    def snapshot(self) -> EngineSnapshot:
        s = self._session
        ranks = self._scoring.ranks
        next_name, next_threshold = ranks.next_rank(s.points)
        phase = self.phase
        target = None
        if phase is TrialPhase.SACCADE and self._trial is not None:
            target = self._trial.saccade_target
        return EngineSnapshot(
            phase=phase,
            mode=s.mode,
            submode=s.numerosity_submode,
            contrast=s.contrast,
            trial=self._trial,
            points=s.points,
            rank=ranks.rank_for(s.points),
            next_rank=next_name,
            points_to_next_rank=None if next_threshold is None else max(0, next_threshold - s.points),
            set_size=s.effective_set_size(),
            trial_number=s.trial_index + 1,
            block_progress=s.block_progress(),
            paused=self._paused,
            help_visible=self._help_visible,
            notice=self._notice,
            response_remaining_s=self.response_time_remaining_s(),
            saccade_target=target,
            saccade_hits=s.saccade_hits,
            saccade_total=s.saccade_total,
            exposure_ms=s.numerosity.exposure_ms,
        )

    # Trial lifecycle

    def _start_trial(self) -> None:
        self._gate.close()
        self._saccade_hit = False
        self._trial = self._build_trial()
        s = self._session
        plan = build_phase_plan(
            mode=s.mode,
            submode=s.numerosity_submode,
            exposure_s=to_s(s.numerosity.exposure_ms),
            timing=self._timing,
        )
        self._scheduler.run(plan, on_enter=self._on_phase_enter, on_finish=self._on_response_window_expired)

    def _abandon_trial(self) -> None:
        self._scheduler.cancel()
        self._gate.close()
        if self._paused:
            self._paused = False

    def _build_trial(self) -> Trial:
        s = self._session
        g = self._geometry
        cx, cy, radius = g.cx, g.cy, g.array_radius

        if s.mode is TrainingMode.NUMEROSITY:
            p = s.numerosity
            if s.numerosity_submode is NumerositySubmode.COMPARE:
                count_a, count_b = self._stimuli.compare_counts(
                    anchor=p.anchor_set_size, delta=p.compare_delta
                )
                a = self._stimuli.numerosity_shapes(
                    count_a,
                    cx=cx,
                    cy=cy,
                    radius=radius,
                    min_separation=p.min_separation_px,
                    similarity=p.similarity,
                )
                b = self._stimuli.numerosity_shapes(
                    count_b,
                    cx=cx,
                    cy=cy,
                    radius=radius,
                    min_separation=p.min_separation_px,
                    similarity=p.similarity,
                )
                return Trial(
                    mode=s.mode,
                    submode=NumerositySubmode.COMPARE,
                    set_size=count_a,
                    memory_array=a.shapes,
                    test_array=(),
                    memory_array_b=b.shapes,
                    count_a=count_a,
                    count_b=count_b,
                    b_larger=count_b > count_a,
                    placement_fallback=a.used_fallback or b.used_fallback,
                )

            n = s.effective_set_size()
            placement = self._stimuli.numerosity_shapes(
                n,
                cx=cx,
                cy=cy,
                radius=radius,
                min_separation=p.min_separation_px,
                similarity=p.similarity,
            )
            # Nothing is redrawn at test: the count must be recalled.
            return Trial(
                mode=s.mode,
                submode=NumerositySubmode.ENUMERATE,
                set_size=n,
                memory_array=placement.shapes,
                test_array=(),
                target_count=n,
                placement_fallback=placement.used_fallback,
            )

        n = s.effective_set_size()
        memory: tuple[StimulusItem, ...]
        if s.mode is TrainingMode.COLOR:
            memory = self._stimuli.color_array(n, cx=cx, cy=cy, radius=radius)
        elif s.mode is TrainingMode.SPATIAL:
            memory = self._stimuli.gabor_array(n, cx=cx, cy=cy, radius=radius)
        else:
            memory = self._stimuli.orientation_array(n, cx=cx, cy=cy, radius=radius)
        decision = self._injector.inject(memory)
        target = None
        if s.mode is TrainingMode.SACCADE:
            target = self._stimuli.saccade_target(cx=cx, cy=cy, radius=radius)
        return Trial(
            mode=s.mode,
            submode=None,
            set_size=n,
            memory_array=memory,
            test_array=decision.test_array,
            probe_index=decision.probe_index,
            change_flag=decision.change,
            saccade_target=target,
        )

    def _on_phase_enter(self, step: PhaseStep) -> None:
        trial = self._trial
        if step.phase is TrialPhase.TEST:
            self._gate.arm()
        elif step.phase is TrialPhase.SACCADE:
            self._session.saccade_total += 1
            self._session.save()
        elif (
            step.phase is TrialPhase.ISI
            and trial is not None
            and trial.saccade_target is not None
            and not self._saccade_hit
        ):
            self._feedback.on_saccade_miss()
        logger.debug("phase -> %s (%.3fs)", step.phase.value, step.duration_s)
        self._notify_render()

    def _on_response_window_expired(self) -> None:
        if not self._gate.expire():
            return
        self._complete_trial(answer=None, rt_ms=to_ms(self._timing.response_window_s), timed_out=True)

    def _complete_trial(self, *, answer: Answer | None, rt_ms: float, timed_out: bool) -> None:
        trial = self._trial
        assert trial is not None
        s = self._session

        expected = trial.expected_answer
        correct = answer is not None and answer == expected

        result = self._scoring.score(points_before=s.points, correct=correct, rt_ms=rt_ms)
        s.points = result.total_points
        if correct:
            s.block_correct += 1
            self._feedback.on_correct()
        else:
            self._feedback.on_incorrect()
        if result.ranked_up:
            self._set_notice(f"Rank up -> {result.rank}", RANK_NOTICE_S)
            self._feedback.on_rank_up()
            logger.info("rank up: %s -> %s at %d points", result.previous_rank, result.rank, s.points)

        self._adaptive.on_trial(s, correct=correct, rt_ms=rt_ms)
        s.block_total += 1
        s.trial_index += 1

        if s.block_total >= BLOCK_SIZE:
            accuracy = s.block_correct / float(BLOCK_SIZE)
            self._set_notice(f"Block complete - accuracy {accuracy * 100.0:.1f}%", BLOCK_NOTICE_S)
            adjustment = self._adaptive.on_block_end(s, accuracy=accuracy)
            logger.info("block complete: accuracy=%.3f (%s)", accuracy, adjustment.value)
            s.block_correct = 0
            s.block_total = 0

        s.save()

        self._events.append(
            TrialOutcome(
                index=len(self._events),
                mode=trial.mode,
                submode=trial.submode,
                set_size=trial.set_size,
                expected=_answer_text(trial.response_kind, expected),
                response="" if answer is None else _answer_text(trial.response_kind, answer),
                is_correct=correct,
                timed_out=timed_out,
                rt_ms=float(rt_ms),
                points_awarded=result.points_awarded,
                total_points=result.total_points,
                rank=result.rank,
                saccade_hit=self._saccade_hit if trial.saccade_target is not None else None,
                completed_at_s=self._clock.now(),
            )
        )
        logger.debug(
            "trial %d %s correct=%s rt=%.0fms points=%d",
            s.trial_index,
            trial.mode.value,
            correct,
            rt_ms,
            s.points,
        )

        self._scheduler.run(
            (PhaseStep(TrialPhase.IDLE, self._timing.inter_trial_s),),
            on_enter=self._on_phase_enter,
            on_finish=self._start_trial,
        )

    def _set_notice(self, text: str, duration_s: float) -> None:
        self._notice = text
        self._notice_until_s = self._clock.now() + duration_s

    def _notify_render(self) -> None:
        if self._render is not None:
            self._render.render(self.phase, self._session, self._trial)


def _answer_text(kind: ResponseKind, answer: Answer) -> str:
    if kind is ResponseKind.BINARY:
        return "different" if answer else "same"
    if kind is ResponseKind.COMPARE:
        return "B" if answer else "A"
    return str(int(answer))


def build_change_detection_engine(
    *,
    clock: Clock,
    seed: int,
    store: SettingsStore,
    feedback: FeedbackSink | None = None,
    timing: TrialTimingConfig | None = None,
    geometry: DisplayGeometry | None = None,
    show_help: bool = True,
) -> ChangeDetectionEngine:
    return ChangeDetectionEngine(
        clock=clock,
        seed=seed,
        session=Session.load(store),
        feedback=feedback,
        timing=timing,
        geometry=geometry,
        show_help=show_help,
    )
