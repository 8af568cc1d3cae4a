"""Pygame UI shell for the visual working memory trainer.

The main menu offers one entry per training mode:
- Orientation and colour change detection (bars)
- Spatial frequency change detection (Gabor patches)
- Numerosity enumerate / compare (varied shapes)
- Guided saccade with orientation change detection

Deterministic timing/scoring/RNG/state lives in vwm_trainer/* (core modules);
this module only maps input, draws snapshots and plays tones.
"""

from __future__ import annotations

import logging
import math
import os
import random
import sqlite3
from array import array
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from .clock import RealClock
from .engine import ChangeDetectionEngine, EngineSnapshot, build_change_detection_engine
from .persistence import MemorySettingsStore, SqliteSettingsStore, default_db_path, record_trial_outcomes
from .response import InputEvent, InputKind, ResponseKind
from .results import TrialOutcome, summarize_outcomes
from .scheduler import TrialPhase
from .session import ContrastCondition, NumerositySubmode, SettingsStore, TrainingMode
from .stimuli import ColoredBar, GaborPatch, Shape, ShapeKind, StimulusItem

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "VWM_TRAINER_LOG_LEVEL"

WINDOW_SIZE = (1024, 700)
TARGET_FPS = 60

BAR_LEN_PX = 120
BAR_W_PX = 9
BLUR_PX = 2.5
GABOR_DIAM_PX = 120
GABOR_SIGMA_FRAC = 0.45
GABOR_CONTRAST = 0.55
PROBE_RING_PAD_PX = 22
HUD_H = 56

BG = (231, 231, 231)
INK = (17, 17, 17)
ACCENT = (30, 144, 255)
SACCADE_DOT = (255, 140, 0)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...
    def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class _FeedbackAudio:
    """Pygame tone adapter for trial feedback.

    Failures to initialise the mixer leave the adapter silent; feedback is
    never allowed to interrupt trial timing.
    """

    _sample_rate = 22050
    _amp = 32767

    def __init__(self) -> None:
        self._available = False
        self._sounds: dict[str, pygame.mixer.Sound] = {}
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            self._sounds = {
                "correct": self._build_sound((880.0,), 0.120, gain=0.18),
                "incorrect": self._build_sound((220.0,), 0.160, gain=0.20),
                "rank_up": self._build_sound((1046.0, 1318.0, 1568.0), 0.220, gain=0.16),
                "saccade_hit": self._build_sound((660.0,), 0.090, gain=0.14),
                "saccade_miss": self._build_sound((300.0,), 0.090, gain=0.08),
            }
            self._available = True
        except (pygame.error, NotImplementedError, ValueError) as exc:
            logger.warning("audio unavailable: %s", exc)
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def on_correct(self) -> None:
        self._play("correct")

    def on_incorrect(self) -> None:
        self._play("incorrect")

    def on_rank_up(self) -> None:
        self._play("rank_up")

    def on_saccade_hit(self) -> None:
        self._play("saccade_hit")

    def on_saccade_miss(self) -> None:
        self._play("saccade_miss")

    def _play(self, name: str) -> None:
        if not self._available:
            return
        try:
            self._sounds[name].play()
        except pygame.error as exc:
            logger.debug("tone %s dropped: %s", name, exc)

    def _build_sound(self, freqs: tuple[float, ...], duration_s: float, *, gain: float) -> pygame.mixer.Sound:
        return pygame.mixer.Sound(buffer=self._render_chord_pcm(freqs, duration_s, gain=gain).tobytes())

    def _render_chord_pcm(self, freqs: tuple[float, ...], duration_s: float, *, gain: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        fade_n = max(1, int(self._sample_rate * 0.008))
        per_voice = gain / float(len(freqs))
        out = array("h")
        for idx in range(sample_count):
            envelope = 1.0
            if idx < fade_n:
                envelope = idx / float(fade_n)
            tail = sample_count - idx - 1
            if tail < fade_n:
                envelope = min(envelope, tail / float(fade_n))
            t = idx / float(self._sample_rate)
            sample = sum(math.sin(2.0 * math.pi * f * t) for f in freqs) * per_voice * max(0.0, envelope)
            out.append(int(max(-1.0, min(1.0, sample)) * self._amp))
        return out


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # The root menu stays; it owns quitting.
        if len(self._screens) > 1:
            self._screens.pop().close()

    def quit(self) -> None:
        self._running = False

    def shutdown(self) -> None:
        while self._screens:
            self._screens.pop().close()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def close(self) -> None:
        pass

    def _move(self, delta: int) -> None:
        if self._items:
            self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)
        pygame.draw.rect(surface, INK, pygame.Rect(0, 0, w, HUD_H))
        title = self._title_font.render(self._title, True, (255, 255, 255))
        surface.blit(title, title.get_rect(center=(w // 2, HUD_H // 2)))

        row_h = 44
        gap = 8
        total_h = len(self._items) * (row_h + gap) - gap
        y = max(HUD_H + 24, (h - total_h) // 2)
        row_w = min(520, w - 80)
        for idx, item in enumerate(self._items):
            row = pygame.Rect((w - row_w) // 2, y, row_w, row_h)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACCENT if selected else (250, 250, 250), row)
            pygame.draw.rect(surface, INK, row, 1)
            text = self._item_font.render(item.label, True, (255, 255, 255) if selected else INK)
            surface.blit(text, text.get_rect(midleft=(row.x + 14, row.centery)))
            y += row_h + gap

        foot = self._hint_font.render("Up/Down: Move  |  Enter: Start  |  Esc: Back", True, (85, 85, 85))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


def _hsl(hue: float, sat: float, light: float) -> pygame.Color:
    color = pygame.Color(0, 0, 0)
    color.hsla = (float(hue) % 360.0, sat, light, 100.0)
    return color


def _rotated(points: list[tuple[float, float]], angle_deg: float, cx: float, cy: float) -> list[tuple[float, float]]:
    a = math.radians(angle_deg)
    ca, sa = math.cos(a), math.sin(a)
    return [(cx + x * ca - y * sa, cy + x * sa + y * ca) for x, y in points]


def _blurred(surface: pygame.Surface) -> pygame.Surface:
    # Down/up smoothscale approximates a gaussian of roughly BLUR_PX.
    w, h = surface.get_size()
    factor = 1.0 + BLUR_PX
    small = pygame.transform.smoothscale(surface, (max(1, int(w / factor)), max(1, int(h / factor))))
    return pygame.transform.smoothscale(small, (w, h))


class StimulusPainter:
    """Draws stimulus items onto the logical canvas."""

    def __init__(self) -> None:
        self._gabor_cache: dict[tuple[float, bool], pygame.Surface] = {}

    def draw_items(self, surface: pygame.Surface, items: tuple[StimulusItem, ...], *, blurred: bool) -> None:
        for item in items:
            if isinstance(item, GaborPatch):
                patch = self._gabor(item.spatial_frequency, blurred)
                surface.blit(patch, (item.x - GABOR_DIAM_PX / 2, item.y - GABOR_DIAM_PX / 2))
                continue
            if isinstance(item, Shape):
                local = pygame.Surface((int(item.size * 4 + 12),) * 2, pygame.SRCALPHA)
                self._shape(local, local.get_width() / 2.0, item)
            else:
                local = pygame.Surface((BAR_LEN_PX + 16,) * 2, pygame.SRCALPHA)
                color = _hsl(item.hue, 80.0, 45.0) if isinstance(item, ColoredBar) else INK
                self._bar(local, local.get_width() / 2.0, item.angle, color)
            if blurred:
                local = _blurred(local)
            surface.blit(local, (item.x - local.get_width() / 2.0, item.y - local.get_height() / 2.0))

    def draw_fixation(self, surface: pygame.Surface, cx: float, cy: float) -> None:
        pygame.draw.line(surface, INK, (cx - 12, cy), (cx + 12, cy), 3)
        pygame.draw.line(surface, INK, (cx, cy - 12), (cx, cy + 12), 3)

    def draw_probe_ring(self, surface: pygame.Surface, x: float, y: float) -> None:
        pygame.draw.circle(surface, ACCENT, (int(x), int(y)), BAR_LEN_PX // 2 + PROBE_RING_PAD_PX, 3)

    def draw_saccade_target(self, surface: pygame.Surface, x: float, y: float) -> None:
        pygame.draw.circle(surface, SACCADE_DOT, (int(x), int(y)), 10)
        pygame.draw.circle(surface, (255, 176, 77), (int(x), int(y)), 18, 3)

    @staticmethod
    def _bar(local: pygame.Surface, c: float, angle: float, color: tuple[int, int, int] | pygame.Color) -> None:
        hl, hw = BAR_LEN_PX / 2.0, BAR_W_PX / 2.0
        pygame.draw.polygon(local, color, _rotated([(-hl, -hw), (hl, -hw), (hl, hw), (-hl, hw)], angle, c, c))

    @staticmethod
    def _shape(local: pygame.Surface, c: float, shape: Shape) -> None:
        color = _hsl(shape.hue, 70.0, 45.0)
        s = shape.size
        if shape.kind is ShapeKind.CIRCLE:
            pygame.draw.circle(local, color, (int(c), int(c)), int(s))
        elif shape.kind is ShapeKind.SQUARE:
            pts = [(-s, -s), (s, -s), (s, s), (-s, s)]
            pygame.draw.polygon(local, color, _rotated(pts, shape.rotation, c, c))
        elif shape.kind is ShapeKind.TRIANGLE:
            a = s * 2.2
            pts = [(0.0, -a / 2), (a / 2, a / 2), (-a / 2, a / 2)]
            pygame.draw.polygon(local, color, _rotated(pts, shape.rotation, c, c))
        else:
            hl, hw = s * 1.5, max(6.0, s * 0.5) / 2.0
            pts = [(-hl, -hw), (hl, -hw), (hl, hw), (-hl, hw)]
            pygame.draw.polygon(local, color, _rotated(pts, shape.rotation, c, c))

    def _gabor(self, freq: float, blurred: bool) -> pygame.Surface:
        key = (round(freq, 4), blurred)
        cached = self._gabor_cache.get(key)
        if cached is not None:
            return cached

        size = GABOR_DIAM_PX
        r0 = size / 2.0
        sigma = r0 * GABOR_SIGMA_FRAC
        patch = pygame.Surface((size, size), pygame.SRCALPHA)
        for x in range(size):
            s = 0.5 + 0.5 * GABOR_CONTRAST * math.sin(2.0 * math.pi * freq * (x / size))
            val = max(0, min(255, int(round(s * 255))))
            for y in range(size):
                r = math.hypot(x + 0.5 - r0, y + 0.5 - r0)
                alpha = _gabor_envelope(r, sigma, r0)
                if alpha > 0.0:
                    patch.set_at((x, y), (val, val, val, int(alpha * 255)))
        if blurred:
            patch = _blurred(patch)
        self._gabor_cache[key] = patch
        return patch


def _gabor_envelope(r: float, sigma: float, r0: float) -> float:
    if r >= r0:
        return 0.0
    if r <= sigma:
        return 1.0
    knee = min(r0, sigma * 1.6)
    if r <= knee:
        return 1.0 - 0.4 * (r - sigma) / max(1e-6, knee - sigma)
    return 0.6 * (r0 - r) / max(1e-6, r0 - knee)


_HELP_TITLES = {
    TrainingMode.ORIENTATION: "Change Detection (Orientation)",
    TrainingMode.COLOR: "Change Detection (Colour Bars)",
    TrainingMode.SPATIAL: "Change Detection (Spatial Frequency)",
    TrainingMode.NUMEROSITY: "Numerosity",
    TrainingMode.SACCADE: "Guided Saccade + Orientation",
}


def _help_lines(snap: EngineSnapshot) -> list[str]:
    clarity = "blurred" if snap.contrast is ContrastCondition.BLURRED else "clear"
    staircase = "Adaptive: +1 after 3 correct in a row, -1 after an error (2-10)."
    binary_keys = "Keys: LEFT same, RIGHT different, H help, P pause, R reset, B blur."
    if snap.mode is TrainingMode.NUMEROSITY and snap.submode is NumerositySubmode.COMPARE:
        return [
            f"Two brief arrays (~{snap.exposure_ms} ms each) appear, A then B.",
            "Decide which one held MORE items: LEFT = A, RIGHT = B.",
            "Adaptive: exposure, spacing, similarity and count gap follow your form.",
        ]
    if snap.mode is TrainingMode.NUMEROSITY:
        return [
            f"A brief array (~{snap.exposure_ms} ms) of {clarity} shapes appears.",
            "Report how many items you saw: keys 4-9, 0 for 10.",
            "Adaptive: exposure, spacing, similarity and count jitter follow your form.",
        ]
    if snap.mode is TrainingMode.SPATIAL:
        return [
            f"A brief array of {clarity} Gabor patches appears.",
            "At test one patch is ringed; its frequency may differ by 25%.",
            binary_keys,
            "Adaptive: after 20 trials, 90% or better -> +2, otherwise -1 (1-7).",
        ]
    if snap.mode is TrainingMode.SACCADE:
        return [
            f"A brief array of {clarity} bars appears.",
            "During the delay an ORANGE DOT flashes: look at it and click it.",
            "At test one bar is ringed; its orientation may differ by 20 deg.",
            binary_keys,
            staircase,
        ]
    what = "coloured bars" if snap.mode is TrainingMode.COLOR else "bars"
    change = "hue may differ by 30 deg" if snap.mode is TrainingMode.COLOR else "orientation may differ by 20 deg"
    return [
        f"A brief array of {clarity} {what} appears.",
        f"At test one item is ringed; its {change}.",
        binary_keys,
        staircase,
    ]


_DIGIT_KEYS = {
    pygame.K_4: 4,
    pygame.K_5: 5,
    pygame.K_6: 6,
    pygame.K_7: 7,
    pygame.K_8: 8,
    pygame.K_9: 9,
    pygame.K_0: 10,
    pygame.K_KP4: 4,
    pygame.K_KP5: 5,
    pygame.K_KP6: 6,
    pygame.K_KP7: 7,
    pygame.K_KP8: 8,
    pygame.K_KP9: 9,
    pygame.K_KP0: 10,
}


class TrainingScreen:
    def __init__(
        self,
        app: App,
        *,
        engine_factory: Callable[[], ChangeDetectionEngine],
        on_close: Callable[[list[TrialOutcome]], None] | None = None,
    ) -> None:
        self._app = app
        self._engine = engine_factory()
        self._on_close = on_close
        self._closed = False
        self._painter = StimulusPainter()
        geometry = self._engine.geometry
        self._canvas = pygame.Surface((geometry.width, geometry.height))
        self._hud_font = pygame.font.Font(None, 24)
        self._prompt_font = pygame.font.Font(None, 26)
        self._title_font = pygame.font.Font(None, 34)
        self._label_font = pygame.font.Font(None, 64)

    @property
    def engine(self) -> ChangeDetectionEngine:
        return self._engine

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.shutdown()
        if self._on_close is not None:
            self._on_close(self._engine.events())

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            self._engine.register_click(*self._to_logical(event.pos))
            return
        if event.type != pygame.KEYDOWN:
            return

        key = event.key
        if key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()
            return
        if self._engine.help_visible:
            # Any key dismisses help; the first dismissal starts training.
            self._engine.toggle_help()
            return
        if key == pygame.K_h:
            self._engine.handle_input(InputEvent(InputKind.TOGGLE_HELP))
        elif key == pygame.K_p:
            self._engine.handle_input(InputEvent(InputKind.TOGGLE_PAUSE))
        elif key == pygame.K_r:
            self._engine.handle_input(InputEvent(InputKind.RESET_STATS))
        elif key == pygame.K_b:
            self._engine.toggle_contrast()
        elif key in (pygame.K_LEFT, pygame.K_RIGHT):
            self._engine.handle_input(self._arrow_event(left=key == pygame.K_LEFT))
        elif key in _DIGIT_KEYS:
            self._engine.handle_input(InputEvent.digit(_DIGIT_KEYS[key]))

    def _arrow_event(self, *, left: bool) -> InputEvent:
        trial = self._engine.trial
        if trial is not None and trial.response_kind is ResponseKind.COMPARE:
            return InputEvent(InputKind.A_LARGER if left else InputKind.B_LARGER)
        return InputEvent(InputKind.SAME if left else InputKind.DIFFERENT)

    def _to_logical(self, pos: tuple[int, int]) -> tuple[float, float]:
        window = pygame.display.get_surface()
        cw, ch = self._canvas.get_size()
        if window is None:
            return float(pos[0]), float(pos[1])
        ww, wh = window.get_size()
        return pos[0] * cw / float(max(1, ww)), pos[1] * ch / float(max(1, wh))

    def render(self, surface: pygame.Surface) -> None:
        self._engine.update()
        snap = self._engine.snapshot()
        canvas = self._canvas
        geometry = self._engine.geometry
        w, h = canvas.get_size()
        cx, cy = geometry.cx, geometry.cy
        blurred = snap.contrast is ContrastCondition.BLURRED

        canvas.fill(BG)
        self._draw_hud(canvas, snap)

        trial = snap.trial
        phase = snap.phase
        if phase is TrialPhase.FIX:
            self._painter.draw_fixation(canvas, cx, cy)
        elif trial is not None and phase in (TrialPhase.MEM_A, TrialPhase.MEM_B):
            items = trial.memory_array if phase is TrialPhase.MEM_A else trial.memory_array_b
            self._painter.draw_items(canvas, items, blurred=blurred)
            label = self._label_font.render("A" if phase is TrialPhase.MEM_A else "B", True, INK)
            canvas.blit(label, (32, 84))
        elif trial is not None and phase is TrialPhase.MEM:
            self._painter.draw_items(canvas, trial.memory_array, blurred=blurred)
        elif phase is TrialPhase.SACCADE and snap.saccade_target is not None:
            self._painter.draw_fixation(canvas, cx, cy)
            self._painter.draw_saccade_target(canvas, *snap.saccade_target)
            self._draw_prompt(canvas, "Click the orange dot", h - 24)
        elif trial is not None and phase is TrialPhase.TEST:
            kind = trial.response_kind
            if kind is ResponseKind.BINARY:
                probe = trial.test_array[trial.probe_index]
                self._painter.draw_probe_ring(canvas, probe.x, probe.y)
                self._painter.draw_items(canvas, trial.test_array, blurred=blurred)
                self._draw_prompt(canvas, "LEFT = Same   |   RIGHT = Different", h - 24)
            elif kind is ResponseKind.COMPARE:
                self._draw_prompt(canvas, "LEFT = A had more   |   RIGHT = B had more", h - 24)
            else:
                self._draw_prompt(canvas, "Type the count: 4-9, 0 for 10", h - 24)

        if snap.help_visible:
            self._draw_help(canvas, snap)
        elif snap.paused:
            veil = pygame.Surface((w, h), pygame.SRCALPHA)
            veil.fill((255, 255, 255, 190))
            canvas.blit(veil, (0, 0))
            text = self._title_font.render("Paused - press P to resume", True, INK)
            canvas.blit(text, text.get_rect(center=(w // 2, h // 2)))

        if snap.notice:
            band = pygame.Surface((w, 90), pygame.SRCALPHA)
            band.fill((0, 0, 0, 180))
            canvas.blit(band, (0, 0))
            text = self._title_font.render(snap.notice, True, (255, 255, 255))
            canvas.blit(text, text.get_rect(center=(w // 2, 45)))

        if surface.get_size() == canvas.get_size():
            surface.blit(canvas, (0, 0))
        else:
            surface.blit(pygame.transform.smoothscale(canvas, surface.get_size()), (0, 0))

    def _draw_hud(self, canvas: pygame.Surface, snap: EngineSnapshot) -> None:
        w = canvas.get_width()
        white = (255, 255, 255)
        pygame.draw.rect(canvas, INK, pygame.Rect(0, 0, w, HUD_H))

        left = self._hud_font.render(f"Score: {snap.points}   Rank: {snap.rank}", True, white)
        canvas.blit(left, (16, 20))

        if snap.mode is TrainingMode.NUMEROSITY:
            mid_text = f"Trial: {snap.trial_number}"
        else:
            mid_text = f"Set size: {snap.set_size}   Trial: {snap.trial_number}"
        if snap.mode is TrainingMode.SACCADE:
            mid_text += f"   Dots: {snap.saccade_hits}/{snap.saccade_total}"
        mid = self._hud_font.render(mid_text, True, white)
        canvas.blit(mid, mid.get_rect(midtop=(w // 2, 20)))

        if snap.points_to_next_rank is None:
            right_text = "Max rank"
        else:
            right_text = f"Next: {snap.next_rank} (+{snap.points_to_next_rank})"
        right = self._hud_font.render(right_text, True, white)
        canvas.blit(right, right.get_rect(topright=(w - 16, 20)))

        bar_w = int(w * 0.6)
        bar = pygame.Rect((w - bar_w) // 2, HUD_H + 8, bar_w, 10)
        pygame.draw.rect(canvas, (85, 85, 85), bar)
        pygame.draw.rect(canvas, ACCENT, pygame.Rect(bar.x, bar.y, int(bar_w * snap.block_progress), bar.h))

    def _draw_prompt(self, canvas: pygame.Surface, text: str, y: int) -> None:
        img = self._prompt_font.render(text, True, INK)
        canvas.blit(img, img.get_rect(midbottom=(canvas.get_width() // 2, y)))

    def _draw_help(self, canvas: pygame.Surface, snap: EngineSnapshot) -> None:
        w, h = canvas.get_size()
        veil = pygame.Surface((w, h), pygame.SRCALPHA)
        veil.fill((0, 0, 0, 153))
        canvas.blit(veil, (0, 0))

        title = _HELP_TITLES[snap.mode]
        if snap.mode is TrainingMode.NUMEROSITY:
            title = f"{title} - {snap.submode.value.title()}"
        condition = "Blurred" if snap.contrast is ContrastCondition.BLURRED else "No blur"
        img = self._title_font.render(f"{title} ({condition})", True, (255, 255, 255))
        canvas.blit(img, img.get_rect(midtop=(w // 2, 130)))

        lines = _help_lines(snap) + [
            "Scoring: +10 correct, +5 bonus at 600 ms or faster.",
            "Press any key to begin / close help.",
        ]
        y = 180
        for line in lines:
            img = self._prompt_font.render(line, True, (255, 255, 255))
            canvas.blit(img, (w // 2 - 300, y))
            y += 28


def _configure_logging() -> None:
    level_name = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _open_settings_store() -> SettingsStore:
    path = default_db_path()
    try:
        return SqliteSettingsStore.open(path)
    except sqlite3.Error as exc:
        logger.warning("settings database %s unavailable (%s); settings will not persist", path, exc)
        return MemorySettingsStore()


def _record_outcomes(store: SettingsStore, outcomes: list[TrialOutcome]) -> None:
    if outcomes:
        summary = summarize_outcomes(outcomes)
        logger.info(
            "session closed: %d trials, accuracy %.2f, +%d points",
            summary.attempted,
            summary.accuracy,
            summary.points_awarded,
        )
    if not isinstance(store, SqliteSettingsStore):
        return
    try:
        record_trial_outcomes(store.connection, outcomes)
    except sqlite3.Error as exc:
        logger.warning("could not record %d trials: %s", len(outcomes), exc)


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    _configure_logging()
    pygame.init()

    pygame.display.set_caption("VWM Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    store = _open_settings_store()
    audio = _FeedbackAudio()
    real_clock = RealClock()

    def open_training(mode: TrainingMode, submode: NumerositySubmode | None = None) -> None:
        seed = _new_seed()

        def factory() -> ChangeDetectionEngine:
            engine = build_change_detection_engine(clock=real_clock, seed=seed, store=store, feedback=audio)
            engine.set_mode(mode, submode)
            return engine

        app.push(
            TrainingScreen(
                app,
                engine_factory=factory,
                on_close=lambda outcomes: _record_outcomes(store, outcomes),
            )
        )

    main_items = [
        MenuItem("Orientation", lambda: open_training(TrainingMode.ORIENTATION)),
        MenuItem("Colour", lambda: open_training(TrainingMode.COLOR)),
        MenuItem("Spatial Frequency", lambda: open_training(TrainingMode.SPATIAL)),
        MenuItem(
            "Numerosity: Enumerate",
            lambda: open_training(TrainingMode.NUMEROSITY, NumerositySubmode.ENUMERATE),
        ),
        MenuItem(
            "Numerosity: Compare",
            lambda: open_training(TrainingMode.NUMEROSITY, NumerositySubmode.COMPARE),
        ),
        MenuItem("Guided Saccade", lambda: open_training(TrainingMode.SACCADE)),
        MenuItem("Quit", app.quit),
    ]

    app.push(MenuScreen(app, "VWM Trainer", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        app.shutdown()
        if isinstance(store, SqliteSettingsStore):
            store.close()
        pygame.quit()

    return 0
