"""
Pure-Python notation backend modelled on VexFlow's object model.

Staves, tickables, voices, a formatter and beam/tie/tuplet/connector
primitives. Every drawable follows the ``set_context(ctx).draw()`` protocol
and records its glyphs on a :class:`~scorelayout.render_context.RenderContext`.
Glyph metrics are estimates; exact font rasterization is not a goal here.
"""

from __future__ import annotations

import re
from enum import Enum
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Final, Sequence

import numpy as np

from scorelayout.render_context import RenderContext

#: Ticks per whole note.
RESOLUTION: Final[int] = 16384

_BASE_TICKS: Final[dict[str, int]] = {
    "w": RESOLUTION,
    "1": RESOLUTION,
    "h": RESOLUTION // 2,
    "2": RESOLUTION // 2,
    "q": RESOLUTION // 4,
    "4": RESOLUTION // 4,
    "8": RESOLUTION // 8,
    "16": RESOLUTION // 16,
    "32": RESOLUTION // 32,
    "64": RESOLUTION // 64,
    "128": RESOLUTION // 128,
    "256": RESOLUTION // 256,
}

_DURATION_RE = re.compile(r"^(w|h|q|\d+)(d*)(r?)$")
_KEY_RE = re.compile(r"^([a-gA-G])(#{1,2}|b{1,2}|n)?/(-?\d+)$")
_STEP_INDEX: Final[str] = "cdefgab"

#: Diatonic note number of the bottom line of a five-line stave per clef.
CLEF_BOTTOM_LINE: Final[dict[str, int]] = {
    "treble": 31,
    "bass": 19,
    "alto": 25,
    "tenor": 23,
    "soprano": 29,
    "mezzo-soprano": 27,
    "baritone-f": 21,
    "percussion": 25,
}

_CLEF_ANNOTATION_SHIFT: Final[dict[str | None, int]] = {None: 0, "8va": 7, "8vb": -7}

_CLEF_GLYPHS: Final[dict[str, str]] = {
    "treble": "\U0001d11e",
    "bass": "\U0001d122",
    "alto": "\U0001d121",
    "tenor": "\U0001d121",
    "soprano": "\U0001d121",
    "mezzo-soprano": "\U0001d121",
    "baritone-f": "\U0001d122",
    "percussion": "\U0001d125",
}

#: Number of sharps (positive) or flats (negative) per key signature spec.
KEY_SIGNATURES: Final[dict[str, int]] = {
    "C": 0, "G": 1, "D": 2, "A": 3, "E": 4, "B": 5, "F#": 6, "C#": 7,
    "F": -1, "Bb": -2, "Eb": -3, "Ab": -4, "Db": -5, "Gb": -6, "Cb": -7,
    "Am": 0, "Em": 1, "Bm": 2, "F#m": 3, "C#m": 4, "G#m": 5, "D#m": 6, "A#m": 7,
    "Dm": -1, "Gm": -2, "Cm": -3, "Fm": -4, "Bbm": -5, "Ebm": -6, "Abm": -7,
}

_TIME_SIGNATURE_RE = re.compile(r"^(\d+)/(\d+)$")


class BackendError(Exception):
    """Raised when a backend object is misused (bad duration, overfull voice, ...)."""


def parse_duration(code: str) -> tuple[str, int, bool]:
    """Split a duration code such as ``"8dr"`` into (base, dots, is_rest)."""
    match = _DURATION_RE.match(code)
    if not match or match.group(1) not in _BASE_TICKS:
        raise BackendError(f"Invalid duration code: {code!r}")
    return match.group(1), len(match.group(2)), bool(match.group(3))


def duration_to_ticks(code: str) -> Fraction:
    base, dots, _ = parse_duration(code)
    ticks = Fraction(_BASE_TICKS[base])
    added = ticks
    for _ in range(dots):
        added /= 2
        ticks += added
    return ticks


def key_to_diatonic(key: str) -> tuple[int, str | None]:
    """
    Parse a key such as ``"c#/4"`` into (diatonic note number, accidental).

    Diatonic numbers follow music21: C4 is 29.
    """
    match = _KEY_RE.match(key)
    if not match:
        raise BackendError(f"Invalid key: {key!r}")
    letter, accidental, octave = match.groups()
    return int(octave) * 7 + _STEP_INDEX.index(letter.lower()) + 1, accidental


class BarlineType(Enum):
    SINGLE = "single"
    DOUBLE = "double"
    END = "end"
    NONE = "none"


class ConnectorType(Enum):
    SINGLE = "single"
    DOUBLE = "double"
    BRACE = "brace"
    BRACKET = "bracket"
    SINGLE_LEFT = "single_left"
    SINGLE_RIGHT = "single_right"


class VoiceMode(Enum):
    """
    How strictly a voice checks its tick total.

    STRICT: ticks must fill the voice exactly.
    SOFT:   any number of ticks may be added.
    FULL:   ticks may fall short but never exceed the voice length.
    """

    STRICT = "strict"
    SOFT = "soft"
    FULL = "full"


class TextJustification(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


STEM_UP: Final[int] = 1
STEM_DOWN: Final[int] = -1


# ── Stave ─────────────────────────────────────────────────────────────────────

@dataclass
class StaveOptions:
    spacing_between_lines_px: float = 10
    space_above_staff_ln: float = 4
    space_below_staff_ln: float = 4
    num_lines: int = 5
    line_config: list[dict[str, bool]] = field(default_factory=lambda: [{"visible": True} for _ in range(5)])


class Stave:
    """One measure-wide staff at (x, y) with clef/key/time decorations."""

    START_PADDING: Final[float] = 10
    END_PADDING: Final[float] = 10
    CLEF_WIDTH: Final[float] = 30
    KEY_ACCIDENTAL_WIDTH: Final[float] = 10
    KEY_PADDING: Final[float] = 10
    TIME_SIGNATURE_WIDTH: Final[float] = 25

    def __init__(self, x: float, y: float, width: float) -> None:
        self.x = x
        self.y = y
        self.width = width
        self.options = StaveOptions()
        self.clef: str | None = None
        self.clef_size = "default"
        self.clef_annotation: str | None = None
        self.key_spec: str | None = None
        self.time_spec: str | None = None
        self.measure = 0
        self.end_bar_type = BarlineType.SINGLE
        self.context: RenderContext | None = None
        self._note_start_x: float | None = None

    def set_context(self, context: RenderContext) -> Stave:
        self.context = context
        return self

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_num_lines(self, lines: int) -> Stave:
        self.options.num_lines = lines
        self.options.line_config = [{"visible": True} for _ in range(lines)]
        return self

    def set_config_for_lines(self, line_config: Sequence[dict[str, bool]]) -> Stave:
        if len(line_config) != self.options.num_lines:
            raise BackendError(
                f"Line config has {len(line_config)} entries for a stave of {self.options.num_lines} lines."
            )
        self.options.line_config = [dict(entry) for entry in line_config]
        return self

    def set_measure(self, measure: int) -> Stave:
        self.measure = measure
        return self

    def add_clef(self, clef: str, size: str = "default", annotation: str | None = None) -> Stave:
        if clef not in CLEF_BOTTOM_LINE:
            raise BackendError(f"Unknown clef: {clef!r}")
        if annotation not in _CLEF_ANNOTATION_SHIFT:
            raise BackendError(f"Unknown clef annotation: {annotation!r}")
        self.clef = clef
        self.clef_size = size
        self.clef_annotation = annotation
        return self

    def add_key_signature(self, key_spec: str) -> Stave:
        if key_spec not in KEY_SIGNATURES:
            raise BackendError(f"Unknown key signature: {key_spec!r}")
        self.key_spec = key_spec
        return self

    def add_time_signature(self, time_spec: str) -> Stave:
        if not _TIME_SIGNATURE_RE.match(time_spec):
            raise BackendError(f"Invalid time signature: {time_spec!r}")
        self.time_spec = time_spec
        return self

    def set_end_bar_type(self, bar_type: BarlineType) -> Stave:
        self.end_bar_type = bar_type
        return self

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def modifier_width(self) -> float:
        width = 0.0
        if self.clef is not None:
            width += self.CLEF_WIDTH
        if self.key_spec is not None:
            accidentals = abs(KEY_SIGNATURES[self.key_spec])
            if accidentals:
                width += accidentals * self.KEY_ACCIDENTAL_WIDTH + self.KEY_PADDING
        if self.time_spec is not None:
            width += self.TIME_SIGNATURE_WIDTH
        return width

    def get_note_start_x(self) -> float:
        """x where musical content begins, after clef/key/time glyphs."""
        if self._note_start_x is not None:
            return self._note_start_x
        return self.x + self.START_PADDING + self.modifier_width()

    def set_note_start_x(self, x: float) -> Stave:
        self._note_start_x = x
        return self

    def get_note_end_x(self) -> float:
        return self.x + self.width - self.END_PADDING

    def get_y_for_line(self, line: float) -> float:
        spacing = self.options.spacing_between_lines_px
        return self.y + (line + self.options.space_above_staff_ln) * spacing

    def get_top_line_y(self) -> float:
        return self.get_y_for_line(0)

    def get_bottom_line_y(self) -> float:
        return self.get_y_for_line(max(self.options.num_lines - 1, 0))

    def get_y_for_step(self, steps: float) -> float:
        """y for a diatonic position counted in steps above the five-line bottom line."""
        return self.get_y_for_line(4) - steps * self.options.spacing_between_lines_px / 2

    def get_bottom_y(self) -> float:
        spacing = self.options.spacing_between_lines_px
        lines = self.options.num_lines + self.options.space_above_staff_ln + self.options.space_below_staff_ln
        return self.y + lines * spacing

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw(self) -> None:
        ctx = _require_context(self.context, "Stave")
        for index, line in enumerate(self.options.line_config):
            if line.get("visible", True):
                y = self.get_y_for_line(index)
                ctx.line(self.x, y, self.x + self.width, y, tag="staff-line")

        if self.options.num_lines > 0:
            top = self.get_top_line_y()
            bottom = self.get_bottom_line_y()
            ctx.line(self.x, top, self.x, bottom, tag="barline")
            self._draw_end_barline(ctx, top, bottom)

        if self.measure > 0:
            ctx.text(self.x, self.get_top_line_y() - 5, str(self.measure), size=10, tag="measure-number")

        x = self.x + self.START_PADDING
        if self.clef is not None:
            ctx.text(x, self.get_y_for_line(3), _CLEF_GLYPHS[self.clef], size=32, tag="clef")
            if self.clef_annotation is not None:
                y = self.get_y_for_line(5) if self.clef_annotation == "8vb" else self.get_y_for_line(-1)
                ctx.text(x + 4, y, self.clef_annotation, size=8, tag="clef-annotation")
            x += self.CLEF_WIDTH
        if self.key_spec is not None:
            count = KEY_SIGNATURES[self.key_spec]
            glyph = "♯" if count > 0 else "♭"
            for index in range(abs(count)):
                ctx.text(x, self.get_y_for_line(1 + (index % 3) * 0.5), glyph, size=14, tag="key-signature")
                x += self.KEY_ACCIDENTAL_WIDTH
            if count:
                x += self.KEY_PADDING
        if self.time_spec is not None:
            numerator, denominator = self.time_spec.split("/")
            ctx.text(x, self.get_y_for_line(1.8), numerator, size=20, tag="time-signature")
            ctx.text(x, self.get_y_for_line(3.8), denominator, size=20, tag="time-signature")

    def _draw_end_barline(self, ctx: RenderContext, top: float, bottom: float) -> None:
        right = self.x + self.width
        if self.end_bar_type is BarlineType.SINGLE:
            ctx.line(right, top, right, bottom, tag="barline")
        elif self.end_bar_type is BarlineType.DOUBLE:
            ctx.line(right - 3, top, right - 3, bottom, tag="barline")
            ctx.line(right, top, right, bottom, tag="barline")
        elif self.end_bar_type is BarlineType.END:
            ctx.line(right - 5, top, right - 5, bottom, tag="barline")
            ctx.rect(right - 3, top, 3, bottom - top, tag="barline")


# ── Tickables ─────────────────────────────────────────────────────────────────

class TickContext:
    """All tickables starting at the same tick offset, sharing one x position."""

    def __init__(self, ticks: Fraction) -> None:
        self.ticks = ticks
        self.tickables: list[Tickable] = []
        self.x = 0.0

    def add_tickable(self, tickable: Tickable) -> None:
        self.tickables.append(tickable)
        tickable.tick_context = self

    @property
    def width(self) -> float:
        return max((t.width for t in self.tickables), default=0.0)


class Tickable:
    """Base class for anything occupying a duration-proportional slot in a voice."""

    def __init__(self, duration: str, ticks: Fraction | None = None) -> None:
        base, dots, rest = parse_duration(duration)
        self.duration = duration
        self.base = base
        self.dots = dots
        self.is_rest = rest
        self.ticks = Fraction(ticks) if ticks is not None else duration_to_ticks(duration)
        self.stave: Stave | None = None
        self.tick_context: TickContext | None = None
        self.context: RenderContext | None = None

    @property
    def width(self) -> float:
        return 0.0

    def set_stave(self, stave: Stave) -> Tickable:
        self.stave = stave
        return self

    def set_context(self, context: RenderContext) -> Tickable:
        self.context = context
        return self

    def get_absolute_x(self) -> float:
        if self.stave is None or self.tick_context is None:
            raise BackendError(f"{type(self).__name__} has not been formatted against a stave.")
        return self.stave.get_note_start_x() + self.tick_context.x

    def draw(self) -> None:
        raise NotImplementedError


class StaveNote(Tickable):
    """A note, chord or rest drawn on a stave."""

    HEAD_WIDTH: Final[float] = 11
    ACCIDENTAL_WIDTH: Final[float] = 9
    DOT_WIDTH: Final[float] = 5
    STEM_LENGTH: Final[float] = 35

    _ACCIDENTAL_GLYPHS: Final[dict[str, str]] = {
        "#": "♯",
        "##": "\U0001d12a",
        "b": "♭",
        "bb": "\U0001d12b",
        "n": "♮",
    }

    def __init__(
        self,
        keys: Sequence[str],
        duration: str,
        *,
        clef: str = "treble",
        octave_shift: int = 0,
        accidentals: Sequence[str | None] | None = None,
        ticks: Fraction | None = None,
        stem_direction: int | None = None,
    ) -> None:
        super().__init__(duration, ticks)
        if not keys:
            raise BackendError("StaveNote requires at least one key.")
        if clef not in CLEF_BOTTOM_LINE:
            raise BackendError(f"Unknown clef: {clef!r}")
        self.keys = list(keys)
        self.clef = clef
        bottom = CLEF_BOTTOM_LINE[clef] + octave_shift * 7
        self.steps = [key_to_diatonic(key)[0] - bottom for key in self.keys]
        if accidentals is None:
            accidentals = [None] * len(self.keys)
        if len(accidentals) != len(self.keys):
            raise BackendError("One accidental entry is required per key.")
        self.accidentals = list(accidentals)
        self.beam: Beam | None = None
        self.stem_direction = stem_direction if stem_direction is not None else self._auto_stem_direction()

    def _auto_stem_direction(self) -> int:
        return STEM_UP if sum(self.steps) / len(self.steps) < 4 else STEM_DOWN

    def set_stem_direction(self, direction: int) -> StaveNote:
        self.stem_direction = direction
        return self

    @property
    def width(self) -> float:
        shown = sum(1 for accidental in self.accidentals if accidental)
        return self.HEAD_WIDTH + shown * self.ACCIDENTAL_WIDTH + self.dots * self.DOT_WIDTH

    def has_stem(self) -> bool:
        return not self.is_rest and self.base not in ("w", "1")

    def flag_count(self) -> int:
        if self.is_rest or _BASE_TICKS[self.base] >= RESOLUTION // 4:
            return 0
        return {8: 1, 16: 2, 32: 3, 64: 4, 128: 5, 256: 6}[RESOLUTION // _BASE_TICKS[self.base]]

    def get_key_y(self, index: int = 0) -> float:
        if self.stave is None:
            raise BackendError("StaveNote has no stave.")
        return self.stave.get_y_for_step(self.steps[index])

    def get_stem_x(self) -> float:
        x = self.get_absolute_x()
        return x + self.HEAD_WIDTH if self.stem_direction == STEM_UP else x

    def get_stem_end_y(self) -> float:
        if self.beam is not None:
            return self.beam.get_y()
        ys = [self.get_key_y(i) for i in range(len(self.keys))]
        if self.stem_direction == STEM_UP:
            return min(ys) - self.STEM_LENGTH
        return max(ys) + self.STEM_LENGTH

    def draw(self) -> None:
        ctx = _require_context(self.context, "StaveNote")
        stave = self.stave
        if stave is None:
            raise BackendError("StaveNote has no stave.")
        x = self.get_absolute_x()
        spacing = stave.options.spacing_between_lines_px

        if self.is_rest:
            self._draw_rest(ctx, x)
            return

        filled = self.base not in ("w", "1", "h", "2")
        for index, step in enumerate(self.steps):
            y = stave.get_y_for_step(step)
            accidental = self.accidentals[index]
            if accidental:
                ctx.text(x - self.ACCIDENTAL_WIDTH, y + 4, self._ACCIDENTAL_GLYPHS.get(accidental, accidental),
                         size=14, tag="accidental")
            ctx.ellipse(x + self.HEAD_WIDTH / 2, y, self.HEAD_WIDTH / 2, spacing * 0.4, filled=filled, tag="notehead")
            self._draw_ledger_lines(ctx, x, step)
            for dot in range(self.dots):
                ctx.ellipse(x + self.HEAD_WIDTH + 4 + dot * self.DOT_WIDTH, y, 1.5, 1.5, tag="dot")

        if self.has_stem():
            stem_x = self.get_stem_x()
            ys = [stave.get_y_for_step(step) for step in self.steps]
            start_y = max(ys) if self.stem_direction == STEM_UP else min(ys)
            end_y = self.get_stem_end_y()
            ctx.line(stem_x, start_y, stem_x, end_y, tag="stem")
            if self.beam is None:
                for flag in range(self.flag_count()):
                    offset = flag * 7 * self.stem_direction
                    ctx.line(stem_x, end_y + offset, stem_x + 8, end_y + offset + 10 * self.stem_direction, tag="flag")

    def _draw_ledger_lines(self, ctx: RenderContext, x: float, step: int) -> None:
        stave = self.stave
        assert stave is not None
        for ledger in range(-2, step - 1, -2):
            y = stave.get_y_for_step(ledger)
            ctx.line(x - 3, y, x + self.HEAD_WIDTH + 3, y, tag="ledger-line")
        for ledger in range(10, step + 1, 2):
            y = stave.get_y_for_step(ledger)
            ctx.line(x - 3, y, x + self.HEAD_WIDTH + 3, y, tag="ledger-line")

    def _draw_rest(self, ctx: RenderContext, x: float) -> None:
        stave = self.stave
        assert stave is not None
        if self.base in ("w", "1"):
            ctx.rect(x, stave.get_y_for_line(1), self.HEAD_WIDTH, 5, tag="rest")
        elif self.base in ("h", "2"):
            ctx.rect(x, stave.get_y_for_line(2) - 5, self.HEAD_WIDTH, 5, tag="rest")
        else:
            glyph = {"q": "\U0001d13d", "4": "\U0001d13d", "8": "\U0001d13e"}.get(self.base, "\U0001d13f")
            ctx.text(x, stave.get_y_for_line(2.5), glyph, size=24, tag="rest")


class GhostNote(Tickable):
    """An invisible tickable that only occupies time."""

    def draw(self) -> None:
        _require_context(self.context, "GhostNote")


class TextNote(Tickable):
    """Text (lyrics, connectors) placed on a stave line at a tick position."""

    CHAR_WIDTH_RATIO: Final[float] = 0.55

    def __init__(
        self,
        text: str,
        duration: str,
        *,
        font: tuple[str, int] = ("Serif", 12),
        line: float = 0,
        justification: TextJustification = TextJustification.LEFT,
        ticks: Fraction | None = None,
    ) -> None:
        super().__init__(duration, ticks)
        self.text = text
        self.font = font
        self.line = line
        self.justification = justification

    def set_line(self, line: float) -> TextNote:
        self.line = line
        return self

    def set_justification(self, justification: TextJustification) -> TextNote:
        self.justification = justification
        return self

    @property
    def width(self) -> float:
        return len(self.text) * self.font[1] * self.CHAR_WIDTH_RATIO

    def draw(self) -> None:
        ctx = _require_context(self.context, "TextNote")
        if self.stave is None:
            raise BackendError("TextNote has no stave.")
        if not self.text:
            return
        x = self.get_absolute_x()
        if self.justification is TextJustification.CENTER:
            x -= self.width / 2
        elif self.justification is TextJustification.RIGHT:
            x -= self.width
        family, size = self.font
        ctx.text(x, self.stave.get_y_for_line(self.line), self.text, size=size, family=family, tag="lyric")


# ── Voice and formatter ───────────────────────────────────────────────────────

class Voice:
    """An ordered track of tickables with a nominal (num_beats, beat_value) length."""

    def __init__(self, num_beats: int, beat_value: int, resolution: int = RESOLUTION) -> None:
        if beat_value <= 0:
            raise BackendError(f"Invalid beat value: {beat_value}")
        self.num_beats = num_beats
        self.beat_value = beat_value
        self.total_ticks = Fraction(num_beats * resolution, beat_value)
        self.mode = VoiceMode.STRICT
        self.tickables: list[Tickable] = []
        self.ticks_used = Fraction(0)
        self.stave: Stave | None = None

    def set_mode(self, mode: VoiceMode) -> Voice:
        self.mode = mode
        return self

    def set_stave(self, stave: Stave) -> Voice:
        self.stave = stave
        for tickable in self.tickables:
            if tickable.stave is None:
                tickable.set_stave(stave)
        return self

    def add_tickable(self, tickable: Tickable) -> Voice:
        if self.mode is not VoiceMode.SOFT and self.ticks_used + tickable.ticks > self.total_ticks:
            raise BackendError("Too many ticks for this voice.")
        self.ticks_used += tickable.ticks
        self.tickables.append(tickable)
        if tickable.stave is None and self.stave is not None:
            tickable.set_stave(self.stave)
        return self

    def add_tickables(self, tickables: Sequence[Tickable]) -> Voice:
        for tickable in tickables:
            self.add_tickable(tickable)
        return self

    def is_complete(self) -> bool:
        if self.mode is VoiceMode.SOFT:
            return True
        if self.mode is VoiceMode.FULL:
            return self.ticks_used <= self.total_ticks
        return self.ticks_used == self.total_ticks

    def draw(self, context: RenderContext, stave: Stave | None = None) -> None:
        stave = stave or self.stave
        for tickable in self.tickables:
            if tickable.stave is None:
                if stave is None:
                    raise BackendError("Voice has no stave to draw on.")
                tickable.set_stave(stave)
            tickable.set_context(context).draw()


class Formatter:
    """
    Positions the tickables of several voices jointly.

    Tickables starting at the same cumulative tick offset share one
    :class:`TickContext`. Each context receives its minimum width plus a share
    of the remaining justify width proportional to the time it spans.
    """

    CONTEXT_PADDING: Final[float] = 10

    def __init__(self) -> None:
        self.tick_contexts: dict[Fraction, TickContext] = {}
        self.voices: list[Voice] = []
        self.total_ticks = Fraction(0)

    def join_voices(self, voices: Sequence[Voice]) -> Formatter:
        for voice in voices:
            if voice not in self.voices:
                self.voices.append(voice)
        return self

    def create_tick_contexts(self, voices: Sequence[Voice]) -> None:
        for voice in voices:
            if not voice.is_complete():
                raise BackendError("Voice does not have enough notes.")
            ticks = Fraction(0)
            for tickable in voice.tickables:
                context = self.tick_contexts.get(ticks)
                if context is None:
                    context = self.tick_contexts[ticks] = TickContext(ticks)
                context.add_tickable(tickable)
                ticks += tickable.ticks
            self.total_ticks = max(self.total_ticks, ticks)

    def pre_format(self, justify_width: float) -> None:
        if not self.tick_contexts:
            return
        starts = sorted(self.tick_contexts)
        contexts = [self.tick_contexts[start] for start in starts]
        ends = starts[1:] + [max(self.total_ticks, starts[-1])]

        spans = np.array([float(end - start) for start, end in zip(starts, ends)])
        minimums = np.array([context.width + self.CONTEXT_PADDING for context in contexts])
        extra = max(justify_width - float(minimums.sum()), 0.0)
        if spans.sum() > 0:
            weights = spans / spans.sum()
        else:
            weights = np.full(len(contexts), 1.0 / len(contexts))
        allotted = minimums + extra * weights
        xs = np.concatenate(([0.0], np.cumsum(allotted)[:-1]))
        for context, x in zip(contexts, xs):
            context.x = float(x)

    def format(self, voices: Sequence[Voice], justify_width: float) -> Formatter:
        self.join_voices(voices)
        self.create_tick_contexts(voices)
        self.pre_format(justify_width)
        return self

    def format_to_stave(self, voices: Sequence[Voice], stave: Stave) -> Formatter:
        justify_width = stave.get_note_end_x() - stave.get_note_start_x() - self.CONTEXT_PADDING
        self.format(voices, justify_width)
        for voice in voices:
            if voice.stave is None:
                voice.set_stave(stave)
        return self

    def tick_context_at(self, ticks: Fraction | int) -> TickContext | None:
        return self.tick_contexts.get(Fraction(ticks))


# ── Beams, ties, tuplets, connectors ─────────────────────────────────────────

class Beam:
    """A beam across two or more consecutive stemmed notes shorter than a quarter."""

    THICKNESS: Final[float] = 5

    def __init__(self, notes: Sequence[StaveNote], *, stem_direction: int | None = None) -> None:
        if len(notes) < 2:
            raise BackendError("Too few notes for beam.")
        for note in notes:
            if not self.is_beamable(note):
                raise BackendError(f"Note with duration {note.duration!r} cannot be beamed.")
        self.notes = list(notes)
        self.stem_direction = stem_direction if stem_direction is not None else self._calculate_stem_direction()
        for note in self.notes:
            note.set_stem_direction(self.stem_direction)
            note.beam = self
        self.context: RenderContext | None = None

    @staticmethod
    def is_beamable(tickable: Tickable) -> bool:
        return (
            isinstance(tickable, StaveNote)
            and not tickable.is_rest
            and _BASE_TICKS[tickable.base] < RESOLUTION // 4
        )

    def _calculate_stem_direction(self) -> int:
        steps = [step for note in self.notes for step in note.steps]
        return STEM_UP if sum(steps) / len(steps) < 4 else STEM_DOWN

    def get_y(self) -> float:
        ys = [note.get_key_y(i) for note in self.notes for i in range(len(note.keys))]
        if self.stem_direction == STEM_UP:
            return min(ys) - StaveNote.STEM_LENGTH
        return max(ys) + StaveNote.STEM_LENGTH

    def set_context(self, context: RenderContext) -> Beam:
        self.context = context
        return self

    def draw(self) -> None:
        ctx = _require_context(self.context, "Beam")
        y = self.get_y()
        x1 = self.notes[0].get_stem_x()
        x2 = self.notes[-1].get_stem_x()
        top = y if self.stem_direction == STEM_UP else y - self.THICKNESS
        ctx.rect(x1, top, max(x2 - x1, 1.0), self.THICKNESS, tag="beam")

    @classmethod
    def generate_beams(
        cls,
        notes: Sequence[Tickable],
        groups: Sequence[Fraction] | None = None,
        stem_direction: int | None = None,
    ) -> list[Beam]:
        """
        Split ``notes`` into beat groups and beam each run of beamable notes.

        ``groups`` are fractions of a whole note, repeated cyclically across
        the notes (e.g. ``[Fraction(2, 8)]`` beams eighths in pairs).
        """
        group_ticks = [Fraction(group) * RESOLUTION for group in (groups or [Fraction(2, 8)])]
        buckets: list[list[Tickable]] = []
        current: list[Tickable] = []
        elapsed = Fraction(0)
        index = 0
        for note in notes:
            current.append(note)
            elapsed += note.ticks
            limit = group_ticks[index % len(group_ticks)]
            if elapsed >= limit:
                if elapsed > limit and len(current) > 1:
                    overflow = current.pop()
                    buckets.append(current)
                    current = [overflow]
                    elapsed = overflow.ticks
                else:
                    buckets.append(current)
                    current = []
                    elapsed = Fraction(0)
                index += 1
        if current:
            buckets.append(current)

        beams: list[Beam] = []
        for bucket in buckets:
            run: list[StaveNote] = []
            for note in bucket + [None]:  # type: ignore[operator]
                if note is not None and cls.is_beamable(note):
                    run.append(note)  # type: ignore[arg-type]
                    continue
                if len(run) >= 2:
                    beams.append(cls(run, stem_direction=stem_direction))
                run = []
        return beams

    @classmethod
    def apply_and_get_beams(
        cls,
        voice: Voice,
        stem_direction: int | None = None,
        groups: Sequence[Fraction] | None = None,
    ) -> list[Beam]:
        return cls.generate_beams(voice.tickables, groups, stem_direction)


class StaveTie:
    """
    A tie curve between two notes, or a partial tie when one end is missing.

    A tie with no ``last_note`` runs to the end of the first note's stave; one
    with no ``first_note`` starts at the glyph start of the last note's stave.
    """

    def __init__(
        self,
        first_note: StaveNote | None = None,
        last_note: StaveNote | None = None,
        first_indices: Sequence[int] = (0,),
        last_indices: Sequence[int] = (0,),
    ) -> None:
        if first_note is None and last_note is None:
            raise BackendError("A tie needs at least one note.")
        self.first_note = first_note
        self.last_note = last_note
        self.first_indices = list(first_indices)
        self.last_indices = list(last_indices)
        self.context: RenderContext | None = None

    @property
    def is_partial(self) -> bool:
        return self.first_note is None or self.last_note is None

    def set_context(self, context: RenderContext) -> StaveTie:
        self.context = context
        return self

    def draw(self) -> None:
        ctx = _require_context(self.context, "StaveTie")
        first, last = self.first_note, self.last_note
        if first is not None:
            first_x = first.get_absolute_x() + StaveNote.HEAD_WIDTH
            first_y = first.get_key_y(self.first_indices[0])
        if last is not None:
            last_x = last.get_absolute_x()
            last_y = last.get_key_y(self.last_indices[0])
        if first is None:
            assert last is not None and last.stave is not None
            first_x = last.stave.get_note_start_x() - 5
            first_y = last_y
        if last is None:
            assert first is not None and first.stave is not None
            last_x = first.stave.x + first.stave.width
            last_y = first_y

        anchor = first if first is not None else last
        assert anchor is not None
        # curve away from the stems
        direction = 1 if anchor.stem_direction == STEM_UP else -1
        bend = 8 * direction
        ctx.curve(
            (first_x, first_y + 4 * direction),
            (first_x + (last_x - first_x) / 3, first_y + bend + 4 * direction),
            (last_x - (last_x - first_x) / 3, last_y + bend + 4 * direction),
            (last_x, last_y + 4 * direction),
            tag="tie",
        )


class Tuplet:
    """A bracket with a number (or ratio) over a group of notes."""

    def __init__(
        self,
        notes: Sequence[Tickable],
        *,
        num_notes: int = 3,
        notes_occupied: int = 2,
        ratioed: bool = False,
        bracketed: bool = True,
    ) -> None:
        if not notes:
            raise BackendError("A tuplet needs at least one note.")
        self.notes = list(notes)
        self.num_notes = num_notes
        self.notes_occupied = notes_occupied
        self.ratioed = ratioed
        self.bracketed = bracketed
        self.context: RenderContext | None = None

    def set_ratioed(self, ratioed: bool) -> Tuplet:
        self.ratioed = ratioed
        return self

    @property
    def label(self) -> str:
        if self.ratioed:
            return f"{self.num_notes}:{self.notes_occupied}"
        return str(self.num_notes)

    def set_context(self, context: RenderContext) -> Tuplet:
        self.context = context
        return self

    def draw(self) -> None:
        ctx = _require_context(self.context, "Tuplet")
        first, last = self.notes[0], self.notes[-1]
        stave = first.stave
        if stave is None:
            raise BackendError("Tuplet notes have no stave.")
        x1 = first.get_absolute_x()
        x2 = last.get_absolute_x() + last.width
        y = stave.get_top_line_y() - 15
        for note in self.notes:
            if isinstance(note, StaveNote) and not note.is_rest and note.has_stem():
                y = min(y, note.get_stem_end_y() - 10)
        middle = (x1 + x2) / 2
        if self.bracketed:
            ctx.line(x1, y + 5, x1, y, tag="tuplet")
            ctx.line(x1, y, middle - 8, y, tag="tuplet")
            ctx.line(middle + 8, y, x2, y, tag="tuplet")
            ctx.line(x2, y, x2, y + 5, tag="tuplet")
        ctx.text(middle - 4, y + 4, self.label, size=11, tag="tuplet")


class StaveConnector:
    """A line, bracket or brace joining the left edges of two staves."""

    def __init__(self, top_stave: Stave, bottom_stave: Stave) -> None:
        self.top_stave = top_stave
        self.bottom_stave = bottom_stave
        self.type = ConnectorType.DOUBLE
        self.context: RenderContext | None = None

    def set_type(self, connector_type: ConnectorType) -> StaveConnector:
        self.type = connector_type
        return self

    def set_context(self, context: RenderContext) -> StaveConnector:
        self.context = context
        return self

    def draw(self) -> None:
        ctx = _require_context(self.context, "StaveConnector")
        top_y = self.top_stave.get_top_line_y()
        bottom_y = self.bottom_stave.get_bottom_line_y()
        x = self.top_stave.x
        height = bottom_y - top_y
        if self.type in (ConnectorType.SINGLE, ConnectorType.SINGLE_LEFT):
            ctx.line(x, top_y, x, bottom_y, tag="connector")
        elif self.type is ConnectorType.SINGLE_RIGHT:
            right = self.top_stave.x + self.top_stave.width
            ctx.line(right, top_y, right, bottom_y, tag="connector")
        elif self.type is ConnectorType.DOUBLE:
            ctx.line(x - 3, top_y, x - 3, bottom_y, tag="connector")
            ctx.line(x, top_y, x, bottom_y, tag="connector")
        elif self.type is ConnectorType.BRACKET:
            ctx.rect(x - 8, top_y, 3, height, tag="connector")
            ctx.line(x - 8, top_y, x - 2, top_y - 4, tag="connector")
            ctx.line(x - 8, bottom_y, x - 2, bottom_y + 4, tag="connector")
        else:
            middle = top_y + height / 2
            left = x - 14
            ctx.curve((x - 4, top_y), (left, top_y), (x - 4, middle), (left, middle), tag="connector")
            ctx.curve((left, middle), (x - 4, middle), (left, bottom_y), (x - 4, bottom_y), tag="connector")


def _require_context(context: RenderContext | None, owner: str) -> RenderContext:
    if context is None:
        raise BackendError(f"{owner} has no drawing context; call set_context() first.")
    return context
