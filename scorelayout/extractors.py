"""Build backend tickables and tuplet brackets from a flat music21 stream."""

from __future__ import annotations

import copy
import logging
from fractions import Fraction
from typing import Any, Final, Iterable

from music21 import key, note

from scorelayout.config import DEFAULT_CONFIG, LayoutConfig
from scorelayout.annotations import LayoutAnnotations
from scorelayout.diagnostics import DurationError, LayoutDiagnostics, LayoutError, StructuralLayoutError
from scorelayout.durations import first_tuplet, quarter_length_ticks, scaled_duration, vexflow_duration
from scorelayout.logging_utils import log_event
from scorelayout.notation_backend import (
    STEM_DOWN,
    STEM_UP,
    BackendError,
    GhostNote,
    Stave,
    StaveNote,
    TextJustification,
    TextNote,
    Tickable,
    Tuplet,
)
from scorelayout.staves import find_context, middle_line_key

logger = logging.getLogger(__name__)

_ACCIDENTAL_CODES: Final[dict[str, str]] = {
    "sharp": "#",
    "double-sharp": "##",
    "flat": "b",
    "double-flat": "bb",
    "natural": "n",
}

_STEM_DIRECTIONS: Final[dict[str, int]] = {"up": STEM_UP, "down": STEM_DOWN}

_HALF: Final[Fraction] = Fraction(1, 2)


def pitch_key(p: Any) -> str:
    """Backend key for a pitch, e.g. ``"f#/4"``."""
    accidental = ""
    if p.accidental is not None:
        accidental = _ACCIDENTAL_CODES.get(p.accidental.name, "")
    octave = p.octave if p.octave is not None else p.implicitOctave
    return f"{p.step.lower()}{accidental}/{octave}"


def has_duration(element: Any) -> bool:
    d = getattr(element, "duration", None)
    return d is not None and d.quarterLength > 0


def accidental_display(s: Any) -> dict[int, list[str | None]]:
    """
    Work out which accidentals are printed for the notes of ``s``.

    Runs music21's accidental display rules against the key signature in
    effect, on copies of the pitches, so ``s`` is left untouched.

    Returns:
        For every note or chord (keyed by ``id``) one entry per pitch: the
        backend accidental code to print, or ``None``.
    """
    ks = find_context(s, key.KeySignature)
    altered = ks.alteredPitches if ks is not None else []
    past: list[Any] = []
    display: dict[int, list[str | None]] = {}
    last_tied = False

    for element in s.notesAndRests:
        if element.isRest:
            last_tied = False
            continue
        shown: list[str | None] = []
        for p in element.pitches:
            shadow = copy.deepcopy(p)
            shadow.updateAccidentalDisplay(pitchPast=past, alteredPitches=altered, lastNoteWasTied=last_tied)
            accidental = shadow.accidental
            if accidental is not None and accidental.displayStatus:
                shown.append(_ACCIDENTAL_CODES.get(accidental.name))
            else:
                shown.append(None)
            past.append(shadow)
        display[id(element)] = shown
        last_tied = element.tie is not None and element.tie.type in ("start", "continue")
    return display


def _stave_note(
    element: Any,
    clef_name: str,
    octave_shift: int,
    shown: list[str | None] | None,
) -> StaveNote:
    d = element.duration
    code = vexflow_duration(d, rest=element.isRest)
    ticks = quarter_length_ticks(d.quarterLength)
    stem = _STEM_DIRECTIONS.get(getattr(element, "stemDirection", None) or "")

    if element.isRest:
        keys = [middle_line_key(clef_name, octave_shift)]
        return StaveNote(keys, code, clef=clef_name, octave_shift=octave_shift, ticks=ticks)

    if isinstance(element, note.Unpitched):
        keys = [f"{element.displayStep.lower()}/{element.displayOctave}"]
        shown = None
    else:
        if not element.pitches:
            raise LayoutError(f"{element!r} has no pitches.")
        keys = [pitch_key(p) for p in element.pitches]
    return StaveNote(
        keys,
        code,
        clef=clef_name,
        octave_shift=octave_shift,
        accidentals=shown,
        ticks=ticks,
        stem_direction=stem,
    )


def vexflow_notes(
    s: Any,
    stave: Stave,
    annotations: LayoutAnnotations,
    diagnostics: LayoutDiagnostics,
    *,
    clef_name: str = "treble",
    octave_shift: int = 0,
    accidentals: dict[int, list[str | None]] | None = None,
    config: LayoutConfig = DEFAULT_CONFIG,
) -> tuple[list[Tickable], list[Tuplet]]:
    """
    Convert the notes and rests of ``s`` into tickables bound to ``stave``.

    Each tickable is registered in ``annotations`` against its source note.
    Consecutive tuplet notes are gathered until they add up to the tuplet's
    total length and then bracketed. A note that cannot be converted is
    reported as an error and replaced by a ghost note of the same length, so
    the track keeps its timing.

    Returns:
        ``(tickables, tuplets)`` in stream order.
    """
    if accidentals is None:
        accidentals = {}
    tickables: list[Tickable] = []
    tuplets: list[Tuplet] = []

    active_tuplet = None
    active_notes: list[Tickable] = []
    active_length = Fraction(0)

    for element in s.notesAndRests:
        if not has_duration(element):
            continue
        try:
            tickable: Tickable = _stave_note(element, clef_name, octave_shift, accidentals.get(id(element)))
        except (LayoutError, BackendError) as exc:
            diagnostics.error(
                "tickable_conversion_failed",
                element,
                offset=str(element.offset),
                quarter_length=str(element.duration.quarterLength),
                reason=str(exc),
            )
            tickable = GhostNote("q", ticks=quarter_length_ticks(element.duration.quarterLength))
        tickable.set_stave(stave)
        annotations.register(element, tickable)
        tickables.append(tickable)

        tuplet = first_tuplet(element.duration)
        if tuplet is None:
            continue
        if active_tuplet is None:
            active_tuplet = tuplet
            active_notes = []
            active_length = Fraction(0)
        active_notes.append(tickable)
        active_length += Fraction(element.duration.quarterLength)
        total = Fraction(active_tuplet.totalTupletLength())
        if active_length >= total or abs(float(total - active_length)) < config.tuplet_tolerance:
            tuplets.append(
                Tuplet(
                    active_notes,
                    num_notes=active_tuplet.numberNotesActual,
                    notes_occupied=active_tuplet.numberNotesNormal,
                    ratioed=active_tuplet.tupletNormalShow in ("number", "both"),
                )
            )
            active_tuplet = None

    if active_tuplet is not None:
        diagnostics.warning(
            "incomplete_tuplet",
            s,
            notes=len(active_notes),
            accumulated=str(active_length),
            expected=str(Fraction(active_tuplet.totalTupletLength())),
        )
    return tickables, tuplets


def _lyric_duration(d: Any, factor: Fraction) -> tuple[str, Fraction]:
    quarter_length = Fraction(d.quarterLength) * factor
    ticks = quarter_length_ticks(quarter_length)
    try:
        code = vexflow_duration(d if factor == 1 else scaled_duration(d, factor))
    except DurationError:
        # text carries its ticks explicitly; the code only names a nominal glyph
        log_event(logger, "lyric_duration_unnamed", logging.DEBUG, quarter_length=str(quarter_length))
        code = "q"
    return code, ticks


def vexflow_lyrics(
    elements: Iterable[Any],
    stave: Stave,
    config: LayoutConfig = DEFAULT_CONFIG,
) -> list[TextNote]:
    """
    Build the lyric track for ``elements`` (usually ``stream.notesAndRests``).

    Every element yields a text tickable of its full length, empty when it has
    no lyric. A ``begin`` or ``middle`` syllable is split into the text and a
    connector, each half as long.

    Raises:
        StructuralLayoutError: If an element has no duration at all.
    """
    texts: list[TextNote] = []

    def text_note(text: str, code: str, ticks: Fraction) -> TextNote:
        tn = TextNote(
            text,
            code,
            font=config.lyric_font,
            line=config.lyric_line,
            justification=TextJustification.LEFT,
            ticks=ticks,
        )
        tn.set_stave(stave)
        return tn

    for element in elements:
        d = getattr(element, "duration", None)
        if d is None:
            raise StructuralLayoutError(f"{element!r} has no duration; lyrics cannot be laid out.")
        if d.quarterLength == 0:
            continue
        lyrics = getattr(element, "lyrics", None) or []
        if not lyrics:
            texts.append(text_note("", *_lyric_duration(d, Fraction(1))))
            continue
        lyric = lyrics[0]
        text = lyric.text or ""
        if lyric.syllabic in ("begin", "middle"):
            code, ticks = _lyric_duration(d, _HALF)
            texts.append(text_note(text, code, ticks))
            texts.append(text_note(" " + config.lyric_connector, code, ticks))
        else:
            texts.append(text_note(text, *_lyric_duration(d, Fraction(1))))
    return texts


def has_lyrics(s: Any) -> bool:
    return any(getattr(element, "lyrics", None) for element in s.notesAndRests)
