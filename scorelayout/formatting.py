"""Joint formatting of every track in one system slot."""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import Any

from music21 import meter

from scorelayout.config import DEFAULT_CONFIG, LayoutConfig
from scorelayout.layout_models import RenderStack
from scorelayout.logging_utils import log_event
from scorelayout.notation_backend import Beam, Formatter
from scorelayout.render_options import RenderOptionsRegistry
from scorelayout.staves import find_context

logger = logging.getLogger(__name__)


def beat_groups(s: Any, config: LayoutConfig = DEFAULT_CONFIG) -> list[Fraction]:
    """
    Beam groups for ``s`` as fractions of a whole note.

    Taken from the beam sequence of the time signature in effect; falls back
    to ``config.default_beat_group`` (two eighths) without one.
    """
    if s is None:
        return [config.default_beat_group]
    ts = find_context(s, meter.TimeSignature)
    if ts is None:
        return [config.default_beat_group]
    sequence = ts.beamSequence
    groups = [Fraction(sequence[i].duration.quarterLength) / 4 for i in range(len(sequence))]
    return groups or [config.default_beat_group]


def format_voice_group(
    stack: RenderStack,
    registry: RenderOptionsRegistry,
    auto_beam: bool | None = None,
    config: LayoutConfig = DEFAULT_CONFIG,
) -> tuple[Formatter, list[Beam]]:
    """
    Align and format all tracks of ``stack`` together.

    Every track's stave is moved to the widest glyph start found among them,
    so notes of different parts start at the same x whatever clef or key they
    show. All tracks, lyric tracks included, are then formatted against the
    first track's stave. With auto-beaming (``auto_beam``, or the first
    stream's own option when ``None``) each music track is beamed by its
    time signature's beat groups; beaming resets stem directions.

    Returns:
        The formatter, for reading back tick contexts, and the beams created.
    """
    formatter = Formatter()
    if not stack.voices:
        return formatter, []

    tracks = stack.all_tickables()
    staves = [track.stave for track in tracks if track.stave is not None]
    glyph_start = max(stave.get_note_start_x() for stave in staves)
    for stave in staves:
        stave.set_note_start_x(glyph_start)

    stave = stack.voices[0].stave
    formatter.join_voices(tracks)
    formatter.format_to_stave(tracks, stave)
    log_event(logger, "voice_group_formatted", logging.DEBUG, tracks=len(tracks), glyph_start=glyph_start)

    if auto_beam is None:
        auto_beam = registry.of(stack.streams[0]).auto_beam if stack.streams else False

    beams: list[Beam] = []
    if auto_beam:
        for index, voice in enumerate(stack.voices):
            s = stack.streams[index] if index < len(stack.streams) else None
            beams.extend(Beam.apply_and_get_beams(voice, None, beat_groups(s, config)))
    return formatter, beams
