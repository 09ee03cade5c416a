"""
The layout engine: walks a music21 stream and lays it out on a render context.

One :class:`LayoutEngine` performs one pass at a time::

    engine = LayoutEngine()
    result = engine.render(score)
    svg = result.to_svg()

A pass classifies the stream, prepares one :class:`RenderStack` per system
slot (measure index), resolves ties per part, formats every stack and then
draws ties, measures, beams, tuplets and staff connectors in that order.
"""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import Any, Final

from music21 import clef

from scorelayout.annotations import LayoutAnnotations, apply_formatter_information
from scorelayout.config import DEFAULT_CONFIG, LayoutConfig
from scorelayout.diagnostics import LayoutDiagnostics
from scorelayout.durations import voice_time
from scorelayout.extractors import accidental_display, has_lyrics, vexflow_lyrics, vexflow_notes
from scorelayout.formatting import format_voice_group
from scorelayout.hierarchy import StreamKind, classify_stream, sub_streams
from scorelayout.layout_models import LayoutResult, RenderStack
from scorelayout.logging_utils import log_event
from scorelayout.notation_backend import (
    Beam,
    ConnectorType,
    Stave,
    StaveConnector,
    StaveTie,
    Tuplet,
    Voice,
    VoiceMode,
)
from scorelayout.render_context import RenderContext
from scorelayout.render_options import RenderOptions, RenderOptionsRegistry
from scorelayout.staves import clef_name, clef_octave_shift, find_context, new_stave, set_clef_etc
from scorelayout.ties import resolve_ties

logger = logging.getLogger(__name__)

STAFF_CONNECTOR_TYPES: Final[dict[str, ConnectorType]] = {
    "brace": ConnectorType.BRACE,
    "single": ConnectorType.SINGLE,
    "double": ConnectorType.DOUBLE,
    "bracket": ConnectorType.BRACKET,
}


class LayoutEngine:
    """
    Lays out music21 streams with the pure-Python notation backend.

    Args:
        registry:    Render options per stream; a fresh registry is used when
                     omitted (every stream then gets default options).
        diagnostics: Sink for recovered per-note errors and warnings.
        config:      Geometry and tolerance constants.
    """

    def __init__(
        self,
        registry: RenderOptionsRegistry | None = None,
        diagnostics: LayoutDiagnostics | None = None,
        config: LayoutConfig = DEFAULT_CONFIG,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else RenderOptionsRegistry(config)
        self.diagnostics = diagnostics if diagnostics is not None else LayoutDiagnostics()
        self.annotations = LayoutAnnotations()
        self.context: RenderContext | None = None
        self._reset()

    def _reset(self) -> None:
        self.stacks: list[RenderStack] = []
        self.staves: list[Stave] = []
        self.beam_groups: list[Beam] = []
        self.ties: list[StaveTie] = []
        self.tuplets: list[Tuplet] = []
        self.connectors: list[StaveConnector] = []
        self.system_break_offsets: list[Fraction] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, s: Any, context: RenderContext | None = None) -> LayoutResult:
        """
        Lay out and draw ``s``.

        Args:
            s:       A Score, Part, Measure or flat Stream.
            context: Existing drawing surface; a new one scaled by the root
                     stream's ``scale_factor`` is created when omitted.

        Returns:
            The populated :class:`LayoutResult`.

        Raises:
            StructuralLayoutError: If ``s`` cannot be laid out at all.
        """
        self._reset()
        self.diagnostics.clear()
        self.annotations.clear(s, recursive=True)
        created = context is None
        if context is None:
            scale = self.registry.of(s).scale_factor
            context = RenderContext().scale(scale.x, scale.y)
        self.context = context

        kind = classify_stream(s)
        log_event(logger, "render_started", logging.DEBUG, kind=kind.value, stream=repr(s))
        if kind is StreamKind.SCORE:
            self.prepare_scorelike(s)
        elif kind is StreamKind.PART:
            self.prepare_partlike(s)
        else:
            self.prepare_arrived_flat(s)

        self.format_measure_stacks()
        self.draw_ties()
        self.draw_measure_stacks()
        self.draw_beam_groups()
        self.draw_tuplets()
        self.draw_staff_connectors()
        if created:
            context.resize(*self.extent())

        log_event(
            logger,
            "render_finished",
            logging.INFO,
            kind=kind.value,
            stacks=len(self.stacks),
            ties=len(self.ties),
            beams=len(self.beam_groups),
            tuplets=len(self.tuplets),
            connectors=len(self.connectors),
            errors=len(self.diagnostics.errors),
            warnings=len(self.diagnostics.warnings),
        )
        return LayoutResult(
            context=context,
            stacks=list(self.stacks),
            staves=list(self.staves),
            ties=list(self.ties),
            beams=list(self.beam_groups),
            tuplets=list(self.tuplets),
            connectors=list(self.connectors),
            annotations=self.annotations,
            diagnostics=self.diagnostics,
            system_break_offsets=list(self.system_break_offsets),
        )

    def stave_for(self, s: Any) -> Stave | None:
        """Stave the last pass built for stream ``s`` (a measure or voice)."""
        return self.annotations.stave_for(s)

    def extent(self) -> tuple[float, float]:
        """Width and height covering every stave drawn by the last pass."""
        if not self.staves:
            return 0.0, 0.0
        width = max(stave.x + stave.width for stave in self.staves) + self.config.default_left
        height = max(stave.get_bottom_y() for stave in self.staves)
        return width, height

    # ------------------------------------------------------------------
    # Hierarchy walk
    # ------------------------------------------------------------------

    def prepare_scorelike(self, s: Any) -> None:
        for part in sub_streams(s):
            self.prepare_partlike(part)
        self.add_staff_connectors(s)

    def prepare_partlike(self, p: Any) -> None:
        self.system_break_offsets = []
        children = sub_streams(p)
        if not children:
            self.prepare_measureless_part(p)
            return
        for index, sub in enumerate(children):
            options = self.registry.of(sub)
            if options.start_new_system:
                self.system_break_offsets.append(p.elementOffset(sub))
            if index == len(children) - 1:
                options.right_barline = "end"
            if index >= len(self.stacks):
                self.stacks.append(RenderStack())
            self.prepare_measure(sub, self.stacks[index])
        self.ties.extend(resolve_ties(p, self.annotations, self.system_break_offsets, self.diagnostics))

    def prepare_measureless_part(self, p: Any) -> None:
        """Lay out a part holding its notes directly as one slot shared with the other parts."""
        if p.recurse().notesAndRests.first() is None:
            self.diagnostics.warning("empty_part", p)
            return
        self.registry.of(p).right_barline = "end"
        if not self.stacks:
            self.stacks.append(RenderStack())
        self.prepare_measure(p, self.stacks[0])
        self.ties.extend(resolve_ties(p, self.annotations, (), self.diagnostics))

    def prepare_arrived_flat(self, s: Any) -> None:
        stack = RenderStack()
        self.prepare_measure(s, stack)
        self.stacks = [stack]
        self.ties.extend(resolve_ties(s, self.annotations, (), self.diagnostics))

    # ------------------------------------------------------------------
    # Measure preparation
    # ------------------------------------------------------------------

    def prepare_measure(self, m: Any, stack: RenderStack) -> RenderStack:
        if not m.hasVoices():
            self.prepare_flat(m, stack)
            return stack
        options = self.registry.of(m)
        stave: Stave | None = None
        for voice in m.voices:
            self.registry.share(voice, m)
            stave = self.prepare_flat(voice, stack, stave, owner=m, options=options)
        if stave is not None:
            self.annotations.set_stave(m, stave)
        return stack

    def prepare_flat(
        self,
        s: Any,
        stack: RenderStack,
        stave: Stave | None = None,
        owner: Any = None,
        options: RenderOptions | None = None,
    ) -> Stave:
        """
        Build the track(s) of one flat stream into ``stack``.

        Args:
            s:       Measure, voice or flat stream.
            stack:   Stack of the system slot ``s`` belongs to.
            stave:   Stave shared with an earlier voice of the same measure.
            owner:   Stream the stave is built from when it is not ``s``.
            options: Render options of ``owner`` (or ``s``).

        Returns:
            The stave used, for later voices of the same measure.
        """
        accidentals = accidental_display(s)
        if stave is None:
            source = owner if owner is not None else s
            if options is None:
                options = self.registry.of(source)
            stave = new_stave(source, self.registry, self.config, options)
            set_clef_etc(source, stave, options)
            self.staves.append(stave)
        self.annotations.set_stave(s, stave)

        voice = self.vexflow_voice(s)
        voice.set_stave(stave)
        c = find_context(s, clef.Clef)
        tickables, tuplets = vexflow_notes(
            s,
            stave,
            self.annotations,
            self.diagnostics,
            clef_name=clef_name(c),
            octave_shift=clef_octave_shift(c),
            accidentals=accidentals,
            config=self.config,
        )
        voice.add_tickables(tickables)
        self.tuplets.extend(tuplets)
        stack.voices.append(voice)
        stack.streams.append(s)

        if has_lyrics(s):
            text_voice = self.vexflow_voice(s)
            text_voice.set_stave(stave)
            text_voice.add_tickables(vexflow_lyrics(s.notesAndRests, stave, self.config))
            stack.text_voices.append(text_voice)
        return stave

    def vexflow_voice(self, s: Any) -> Voice:
        """An empty soft-mode voice sized to the duration of ``s``."""
        num_beats, beat_value = voice_time(s.duration.quarterLength, self.config.codec_units_per_quarter)
        return Voice(num_beats, beat_value).set_mode(VoiceMode.SOFT)

    # ------------------------------------------------------------------
    # Connectors
    # ------------------------------------------------------------------

    def add_staff_connectors(self, s: Any) -> None:
        """
        Join the first and last part at every measure that starts a system.

        Nothing is added for fewer than two parts. Connector kinds come from
        the score's ``staff_connectors``; unknown kinds are skipped.
        """
        parts = sub_streams(s)
        if len(parts) < 2:
            return
        kinds = self.registry.of(s).staff_connectors
        first_measures = sub_streams(parts[0]) or [parts[0]]
        last_measures = sub_streams(parts[-1]) or [parts[-1]]
        for index, m in enumerate(first_measures):
            if not self.registry.of(m).start_new_system or index >= len(last_measures):
                continue
            top = self.stave_for(m)
            bottom = self.stave_for(last_measures[index])
            if top is None or bottom is None:
                continue
            for kind in kinds:
                connector_type = STAFF_CONNECTOR_TYPES.get(kind)
                if connector_type is None:
                    log_event(logger, "unknown_staff_connector", logging.DEBUG, kind=kind)
                    continue
                self.connectors.append(StaveConnector(top, bottom).set_type(connector_type))

    # ------------------------------------------------------------------
    # Formatting and drawing
    # ------------------------------------------------------------------

    def format_measure_stacks(self) -> None:
        for stack in self.stacks:
            formatter, beams = format_voice_group(stack, self.registry, config=self.config)
            self.beam_groups.extend(beams)
            for voice, s in zip(stack.voices, stack.streams):
                apply_formatter_information(voice.stave, s, formatter, self.annotations, self.registry)

    def draw_ties(self) -> None:
        for tie in self.ties:
            tie.set_context(self._context()).draw()

    def draw_measure_stacks(self) -> None:
        ctx = self._context()
        for stave in self.staves:
            stave.set_context(ctx).draw()
        for stack in self.stacks:
            for voice in stack.all_tickables():
                voice.draw(ctx)

    def draw_beam_groups(self) -> None:
        for beam in self.beam_groups:
            beam.set_context(self._context()).draw()

    def draw_tuplets(self) -> None:
        for tuplet in self.tuplets:
            tuplet.set_context(self._context()).draw()

    def draw_staff_connectors(self) -> None:
        for connector in self.connectors:
            connector.set_context(self._context()).draw()

    def _context(self) -> RenderContext:
        if self.context is None:
            self.context = RenderContext()
        return self.context
