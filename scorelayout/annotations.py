"""
Post-layout annotations: per-note pixel positions held in a side-table.

The music21 tree is never written to. Each note that produced a tickable gets a
stable integer ``tickable_key``; :class:`LayoutAnnotations` maps that key to
the backend object and stores the resolved :class:`NoteLayout`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Iterator

from music21 import clef, stream

from scorelayout.logging_utils import log_event
from scorelayout.notation_backend import Formatter, Stave, Tickable
from scorelayout.render_options import RenderOptionsRegistry
from scorelayout.staves import find_context

logger = logging.getLogger(__name__)


@dataclass
class NoteLayout:
    """Resolved layout of one note; ``None`` fields were not determined."""

    tickable_key: int
    x: float | None = None
    y: float | None = None
    width: float | None = None
    system_index: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "tickable_key": self.tickable_key,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "system_index": self.system_index,
        }


class LayoutAnnotations:
    """Side-table of note layouts and stream staves, keyed by object identity."""

    def __init__(self) -> None:
        self._next_key = 0
        self._tickables: dict[int, Tickable] = {}
        self._layouts: dict[int, NoteLayout] = {}
        self._notes: dict[int, Any] = {}
        self._staves: dict[int, tuple[Any, Stave]] = {}

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    def register(self, note: Any, tickable: Tickable) -> int:
        """Record the tickable built for ``note`` and return its key."""
        key = self._next_key
        self._next_key += 1
        self._tickables[key] = tickable
        self._layouts[id(note)] = NoteLayout(tickable_key=key)
        self._notes[id(note)] = note
        return key

    def tickable(self, key: int) -> Tickable:
        return self._tickables[key]

    def tickable_for(self, note: Any) -> Tickable | None:
        layout = self._layouts.get(id(note))
        if layout is None:
            return None
        return self._tickables.get(layout.tickable_key)

    def layout_of(self, note: Any) -> NoteLayout | None:
        return self._layouts.get(id(note))

    def set_stave(self, s: Any, stave: Stave) -> None:
        self._staves[id(s)] = (s, stave)

    def stave_for(self, s: Any) -> Stave | None:
        entry = self._staves.get(id(s))
        return entry[1] if entry is not None else None

    def items(self) -> Iterator[tuple[Any, NoteLayout]]:
        """(note, layout) pairs in registration order."""
        for note_id, layout in self._layouts.items():
            yield self._notes[note_id], layout

    def __len__(self) -> int:
        return len(self._layouts)

    # ------------------------------------------------------------------
    # Clearing
    # ------------------------------------------------------------------

    def clear(self, s: Any, recursive: bool = False) -> None:
        """
        Forget every annotation of the notes directly in ``s`` and its stave.

        Args:
            s:         Stream whose annotations are removed.
            recursive: Also clear every sub-stream (measures, voices, ...).
        """
        for element in s.notesAndRests:
            layout = self._layouts.pop(id(element), None)
            self._notes.pop(id(element), None)
            if layout is not None:
                self._tickables.pop(layout.tickable_key, None)
        self._staves.pop(id(s), None)
        if recursive:
            for sub in s.getElementsByClass(stream.Stream):
                self.clear(sub, recursive=True)


def apply_formatter_information(
    stave: Stave,
    s: Any,
    formatter: Formatter,
    annotations: LayoutAnnotations,
    registry: RenderOptionsRegistry,
) -> None:
    """
    Copy the formatted positions of the notes in ``s`` into ``annotations``.

    ``x`` comes from the tickable itself. ``width`` and ``y`` need the
    formatter's tick context at the note's cumulative tick offset in the
    track; a note with no such context keeps them unset.
    """
    system_index = registry.of(s).system_index
    c = find_context(s, clef.Clef) or clef.TrebleClef()
    lowest_line = getattr(c, "lowestLine", None) or clef.TrebleClef().lowestLine
    spacing = stave.options.spacing_between_lines_px
    ticks = Fraction(0)

    for element in s.notesAndRests:
        layout = annotations.layout_of(element)
        if layout is None:
            continue
        tickable = annotations.tickable(layout.tickable_key)
        start = ticks
        context = formatter.tick_context_at(start)
        ticks += tickable.ticks
        layout.x = tickable.get_absolute_x()
        layout.system_index = system_index

        if context is None:
            log_event(logger, "tick_context_missing", logging.DEBUG, element=repr(element), ticks=str(start))
            continue
        layout.width = context.width
        if not element.isRest and element.pitches:
            layout.y = stave.get_bottom_line_y() - (lowest_line - element.pitches[0].diatonicNoteNum) * spacing

    annotations.set_stave(s, stave)
