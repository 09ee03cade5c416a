"""Tie arcs between consecutive notes of a part, split at system breaks."""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import Any, Sequence

from scorelayout.annotations import LayoutAnnotations
from scorelayout.diagnostics import LayoutDiagnostics
from scorelayout.logging_utils import log_event
from scorelayout.notation_backend import StaveNote, StaveTie

logger = logging.getLogger(__name__)


def crosses_break(first_offset: Any, second_offset: Any, break_offsets: Sequence[Any]) -> bool:
    """True when some break ``b`` satisfies ``first_offset < b <= second_offset``."""
    return any(first_offset < b <= second_offset for b in break_offsets)


def resolve_ties(
    part: Any,
    annotations: LayoutAnnotations,
    break_offsets: Sequence[Fraction] = (),
    diagnostics: LayoutDiagnostics | None = None,
) -> list[StaveTie]:
    """
    Build tie arcs for ``part`` (or a flat stream standing in for one).

    A note tied with ``start`` or ``continue`` is paired with the next note of
    the flattened part. A pair on one system becomes one arc; a pair straddling
    a system break becomes two half arcs, one hanging off each note. Only the
    first note head of a chord is tied. A tie whose end point has no stave
    note (a conversion that fell back to a ghost note) is dropped and reported
    to ``diagnostics`` as a warning.
    """
    flat = part.flatten()
    notes = list(flat.notesAndRests)
    ties: list[StaveTie] = []

    for index, current in enumerate(notes[:-1]):
        if current.tie is None or current.tie.type == "stop":
            continue
        following = notes[index + 1]
        first = annotations.tickable_for(current)
        last = annotations.tickable_for(following)
        if not isinstance(first, StaveNote) or not isinstance(last, StaveNote):
            if diagnostics is not None:
                diagnostics.warning("tie_endpoint_missing", current, following=repr(following))
            else:
                log_event(logger, "tie_endpoint_missing", logging.DEBUG, element=repr(current))
            continue

        if crosses_break(flat.elementOffset(current), flat.elementOffset(following), break_offsets):
            ties.append(StaveTie(first_note=first, first_indices=[0]))
            ties.append(StaveTie(last_note=last, last_indices=[0]))
        else:
            ties.append(StaveTie(first_note=first, last_note=last, first_indices=[0], last_indices=[0]))
    return ties
