"""Classification of a music21 stream into score, part or flat shape."""

from __future__ import annotations

from enum import Enum
from typing import Any

from music21 import stream


class StreamKind(Enum):
    """
    Shape of a stream as the layout walker sees it.

    SCORE: parts stacked vertically (a ``Score``, or any stream whose first
           sub-stream itself holds sub-streams).
    PART:  a sequence of measure-like sub-streams laid out left to right.
    FLAT:  a single measure-like stream of notes and rests (voices allowed).
    """

    SCORE = "score"
    PART = "part"
    FLAT = "flat"


def sub_streams(s: Any) -> list[stream.Stream]:
    """Direct child streams of ``s`` in order, not counting ``Voice`` children."""
    return [
        element
        for element in s
        if isinstance(element, stream.Stream) and not isinstance(element, stream.Voice)
    ]


def classify_stream(s: Any) -> StreamKind:
    if isinstance(s, stream.Score):
        return StreamKind.SCORE
    children = sub_streams(s)
    if not children:
        return StreamKind.FLAT
    if sub_streams(children[0]):
        return StreamKind.SCORE
    return StreamKind.PART
