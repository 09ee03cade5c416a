"""Data models produced and consumed by a layout pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any

from scorelayout.diagnostics import LayoutDiagnostics
from scorelayout.notation_backend import Beam, Stave, StaveConnector, StaveTie, Tuplet, Voice
from scorelayout.render_context import RenderContext


@dataclass
class RenderStack:
    """
    Everything drawn together in one system slot.

    ``voices[i]`` is the track built from ``streams[i]``; ``text_voices`` holds
    the lyric tracks of the same slot.
    """

    voices: list[Voice] = field(default_factory=list)
    streams: list[Any] = field(default_factory=list)
    text_voices: list[Voice] = field(default_factory=list)

    def all_tickables(self) -> list[Voice]:
        """Music tracks followed by lyric tracks."""
        return [*self.voices, *self.text_voices]


@dataclass
class LayoutResult:
    """What one call to ``LayoutEngine.render`` produced."""

    context: RenderContext
    stacks: list[RenderStack]
    staves: list[Stave]
    ties: list[StaveTie]
    beams: list[Beam]
    tuplets: list[Tuplet]
    connectors: list[StaveConnector]
    annotations: Any
    diagnostics: LayoutDiagnostics
    system_break_offsets: list[Fraction] = field(default_factory=list)

    def to_svg(self) -> str:
        return self.context.to_svg()
