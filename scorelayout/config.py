"""Tunable layout constants."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction


@dataclass(frozen=True)
class LayoutConfig:
    """
    Geometry and tolerance settings shared by every stage of a layout pass.

    Attributes:
        default_left:            Stave x when a stream sets no ``left``.
        default_top:             Stave y when a stream sets no ``top``.
        staff_padding:           Added to the estimated staff length.
        note_width:              Estimated pixels per note or rest.
        clef_width:              Estimated pixels for a displayed clef.
        key_accidental_width:    Estimated pixels per key-signature accidental.
        time_signature_width:    Estimated pixels for a displayed time signature.
        tuplet_tolerance:        Quarter lengths within which a tuplet group is
                                 considered complete.
        codec_units_per_quarter: Resolution of the voice duration codec.
        lyric_line:              Stave line the lyric text is pinned to.
        lyric_font:              (family, size) of lyric text.
        lyric_connector:         Glyph drawn between syllables of one word.
        default_beat_group:      Beam grouping (fraction of a whole note) used
                                 when a measure has no time signature.
        system_width:            Maximum width of one system for the planner.
        staff_height:            Vertical distance between parts in a system.
        system_padding:          Extra space between systems.
        top_margin:              y of the first system.
    """

    default_left: float = 10
    default_top: float = 0
    staff_padding: float = 60
    note_width: float = 30
    clef_width: float = 30
    key_accidental_width: float = 15
    time_signature_width: float = 30
    tuplet_tolerance: float = 1e-3
    codec_units_per_quarter: int = 256
    lyric_line: int = 11
    lyric_font: tuple[str, int] = ("Serif", 12)
    lyric_connector: str = "-"
    default_beat_group: Fraction = Fraction(2, 8)
    system_width: float = 800
    staff_height: float = 120
    system_padding: float = 40
    top_margin: float = 10


DEFAULT_CONFIG = LayoutConfig()
