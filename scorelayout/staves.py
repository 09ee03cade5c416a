"""Stave construction and decoration from a stream and its render options."""

from __future__ import annotations

import logging
from typing import Any, Final

from music21 import clef, key, meter

from scorelayout.config import DEFAULT_CONFIG, LayoutConfig
from scorelayout.hierarchy import sub_streams
from scorelayout.logging_utils import log_event
from scorelayout.notation_backend import CLEF_BOTTOM_LINE, BarlineType, Stave
from scorelayout.render_options import RenderOptions, RenderOptionsRegistry

logger = logging.getLogger(__name__)

_CLEF_NAMES: Final[dict[tuple[str, int | None], str]] = {
    ("G", 2): "treble",
    ("F", 4): "bass",
    ("F", 3): "baritone-f",
    ("C", 1): "soprano",
    ("C", 2): "mezzo-soprano",
    ("C", 3): "alto",
    ("C", 4): "tenor",
}

_OTTAVA: Final[dict[int, str]] = {1: "8va", -1: "8vb"}

_BARLINES: Final[dict[str, BarlineType]] = {
    "single": BarlineType.SINGLE,
    "double": BarlineType.DOUBLE,
    "end": BarlineType.END,
}

# Hidden/visible pattern per requested line count, centred on the middle line.
_LINE_PATTERNS: Final[dict[int, tuple[bool, ...]]] = {
    1: (False, False, True, False, False),
    2: (False, False, True, True, False),
    3: (False, True, True, True, False),
}


def own_element(s: Any, cls: type) -> Any:
    """First element of ``cls`` directly inside ``s``, or None."""
    return s.getElementsByClass(cls).first()


def find_context(s: Any, cls: type) -> Any:
    """Element of ``cls`` inside ``s`` or, failing that, from its context (e.g. an earlier measure)."""
    found = own_element(s, cls)
    if found is None:
        found = s.getContextByClass(cls)
    return found


def clef_name(c: clef.Clef | None) -> str:
    """Backend clef name for a music21 clef; unknown clefs fall back to treble."""
    if c is None:
        return "treble"
    if isinstance(c, clef.PercussionClef):
        return "percussion"
    return _CLEF_NAMES.get((c.sign, c.line), "treble")


def clef_octave_shift(c: clef.Clef | None) -> int:
    if c is None:
        return 0
    return c.octaveChange or 0


def key_spec(ks: key.KeySignature) -> str:
    """Backend key name for a key signature, spelled as its major key (``"Bb"``, ``"F#"``)."""
    return ks.asKey("major").tonic.name.replace("-", "b")


def set_staff_lines(stave: Stave, staff_lines: int) -> None:
    """
    Apply a requested visible line count to ``stave``.

    Five lines is the backend default and is left alone. One to three lines
    keep the five-line geometry and show only lines around the middle one, so
    notes stay where a reader expects them. Zero, four and six or more lines
    use the backend's own line count.
    """
    if staff_lines == 5:
        return
    pattern = _LINE_PATTERNS.get(staff_lines)
    if pattern is None:
        stave.set_num_lines(staff_lines)
        return
    stave.set_config_for_lines([{"visible": visible} for visible in pattern])


def estimate_staff_length(
    s: Any,
    registry: RenderOptionsRegistry,
    config: LayoutConfig = DEFAULT_CONFIG,
) -> float:
    """
    Estimate the natural width of ``s`` before any formatting.

    A part-like stream is the sum of its children (each with its own padding
    unless it has an explicit width). A measure-like stream gets a fixed width
    per note or rest (its busiest voice when it has voices), plus room for the
    clef and key signature in effect and the time signature it carries.
    """
    options = registry.of(s)
    children = sub_streams(s)
    if children:
        total = 0.0
        for child in children:
            child_options = registry.of(child)
            if child_options.width is not None:
                total += child_options.width
            else:
                total += estimate_staff_length(child, registry, config) + child_options.staff_padding
        return total

    if s.hasVoices():
        notes = max((len(v.notesAndRests) for v in s.voices), default=0)
    else:
        notes = len(s.notesAndRests)
    total = float(notes * config.note_width)

    if options.display_clef:
        total += config.clef_width
    if options.display_key_signature:
        ks = find_context(s, key.KeySignature)
        if ks is not None:
            total += abs(ks.sharps) * config.key_accidental_width
    if options.display_time_signature and own_element(s, meter.TimeSignature) is not None:
        total += config.time_signature_width
    return total


def new_stave(
    s: Any,
    registry: RenderOptionsRegistry,
    config: LayoutConfig = DEFAULT_CONFIG,
    options: RenderOptions | None = None,
) -> Stave:
    """Create an undecorated stave for ``s`` from its (or the given) render options."""
    if options is None:
        options = registry.of(s)
    width = options.width
    if width is None:
        width = estimate_staff_length(s, registry, config) + options.staff_padding
    left = options.left if options.left is not None else config.default_left
    top = options.top if options.top is not None else config.default_top
    log_event(logger, "stave_created", logging.DEBUG, left=left, top=top, width=width)
    return Stave(left, top, width)


def set_clef_etc(s: Any, stave: Stave, options: RenderOptions) -> None:
    """Decorate ``stave`` with staff lines, measure number, clef, key, time and right barline."""
    set_staff_lines(stave, options.staff_lines)
    if options.show_measure_number:
        stave.set_measure(options.measure_index + 1)
    if options.display_clef:
        c = find_context(s, clef.Clef)
        stave.add_clef(clef_name(c), "default", _OTTAVA.get(clef_octave_shift(c)))
    if options.display_key_signature:
        ks = find_context(s, key.KeySignature)
        if ks is not None:
            stave.add_key_signature(key_spec(ks))
    if options.display_time_signature:
        ts = own_element(s, meter.TimeSignature)
        if ts is not None:
            stave.add_time_signature(f"{ts.numerator}/{ts.denominator}")
    if options.right_barline is not None:
        bar_type = _BARLINES.get(options.right_barline)
        if bar_type is not None:
            stave.set_end_bar_type(bar_type)


def middle_line_key(name: str, octave_shift: int = 0) -> str:
    """Backend key of the middle stave line for a clef (where rests sit)."""
    dnn = CLEF_BOTTOM_LINE[name] + octave_shift * 7 + 4
    return f"{'cdefgab'[(dnn - 1) % 7]}/{(dnn - 1) // 7}"
