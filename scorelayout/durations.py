"""Duration codec and conversions from music21 durations to backend durations."""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Any, Final

from music21 import duration

from scorelayout.diagnostics import DurationError
from scorelayout.notation_backend import RESOLUTION

TICKS_PER_QUARTER: Final[int] = RESOLUTION // 4

_TYPE_TO_CODE: Final[dict[str, str]] = {
    "whole": "w",
    "half": "h",
    "quarter": "q",
    "eighth": "8",
    "16th": "16",
    "32nd": "32",
    "64th": "64",
    "128th": "128",
    "256th": "256",
}


def voice_time(total_quarter_length: Any, units_per_quarter: int = 256) -> tuple[int, int]:
    """
    Express a total duration as a (num_beats, beat_value) voice time.

    The duration is scaled to integer units of ``1/units_per_quarter`` of a
    quarter note. The largest power-of-two divisor (from ``2 * units`` down to
    2) that divides the unit count gives the beat value; when none does, the
    beat value is ``4 * units`` and the beat count is the raw unit count.

    Args:
        total_quarter_length: Total length in quarter notes (float or Fraction).
        units_per_quarter:    Codec resolution; must be a power of two.

    Returns:
        ``(num_beats, beat_value)``, e.g. ``(1, 4)`` for 1.0 and ``(3, 16)`` for 0.75.
    """
    units = math.floor(Fraction(total_quarter_length) * units_per_quarter + Fraction(1, 2))
    divisor = units_per_quarter * 2
    while divisor >= 2:
        if units % divisor == 0:
            return units // divisor, (units_per_quarter * 4) // divisor
        divisor //= 2
    return units, units_per_quarter * 4


def quarter_length_ticks(quarter_length: Any) -> Fraction:
    """Backend ticks for a quarter length, exact for tuplet fractions."""
    return Fraction(quarter_length).limit_denominator(1 << 20) * TICKS_PER_QUARTER


def vexflow_duration(d: duration.Duration, *, rest: bool = False) -> str:
    """
    Return the backend duration code (``"q"``, ``"8d"``, ``"hr"``, ...) for ``d``.

    Raises:
        DurationError: If the duration type has no single-glyph backend code
            (complex, inexpressible, zero-length or longer than a whole note).
    """
    code = _TYPE_TO_CODE.get(d.type)
    if code is None:
        raise DurationError(f"No backend duration for type {d.type!r} (quarterLength={d.quarterLength}).")
    code += "d" * d.dots
    if rest:
        code += "r"
    return code


def scaled_duration(d: duration.Duration, factor: Fraction) -> duration.Duration:
    """A fresh Duration of ``d.quarterLength * factor``, e.g. half of a lyric note."""
    return duration.Duration(quarterLength=Fraction(d.quarterLength) * factor)


def first_tuplet(d: duration.Duration) -> duration.Tuplet | None:
    # nested tuplets are not supported; only the outermost one is honored
    if d.tuplets:
        return d.tuplets[0]
    return None
