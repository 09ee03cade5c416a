"""Unit tests for the pure-Python notation backend."""

from fractions import Fraction

import pytest

from scorelayout.notation_backend import (
    STEM_DOWN,
    STEM_UP,
    BackendError,
    Beam,
    ConnectorType,
    Formatter,
    GhostNote,
    Stave,
    StaveConnector,
    StaveNote,
    StaveTie,
    TextNote,
    Tuplet,
    Voice,
    VoiceMode,
    duration_to_ticks,
    key_to_diatonic,
    parse_duration,
)
from scorelayout.render_context import RenderContext


def _soft_voice(notes: list, stave: Stave) -> Voice:
    voice = Voice(4, 4).set_mode(VoiceMode.SOFT)
    voice.set_stave(stave)
    voice.add_tickables(notes)
    return voice


# ---------------------------------------------------------------------------
# Durations and keys
# ---------------------------------------------------------------------------

def test_parse_duration_splits_dots_and_rest() -> None:
    assert parse_duration("8dr") == ("8", 1, True)
    assert parse_duration("q") == ("q", 0, False)


def test_parse_duration_rejects_unknown_codes() -> None:
    with pytest.raises(BackendError):
        parse_duration("3")
    with pytest.raises(BackendError):
        parse_duration("quarter")


def test_duration_to_ticks_with_dots() -> None:
    assert duration_to_ticks("q") == 4096
    assert duration_to_ticks("qd") == 6144
    assert duration_to_ticks("hdd") == 8192 + 4096 + 2048


def test_key_to_diatonic_matches_music21_numbering() -> None:
    assert key_to_diatonic("c/4") == (29, None)
    assert key_to_diatonic("f#/5") == (39, "#")


def test_key_to_diatonic_rejects_garbage() -> None:
    with pytest.raises(BackendError):
        key_to_diatonic("h/4")


# ---------------------------------------------------------------------------
# Stave
# ---------------------------------------------------------------------------

def test_stave_note_start_grows_with_modifiers() -> None:
    stave = Stave(10, 0, 300)
    assert stave.get_note_start_x() == 20
    stave.add_clef("treble")
    assert stave.get_note_start_x() == 50
    stave.add_key_signature("D")
    assert stave.get_note_start_x() == 80
    stave.add_time_signature("3/4")
    assert stave.get_note_start_x() == 105


def test_stave_set_note_start_x_overrides() -> None:
    stave = Stave(10, 0, 300).add_clef("bass")
    stave.set_note_start_x(120)
    assert stave.get_note_start_x() == 120


def test_stave_rejects_unknown_decorations() -> None:
    stave = Stave(0, 0, 100)
    with pytest.raises(BackendError):
        stave.add_clef("banjo")
    with pytest.raises(BackendError):
        stave.add_key_signature("H")
    with pytest.raises(BackendError):
        stave.add_time_signature("four")


def test_stave_line_config_length_must_match() -> None:
    stave = Stave(0, 0, 100)
    with pytest.raises(BackendError):
        stave.set_config_for_lines([{"visible": True}])


def test_stave_draw_records_visible_lines_only() -> None:
    ctx = RenderContext()
    stave = Stave(0, 0, 100)
    stave.set_config_for_lines([{"visible": v} for v in (False, False, True, False, False)])
    stave.set_context(ctx).draw()
    lines = ctx.tagged("staff-line")
    assert len(lines) == 1
    assert lines[0].attrs["y1"] == stave.get_y_for_line(2)


def test_stave_bottom_line_below_top_line() -> None:
    stave = Stave(0, 50, 100)
    assert stave.get_bottom_line_y() - stave.get_top_line_y() == 40


# ---------------------------------------------------------------------------
# Tickables and voices
# ---------------------------------------------------------------------------

def test_stave_note_steps_relative_to_clef() -> None:
    assert StaveNote(["e/4"], "q").steps == [0]
    assert StaveNote(["g/2"], "q", clef="bass").steps == [0]
    assert StaveNote(["e/3"], "q", octave_shift=-1).steps == [0]


def test_stave_note_auto_stem_direction() -> None:
    assert StaveNote(["c/4"], "q").stem_direction == STEM_UP
    assert StaveNote(["a/5"], "q").stem_direction == STEM_DOWN


def test_stave_note_explicit_ticks_override_code() -> None:
    n = StaveNote(["c/4"], "8", ticks=Fraction(4096, 3))
    assert n.ticks == Fraction(4096, 3)


def test_stave_note_requires_one_accidental_per_key() -> None:
    with pytest.raises(BackendError):
        StaveNote(["c/4", "e/4"], "q", accidentals=["#"])


def test_get_absolute_x_requires_formatting() -> None:
    n = StaveNote(["c/4"], "q").set_stave(Stave(0, 0, 100))
    with pytest.raises(BackendError):
        n.get_absolute_x()


def test_strict_voice_rejects_overflow() -> None:
    voice = Voice(1, 4)
    voice.add_tickable(StaveNote(["c/4"], "q"))
    with pytest.raises(BackendError):
        voice.add_tickable(StaveNote(["d/4"], "q"))


def test_soft_voice_accepts_any_length() -> None:
    voice = Voice(1, 4).set_mode(VoiceMode.SOFT)
    voice.add_tickables([StaveNote(["c/4"], "h"), StaveNote(["d/4"], "h")])
    assert voice.ticks_used == 16384
    assert voice.is_complete()


def test_strict_voice_incomplete_cannot_be_formatted() -> None:
    voice = Voice(4, 4)
    voice.add_tickable(StaveNote(["c/4"], "q"))
    with pytest.raises(BackendError):
        Formatter().format([voice], 200)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

def test_formatter_positions_increase_monotonically() -> None:
    stave = Stave(10, 0, 400)
    notes = [StaveNote([k], "q") for k in ("c/4", "d/4", "e/4", "f/4")]
    voice = _soft_voice(notes, stave)
    Formatter().format_to_stave([voice], stave)
    xs = [n.get_absolute_x() for n in notes]
    assert xs == sorted(xs)
    assert len(set(xs)) == 4
    assert xs[0] == stave.get_note_start_x()


def test_formatter_shares_tick_contexts_between_voices() -> None:
    stave = Stave(10, 0, 400)
    quarters = [StaveNote(["c/5"], "q") for _ in range(4)]
    halves = [StaveNote(["c/4"], "h") for _ in range(2)]
    formatter = Formatter()
    formatter.format_to_stave([_soft_voice(quarters, stave), _soft_voice(halves, stave)], stave)

    assert len(formatter.tick_contexts) == 4
    assert len(formatter.tick_context_at(0).tickables) == 2
    assert len(formatter.tick_context_at(8192).tickables) == 2
    assert halves[1].get_absolute_x() == quarters[2].get_absolute_x()


def test_formatter_missing_context_is_none() -> None:
    assert Formatter().tick_context_at(1234) is None


def test_formatter_splits_justify_width_by_time() -> None:
    stave = Stave(0, 0, 600)
    notes = [StaveNote(["c/4"], "q"), StaveNote(["c/4"], "q")]
    formatter = Formatter().format([_soft_voice(notes, stave)], 300)
    # equal spans: each context gets half of the 300 px
    assert formatter.tick_context_at(0).x == 0
    assert formatter.tick_context_at(4096).x == pytest.approx(150.0)


def test_ghost_note_takes_time_but_no_width() -> None:
    ghost = GhostNote("q", ticks=Fraction(5120))
    assert ghost.width == 0
    assert ghost.ticks == 5120


def test_text_note_width_scales_with_text() -> None:
    assert TextNote("abcd", "q").width > TextNote("a", "q").width
    assert TextNote("", "q").width == 0


# ---------------------------------------------------------------------------
# Beams, ties, tuplets, connectors
# ---------------------------------------------------------------------------

def test_generate_beams_pairs_eighths() -> None:
    notes = [StaveNote(["c/5"], "8") for _ in range(4)]
    beams = Beam.generate_beams(notes, [Fraction(2, 8)])
    assert [len(beam.notes) for beam in beams] == [2, 2]
    assert all(n.beam is not None for n in notes)


def test_generate_beams_skips_rests_and_lone_notes() -> None:
    notes = [
        StaveNote(["c/5"], "8"),
        StaveNote(["b/4"], "8r"),
        StaveNote(["c/5"], "8"),
        StaveNote(["d/5"], "8"),
    ]
    beams = Beam.generate_beams(notes, [Fraction(2, 8)])
    assert len(beams) == 1
    assert beams[0].notes == notes[2:]


def test_generate_beams_ignores_quarters() -> None:
    notes = [StaveNote(["c/5"], "q") for _ in range(4)]
    assert Beam.generate_beams(notes) == []


def test_beam_sets_common_stem_direction() -> None:
    notes = [StaveNote(["c/4"], "8"), StaveNote(["a/5"], "8")]
    beam = Beam(notes, stem_direction=STEM_DOWN)
    assert all(n.stem_direction == STEM_DOWN for n in beam.notes)


def test_beam_rejects_single_note() -> None:
    with pytest.raises(BackendError):
        Beam([StaveNote(["c/4"], "8")])


def test_stave_tie_requires_a_note() -> None:
    with pytest.raises(BackendError):
        StaveTie()


def test_partial_stave_tie_draws_to_stave_edge() -> None:
    stave = Stave(10, 0, 200)
    n = StaveNote(["c/5"], "q")
    Formatter().format_to_stave([_soft_voice([n], stave)], stave)
    ctx = RenderContext()
    tie = StaveTie(first_note=n)
    assert tie.is_partial
    tie.set_context(ctx).draw()
    (curve,) = ctx.tagged("tie")
    assert curve.attrs["end"][0] == stave.x + stave.width


def test_tuplet_label() -> None:
    notes = [StaveNote(["c/4"], "8") for _ in range(3)]
    assert Tuplet(notes).label == "3"
    assert Tuplet(notes, ratioed=True).label == "3:2"


def test_stave_connector_brace_draws_curves() -> None:
    top, bottom = Stave(10, 0, 200), Stave(10, 120, 200)
    ctx = RenderContext()
    StaveConnector(top, bottom).set_type(ConnectorType.BRACE).set_context(ctx).draw()
    connectors = ctx.tagged("connector")
    assert connectors and all(c.kind == "curve" for c in connectors)


def test_draw_without_context_raises() -> None:
    with pytest.raises(BackendError):
        Stave(0, 0, 100).draw()
