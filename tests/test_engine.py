"""Tests for the layout engine: hierarchy walk, ties, alignment and drawing order."""

from fractions import Fraction

from music21 import clef, key, meter, note, stream, tie

from scorelayout.engine import LayoutEngine
from scorelayout.hierarchy import StreamKind, classify_stream, sub_streams
from scorelayout.notation_backend import BarlineType, ConnectorType, StaveTie
from scorelayout.render_options import RenderOptionsRegistry
from scorelayout.ties import crosses_break, resolve_ties


def _measure(number: int, pitches: list[str], quarter_length: float = 1.0) -> stream.Measure:
    m = stream.Measure(number=number)
    m.append([note.Note(p, quarterLength=quarter_length) for p in pitches])
    return m


def _tied_part() -> stream.Part:
    """Two treble measures; the last note of the first is tied into the second."""
    part = stream.Part()
    first = _measure(1, ["C4", "D4", "E4", "F4"])
    first.clef = clef.TrebleClef()
    first.timeSignature = meter.TimeSignature("4/4")
    second = _measure(2, ["F4", "G4", "A4", "B4"])
    first.notes[-1].tie = tie.Tie("start")
    second.notes[0].tie = tie.Tie("stop")
    part.append([first, second])
    return part


def _bass_part() -> stream.Part:
    part = stream.Part()
    first = _measure(1, ["C3"], quarter_length=4)
    first.clef = clef.BassClef()
    first.keySignature = key.KeySignature(3)
    first.timeSignature = meter.TimeSignature("4/4")
    part.append([first, _measure(2, ["C3"], quarter_length=4)])
    return part


def _two_system_score() -> tuple[stream.Score, RenderOptionsRegistry]:
    """Treble and bass parts, two measures each, with a system break before measure 2."""
    score = stream.Score()
    treble, bass = _tied_part(), _bass_part()
    score.insert(0, treble)
    score.insert(0, bass)

    registry = RenderOptionsRegistry()
    for part_index, part in enumerate((treble, bass)):
        for system_index, m in enumerate(part.getElementsByClass(stream.Measure)):
            options = registry.of(m)
            options.start_new_system = True
            options.left = 10
            options.width = 300
            options.top = system_index * 280 + part_index * 120
            options.system_index = system_index
    return score, registry


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

def test_classify_score_part_and_flat() -> None:
    score, _ = _two_system_score()
    assert classify_stream(score) is StreamKind.SCORE
    assert classify_stream(score.parts[0]) is StreamKind.PART
    assert classify_stream(score.parts[0].getElementsByClass(stream.Measure).first()) is StreamKind.FLAT
    assert classify_stream(stream.Stream([note.Note("C4")])) is StreamKind.FLAT


def test_classify_generic_stream_of_parts_as_score() -> None:
    container = stream.Stream()
    container.insert(0, _tied_part())
    assert classify_stream(container) is StreamKind.SCORE


def test_voices_do_not_count_as_nesting() -> None:
    m = stream.Measure()
    m.insert(0, stream.Voice([note.Note("C5")]))
    m.insert(0, stream.Voice([note.Note("C4")]))
    assert sub_streams(m) == []
    assert classify_stream(m) is StreamKind.FLAT


# ---------------------------------------------------------------------------
# Ties
# ---------------------------------------------------------------------------

def test_crosses_break() -> None:
    assert crosses_break(3.0, 4.0, [4.0])
    assert not crosses_break(3.0, 3.5, [4.0])
    assert not crosses_break(4.0, 5.0, [4.0])
    assert not crosses_break(3.0, 4.0, [])


def test_tie_on_one_system_is_a_single_arc() -> None:
    part = _tied_part()
    engine = LayoutEngine()
    result = engine.render(part)

    (arc,) = result.ties
    first, second = part.getElementsByClass(stream.Measure)
    assert arc.first_note is engine.annotations.tickable_for(first.notes[-1])
    assert arc.last_note is engine.annotations.tickable_for(second.notes[0])
    assert result.context.tagged("tie")


def test_tie_across_system_break_is_split() -> None:
    part = _tied_part()
    registry = RenderOptionsRegistry()
    second = part.getElementsByClass(stream.Measure)[1]
    registry.of(second).start_new_system = True
    result = LayoutEngine(registry).render(part)

    assert result.system_break_offsets == [4.0]
    first_half, second_half = result.ties
    assert first_half.first_note is not None and first_half.last_note is None
    assert second_half.first_note is None and second_half.last_note is not None
    assert len(result.context.tagged("tie")) == 2


def test_tie_chain_with_continue_gives_one_arc_per_pair() -> None:
    m = _measure(1, ["C4", "C4", "C4", "D4"])
    for n, kind in zip(m.notes, ("start", "continue", "stop")):
        n.tie = tie.Tie(kind)
    engine = LayoutEngine()
    result = engine.render(m)

    first, second = result.ties
    assert not first.is_partial and not second.is_partial
    assert first.last_note is second.first_note
    assert second.last_note is engine.annotations.tickable_for(m.notes[2])


def test_continued_tie_before_a_break_splits_only_the_crossing_pair() -> None:
    part = stream.Part()
    first = _measure(1, ["D4", "E4", "F4", "F4"])
    second = _measure(2, ["F4", "G4", "A4", "B4"])
    first.notes[2].tie = tie.Tie("start")
    first.notes[3].tie = tie.Tie("continue")
    second.notes[0].tie = tie.Tie("stop")
    part.append([first, second])
    registry = RenderOptionsRegistry()
    registry.of(second).start_new_system = True
    result = LayoutEngine(registry).render(part)

    whole, first_half, second_half = result.ties
    assert not whole.is_partial
    assert first_half.first_note is whole.last_note and first_half.last_note is None
    assert second_half.first_note is None and second_half.last_note is not None


def test_tie_to_a_ghost_note_is_reported() -> None:
    m = stream.Measure()
    start = note.Note("C4", quarterLength=1.25)
    start.tie = tie.Tie("start")
    stop = note.Note("C4")
    stop.tie = tie.Tie("stop")
    m.append([start, stop])
    result = LayoutEngine().render(m)

    assert result.ties == []
    assert [d.event for d in result.diagnostics.errors] == ["tickable_conversion_failed"]
    assert [d.event for d in result.diagnostics.warnings] == ["tie_endpoint_missing"]


def test_resolve_ties_skips_untied_notes() -> None:
    part = stream.Part([_measure(1, ["C4", "C4"])])
    engine = LayoutEngine()
    engine.render(part)
    assert resolve_ties(part, engine.annotations, [Fraction(1)]) == []


# ---------------------------------------------------------------------------
# Full score
# ---------------------------------------------------------------------------

def test_score_layout_end_to_end() -> None:
    score, registry = _two_system_score()
    engine = LayoutEngine(registry)
    result = engine.render(score)

    assert len(result.stacks) == 2
    assert all(len(stack.voices) == 2 for stack in result.stacks)
    assert len(result.staves) == 4
    assert all(isinstance(t, StaveTie) and t.is_partial for t in result.ties)
    assert len(result.ties) == 2
    assert [c.type for c in result.connectors] == [
        ConnectorType.SINGLE,
        ConnectorType.BRACE,
        ConnectorType.SINGLE,
        ConnectorType.BRACE,
    ]
    assert result.diagnostics.records == []


def test_parts_share_glyph_start() -> None:
    score, registry = _two_system_score()
    engine = LayoutEngine(registry)
    engine.render(score)
    treble_first = score.parts[0].getElementsByClass(stream.Measure).first()
    bass_first = score.parts[1].getElementsByClass(stream.Measure).first()

    # bass stave carries three sharps, so its natural start wins
    assert engine.stave_for(treble_first).get_note_start_x() == 115
    assert engine.stave_for(bass_first).get_note_start_x() == 115
    treble_x = engine.annotations.layout_of(treble_first.notes[0]).x
    bass_x = engine.annotations.layout_of(bass_first.notes[0]).x
    assert treble_x == bass_x


def test_system_index_recorded_on_notes() -> None:
    score, registry = _two_system_score()
    engine = LayoutEngine(registry)
    engine.render(score)
    for part in score.parts:
        for system_index, m in enumerate(part.getElementsByClass(stream.Measure)):
            for n in m.notes:
                assert engine.annotations.layout_of(n).system_index == system_index


def test_last_measure_gets_final_barline() -> None:
    part = _tied_part()
    engine = LayoutEngine()
    engine.render(part)
    first, second = part.getElementsByClass(stream.Measure)
    assert engine.stave_for(first).end_bar_type is BarlineType.SINGLE
    assert engine.stave_for(second).end_bar_type is BarlineType.END


def test_single_part_score_has_no_connectors() -> None:
    score = stream.Score()
    score.insert(0, _tied_part())
    result = LayoutEngine().render(score)
    assert result.connectors == []


def test_unknown_connector_kinds_are_skipped() -> None:
    score, registry = _two_system_score()
    registry.of(score).staff_connectors = ("bracket", "zigzag")
    result = LayoutEngine(registry).render(score)
    assert [c.type for c in result.connectors] == [ConnectorType.BRACKET, ConnectorType.BRACKET]


def test_rerender_is_idempotent() -> None:
    score, registry = _two_system_score()
    engine = LayoutEngine(registry)

    def snapshot() -> list[tuple]:
        return [
            (layout.x, layout.y, layout.width, layout.system_index)
            for _, layout in engine.annotations.items()
        ]

    engine.render(score)
    first = snapshot()
    result = engine.render(score)
    assert snapshot() == first
    assert len(result.ties) == 2
    assert len(result.staves) == 4


def test_rerender_reports_diagnostics_once() -> None:
    m = _measure(1, ["C4", "E4"])
    m.append(note.Note("D4", quarterLength=1.25))
    engine = LayoutEngine()
    engine.render(m)
    result = engine.render(m)
    assert len(result.diagnostics.errors) == 1


def test_parts_without_measures_share_one_slot() -> None:
    score = stream.Score()
    upper = stream.Part([note.Note("C4"), note.Note("D4")])
    lower = stream.Part([note.Note("E3"), note.Note("F3")])
    score.insert(0, upper)
    score.insert(0, lower)
    engine = LayoutEngine()
    result = engine.render(score)

    (stack,) = result.stacks
    assert stack.streams[0] is upper and stack.streams[1] is lower
    assert len(result.staves) == 2
    assert len(result.annotations) == 4
    assert result.diagnostics.records == []
    assert engine.stave_for(upper).end_bar_type is BarlineType.END
    upper_x = engine.annotations.layout_of(upper.notes[1]).x
    assert upper_x == engine.annotations.layout_of(lower.notes[1]).x


def test_empty_part_is_reported() -> None:
    score = stream.Score()
    score.insert(0, stream.Part([note.Note("C4")]))
    score.insert(0, stream.Part())
    result = LayoutEngine().render(score)

    assert len(result.staves) == 1
    assert [d.event for d in result.diagnostics.warnings] == ["empty_part"]


# ---------------------------------------------------------------------------
# Measures, voices and tracks
# ---------------------------------------------------------------------------

def test_flat_stream_renders_one_stack() -> None:
    s = stream.Stream([note.Note(p) for p in ("C4", "D4", "E4")])
    engine = LayoutEngine()
    result = engine.render(s)
    assert len(result.stacks) == 1
    assert len(result.staves) == 1
    assert engine.stave_for(s) is result.staves[0]
    assert len(result.annotations) == 3


def test_voices_share_one_stave() -> None:
    m = stream.Measure()
    upper = stream.Voice([note.Note("E5") for _ in range(4)])
    lower = stream.Voice([note.Note("C4", quarterLength=2) for _ in range(2)])
    m.insert(0, upper)
    m.insert(0, lower)
    registry = RenderOptionsRegistry()
    engine = LayoutEngine(registry)
    result = engine.render(m)

    assert len(result.staves) == 1
    assert engine.stave_for(upper) is engine.stave_for(lower) is engine.stave_for(m)
    (stack,) = result.stacks
    assert stack.streams[0] is upper and stack.streams[1] is lower
    assert registry.of(upper) is registry.of(m)
    assert engine.annotations.layout_of(lower.notes[1]).x == engine.annotations.layout_of(upper.notes[2]).x


def test_auto_beaming_groups_eighths_in_pairs() -> None:
    m = _measure(1, ["C5"] * 8, quarter_length=0.5)
    result = LayoutEngine().render(m)
    assert len(result.beams) == 4
    assert len(result.context.tagged("beam")) == 4
    assert result.context.tagged("flag") == []


def test_auto_beaming_can_be_disabled() -> None:
    m = _measure(1, ["C5"] * 8, quarter_length=0.5)
    registry = RenderOptionsRegistry()
    registry.of(m).auto_beam = False
    result = LayoutEngine(registry).render(m)
    assert result.beams == []
    assert len(result.context.tagged("flag")) == 8


def test_tuplets_are_drawn() -> None:
    m = stream.Measure()
    m.append([note.Note("C4", quarterLength=Fraction(1, 3)) for _ in range(3)])
    m.append(note.Note("G4", quarterLength=3))
    result = LayoutEngine().render(m)
    assert len(result.tuplets) == 1
    labels = [cmd.attrs["content"] for cmd in result.context.tagged("tuplet") if cmd.kind == "text"]
    assert labels == ["3"]


def test_lyrics_get_their_own_track() -> None:
    m = _measure(1, ["C4", "D4"])
    m.notes[0].addLyric("la")
    result = LayoutEngine().render(m)
    (stack,) = result.stacks
    assert len(stack.text_voices) == 1
    assert [cmd.attrs["content"] for cmd in result.context.tagged("lyric")] == ["la"]


def test_bad_note_is_reported_and_layout_continues() -> None:
    m = _measure(1, ["C4", "E4"])
    m.append(note.Note("D4", quarterLength=1.25))
    result = LayoutEngine().render(m)
    (error,) = result.diagnostics.errors
    assert error.event == "tickable_conversion_failed"
    assert len(result.annotations) == 3
    assert len(result.context.tagged("notehead")) == 2


def test_created_context_is_sized_to_staves() -> None:
    m = _measure(1, ["C4", "D4", "E4", "F4"])
    result = LayoutEngine().render(m)
    (stave,) = result.staves
    assert result.context.width == stave.x + stave.width + 10
    assert result.context.height == stave.get_bottom_y()
    assert result.to_svg().startswith("<svg")
