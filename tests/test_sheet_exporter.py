"""Unit tests for SheetExporter: format selection, score loading and file export."""

import json
from pathlib import Path

import pytest
from music21 import clef, meter, note, stream

from scorelayout.sheet_exporter import SUPPORTED_FORMATS, SheetExporter


def _write_musicxml(tmp_path: Path, measures: int = 3) -> Path:
    part = stream.Part()
    for index in range(measures):
        m = stream.Measure(number=index + 1)
        if index == 0:
            m.clef = clef.TrebleClef()
            m.timeSignature = meter.TimeSignature("4/4")
        m.append([note.Note(p) for p in ("C4", "E4", "G4", "C5")])
        part.append(m)
    score = stream.Score()
    score.insert(0, part)
    path = tmp_path / "scale.musicxml"
    score.write("musicxml", fp=str(path))
    return path


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_supported_formats() -> None:
    assert SUPPORTED_FORMATS == {"html", "svg", "json"}


def test_format_is_normalized() -> None:
    exporter = SheetExporter(output_format=" SVG ")
    assert exporter.output_format == "svg"
    assert exporter.renderer.default_extension == ".svg"


def test_unsupported_format_raises() -> None:
    with pytest.raises(ValueError, match="Unsupported output format"):
        SheetExporter(output_format="pdf")


def test_non_positive_scale_raises() -> None:
    with pytest.raises(ValueError):
        SheetExporter(scale=0)


# ---------------------------------------------------------------------------
# File export (music21 reads and writes MusicXML on disk)
# ---------------------------------------------------------------------------

@pytest.mark.integration
def test_export_creates_html_file(tmp_path: Path) -> None:
    source = _write_musicxml(tmp_path)
    out = tmp_path / "score.html"
    result = SheetExporter(title="Integration Test").export(str(source), str(out))

    content = out.read_text(encoding="utf-8")
    assert "<!DOCTYPE html>" in content
    assert "<svg" in content
    assert len(result.staves) == 3


@pytest.mark.integration
def test_export_json_lists_every_note(tmp_path: Path) -> None:
    source = _write_musicxml(tmp_path, measures=2)
    out = tmp_path / "score.json"
    SheetExporter(title="Data", output_format="json").export(str(source), str(out))

    document = json.loads(out.read_text(encoding="utf-8"))
    assert document["title"] == "Data"
    assert len(document["notes"]) == 8
    assert all(entry["x"] is not None for entry in document["notes"])
    assert document["diagnostics"] == []


@pytest.mark.integration
def test_export_scale_applies_to_svg(tmp_path: Path) -> None:
    source = _write_musicxml(tmp_path, measures=1)
    out = tmp_path / "score.svg"
    SheetExporter(output_format="svg", scale=2.0).export(str(source), str(out))
    assert "scale(2,2)" in out.read_text(encoding="utf-8")



def test_unknown_file_type_raises_value_error(tmp_path: Path) -> None:
    source = tmp_path / "notes.xyz"
    source.write_text("C D E F", encoding="utf-8")
    with pytest.raises(ValueError, match="could not read"):
        SheetExporter().load(str(source))


@pytest.mark.integration
def test_write_renders_a_finished_layout(tmp_path: Path) -> None:
    exporter = SheetExporter(title="Steps", output_format="json")
    result, plan = exporter.layout(exporter.load(str(_write_musicxml(tmp_path, measures=1))))
    out = tmp_path / "steps.json"
    exporter.write(result, plan, str(out))

    document = json.loads(out.read_text(encoding="utf-8"))
    assert document["title"] == "Steps"
    assert len(document["notes"]) == 4
