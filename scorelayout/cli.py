"""scorelayout CLI entry point."""

import dataclasses
import sys
from pathlib import Path

import click

from scorelayout import __version__
from scorelayout.config import DEFAULT_CONFIG
from scorelayout.diagnostics import LayoutError
from scorelayout.logging_utils import configure_logging
from scorelayout.sheet_exporter import SUPPORTED_FORMATS, SheetExporter
from scorelayout.sheet_renderers import describe_element

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _fail(message: str) -> None:
    click.echo(f"  ERROR: {message}", err=True)
    sys.exit(1)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="scorelayout")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level. Defaults to $LOG_LEVEL, then WARNING.",
)
def main(log_level: str | None) -> None:
    """scorelayout: engrave music21 scores into staves, systems and SVG."""
    configure_logging(log_level)


# ── render subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination file path. Defaults to extension based on --format.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(sorted(SUPPORTED_FORMATS), case_sensitive=False),
    default="html",
    show_default=True,
    help="Output format: self-contained HTML, bare SVG, or JSON layout data.",
)
@click.option(
    "--title",
    default=None,
    metavar="TEXT",
    help="Title shown in the output header. Defaults to the input filename stem.",
)
@click.option(
    "--width",
    type=click.IntRange(200, 4000),
    default=DEFAULT_CONFIG.system_width,
    show_default=True,
    help="Width of one system in pixels.",
)
@click.option(
    "--scale",
    type=click.FloatRange(0.1, 10.0),
    default=1.0,
    show_default=True,
    help="Uniform scale factor applied to the drawing.",
)
def render(
    input_file: str,
    output: str | None,
    output_format: str,
    title: str | None,
    width: int,
    scale: float,
) -> None:
    """
    Lay out a score file and write it as HTML, SVG or JSON.

    INPUT_FILE is any file music21 can parse (MusicXML, MIDI, ABC, ...).

    \b
    Examples:
      scorelayout render song.musicxml
      scorelayout render song.musicxml -o score.svg --format svg
      scorelayout render song.mid --format json --width 1200
    """
    input_path = Path(input_file)
    resolved_title = title if title is not None else input_path.stem.replace("_", " ")
    normalized_format = output_format.lower()
    resolved_output = output if output is not None else str(input_path.with_suffix(f".{normalized_format}"))

    click.echo(f"scorelayout v{__version__}")
    click.echo(f"  Input  : {input_file}")
    click.echo(f"  Format : {normalized_format}")
    click.echo(f"  Title  : {resolved_title}")
    click.echo(f"  Output : {resolved_output}")
    click.echo()

    config = dataclasses.replace(DEFAULT_CONFIG, system_width=width)
    exporter = SheetExporter(title=resolved_title, output_format=normalized_format, config=config, scale=scale)

    click.echo("[1/3] Parsing score with music21...")
    try:
        score = exporter.load(input_file)
    except ValueError as exc:
        _fail(f"Could not read score: {exc}")
        return

    click.echo("[2/3] Planning systems and laying out staves...")
    try:
        result, plan = exporter.layout(score)
    except (LayoutError, ValueError) as exc:
        _fail(f"Could not lay out score: {exc}")
        return

    click.echo(f"[3/3] Writing {normalized_format.upper()} file...")
    try:
        exporter.write(result, plan, resolved_output)
    except OSError as exc:
        _fail(f"Could not write output file: {exc}")
        return

    diagnostics = result.diagnostics
    if diagnostics.records:
        click.echo(
            f"  WARNING: {len(diagnostics.errors)} error(s), {len(diagnostics.warnings)} warning(s) during layout.",
            err=True,
        )
        for record in diagnostics.records:
            click.echo(f"    {record.event}: {record.element}", err=True)

    click.echo()
    click.echo(f"Done!  Wrote '{resolved_output}'.")


# ── inspect subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--width",
    type=click.IntRange(200, 4000),
    default=DEFAULT_CONFIG.system_width,
    show_default=True,
    help="Width of one system in pixels.",
)
def inspect(input_file: str, width: int) -> None:
    """
    Print the resolved position of every note in a score file.

    \b
    Example:
      scorelayout inspect song.musicxml
    """
    config = dataclasses.replace(DEFAULT_CONFIG, system_width=width)
    exporter = SheetExporter(output_format="json", config=config)
    try:
        result, plan = exporter.layout(exporter.load(input_file))
    except (LayoutError, ValueError) as exc:
        _fail(f"Could not lay out score: {exc}")
        return

    click.echo(f"{plan.system_count} system(s), {len(result.staves)} stave(s), {plan.width:.0f}x{plan.height:.0f} px")
    click.echo(f"{'system':>6}  {'measure':>7}  {'offset':>7}  {'x':>8}  {'y':>8}  {'width':>6}  element")
    for element, layout in result.annotations.items():
        y = f"{layout.y:8.1f}" if layout.y is not None else f"{'-':>8}"
        note_width = f"{layout.width:6.1f}" if layout.width is not None else f"{'-':>6}"
        x = f"{layout.x:8.1f}" if layout.x is not None else f"{'-':>8}"
        click.echo(
            f"{layout.system_index if layout.system_index is not None else '-':>6}  "
            f"{element.measureNumber if element.measureNumber is not None else '-':>7}  "
            f"{float(element.offset):7.2f}  {x}  {y}  {note_width}  {describe_element(element)}"
        )
