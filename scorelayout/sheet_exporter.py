"""SheetExporter: lays out a score file and writes it as SVG, HTML or JSON."""

from __future__ import annotations

import logging
from typing import Any, Final

from scorelayout.config import DEFAULT_CONFIG, LayoutConfig
from scorelayout.diagnostics import LayoutDiagnostics
from scorelayout.engine import LayoutEngine
from scorelayout.layout_models import LayoutResult
from scorelayout.logging_utils import log_event
from scorelayout.planning import SystemPlan, plan_systems
from scorelayout.render_context import RenderContext
from scorelayout.render_options import RenderOptionsRegistry, ScaleFactor
from scorelayout.sheet_renderers import HtmlRenderer, JsonRenderer, SheetRenderer, SvgRenderer

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS: Final[set[str]] = {"html", "svg", "json"}


class SheetExporter:
    """
    Convert a score file (MusicXML, MIDI, ABC, ... anything music21 reads) into
    a laid-out sheet via a pluggable renderer.

    Supported formats:
    - ``html``: self-contained page with the score as inline SVG.
    - ``svg``:  the bare SVG drawing.
    - ``json``: systems, per-note positions and diagnostics.
    """

    def __init__(
        self,
        title: str = "",
        output_format: str = "html",
        config: LayoutConfig = DEFAULT_CONFIG,
        scale: float = 1.0,
    ) -> None:
        self.title = title
        normalized = output_format.strip().lower()
        if normalized not in SUPPORTED_FORMATS:
            supported = ", ".join(sorted(SUPPORTED_FORMATS))
            raise ValueError(f"Unsupported output format '{output_format}'. Use one of: {supported}.")
        if scale <= 0:
            raise ValueError(f"Scale must be positive, got {scale}.")
        self.output_format = normalized
        self.config = config
        self.scale = scale
        self.renderer = self._build_renderer(normalized)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_renderer(self, output_format: str) -> SheetRenderer:
        if output_format == "html":
            return HtmlRenderer()
        if output_format == "svg":
            return SvgRenderer()
        return JsonRenderer()

    def _parse_score(self, path: str) -> Any:
        from music21 import converter, stream
        from music21.exceptions21 import Music21Exception

        try:
            parsed = converter.parse(path)
        except Music21Exception as exc:
            raise ValueError(f"music21 could not read '{path}': {exc}") from exc
        if isinstance(parsed, stream.Opus):
            first = parsed.scores.first()
            if first is None:
                raise ValueError(f"'{path}' contains no scores.")
            return first
        return parsed

    def _remove_empty_parts(self, score: Any) -> None:
        """Remove parts that contain no notes/chords to avoid blank staves."""
        for part in list(score.parts):
            if not part.flatten().notes:
                score.remove(part)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def layout(self, score: Any) -> tuple[LayoutResult, SystemPlan]:
        """Plan systems for ``score`` and run one layout pass over it."""
        registry = RenderOptionsRegistry(self.config)
        plan = plan_systems(score, registry, self.config)
        registry.of(score).scale_factor = ScaleFactor(self.scale, self.scale)
        context = RenderContext(plan.width, plan.height).scale(self.scale, self.scale)
        engine = LayoutEngine(registry, LayoutDiagnostics(), self.config)
        return engine.render(score, context), plan

    def load(self, input_path: str) -> Any:
        """Parse ``input_path`` into a music21 stream ready for layout."""
        score = self._parse_score(input_path)
        if hasattr(score, "parts"):
            self._remove_empty_parts(score)
        return score

    def export(self, input_path: str, output_path: str) -> LayoutResult:
        """
        Lay out a score file in the selected format and write it to disk.

        Raises:
            ValueError: If the input cannot be parsed.
            LayoutError: If the score cannot be laid out.
            OSError: If the output file cannot be written.
        """
        result, plan = self.layout(self.load(input_path))
        self.write(result, plan, output_path)
        return result

    def write(self, result: LayoutResult, plan: SystemPlan, output_path: str) -> None:
        """Render a finished layout in the selected format and write it to ``output_path``."""
        content = self.renderer.render(title=self.title, layout=result, plan=plan)
        with open(output_path, "w", encoding="utf-8") as fh:
            fh.write(content)
        log_event(
            logger,
            "sheet_exported",
            logging.INFO,
            output=output_path,
            format=self.output_format,
            systems=plan.system_count,
        )
