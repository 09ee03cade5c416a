"""Renderer implementations for laid-out score output formats."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from scorelayout.layout_models import LayoutResult
from scorelayout.planning import SystemPlan


def _escape_html(text: str) -> str:
    """Escape the three characters that are unsafe in HTML text content."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def describe_element(element: Any) -> str:
    """Short label for a note, chord or rest (``"C#4"``, ``"C4 E4 G4"``, ``"rest"``)."""
    if element.isRest:
        return "rest"
    pitches = getattr(element, "pitches", ())
    if pitches:
        return " ".join(p.nameWithOctave for p in pitches)
    return type(element).__name__


class SheetRenderer(ABC):
    """Abstract sheet renderer."""

    @property
    @abstractmethod
    def default_extension(self) -> str:
        """Default filename extension for this renderer."""

    @abstractmethod
    def render(self, *, title: str, layout: LayoutResult, plan: SystemPlan | None = None) -> str:
        """Render output into a file content string."""


class SvgRenderer(SheetRenderer):
    """A standalone SVG document of the drawn score."""

    @property
    def default_extension(self) -> str:
        return ".svg"

    def render(self, *, title: str, layout: LayoutResult, plan: SystemPlan | None = None) -> str:
        return layout.to_svg()


class HtmlRenderer(SheetRenderer):
    """Render the drawn score into a self-contained HTML document with inline SVG."""

    @property
    def default_extension(self) -> str:
        return ".html"

    def render(self, *, title: str, layout: LayoutResult, plan: SystemPlan | None = None) -> str:
        return self.build_html(title, [layout.to_svg()])

    def build_html(self, title: str, svgs: list[str]) -> str:
        """
        Wrap a list of SVG strings in a self-contained HTML document.

        Each SVG is placed in its own ``.page`` div. The stylesheet includes
        both screen styles (white cards on a grey background) and print styles
        (``page-break-after: always`` per page, no drop shadows).
        """
        title_safe = _escape_html(title)
        heading = f"  <h1>{title_safe}</h1>\n" if title else ""
        pages = "\n".join(f'  <div class="page">{svg}</div>' for svg in svgs)

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{title_safe}</title>
  <style>
    *, *::before, *::after {{ box-sizing: border-box; }}
    body {{
      font-family: Georgia, serif;
      background: #f0f0f0;
      margin: 0;
      padding: 2rem;
    }}
    h1 {{
      text-align: center;
      font-size: 1.6rem;
      margin-bottom: 2rem;
      color: #222;
    }}
    .page {{
      background: #fff;
      box-shadow: 0 2px 8px rgba(0, 0, 0, 0.15);
      margin: 0 auto 3rem;
      max-width: 860px;
      padding: 1rem;
    }}
    .page svg {{
      display: block;
      width: 100%;
      height: auto;
    }}
    .page .staff-line, .page .ledger-line {{ stroke: #444; }}
    .page .lyric {{ font-style: italic; }}
    @media print {{
      body {{
        background: #fff;
        padding: 0;
        margin: 0;
      }}
      .page {{
        box-shadow: none;
        page-break-after: always;
        max-width: 100%;
        padding: 0;
        margin: 0;
      }}
      .page:last-child {{
        page-break-after: avoid;
      }}
    }}
  </style>
</head>
<body>
{heading}{pages}
</body>
</html>"""


class JsonRenderer(SheetRenderer):
    """Machine-readable layout: page size, systems, per-note positions and diagnostics."""

    @property
    def default_extension(self) -> str:
        return ".json"

    def render(self, *, title: str, layout: LayoutResult, plan: SystemPlan | None = None) -> str:
        return json.dumps(self.build_document(title, layout, plan), indent=2)

    def build_document(self, title: str, layout: LayoutResult, plan: SystemPlan | None = None) -> dict[str, Any]:
        notes = []
        for element, note_layout in layout.annotations.items():
            notes.append(
                {
                    "element": describe_element(element),
                    "measure": element.measureNumber,
                    "offset": float(element.offset),
                    "quarter_length": float(element.duration.quarterLength),
                    **note_layout.as_dict(),
                }
            )
        return {
            "title": title,
            "width": layout.context.width,
            "height": layout.context.height,
            "systems": plan.systems if plan is not None else [],
            "staves": len(layout.staves),
            "ties": len(layout.ties),
            "beams": len(layout.beams),
            "tuplets": len(layout.tuplets),
            "connectors": len(layout.connectors),
            "notes": notes,
            "diagnostics": [
                {"level": d.level, "event": d.event, "element": d.element, "fields": d.fields}
                for d in layout.diagnostics.records
            ],
        }
