"""Drawing surface that records primitives and serializes them to SVG."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _escape_xml(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _fmt(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class DrawCommand:
    """One recorded primitive: ``kind`` is line, rect, ellipse, text or curve."""

    kind: str
    attrs: dict[str, Any] = field(default_factory=dict)


class RenderContext:
    """
    A drawing context in the style of a canvas/SVG backend.

    Backend objects call the primitive methods while drawing; nothing is
    rasterized here. ``to_svg`` turns the recorded commands into markup, with
    the context scale and origin applied as one group transform.
    """

    def __init__(self, width: float = 0, height: float = 0, *, origin: tuple[float, float] = (0.0, 0.0)) -> None:
        self.width = width
        self.height = height
        self.origin = origin
        self.scale_x = 1.0
        self.scale_y = 1.0
        self.commands: list[DrawCommand] = []

    def scale(self, x: float, y: float) -> RenderContext:
        self.scale_x *= x
        self.scale_y *= y
        return self

    def resize(self, width: float, height: float) -> RenderContext:
        self.width = width
        self.height = height
        return self

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def line(self, x1: float, y1: float, x2: float, y2: float, *, width: float = 1.0, tag: str = "") -> None:
        self.commands.append(DrawCommand("line", {"x1": x1, "y1": y1, "x2": x2, "y2": y2, "width": width, "tag": tag}))

    def rect(self, x: float, y: float, w: float, h: float, *, tag: str = "") -> None:
        self.commands.append(DrawCommand("rect", {"x": x, "y": y, "w": w, "h": h, "tag": tag}))

    def ellipse(self, cx: float, cy: float, rx: float, ry: float, *, filled: bool = True, tag: str = "") -> None:
        self.commands.append(
            DrawCommand("ellipse", {"cx": cx, "cy": cy, "rx": rx, "ry": ry, "filled": filled, "tag": tag})
        )

    def text(self, x: float, y: float, content: str, *, size: float = 12, family: str = "Serif", tag: str = "") -> None:
        self.commands.append(
            DrawCommand("text", {"x": x, "y": y, "content": content, "size": size, "family": family, "tag": tag})
        )

    def curve(
        self,
        start: tuple[float, float],
        control1: tuple[float, float],
        control2: tuple[float, float],
        end: tuple[float, float],
        *,
        tag: str = "",
    ) -> None:
        self.commands.append(
            DrawCommand("curve", {"start": start, "c1": control1, "c2": control2, "end": end, "tag": tag})
        )

    def tagged(self, tag: str) -> list[DrawCommand]:
        """All recorded commands carrying ``tag`` (e.g. ``"tie"`` or ``"beam"``)."""
        return [cmd for cmd in self.commands if cmd.attrs.get("tag") == tag]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_svg(self) -> str:
        width = self.width * self.scale_x
        height = self.height * self.scale_y
        ox, oy = self.origin
        transform = f"translate({_fmt(ox)},{_fmt(oy)}) scale({_fmt(self.scale_x)},{_fmt(self.scale_y)})"
        body = "\n".join(f"    {self._command_to_svg(cmd)}" for cmd in self.commands)
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{_fmt(width)}" height="{_fmt(height)}" '
            f'viewBox="0 0 {_fmt(width)} {_fmt(height)}">\n'
            f'  <g transform="{transform}" fill="black" stroke="black">\n'
            f"{body}\n"
            "  </g>\n"
            "</svg>"
        )

    def _command_to_svg(self, cmd: DrawCommand) -> str:
        a = cmd.attrs
        css_class = f' class="{_escape_xml(a["tag"])}"' if a.get("tag") else ""
        if cmd.kind == "line":
            return (
                f'<line{css_class} x1="{_fmt(a["x1"])}" y1="{_fmt(a["y1"])}" '
                f'x2="{_fmt(a["x2"])}" y2="{_fmt(a["y2"])}" stroke-width="{_fmt(a["width"])}"/>'
            )
        if cmd.kind == "rect":
            return (
                f'<rect{css_class} x="{_fmt(a["x"])}" y="{_fmt(a["y"])}" '
                f'width="{_fmt(a["w"])}" height="{_fmt(a["h"])}" stroke="none"/>'
            )
        if cmd.kind == "ellipse":
            fill = "black" if a["filled"] else "none"
            return (
                f'<ellipse{css_class} cx="{_fmt(a["cx"])}" cy="{_fmt(a["cy"])}" '
                f'rx="{_fmt(a["rx"])}" ry="{_fmt(a["ry"])}" fill="{fill}"/>'
            )
        if cmd.kind == "text":
            return (
                f'<text{css_class} x="{_fmt(a["x"])}" y="{_fmt(a["y"])}" font-family="{_escape_xml(a["family"])}" '
                f'font-size="{_fmt(a["size"])}" stroke="none">{_escape_xml(a["content"])}</text>'
            )
        (sx, sy), (c1x, c1y), (c2x, c2y), (ex, ey) = a["start"], a["c1"], a["c2"], a["end"]
        return (
            f'<path{css_class} d="M{_fmt(sx)},{_fmt(sy)} C{_fmt(c1x)},{_fmt(c1y)} '
            f'{_fmt(c2x)},{_fmt(c2y)} {_fmt(ex)},{_fmt(ey)}" fill="none"/>'
        )
