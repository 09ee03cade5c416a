"""Per-stream render options, held in a side-table keyed by stream identity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

from scorelayout.config import DEFAULT_CONFIG, LayoutConfig

BARLINE_KINDS: Final[tuple[str, ...]] = ("single", "double", "end")


@dataclass(frozen=True)
class ScaleFactor:
    x: float = 1.0
    y: float = 1.0


@dataclass
class RenderOptions:
    """
    Layout requests for one stream (usually a Measure, Part or Score).

    ``width``, ``top`` and ``left`` override the estimated stave geometry;
    ``None`` means "use the default". ``staff_connectors`` is read from the
    score-level record only.
    """

    width: float | None = None
    top: float | None = None
    left: float | None = None
    staff_padding: float = DEFAULT_CONFIG.staff_padding
    staff_lines: int = 5
    start_new_system: bool = False
    right_barline: str | None = None
    display_clef: bool = True
    display_key_signature: bool = True
    display_time_signature: bool = True
    measure_index: int = 0
    show_measure_number: bool = False
    system_index: int = 0
    staff_connectors: tuple[str, ...] = ("single", "brace")
    scale_factor: ScaleFactor = field(default_factory=ScaleFactor)
    auto_beam: bool = True


class RenderOptionsRegistry:
    """
    Maps streams to their RenderOptions without touching the stream objects.

    Records are created on first access. The registry keeps a reference to each
    registered stream so identities stay valid for its lifetime.
    """

    def __init__(self, config: LayoutConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self._options: dict[int, RenderOptions] = {}
        self._owners: dict[int, Any] = {}

    def of(self, stream: Any) -> RenderOptions:
        """Return the record for ``stream``, creating a default one if needed."""
        key = id(stream)
        options = self._options.get(key)
        if options is None:
            options = RenderOptions(staff_padding=self.config.staff_padding)
            self._options[key] = options
            self._owners[key] = stream
        return options

    def set(self, stream: Any, options: RenderOptions) -> None:
        self._options[id(stream)] = options
        self._owners[id(stream)] = stream

    def share(self, stream: Any, owner: Any) -> RenderOptions:
        """Make ``stream`` use the same record as ``owner`` (voices of a measure)."""
        options = self.of(owner)
        self.set(stream, options)
        return options

    def __contains__(self, stream: object) -> bool:
        return id(stream) in self._options

    def __len__(self) -> int:
        return len(self._options)
