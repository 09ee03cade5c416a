"""Error types and the diagnostics sink passed through a layout pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from scorelayout.logging_utils import log_event

logger = logging.getLogger(__name__)


class LayoutError(Exception):
    """Base class for failures raised by the layout engine."""


class DurationError(LayoutError):
    """A duration has no backend duration code."""


class StructuralLayoutError(LayoutError):
    """A stream cannot be laid out at all; raised to the caller."""


@dataclass(frozen=True)
class Diagnostic:
    """
    One recovered anomaly.

    Attributes:
        level:   ``logging.ERROR`` for notes that could not be converted,
                 ``logging.WARNING`` for structural anomalies such as an
                 incomplete tuplet.
        event:   Short machine-readable event name.
        element: Human-readable description of the offending element.
        fields:  Extra context (offsets, stream ids, ...).
    """

    level: int
    event: str
    element: str
    fields: dict[str, Any] = field(default_factory=dict)


class LayoutDiagnostics:
    """
    Collects per-note and per-stream anomalies for one or more layout passes.

    Every record is also forwarded to the ``scorelayout.diagnostics`` logger so
    a configured handler sees it as it happens.
    """

    def __init__(self) -> None:
        self.records: list[Diagnostic] = []

    def error(self, event: str, element: object, **fields: Any) -> None:
        self._record(logging.ERROR, event, element, fields)

    def warning(self, event: str, element: object, **fields: Any) -> None:
        self._record(logging.WARNING, event, element, fields)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.records if d.level >= logging.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.records if d.level == logging.WARNING]

    def clear(self) -> None:
        self.records.clear()

    def _record(self, level: int, event: str, element: object, fields: dict[str, Any]) -> None:
        diagnostic = Diagnostic(level=level, event=event, element=repr(element), fields=dict(fields))
        self.records.append(diagnostic)
        log_event(logger, event, level, element=diagnostic.element, **fields)
