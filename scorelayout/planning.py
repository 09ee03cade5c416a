"""
System planning: fill in render options so a parsed score lays out on pages.

The layout engine only places what the render options tell it to. For a score
read from a file nothing is set, so :func:`plan_systems` decides measure
widths, line breaks and stave positions the way an engraver would: greedy line
filling, stretched systems, clef and key repeated at the start of each line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from music21 import clef, key, meter

from scorelayout.config import DEFAULT_CONFIG, LayoutConfig
from scorelayout.hierarchy import StreamKind, classify_stream, sub_streams
from scorelayout.logging_utils import log_event
from scorelayout.render_options import RenderOptionsRegistry
from scorelayout.staves import estimate_staff_length, find_context, own_element

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemPlan:
    """
    Result of planning.

    Attributes:
        width:   Canvas width needed, in pixels.
        height:  Canvas height needed, in pixels.
        systems: Measure indices laid out on each system, top to bottom.
    """

    width: float
    height: float
    systems: list[list[int]] = field(default_factory=list)

    @property
    def system_count(self) -> int:
        return len(self.systems)


def _parts_of(s: Any, kind: StreamKind) -> list[Any]:
    if kind is StreamKind.SCORE:
        return sub_streams(s)
    return [s]


def _natural_width(m: Any, registry: RenderOptionsRegistry, config: LayoutConfig) -> float:
    options = registry.of(m)
    return estimate_staff_length(m, registry, config) + options.staff_padding


def _start_allowance(m: Any, registry: RenderOptionsRegistry, config: LayoutConfig) -> float:
    """Extra width ``m`` needs when it begins a system (repeated clef and key)."""
    options = registry.of(m)
    extra = 0.0
    if not options.display_clef:
        extra += config.clef_width
    if own_element(m, key.KeySignature) is None:
        ks = find_context(m, key.KeySignature)
        if ks is not None:
            extra += abs(ks.sharps) * config.key_accidental_width
    return extra


def _break_lines(widths: list[float], allowances: list[float], available: float) -> list[list[int]]:
    systems: list[list[int]] = []
    current: list[int] = []
    used = 0.0
    for index, width in enumerate(widths):
        needed = width + (allowances[index] if not current else 0.0)
        if current and used + width > available:
            systems.append(current)
            current = []
            needed = width + allowances[index]
            used = 0.0
        current.append(index)
        used += needed
    if current:
        systems.append(current)
    return systems


def plan_systems(
    s: Any,
    registry: RenderOptionsRegistry,
    config: LayoutConfig = DEFAULT_CONFIG,
) -> SystemPlan:
    """
    Fill the render options of every measure of ``s`` and return the page size.

    Measures at the same index share one width (the widest across parts). All
    systems but the last are stretched to ``config.system_width``. Each
    measure starting a system gets ``start_new_system``, its clef and key,
    and (after the first) a measure number; staves of part ``p`` in system
    ``k`` sit at ``top_margin + k * (parts * staff_height + system_padding)
    + p * staff_height``.
    """
    kind = classify_stream(s)
    if kind is StreamKind.FLAT:
        options = registry.of(s)
        options.top = config.top_margin
        width = options.width if options.width is not None else _natural_width(s, registry, config)
        log_event(logger, "systems_planned", logging.INFO, systems=1, measures=1)
        return SystemPlan(
            width=config.default_left * 2 + width,
            height=config.top_margin + config.staff_height,
            systems=[[0]],
        )

    parts = _parts_of(s, kind)
    # a part holding its notes directly is a single slot
    measures_by_part = [sub_streams(part) or [part] for part in parts]
    count = max((len(measures) for measures in measures_by_part), default=0)
    if count == 0:
        return SystemPlan(width=config.system_width, height=config.top_margin, systems=[])

    for measures in measures_by_part:
        for index, m in enumerate(measures):
            options = registry.of(m)
            options.measure_index = index
            options.display_clef = index == 0 or own_element(m, clef.Clef) is not None
            options.display_key_signature = own_element(m, key.KeySignature) is not None
            options.display_time_signature = own_element(m, meter.TimeSignature) is not None

    def column(index: int) -> list[Any]:
        return [measures[index] for measures in measures_by_part if index < len(measures)]

    widths = [max(_natural_width(m, registry, config) for m in column(i)) for i in range(count)]
    allowances = [max(_start_allowance(m, registry, config) for m in column(i)) for i in range(count)]
    available = config.system_width - config.default_left
    systems = _break_lines(widths, allowances, available)

    system_height = len(parts) * config.staff_height + config.system_padding
    canvas_width = 0.0
    for system_index, indices in enumerate(systems):
        first = indices[0]
        for m in column(first):
            options = registry.of(m)
            options.start_new_system = True
            options.display_clef = True
            if find_context(m, key.KeySignature) is not None:
                options.display_key_signature = True
            options.show_measure_number = first > 0
        widths[first] = max(_natural_width(m, registry, config) for m in column(first))

        natural = sum(widths[i] for i in indices)
        scale = available / natural if system_index < len(systems) - 1 and natural > 0 else 1.0
        x = float(config.default_left)
        for i in indices:
            width = widths[i] * scale
            for part_index, measures in enumerate(measures_by_part):
                if i >= len(measures):
                    continue
                options = registry.of(measures[i])
                options.width = width
                options.left = x
                options.top = config.top_margin + system_index * system_height + part_index * config.staff_height
                options.system_index = system_index
            x += width
        canvas_width = max(canvas_width, x + config.default_left)

    log_event(logger, "systems_planned", logging.INFO, systems=len(systems), measures=count, parts=len(parts))
    return SystemPlan(
        width=canvas_width,
        height=config.top_margin + len(systems) * system_height,
        systems=systems,
    )
