"""Normalization of imported plan segments."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

import structlog

from medgas_mcp.config import IMPORT_TARGET_WIDTH

log = structlog.get_logger()

Segment = tuple[float, float, float, float]


@dataclass
class ImportResult:
    segments: list[Segment]
    scale: float


def _coerce(raw: Mapping | Sequence) -> Segment:
    """Accept ``{"p1": (x, y), "p2": (x, y)}`` or a flat 4-sequence."""
    if isinstance(raw, Mapping):
        (x1, y1), (x2, y2) = raw["p1"], raw["p2"]
    else:
        x1, y1, x2, y2 = raw
    return (float(x1), float(y1), float(x2), float(y2))


def bbox_width(segments: Sequence[Segment]) -> float:
    if not segments:
        return 0.0
    xs = [x for s in segments for x in (s[0], s[2])]
    return max(xs) - min(xs)


def fit_scale(segments: Sequence[Segment], target_width: float = IMPORT_TARGET_WIDTH) -> float | None:
    """``target_width / bbox width``, or ``None`` when the width is degenerate."""
    width = bbox_width(segments)
    if width <= 0 or not math.isfinite(width):
        return None
    return target_width / width


def normalize_segments(
    segments: Iterable[Mapping | Sequence],
    target_width: float = IMPORT_TARGET_WIDTH,
    flip_y: bool = False,
) -> ImportResult:
    """Coerce raw segments and compute the one-off auto-fit scale.

    ``flip_y`` negates Y for sources with an upward Y axis. Empty or
    zero-width input gets a scale of 1.
    """
    out: list[Segment] = []
    for raw in segments:
        x1, y1, x2, y2 = _coerce(raw)
        if flip_y:
            y1, y2 = -y1, -y2
        out.append((x1, y1, x2, y2))

    scale = fit_scale(out, target_width)
    if scale is None:
        log.warning("import_degenerate_bbox", segments=len(out), fallback_scale=1.0)
        scale = 1.0
    return ImportResult(segments=out, scale=scale)
