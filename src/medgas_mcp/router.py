"""Orthogonal pipe routing through a single bend column.

A pipe from A to B runs horizontally from A to the bend column, vertically to
B's height, then horizontally into B. The column sits at the endpoint midpoint
shifted by the user's bend offset and a fixed per-gas lateral offset, so pipes
of different gases between similar points stay visually apart.

Length is the Manhattan distance between the endpoints divided by the
document's pixels-per-meter. The detour through the bend column is not
counted; bills of materials downstream depend on that figure.
"""

from __future__ import annotations

from medgas_mcp.config import LAYER_SPACING, OVER_LENGTH_THRESHOLD
from medgas_mcp.entities import Connection, Document, GasLayer, Item
from medgas_mcp.geometry import Point, manhattan

LAYER_OFFSETS: dict[GasLayer, float] = {
    GasLayer.O2: 0.0,
    GasLayer.MEDICAL_AIR: -LAYER_SPACING,
    GasLayer.VACUUM: LAYER_SPACING,
}


def layer_offset(gas_layer: GasLayer) -> float:
    return LAYER_OFFSETS[gas_layer]


def endpoints(doc: Document, conn: Connection) -> tuple[Item, Item] | None:
    """Both endpoint items, or ``None`` when either is gone."""
    a = doc.items.get(conn.start)
    b = doc.items.get(conn.end)
    if a is None or b is None:
        return None
    return a, b


def bend_column(a: Point, b: Point, gas_layer: GasLayer, bend_offset: float) -> float:
    return (a[0] + b[0]) / 2 + bend_offset + layer_offset(gas_layer)


def path_between(a: Point, b: Point, gas_layer: GasLayer, bend_offset: float = 0.0) -> list[Point]:
    mid_x = bend_column(a, b, gas_layer, bend_offset)
    return [a, (mid_x, a[1]), (mid_x, b[1]), b]


def route(doc: Document, conn: Connection, bend_offset: float | None = None) -> list[Point] | None:
    """Four-point polyline for ``conn``; ``None`` if it is dangling.

    ``bend_offset`` overrides the stored offset (used for in-progress drags).
    """
    ends = endpoints(doc, conn)
    if ends is None:
        return None
    a, b = ends
    offset = conn.bend_offset if bend_offset is None else bend_offset
    return path_between(a.position, b.position, conn.gas_layer, offset)


def bend_handle(doc: Document, conn: Connection, bend_offset: float | None = None) -> Point | None:
    """Position of the draggable handle in the middle of the bend column."""
    ends = endpoints(doc, conn)
    if ends is None:
        return None
    a, b = ends
    offset = conn.bend_offset if bend_offset is None else bend_offset
    return (bend_column(a.position, b.position, conn.gas_layer, offset), (a.y + b.y) / 2)


def bend_offset_for(doc: Document, conn: Connection, handle_x: float) -> float | None:
    """Bend offset that puts the handle at ``handle_x``."""
    ends = endpoints(doc, conn)
    if ends is None:
        return None
    a, b = ends
    return handle_x - (a.x + b.x) / 2 - layer_offset(conn.gas_layer)


def connection_length(doc: Document, conn: Connection) -> float | None:
    """Manhattan endpoint distance in meters; ``None`` if dangling."""
    ends = endpoints(doc, conn)
    if ends is None:
        return None
    a, b = ends
    return manhattan(a.position, b.position) / doc.settings.pixels_per_meter


def is_over_length(length: float | None, threshold: float = OVER_LENGTH_THRESHOLD) -> bool:
    return length is not None and length > threshold
