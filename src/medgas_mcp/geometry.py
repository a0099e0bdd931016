"""World/view transform, zoom-at-pointer, grid snapping, ortho constraint."""

from __future__ import annotations

import math
from dataclasses import dataclass

from medgas_mcp.config import CANVAS_HEIGHT, CANVAS_WIDTH, GRID_SIZE, ZOOM_MAX, ZOOM_MIN

Point = tuple[float, float]


@dataclass
class Viewport:
    """Uniform scale plus translation mapping world units onto the canvas.

    ``view = world * scale + (tx, ty)``. Width and height are the canvas size
    in view units and only matter for :meth:`center_world`.
    """

    scale: float = 1.0
    tx: float = 0.0
    ty: float = 0.0
    width: float = CANVAS_WIDTH
    height: float = CANVAS_HEIGHT

    def world_to_view(self, p: Point) -> Point:
        return (p[0] * self.scale + self.tx, p[1] * self.scale + self.ty)

    def view_to_world(self, p: Point) -> Point:
        return ((p[0] - self.tx) / self.scale, (p[1] - self.ty) / self.scale)

    def zoom_at(self, pointer: Point, new_scale: float) -> None:
        """Set the scale while keeping the world point under ``pointer`` fixed."""
        if new_scale <= 0:
            raise ValueError(f"Scale must be positive, got {new_scale}")
        px, py = pointer
        self.tx = px - (px - self.tx) / self.scale * new_scale
        self.ty = py - (py - self.ty) / self.scale * new_scale
        self.scale = new_scale

    def zoom_by(self, pointer: Point, factor: float) -> float:
        """Multiply the scale by ``factor`` (clamped), anchored at ``pointer``."""
        if factor <= 0:
            raise ValueError(f"Zoom factor must be positive, got {factor}")
        new_scale = min(max(self.scale * factor, ZOOM_MIN), ZOOM_MAX)
        self.zoom_at(pointer, new_scale)
        return new_scale

    def pan(self, dx: float, dy: float) -> None:
        self.tx += dx
        self.ty += dy

    def center_world(self) -> Point:
        return self.view_to_world((self.width / 2, self.height / 2))

    def reset(self) -> None:
        self.scale = 1.0
        self.tx = 0.0
        self.ty = 0.0

    def to_dict(self) -> dict:
        return {
            "scale": self.scale,
            "tx": self.tx,
            "ty": self.ty,
            "width": self.width,
            "height": self.height,
        }


def snap(v: float, grid: float = GRID_SIZE) -> float:
    """Round ``v`` to the nearest multiple of ``grid``."""
    return round(v / grid) * grid


def snap_point(p: Point, grid: float = GRID_SIZE) -> Point:
    return (snap(p[0], grid), snap(p[1], grid))


def ortho_constrain(anchor: Point, p: Point) -> Point:
    """Lock ``p`` to the horizontal or vertical through ``anchor``.

    The axis with the smaller delta is zeroed; ties keep the horizontal.
    """
    dx = p[0] - anchor[0]
    dy = p[1] - anchor[1]
    if abs(dx) >= abs(dy):
        return (p[0], anchor[1])
    return (anchor[0], p[1])


def manhattan(a: Point, b: Point) -> float:
    return abs(b[0] - a[0]) + abs(b[1] - a[1])


def rotate_point(p: Point, center: Point, degrees: float) -> Point:
    """Rotate ``p`` about ``center``; exact for multiples of 90 degrees."""
    quarter = degrees % 360
    dx = p[0] - center[0]
    dy = p[1] - center[1]
    if quarter == 0:
        rx, ry = dx, dy
    elif quarter == 90:
        rx, ry = -dy, dx
    elif quarter == 180:
        rx, ry = -dx, -dy
    elif quarter == 270:
        rx, ry = dy, -dx
    else:
        rad = math.radians(degrees)
        rx = dx * math.cos(rad) - dy * math.sin(rad)
        ry = dx * math.sin(rad) + dy * math.cos(rad)
    return (center[0] + rx, center[1] + ry)
