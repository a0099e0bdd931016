"""Entity types: items, connections, drawables, background segments."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from medgas_mcp.config import DEFAULT_PIXELS_PER_METER


class ItemVariant(str, Enum):
    SOURCE = "Source"
    TERMINAL = "Terminal"
    VALVE = "Valve"


class GasLayer(str, Enum):
    O2 = "O2"
    MEDICAL_AIR = "MedicalAir"
    VACUUM = "Vacuum"


ITEM_COLORS: dict[ItemVariant, str] = {
    ItemVariant.SOURCE: "#dc2626",
    ItemVariant.TERMINAL: "#10b981",
    ItemVariant.VALVE: "#f59e0b",
}

GAS_COLORS: dict[GasLayer, str] = {
    GasLayer.O2: "#3b82f6",
    GasLayer.MEDICAL_AIR: "#64748b",
    GasLayer.VACUUM: "#eab308",
}


def default_label(variant: ItemVariant, room_type: str | None = None) -> str:
    """Label for a freshly placed item.

    Terminals take the room type prefix (``icu_standard`` -> ``ICU``).
    """
    if variant is ItemVariant.TERMINAL:
        return room_type.split("_")[0].upper() if room_type else "BED"
    if variant is ItemVariant.VALVE:
        return "ZONE VALVE"
    return "SOURCE"


@dataclass
class Item:
    id: int
    x: float
    y: float
    variant: ItemVariant
    label: str
    rotation: float = 0.0
    icon: str | None = None
    color: str | None = None

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "variant": self.variant.value,
            "label": self.label,
            "rotation": self.rotation,
            "icon": self.icon,
            "color": self.color,
        }


@dataclass
class Connection:
    id: int
    start: int
    end: int
    gas_layer: GasLayer
    bend_offset: float = 0.0

    def touches(self, item_id: int) -> bool:
        return self.start == item_id or self.end == item_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "gas_layer": self.gas_layer.value,
            "bend_offset": self.bend_offset,
        }


# --- Drawables ---


@dataclass
class LineDrawable:
    id: int
    points: list[tuple[float, float]]
    stroke: str = "#000000"
    fill: str | None = None
    rotation: float = 0.0

    kind = "line"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.id,
            "points": [list(p) for p in self.points],
            "stroke": self.stroke,
            "fill": self.fill,
            "rotation": self.rotation,
        }


@dataclass
class RectDrawable:
    id: int
    x: float
    y: float
    width: float
    height: float
    stroke: str = "#000000"
    fill: str | None = None
    rotation: float = 0.0

    kind = "rect"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "stroke": self.stroke,
            "fill": self.fill,
            "rotation": self.rotation,
        }


@dataclass
class TextDrawable:
    id: int
    x: float
    y: float
    text: str
    font_size: float = 14.0
    stroke: str = "#000000"
    fill: str | None = None
    rotation: float = 0.0

    kind = "text"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "text": self.text,
            "font_size": self.font_size,
            "stroke": self.stroke,
            "fill": self.fill,
            "rotation": self.rotation,
        }


Drawable = Union[LineDrawable, RectDrawable, TextDrawable]

DRAWABLE_KINDS: dict[str, type] = {
    "line": LineDrawable,
    "rect": RectDrawable,
    "text": TextDrawable,
}


def translate_drawable(d: Drawable, dx: float, dy: float) -> None:
    """Shift a drawable in place by ``(dx, dy)`` world units."""
    if isinstance(d, LineDrawable):
        d.points = [(px + dx, py + dy) for px, py in d.points]
    elif isinstance(d, (RectDrawable, TextDrawable)):
        d.x += dx
        d.y += dy
    else:
        raise TypeError(f"Unknown drawable type: {type(d).__name__}")


def drawable_anchor(d: Drawable) -> tuple[float, float]:
    """Reference point used for drag offsets."""
    if isinstance(d, LineDrawable):
        return d.points[0]
    if isinstance(d, (RectDrawable, TextDrawable)):
        return (d.x, d.y)
    raise TypeError(f"Unknown drawable type: {type(d).__name__}")


@dataclass
class BackgroundEntity:
    """One imported plan segment in the import's native units."""

    id: int
    x1: float
    y1: float
    x2: float
    y2: float

    def to_dict(self) -> dict:
        return {"id": self.id, "x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2}


@dataclass
class DocumentSettings:
    """Document-level parameters that travel with undo and persistence."""

    pixels_per_meter: float = DEFAULT_PIXELS_PER_METER
    room_type: str | None = None
    background_scale: float = 1.0
    background_origin: tuple[float, float] = (0.0, 0.0)
    background_image: str | None = None
    background_image_scale: float = 1.0

    def to_dict(self) -> dict:
        return {
            "pixels_per_meter": self.pixels_per_meter,
            "room_type": self.room_type,
            "background_scale": self.background_scale,
            "background_origin": list(self.background_origin),
            "background_image": self.background_image,
            "background_image_scale": self.background_image_scale,
        }


@dataclass
class Document:
    """The four entity collections plus document settings.

    Collections are insertion-ordered id-keyed dicts; insertion order is the
    render z-order.
    """

    items: dict[int, Item] = field(default_factory=dict)
    connections: dict[int, Connection] = field(default_factory=dict)
    drawables: dict[int, Drawable] = field(default_factory=dict)
    background: dict[int, BackgroundEntity] = field(default_factory=dict)
    settings: DocumentSettings = field(default_factory=DocumentSettings)
