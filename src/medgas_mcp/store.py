"""Entity store: the only writer of the Document."""

from __future__ import annotations

import copy
import math
import time
from collections.abc import Iterable
from typing import Any

import structlog

from medgas_mcp.entities import (
    ITEM_COLORS,
    BackgroundEntity,
    Connection,
    Document,
    Drawable,
    GasLayer,
    Item,
    ItemVariant,
    LineDrawable,
    RectDrawable,
    TextDrawable,
    default_label,
    translate_drawable,
)
from medgas_mcp.errors import EntityNotFound
from medgas_mcp.validator import check_connection

log = structlog.get_logger()

_NUMERIC_FIELDS = ("x", "y", "width", "height", "font_size", "rotation")
_STRING_FIELDS = ("text", "stroke")


def _finite(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"'{name}' must be a finite number, got {value!r}")
    return float(value)


def _coerce_field(name: str, value: Any) -> Any:
    """Check one drawable field value; returns it in stored form."""
    if name in _NUMERIC_FIELDS:
        value = _finite(name, value)
        return value % 360 if name == "rotation" else value
    if name in _STRING_FIELDS:
        if not isinstance(value, str):
            raise ValueError(f"'{name}' must be a string, got {value!r}")
        return value
    if name == "fill":
        if value is not None and not isinstance(value, str):
            raise ValueError(f"'fill' must be a string or null, got {value!r}")
        return value
    if name == "points":
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)) or len(value) < 2:
            raise ValueError(f"a line needs at least two points, got {value!r}")
        points = []
        for p in value:
            if isinstance(p, (str, bytes)) or not isinstance(p, (list, tuple)) or len(p) != 2:
                raise ValueError(f"point must be [x, y], got {p!r}")
            points.append((_finite("points", p[0]), _finite("points", p[1])))
        return points
    return value


class EntityStore:
    """Owns a :class:`Document` and exposes its mutation API.

    Lookups return ``None`` for unknown ids; ``get_*`` variants raise
    :class:`EntityNotFound`. Mutations never touch history; callers record a
    snapshot first.
    """

    def __init__(self, doc: Document | None = None):
        self._doc = doc or Document()
        self._last_id = self._max_id()

    @property
    def doc(self) -> Document:
        return self._doc

    # --- Ids ---

    def _max_id(self) -> int:
        ids = [0]
        ids.extend(self._doc.items)
        ids.extend(self._doc.connections)
        ids.extend(self._doc.drawables)
        ids.extend(self._doc.background)
        return max(ids)

    def next_id(self) -> int:
        """Millisecond-clock id, bumped to stay strictly increasing."""
        self._last_id = max(int(time.time() * 1000), self._last_id + 1)
        return self._last_id

    # --- Lookups ---

    def item(self, item_id: int) -> Item | None:
        return self._doc.items.get(item_id)

    def connection(self, connection_id: int) -> Connection | None:
        return self._doc.connections.get(connection_id)

    def drawable(self, drawable_id: int) -> Drawable | None:
        return self._doc.drawables.get(drawable_id)

    def get_item(self, item_id: int) -> Item:
        item = self._doc.items.get(item_id)
        if item is None:
            raise EntityNotFound("Item", item_id)
        return item

    def get_connection(self, connection_id: int) -> Connection:
        conn = self._doc.connections.get(connection_id)
        if conn is None:
            raise EntityNotFound("Connection", connection_id)
        return conn

    def get_drawable(self, drawable_id: int) -> Drawable:
        d = self._doc.drawables.get(drawable_id)
        if d is None:
            raise EntityNotFound("Drawable", drawable_id)
        return d

    def connections_of(self, item_id: int) -> list[Connection]:
        return [c for c in self._doc.connections.values() if c.touches(item_id)]

    def contains(self, entity_id: int) -> bool:
        doc = self._doc
        return (
            entity_id in doc.items
            or entity_id in doc.connections
            or entity_id in doc.drawables
            or entity_id in doc.background
        )

    # --- Items ---

    def add_item(
        self,
        variant: ItemVariant,
        x: float,
        y: float,
        label: str | None = None,
        rotation: float = 0.0,
        icon: str | None = None,
    ) -> Item:
        item = Item(
            id=self.next_id(),
            x=float(x),
            y=float(y),
            variant=variant,
            label=label or default_label(variant, self._doc.settings.room_type),
            rotation=float(rotation) % 360,
            icon=icon,
            color=ITEM_COLORS[variant],
        )
        self._doc.items[item.id] = item
        return item

    def move_item(self, item_id: int, x: float, y: float) -> Item:
        item = self.get_item(item_id)
        item.x = float(x)
        item.y = float(y)
        return item

    def rotate_item(self, item_id: int, delta: float = 90.0) -> Item:
        item = self.get_item(item_id)
        item.rotation = (item.rotation + delta) % 360
        return item

    def relabel_item(self, item_id: int, label: str) -> Item:
        item = self.get_item(item_id)
        item.label = label
        return item

    def remove_item(self, item_id: int) -> tuple[Item, list[Connection]]:
        """Delete an item and every connection referencing it."""
        item = self.get_item(item_id)
        attached = self.connections_of(item_id)
        for conn in attached:
            del self._doc.connections[conn.id]
        del self._doc.items[item_id]
        return item, attached

    # --- Connections ---

    def add_connection(self, start: int, end: int, gas_layer: GasLayer, bend_offset: float = 0.0) -> Connection:
        check_connection(self._doc, start, end, gas_layer)
        conn = Connection(
            id=self.next_id(),
            start=start,
            end=end,
            gas_layer=gas_layer,
            bend_offset=float(bend_offset),
        )
        self._doc.connections[conn.id] = conn
        return conn

    def set_bend(self, connection_id: int, bend_offset: float) -> Connection:
        conn = self.get_connection(connection_id)
        conn.bend_offset = float(bend_offset)
        return conn

    def remove_connection(self, connection_id: int) -> Connection:
        conn = self.get_connection(connection_id)
        del self._doc.connections[connection_id]
        return conn

    # --- Drawables ---

    def add_line(self, points: Iterable[tuple[float, float]], stroke: str = "#000000") -> LineDrawable:
        d = LineDrawable(id=self.next_id(), points=[(float(x), float(y)) for x, y in points], stroke=stroke)
        self._doc.drawables[d.id] = d
        return d

    def add_rect(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        stroke: str = "#000000",
        fill: str | None = None,
        rotation: float = 0.0,
    ) -> RectDrawable:
        d = RectDrawable(
            id=self.next_id(),
            x=float(x),
            y=float(y),
            width=float(width),
            height=float(height),
            stroke=stroke,
            fill=fill,
            rotation=float(rotation) % 360,
        )
        self._doc.drawables[d.id] = d
        return d

    def add_text(
        self,
        x: float,
        y: float,
        text: str,
        font_size: float = 14.0,
        stroke: str = "#000000",
        rotation: float = 0.0,
    ) -> TextDrawable:
        d = TextDrawable(
            id=self.next_id(),
            x=float(x),
            y=float(y),
            text=text,
            font_size=float(font_size),
            stroke=stroke,
            rotation=float(rotation) % 360,
        )
        self._doc.drawables[d.id] = d
        return d

    def move_drawable(self, drawable_id: int, dx: float, dy: float) -> Drawable:
        d = self.get_drawable(drawable_id)
        translate_drawable(d, dx, dy)
        return d

    def check_drawable_changes(self, drawable_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        """Return ``changes`` coerced to the drawable's field types.

        Raises ``AttributeError`` for fields the drawable lacks and
        ``ValueError`` for values a saved document could not hold.
        """
        d = self.get_drawable(drawable_id)
        checked = {}
        for name, value in changes.items():
            if name in ("id", "kind") or not hasattr(d, name):
                raise AttributeError(f"{type(d).__name__} has no editable attribute '{name}'")
            checked[name] = _coerce_field(name, value)
        return checked

    def update_drawable(self, drawable_id: int, **changes: Any) -> Drawable:
        """Replace attributes of a drawable (transform handles, recolor, retext)."""
        checked = self.check_drawable_changes(drawable_id, changes)
        d = self.get_drawable(drawable_id)
        for name, value in checked.items():
            setattr(d, name, value)
        return d

    def rotate_drawable(self, drawable_id: int, delta: float = 90.0) -> Drawable:
        d = self.get_drawable(drawable_id)
        d.rotation = (d.rotation + delta) % 360
        return d

    def remove_drawable(self, drawable_id: int) -> Drawable:
        d = self.get_drawable(drawable_id)
        del self._doc.drawables[drawable_id]
        return d

    # --- Background ---

    def replace_background(
        self,
        segments: Iterable[tuple[float, float, float, float]],
        scale: float,
        origin: tuple[float, float] = (0.0, 0.0),
    ) -> list[BackgroundEntity]:
        """Swap in a new imported plan; the scale is stored once here."""
        self._doc.background.clear()
        for x1, y1, x2, y2 in segments:
            e = BackgroundEntity(id=self.next_id(), x1=float(x1), y1=float(y1), x2=float(x2), y2=float(y2))
            self._doc.background[e.id] = e
        settings = self._doc.settings
        settings.background_scale = float(scale)
        settings.background_origin = (float(origin[0]), float(origin[1]))
        settings.background_image = None
        return list(self._doc.background.values())

    def set_background_image(self, handle: str, scale: float) -> None:
        self._doc.background.clear()
        settings = self._doc.settings
        settings.background_image = handle
        settings.background_image_scale = float(scale)
        settings.background_scale = 1.0

    def remove_background(self, entity_id: int) -> BackgroundEntity:
        e = self._doc.background.get(entity_id)
        if e is None:
            raise EntityNotFound("BackgroundEntity", entity_id)
        del self._doc.background[entity_id]
        return e

    # --- Settings ---

    def set_pixels_per_meter(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"pixels_per_meter must be positive, got {value}")
        self._doc.settings.pixels_per_meter = float(value)

    def set_room_type(self, room_type: str | None) -> None:
        self._doc.settings.room_type = room_type.lower() if room_type else None

    # --- Bulk ---

    def remove(self, entity_id: int) -> dict[str, list]:
        """Remove ``entity_id`` from every collection it appears in.

        Removing an item cascades to its connections. Returns the removed
        entities grouped by collection; empty when the id is unknown.
        """
        removed: dict[str, list] = {"items": [], "connections": [], "drawables": [], "background": []}
        if entity_id in self._doc.items:
            item, attached = self.remove_item(entity_id)
            removed["items"].append(item)
            removed["connections"].extend(attached)
        if entity_id in self._doc.connections:
            removed["connections"].append(self.remove_connection(entity_id))
        if entity_id in self._doc.drawables:
            removed["drawables"].append(self.remove_drawable(entity_id))
        if entity_id in self._doc.background:
            removed["background"].append(self.remove_background(entity_id))
        return removed

    def snapshot(self) -> Document:
        """Deep copy of the current document."""
        return copy.deepcopy(self._doc)

    def restore(self, snapshot: Document) -> None:
        """Replace the document contents with a copy of ``snapshot``."""
        self._doc = copy.deepcopy(snapshot)
        self._last_id = max(self._last_id, self._max_id())

    def load(self, doc: Document) -> None:
        self._doc = doc
        self._last_id = max(self._last_id, self._max_id())
        log.info(
            "document_loaded",
            items=len(doc.items),
            connections=len(doc.connections),
            drawables=len(doc.drawables),
            background=len(doc.background),
        )
