"""Document <-> plain record conversion for the persistence boundary.

``from_record`` rejects records that cannot describe a reachable document
(bad enums, duplicate ids, non-numeric geometry, a source carrying two gases)
with :class:`MalformedDocument`. Dangling pipe endpoints are kept: the router
and BOM already skip them.
"""

from __future__ import annotations

import json
import math
from typing import Any

from medgas_mcp.entities import (
    BackgroundEntity,
    Connection,
    Document,
    DocumentSettings,
    Drawable,
    GasLayer,
    Item,
    ItemVariant,
    LineDrawable,
    RectDrawable,
    TextDrawable,
)
from medgas_mcp.errors import MalformedDocument
from medgas_mcp.geometry import Viewport
from medgas_mcp.validator import find_violations

FORMAT_VERSION = 1


def to_record(doc: Document, viewport: Viewport | None = None, grid_snap: bool = False) -> dict:
    return {
        "version": FORMAT_VERSION,
        "items": [i.to_dict() for i in doc.items.values()],
        "connections": [c.to_dict() for c in doc.connections.values()],
        "drawables": [d.to_dict() for d in doc.drawables.values()],
        "background": [b.to_dict() for b in doc.background.values()],
        "settings": doc.settings.to_dict(),
        "view": {
            "viewport": (viewport or Viewport()).to_dict(),
            "grid_snap": grid_snap,
        },
    }


# --- Field readers ---


def _field(raw: dict, name: str, where: str) -> Any:
    if not isinstance(raw, dict):
        raise MalformedDocument(f"{where}: expected an object, got {type(raw).__name__}")
    if name not in raw:
        raise MalformedDocument(f"{where}: missing field '{name}'")
    return raw[name]


def _num(raw: dict, name: str, where: str, default: float | None = None) -> float:
    if default is not None and isinstance(raw, dict) and name not in raw:
        return default
    value = _field(raw, name, where)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise MalformedDocument(f"{where}: field '{name}' must be a finite number, got {value!r}")
    return float(value)


def _id(raw: dict, name: str, where: str) -> int:
    value = _field(raw, name, where)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedDocument(f"{where}: field '{name}' must be an integer id, got {value!r}")
    return value


def _str(raw: dict, name: str, where: str, optional: bool = False) -> str | None:
    if optional and raw.get(name) is None:
        return None
    value = _field(raw, name, where)
    if not isinstance(value, str):
        raise MalformedDocument(f"{where}: field '{name}' must be a string, got {value!r}")
    return value


def _enum(enum_cls, raw: dict, name: str, where: str):
    value = _field(raw, name, where)
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise MalformedDocument(f"{where}: '{value}' is not a valid {name} ({allowed})") from None


def _list(record: dict, name: str) -> list:
    value = record.get(name, [])
    if not isinstance(value, list):
        raise MalformedDocument(f"'{name}' must be a list")
    return value


# --- Entity readers ---


def _item(raw: dict, where: str) -> Item:
    return Item(
        id=_id(raw, "id", where),
        x=_num(raw, "x", where),
        y=_num(raw, "y", where),
        variant=_enum(ItemVariant, raw, "variant", where),
        label=_str(raw, "label", where),
        rotation=_num(raw, "rotation", where, default=0.0) % 360,
        icon=_str(raw, "icon", where, optional=True),
        color=_str(raw, "color", where, optional=True),
    )


def _connection(raw: dict, where: str) -> Connection:
    conn = Connection(
        id=_id(raw, "id", where),
        start=_id(raw, "start", where),
        end=_id(raw, "end", where),
        gas_layer=_enum(GasLayer, raw, "gas_layer", where),
        bend_offset=_num(raw, "bend_offset", where, default=0.0),
    )
    if conn.start == conn.end:
        raise MalformedDocument(f"{where}: connection joins item {conn.start} to itself")
    return conn


def _point(raw: Any, where: str) -> tuple[float, float]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise MalformedDocument(f"{where}: point must be [x, y], got {raw!r}")
    return (_num({"x": raw[0]}, "x", where), _num({"y": raw[1]}, "y", where))


def _drawable(raw: dict, where: str) -> Drawable:
    kind = _field(raw, "kind", where)
    common = {
        "id": _id(raw, "id", where),
        "stroke": _str(raw, "stroke", where, optional=True) or "#000000",
        "fill": _str(raw, "fill", where, optional=True),
        "rotation": _num(raw, "rotation", where, default=0.0) % 360,
    }
    if kind == "line":
        points = _field(raw, "points", where)
        if not isinstance(points, list) or len(points) < 2:
            raise MalformedDocument(f"{where}: a line needs at least two points")
        return LineDrawable(points=[_point(p, where) for p in points], **common)
    if kind == "rect":
        return RectDrawable(
            x=_num(raw, "x", where),
            y=_num(raw, "y", where),
            width=_num(raw, "width", where),
            height=_num(raw, "height", where),
            **common,
        )
    if kind == "text":
        return TextDrawable(
            x=_num(raw, "x", where),
            y=_num(raw, "y", where),
            text=_str(raw, "text", where),
            font_size=_num(raw, "font_size", where, default=14.0),
            **common,
        )
    raise MalformedDocument(f"{where}: unknown drawable kind {kind!r}")


def _background(raw: dict, where: str) -> BackgroundEntity:
    return BackgroundEntity(
        id=_id(raw, "id", where),
        x1=_num(raw, "x1", where),
        y1=_num(raw, "y1", where),
        x2=_num(raw, "x2", where),
        y2=_num(raw, "y2", where),
    )


def _settings(raw: Any) -> DocumentSettings:
    if raw is None:
        return DocumentSettings()
    where = "settings"
    if not isinstance(raw, dict):
        raise MalformedDocument(f"{where}: expected an object, got {type(raw).__name__}")
    defaults = DocumentSettings()
    ppm = _num(raw, "pixels_per_meter", where, default=defaults.pixels_per_meter)
    if ppm <= 0:
        raise MalformedDocument(f"{where}: pixels_per_meter must be positive, got {ppm}")
    origin = raw.get("background_origin")
    return DocumentSettings(
        pixels_per_meter=ppm,
        room_type=_str(raw, "room_type", where, optional=True),
        background_scale=_num(raw, "background_scale", where, default=1.0),
        background_origin=_point(origin, where) if origin is not None else defaults.background_origin,
        background_image=_str(raw, "background_image", where, optional=True),
        background_image_scale=_num(raw, "background_image_scale", where, default=1.0),
    )


def _collect(entities: list, where: str) -> dict:
    out: dict[int, Any] = {}
    for e in entities:
        if e.id in out:
            raise MalformedDocument(f"{where}: duplicate id {e.id}")
        out[e.id] = e
    return out


def from_record(record: dict) -> tuple[Document, Viewport, bool]:
    """Rebuild ``(document, viewport, grid_snap)`` from :func:`to_record` output."""
    if not isinstance(record, dict):
        raise MalformedDocument(f"Document record must be an object, got {type(record).__name__}")
    version = record.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise MalformedDocument(f"Unsupported document version {version!r}")

    doc = Document(
        items=_collect([_item(r, f"items[{n}]") for n, r in enumerate(_list(record, "items"))], "items"),
        connections=_collect(
            [_connection(r, f"connections[{n}]") for n, r in enumerate(_list(record, "connections"))],
            "connections",
        ),
        drawables=_collect(
            [_drawable(r, f"drawables[{n}]") for n, r in enumerate(_list(record, "drawables"))],
            "drawables",
        ),
        background=_collect(
            [_background(r, f"background[{n}]") for n, r in enumerate(_list(record, "background"))],
            "background",
        ),
        settings=_settings(record.get("settings")),
    )

    violations = find_violations(doc)
    if violations:
        raise MalformedDocument(f"Sources {violations} carry more than one gas layer")

    view = record.get("view") or {}
    if not isinstance(view, dict):
        raise MalformedDocument(f"view: expected an object, got {type(view).__name__}")
    vp_raw = view.get("viewport")
    viewport = Viewport()
    if vp_raw is not None:
        viewport = Viewport(
            scale=_num(vp_raw, "scale", "view.viewport", default=1.0),
            tx=_num(vp_raw, "tx", "view.viewport", default=0.0),
            ty=_num(vp_raw, "ty", "view.viewport", default=0.0),
            width=_num(vp_raw, "width", "view.viewport", default=viewport.width),
            height=_num(vp_raw, "height", "view.viewport", default=viewport.height),
        )
        if viewport.scale <= 0:
            raise MalformedDocument(f"view.viewport: scale must be positive, got {viewport.scale}")
    grid_snap = view.get("grid_snap", False)
    if not isinstance(grid_snap, bool):
        raise MalformedDocument(f"view: field 'grid_snap' must be true or false, got {grid_snap!r}")
    return doc, viewport, grid_snap


def dumps(doc: Document, viewport: Viewport | None = None, grid_snap: bool = False) -> str:
    return json.dumps(to_record(doc, viewport, grid_snap), indent=2)


def loads(text: str) -> tuple[Document, Viewport, bool]:
    try:
        record = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocument(f"Document is not valid JSON: {e}") from e
    return from_record(record)
