"""Build an ezdxf drawing from a document (for saving and previews)."""

from __future__ import annotations

import ezdxf
import structlog

from medgas_mcp import router
from medgas_mcp.entities import Document, GasLayer, LineDrawable, RectDrawable, TextDrawable
from medgas_mcp.geometry import Point, rotate_point

log = structlog.get_logger()

ITEM_RADIUS = 12.0
LABEL_HEIGHT = 10.0
LENGTH_TEXT_HEIGHT = 12.0

# (name, ACI color)
GAS_LAYERS: dict[GasLayer, tuple[str, int]] = {
    GasLayer.O2: ("MEDGAS-O2", 5),
    GasLayer.MEDICAL_AIR: ("MEDGAS-AIR", 8),
    GasLayer.VACUUM: ("MEDGAS-VAC", 2),
}
ITEM_LAYER = ("MEDGAS-ITEMS", 3)
ANNOTATION_LAYER = ("MEDGAS-ANNOTATION", 7)
CAD_LAYER = ("MEDGAS-CAD", 7)
BACKGROUND_LAYER = ("MEDGAS-BACKGROUND", 8)

OVER_LENGTH_COLOR = 1  # red


def _flip(p: Point) -> tuple[float, float]:
    """Canvas (Y down) to DXF (Y up)."""
    return (p[0], -p[1])


def setup_layers(dxf_doc: ezdxf.document.Drawing) -> int:
    layers = [*GAS_LAYERS.values(), ITEM_LAYER, ANNOTATION_LAYER, CAD_LAYER, BACKGROUND_LAYER]
    for name, color in layers:
        if name not in dxf_doc.layers:
            dxf_doc.layers.add(name, color=color, linetype="CONTINUOUS")
    return len(layers)


def export_document(doc: Document) -> ezdxf.document.Drawing:
    """Render ``doc`` into a new R2013 drawing, one layer per gas."""
    dxf_doc = ezdxf.new("R2013")
    msp = dxf_doc.modelspace()
    setup_layers(dxf_doc)

    # Background first so it sits underneath
    settings = doc.settings
    ox, oy = settings.background_origin
    s = settings.background_scale
    for seg in doc.background.values():
        msp.add_line(
            _flip((ox + seg.x1 * s, oy + seg.y1 * s)),
            _flip((ox + seg.x2 * s, oy + seg.y2 * s)),
            dxfattribs={"layer": BACKGROUND_LAYER[0]},
        )

    for d in doc.drawables.values():
        if isinstance(d, LineDrawable):
            msp.add_lwpolyline([_flip(p) for p in d.points], dxfattribs={"layer": CAD_LAYER[0]})
        elif isinstance(d, RectDrawable):
            corners = [(d.x, d.y), (d.x + d.width, d.y), (d.x + d.width, d.y + d.height), (d.x, d.y + d.height)]
            corners = [rotate_point(c, (d.x, d.y), d.rotation) for c in corners]
            msp.add_lwpolyline([_flip(c) for c in corners], close=True, dxfattribs={"layer": CAD_LAYER[0]})
        elif isinstance(d, TextDrawable):
            msp.add_text(d.text, dxfattribs={
                "insert": _flip((d.x, d.y)),
                "height": d.font_size,
                "rotation": -d.rotation % 360,
                "layer": CAD_LAYER[0],
            })

    for conn in doc.connections.values():
        path = router.route(doc, conn)
        if path is None:
            continue
        layer_name = GAS_LAYERS[conn.gas_layer][0]
        msp.add_lwpolyline([_flip(p) for p in path], dxfattribs={"layer": layer_name})
        length = router.connection_length(doc, conn)
        hx, hy = router.bend_handle(doc, conn)
        attribs = {"insert": _flip((hx + 5, hy)), "height": LENGTH_TEXT_HEIGHT, "layer": ANNOTATION_LAYER[0]}
        if router.is_over_length(length):
            attribs["color"] = OVER_LENGTH_COLOR
        msp.add_text(f"{length:.2f}m", dxfattribs=attribs)

    for item in doc.items.values():
        center = _flip(item.position)
        msp.add_circle(center, ITEM_RADIUS, dxfattribs={"layer": ITEM_LAYER[0]})
        msp.add_text(item.label, dxfattribs={
            "insert": _flip((item.x - 15, item.y + 16 + LABEL_HEIGHT)),
            "height": LABEL_HEIGHT,
            "layer": ANNOTATION_LAYER[0],
        })

    log.debug("document_exported", entities=len(msp))
    return dxf_doc
