"""Editing session: modes, selection, gestures and the undoable command API.

Every structural command records a history snapshot *before* it mutates the
store. Drag and drawing gestures stage their geometry on the editor and touch
the store (and history) once, when the gesture ends.

Gesture methods take world coordinates; :meth:`Editor.pointer_to_world`
converts a canvas pointer position first.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from medgas_mcp import router
from medgas_mcp.bom import BillOfMaterials, ReportRow, bill_of_materials, report_rows
from medgas_mcp.config import (
    BACKGROUND_ORIGIN,
    GRID_SIZE,
    HISTORY_LIMIT,
    IMPORT_TARGET_WIDTH,
    RASTER_DEFAULT_SCALE,
)
from medgas_mcp.entities import (
    Connection,
    Document,
    Drawable,
    GasLayer,
    Item,
    ItemVariant,
    LineDrawable,
    RectDrawable,
    TextDrawable,
    drawable_anchor,
)
from medgas_mcp.errors import ValidationRejected
from medgas_mcp.gas_load import GasLoad, gas_load_for_document
from medgas_mcp.geometry import Point, Viewport, ortho_constrain, snap_point
from medgas_mcp.history import History
from medgas_mcp.importer import ImportResult, normalize_segments
from medgas_mcp.store import EntityStore
from medgas_mcp.validator import check_connection

log = structlog.get_logger()


class Mode(str, Enum):
    PIPE = "PIPE"
    CAD = "CAD"


class Tool(str, Enum):
    SELECT = "SELECT"
    LINE = "LINE"
    RECT = "RECT"
    TEXT = "TEXT"


class ContextAction(str, Enum):
    DELETE = "DELETE"
    ROTATE = "ROTATE"


@dataclass
class DragGesture:
    kind: str  # item | drawable | bend
    entity_id: int
    start: Point
    origin: Point
    staged: Point


@dataclass
class DrawingGesture:
    tool: Tool
    anchor: Point
    current: Point


class Editor:
    """Owns the entity store, its history, the viewport and gesture state."""

    def __init__(self, doc: Document | None = None, history_limit: int = HISTORY_LIMIT):
        self.store = EntityStore(doc)
        self.history: History[Document] = History(history_limit)
        self.viewport = Viewport()
        self.grid_snap = False
        self.mode = Mode.PIPE
        self.tool = Tool.SELECT
        self.connect_tool = False
        self.active_layer = GasLayer.O2
        self.pending_start: int | None = None
        self.selection: set[int] = set()
        self.context_target: int | None = None
        self._drag: DragGesture | None = None
        self._drawing: DrawingGesture | None = None

    @property
    def doc(self) -> Document:
        return self.store.doc

    # --- Internals ---

    def _record(self) -> None:
        self.history.record(self.store.snapshot())

    def _snap(self, p: Point) -> Point:
        p = (float(p[0]), float(p[1]))
        return snap_point(p, GRID_SIZE) if self.grid_snap else p

    def pointer_to_world(self, pointer: Point) -> Point:
        """Canvas pointer position to (snapped) world coordinates."""
        return self._snap(self.viewport.view_to_world(pointer))

    # --- Modes & tools ---

    def set_mode(self, mode: Mode) -> None:
        """Switch between PIPE and CAD, abandoning any gesture in progress."""
        mode = Mode(mode)
        if mode is self.mode:
            return
        self.cancel_gestures()
        self.selection.clear()
        self.context_target = None
        self.mode = mode
        log.debug("mode_changed", mode=mode.value)

    def set_tool(self, tool: Tool) -> None:
        self._drawing = None
        self.tool = Tool(tool)

    def set_connect_tool(self, enabled: bool) -> None:
        self.connect_tool = bool(enabled)
        self.pending_start = None

    def set_active_layer(self, gas_layer: GasLayer) -> None:
        self.active_layer = GasLayer(gas_layer)

    def set_grid_snap(self, enabled: bool) -> None:
        self.grid_snap = bool(enabled)

    def cancel_gestures(self) -> None:
        self.pending_start = None
        self._drag = None
        self._drawing = None

    # --- Items ---

    def place_item(
        self,
        variant: ItemVariant,
        at: Point | None = None,
        label: str | None = None,
        rotation: float = 0.0,
        icon: str | None = None,
    ) -> Item:
        """Place an item at ``at`` (snapped) or at the viewport center."""
        x, y = self._snap(at if at is not None else self.viewport.center_world())
        self._record()
        item = self.store.add_item(ItemVariant(variant), x, y, label=label, rotation=rotation, icon=icon)
        log.info("item_placed", item_id=item.id, variant=item.variant.value, x=item.x, y=item.y)
        return item

    def move_item(self, item_id: int, x: float, y: float) -> Item:
        self.store.get_item(item_id)
        x, y = self._snap((x, y))
        self._record()
        return self.store.move_item(item_id, x, y)

    def relabel_item(self, item_id: int, label: str) -> Item:
        self.store.get_item(item_id)
        self._record()
        return self.store.relabel_item(item_id, label)

    # --- Connections ---

    def connect(self, start: int, end: int, gas_layer: GasLayer | None = None) -> Connection:
        """Validate, snapshot, then add a pipe. Rejection leaves no trace."""
        layer = GasLayer(gas_layer) if gas_layer is not None else self.active_layer
        try:
            check_connection(self.doc, start, end, layer)
        except ValidationRejected as e:
            log.info("connection_rejected", start=start, end=end, gas_layer=layer.value, reason=str(e))
            raise
        self._record()
        conn = self.store.add_connection(start, end, layer)
        log.info("connection_added", connection_id=conn.id, start=start, end=end, gas_layer=layer.value)
        return conn

    def click_item(self, item_id: int) -> Connection | None:
        """Pointer click on an item.

        With the connect tool on (PIPE mode) this drives the two-click
        connect: the first click arms it, a click on a different item commits,
        a click on the same item cancels. Otherwise the click selects (PIPE)
        or toggles membership in the selection (CAD).
        """
        if self.store.item(item_id) is None:
            return None

        if self.mode is Mode.CAD:
            self.toggle_selection(item_id)
            return None

        if not self.connect_tool:
            self.selection = {item_id}
            return None

        if self.pending_start is None:
            self.pending_start = item_id
            return None
        if self.pending_start == item_id:
            self.pending_start = None
            return None

        start, self.pending_start = self.pending_start, None
        return self.connect(start, item_id)

    def click_canvas(self) -> None:
        """Pointer click on empty canvas: cancel a pending connect, else deselect."""
        if self.pending_start is not None:
            self.pending_start = None
            return
        self.selection.clear()

    def set_bend(self, connection_id: int, handle_x: float) -> Connection:
        """Move the bend column so its handle sits at ``handle_x``."""
        conn = self.store.get_connection(connection_id)
        offset = router.bend_offset_for(self.doc, conn, handle_x)
        if offset is None:
            return conn
        self._record()
        return self.store.set_bend(connection_id, offset)

    def set_bend_offset(self, connection_id: int, bend_offset: float) -> Connection:
        self.store.get_connection(connection_id)
        self._record()
        return self.store.set_bend(connection_id, bend_offset)

    # --- Generic entity commands ---

    def rotate(self, entity_id: int, delta: float = 90.0) -> Item | Drawable | None:
        """Rotate an item or drawable by ``delta`` degrees, wrapping at 360."""
        if self.store.item(entity_id) is not None:
            self._record()
            return self.store.rotate_item(entity_id, delta)
        if self.store.drawable(entity_id) is not None:
            self._record()
            return self.store.rotate_drawable(entity_id, delta)
        return None

    def delete(self, entity_id: int) -> dict[str, list]:
        """Delete ``entity_id`` wherever it lives; items cascade to pipes."""
        if not self.store.contains(entity_id):
            return {"items": [], "connections": [], "drawables": [], "background": []}
        self._record()
        removed = self.store.remove(entity_id)
        self._forget(entity_id)
        log.info("entity_deleted", entity_id=entity_id, cascaded=len(removed["connections"]))
        return removed

    def _forget(self, entity_id: int) -> None:
        self.selection.discard(entity_id)
        if self.pending_start == entity_id:
            self.pending_start = None
        if self._drag is not None and self._drag.entity_id == entity_id:
            self._drag = None

    # --- Context menu ---

    def open_context_menu(self, entity_id: int) -> None:
        self.context_target = entity_id

    def close_context_menu(self) -> None:
        self.context_target = None

    def context_action(self, action: ContextAction) -> Any:
        """Apply ``action`` to the id captured when the menu opened."""
        action = ContextAction(action)
        target, self.context_target = self.context_target, None
        if target is None:
            return None
        if action is ContextAction.DELETE:
            return self.delete(target)
        return self.rotate(target, 90.0)

    # --- Selection ---

    def toggle_selection(self, entity_id: int) -> bool:
        """Flip ``entity_id`` in the selection; returns the new membership."""
        if entity_id in self.selection:
            self.selection.discard(entity_id)
            return False
        self.selection.add(entity_id)
        return True

    def select(self, ids: Iterable[int]) -> None:
        self.selection = set(ids)

    def clear_selection(self) -> None:
        self.selection.clear()

    def delete_selected(self) -> dict[str, list]:
        """Remove every selected id from every collection, as one undo step."""
        removed: dict[str, list] = {"items": [], "connections": [], "drawables": [], "background": []}
        ids = [i for i in self.selection if self.store.contains(i)]
        if not ids:
            self.selection.clear()
            return removed
        self._record()
        for entity_id in ids:
            for key, entities in self.store.remove(entity_id).items():
                removed[key].extend(entities)
            self._forget(entity_id)
        self.selection.clear()
        log.info("selection_deleted", count=len(ids), cascaded=len(removed["connections"]))
        return removed

    # --- Drag gestures ---

    def begin_drag(self, entity_id: int, pointer: Point) -> bool:
        """Start dragging an item (PIPE), a pipe bend (PIPE) or a drawable (CAD)."""
        pointer = (float(pointer[0]), float(pointer[1]))
        self._drag = None
        if self.mode is Mode.PIPE:
            item = self.store.item(entity_id)
            if item is not None:
                self._drag = DragGesture("item", entity_id, pointer, item.position, item.position)
                return True
            conn = self.store.connection(entity_id)
            if conn is not None:
                handle = router.bend_handle(self.doc, conn)
                if handle is None:
                    return False
                self._drag = DragGesture("bend", entity_id, pointer, handle, handle)
                return True
            return False

        d = self.store.drawable(entity_id)
        if d is None:
            return False
        anchor = drawable_anchor(d)
        self._drag = DragGesture("drawable", entity_id, pointer, anchor, anchor)
        return True

    def update_drag(self, pointer: Point) -> Point | None:
        """Stage the dragged geometry; the document is not touched."""
        drag = self._drag
        if drag is None:
            return None
        dx = float(pointer[0]) - drag.start[0]
        dy = float(pointer[1]) - drag.start[1]
        moved = (drag.origin[0] + dx, drag.origin[1] + dy)
        if drag.kind == "bend":
            # The handle only moves horizontally
            drag.staged = (moved[0], drag.origin[1])
        else:
            drag.staged = self._snap(moved)
        return drag.staged

    def end_drag(self) -> Item | Connection | Drawable | None:
        """Commit the staged geometry with a single history snapshot."""
        drag, self._drag = self._drag, None
        if drag is None or drag.staged == drag.origin:
            return None

        if drag.kind == "item":
            if self.store.item(drag.entity_id) is None:
                return None
            self._record()
            return self.store.move_item(drag.entity_id, *drag.staged)

        if drag.kind == "bend":
            conn = self.store.connection(drag.entity_id)
            if conn is None:
                return None
            offset = router.bend_offset_for(self.doc, conn, drag.staged[0])
            if offset is None:
                return None
            self._record()
            return self.store.set_bend(drag.entity_id, offset)

        if self.store.drawable(drag.entity_id) is None:
            return None
        self._record()
        return self.store.move_drawable(
            drag.entity_id,
            drag.staged[0] - drag.origin[0],
            drag.staged[1] - drag.origin[1],
        )

    def cancel_drag(self) -> None:
        self._drag = None

    @property
    def dragging(self) -> bool:
        return self._drag is not None

    def drag_preview(self) -> dict | None:
        """Staged geometry of the active drag, for renderers."""
        drag = self._drag
        if drag is None:
            return None
        preview: dict[str, Any] = {"kind": drag.kind, "entity_id": drag.entity_id}
        if drag.kind == "item":
            preview["position"] = list(drag.staged)
        elif drag.kind == "bend":
            conn = self.store.connection(drag.entity_id)
            offset = router.bend_offset_for(self.doc, conn, drag.staged[0]) if conn else None
            preview["bend_offset"] = offset
            preview["path"] = router.route(self.doc, conn, offset) if conn and offset is not None else None
        else:
            preview["delta"] = [drag.staged[0] - drag.origin[0], drag.staged[1] - drag.origin[1]]
        return preview

    # --- Drawing tools (CAD) ---

    def pointer_down(self, pointer: Point) -> bool:
        """Begin a line or rectangle with the active tool."""
        if self.mode is not Mode.CAD or self.tool not in (Tool.LINE, Tool.RECT):
            return False
        anchor = self._snap(pointer)
        self._drawing = DrawingGesture(self.tool, anchor, anchor)
        return True

    def pointer_move(self, pointer: Point, ortho: bool = False) -> Point | None:
        """Stage the free corner; ``ortho`` locks a line to an axis."""
        drawing = self._drawing
        if drawing is None:
            return None
        p = self._snap(pointer)
        if ortho and drawing.tool is Tool.LINE:
            p = ortho_constrain(drawing.anchor, p)
        drawing.current = p
        return p

    def pointer_up(self, pointer: Point | None = None, ortho: bool = False) -> Drawable | None:
        """Commit the staged shape; zero-length lines and empty rectangles are dropped."""
        if self._drawing is None:
            return None
        if pointer is not None:
            self.pointer_move(pointer, ortho=ortho)
        drawing, self._drawing = self._drawing, None
        (ax, ay), (cx, cy) = drawing.anchor, drawing.current

        if drawing.tool is Tool.LINE:
            if (ax, ay) == (cx, cy):
                return None
            return self.add_line([(ax, ay), (cx, cy)])

        width, height = abs(cx - ax), abs(cy - ay)
        if width == 0 or height == 0:
            return None
        return self.add_rect(min(ax, cx), min(ay, cy), width, height)

    def drawing_preview(self) -> dict | None:
        drawing = self._drawing
        if drawing is None:
            return None
        return {
            "tool": drawing.tool.value,
            "anchor": list(drawing.anchor),
            "current": list(drawing.current),
        }

    # --- Drawable commands ---

    def add_line(self, points: Sequence[Point], stroke: str = "#000000") -> LineDrawable:
        if len(points) < 2:
            raise ValueError("A line needs at least two points")
        self._record()
        return self.store.add_line(points, stroke=stroke)

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
        self._record()
        return self.store.add_rect(x, y, width, height, stroke=stroke, fill=fill, rotation=rotation)

    def place_text(self, at: Point, text: str, font_size: float = 14.0, rotation: float = 0.0) -> TextDrawable:
        x, y = self._snap(at)
        self._record()
        return self.store.add_text(x, y, text, font_size=font_size, rotation=rotation)

    def move_drawable(self, drawable_id: int, dx: float, dy: float) -> Drawable:
        self.store.get_drawable(drawable_id)
        self._record()
        return self.store.move_drawable(drawable_id, dx, dy)

    def transform_drawable(self, drawable_id: int, **changes: Any) -> Drawable:
        checked = self.store.check_drawable_changes(drawable_id, changes)
        self._record()
        return self.store.update_drawable(drawable_id, **checked)

    # --- Background import ---

    def import_segments(
        self,
        segments: Iterable[Mapping | Sequence],
        flip_y: bool = False,
        target_width: float = IMPORT_TARGET_WIDTH,
    ) -> ImportResult:
        """Replace the background with normalized segments and their fit scale."""
        result = normalize_segments(segments, target_width=target_width, flip_y=flip_y)
        self._record()
        self.store.replace_background(result.segments, result.scale, BACKGROUND_ORIGIN)
        log.info("background_imported", segments=len(result.segments), scale=result.scale)
        return result

    def import_image(self, handle: str, scale: float = RASTER_DEFAULT_SCALE) -> None:
        self._record()
        self.store.set_background_image(handle, scale)
        log.info("background_image_set", scale=scale)

    # --- Settings ---

    def set_pixels_per_meter(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"pixels_per_meter must be positive, got {value}")
        self._record()
        self.store.set_pixels_per_meter(value)

    def set_room_type(self, room_type: str | None) -> None:
        self._record()
        self.store.set_room_type(room_type)

    # --- History ---

    def undo(self) -> bool:
        snapshot = self.history.undo(self.store.snapshot())
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def _restore(self, snapshot: Document) -> None:
        self.store.restore(snapshot)
        self.cancel_gestures()
        self.context_target = None
        self.selection = {i for i in self.selection if self.store.contains(i)}

    # --- Document lifecycle ---

    def new_document(self, room_type: str | None = None) -> None:
        self.load_document(Document())
        if room_type:
            self.store.set_room_type(room_type)

    def load_document(self, doc: Document, viewport: Viewport | None = None, grid_snap: bool | None = None) -> None:
        """Swap in ``doc`` and start a fresh history."""
        self.store.load(doc)
        self.history.clear()
        self.cancel_gestures()
        self.selection.clear()
        self.context_target = None
        if viewport is not None:
            self.viewport = viewport
        if grid_snap is not None:
            self.grid_snap = grid_snap

    # --- Read-only views ---

    def bill_of_materials(self) -> BillOfMaterials:
        return bill_of_materials(self.doc)

    def report_rows(self) -> list[ReportRow]:
        return report_rows(self.doc)

    def gas_load(self, room_type: str | None = None) -> GasLoad:
        return gas_load_for_document(self.doc, room_type)

    def render_state(self) -> dict:
        """Plain snapshot of everything a renderer needs for one frame."""
        doc = self.doc
        pipes = []
        for conn in doc.connections.values():
            path = router.route(doc, conn)
            if path is None:
                continue
            length = router.connection_length(doc, conn)
            pipes.append({
                **conn.to_dict(),
                "path": [list(p) for p in path],
                "handle": list(router.bend_handle(doc, conn)),
                "length": length,
                "over_length": router.is_over_length(length),
            })
        return {
            "mode": self.mode.value,
            "tool": self.tool.value,
            "connect_tool": self.connect_tool,
            "active_layer": self.active_layer.value,
            "pending_start": self.pending_start,
            "selection": sorted(self.selection),
            "grid_snap": self.grid_snap,
            "viewport": self.viewport.to_dict(),
            "settings": doc.settings.to_dict(),
            "items": [i.to_dict() for i in doc.items.values()],
            "connections": pipes,
            "drawables": [d.to_dict() for d in doc.drawables.values()],
            "background": [b.to_dict() for b in doc.background.values()],
            "drag": self.drag_preview(),
            "drawing": self.drawing_preview(),
        }
