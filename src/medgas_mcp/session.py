"""Async diagram session wrapping the editor + CommandResult envelope."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import ezdxf
import structlog

from medgas_mcp import serialization
from medgas_mcp.config import DEFAULT_ROOM_TYPE, IMPORT_TARGET_WIDTH, RASTER_DEFAULT_SCALE
from medgas_mcp.dxf_export import export_document
from medgas_mcp.dxf_import import read_dxf_segments
from medgas_mcp.editor import ContextAction, Editor, Mode, Tool
from medgas_mcp.entities import GasLayer, ItemVariant
from medgas_mcp.errors import DiagramError
from medgas_mcp.gas_load import calculate_gas_load
from medgas_mcp.screenshot import MatplotlibScreenshotProvider, NullScreenshotProvider, ScreenshotProvider

log = structlog.get_logger()


@dataclass
class CommandResult:
    """Structured result envelope from session operations."""

    ok: bool
    payload: Any = None
    error: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            d["payload"] = self.payload
        else:
            d["error"] = self.error
        return d


def _command(fn):
    """Turn domain errors raised by ``fn`` into a failed CommandResult."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except (DiagramError, ValueError) as e:
            log.info("command_failed", command=fn.__name__, error=str(e))
            return CommandResult(ok=False, error=str(e))

    return wrapper


def _removed(removed: dict[str, list]) -> dict:
    return {key: [e.id for e in entities] for key, entities in removed.items()}


class DiagramSession:
    """One editable medical-gas diagram plus its file and preview plumbing."""

    def __init__(self, screenshot: ScreenshotProvider | None = None):
        self.editor = Editor()
        self._save_path: str | None = None
        self._screenshot = screenshot if screenshot is not None else MatplotlibScreenshotProvider()

    @property
    def name(self) -> str:
        return "medgas"

    async def initialize(self) -> CommandResult:
        self.editor.new_document(DEFAULT_ROOM_TYPE)
        self._save_path = None
        return CommandResult(ok=True, payload={"session": self.name, "ezdxf_version": ezdxf.__version__})

    async def status(self) -> CommandResult:
        doc = self.editor.doc
        history = self.editor.history
        return CommandResult(ok=True, payload={
            "session": self.name,
            "mode": self.editor.mode.value,
            "items": len(doc.items),
            "connections": len(doc.connections),
            "drawables": len(doc.drawables),
            "background": len(doc.background),
            "history_step": history.step,
            "can_undo": history.can_undo,
            "can_redo": history.can_redo,
            "save_path": self._save_path,
            "screenshots": not isinstance(self._screenshot, NullScreenshotProvider),
        })

    # --- Document management ---

    async def document_create(self, room_type: str | None = None) -> CommandResult:
        self.editor.new_document(room_type or DEFAULT_ROOM_TYPE)
        self._save_path = None
        log.info("document_created", room_type=self.editor.doc.settings.room_type)
        return CommandResult(ok=True, payload=self.editor.doc.settings.to_dict())

    async def document_info(self) -> CommandResult:
        doc = self.editor.doc
        return CommandResult(ok=True, payload={
            "settings": doc.settings.to_dict(),
            "counts": {
                "items": len(doc.items),
                "connections": len(doc.connections),
                "drawables": len(doc.drawables),
                "background": len(doc.background),
            },
            "viewport": self.editor.viewport.to_dict(),
            "grid_snap": self.editor.grid_snap,
            "save_path": self._save_path,
        })

    async def document_save(self, path: str | None = None) -> CommandResult:
        save_path = path or self._save_path
        if not save_path:
            return CommandResult(ok=False, error="No save path specified")
        text = serialization.dumps(self.editor.doc, self.editor.viewport, self.editor.grid_snap)
        try:
            Path(save_path).write_text(text, encoding="utf-8")
        except OSError as e:
            return CommandResult(ok=False, error=f"Cannot write '{save_path}': {e}")
        self._save_path = save_path
        log.info("document_saved", path=save_path)
        return CommandResult(ok=True, payload={"path": save_path})

    @_command
    async def document_open(self, path: str) -> CommandResult:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            return CommandResult(ok=False, error=f"Cannot read '{path}': {e}")
        doc, viewport, grid_snap = serialization.loads(text)
        self.editor.load_document(doc, viewport, grid_snap)
        self._save_path = path
        return CommandResult(ok=True, payload={"path": path, "items": len(doc.items), "connections": len(doc.connections)})

    async def document_export_dxf(self, path: str) -> CommandResult:
        drawing = export_document(self.editor.doc)
        try:
            drawing.saveas(path)
        except OSError as e:
            return CommandResult(ok=False, error=f"Cannot write '{path}': {e}")
        return CommandResult(ok=True, payload={"path": path, "entity_count": len(drawing.modelspace())})

    @_command
    async def document_import_dxf(
        self, path: str, target_width: float = IMPORT_TARGET_WIDTH, flip_y: bool = True,
    ) -> CommandResult:
        segments = read_dxf_segments(path, flip_y=flip_y)
        result = self.editor.import_segments(segments, target_width=target_width)
        return CommandResult(ok=True, payload={"segments": len(result.segments), "scale": result.scale})

    @_command
    async def document_import_segments(
        self, segments: list, flip_y: bool = False, target_width: float = IMPORT_TARGET_WIDTH,
    ) -> CommandResult:
        result = self.editor.import_segments(segments, flip_y=flip_y, target_width=target_width)
        return CommandResult(ok=True, payload={"segments": len(result.segments), "scale": result.scale})

    @_command
    async def document_import_image(self, handle: str, scale: float = RASTER_DEFAULT_SCALE) -> CommandResult:
        self.editor.import_image(handle, scale)
        return CommandResult(ok=True, payload={"handle": handle, "scale": scale})

    @_command
    async def document_set_pixels_per_meter(self, value: float) -> CommandResult:
        self.editor.set_pixels_per_meter(value)
        return CommandResult(ok=True, payload={"pixels_per_meter": value})

    @_command
    async def document_set_room_type(self, room_type: str | None) -> CommandResult:
        self.editor.set_room_type(room_type)
        return CommandResult(ok=True, payload={"room_type": self.editor.doc.settings.room_type})

    # --- Items ---

    @_command
    async def item_place(
        self,
        variant: str,
        x: float | None = None,
        y: float | None = None,
        label: str | None = None,
        rotation: float = 0.0,
        icon: str | None = None,
    ) -> CommandResult:
        at = (x, y) if x is not None and y is not None else None
        item = self.editor.place_item(ItemVariant(variant), at, label=label, rotation=rotation, icon=icon)
        return CommandResult(ok=True, payload=item.to_dict())

    @_command
    async def item_move(self, item_id: int, x: float, y: float) -> CommandResult:
        return CommandResult(ok=True, payload=self.editor.move_item(item_id, x, y).to_dict())

    @_command
    async def item_relabel(self, item_id: int, label: str) -> CommandResult:
        return CommandResult(ok=True, payload=self.editor.relabel_item(item_id, label).to_dict())

    @_command
    async def item_list(self, variant: str | None = None) -> CommandResult:
        wanted = ItemVariant(variant) if variant else None
        items = [i.to_dict() for i in self.editor.doc.items.values() if wanted is None or i.variant is wanted]
        return CommandResult(ok=True, payload={"items": items, "count": len(items)})

    @_command
    async def item_get(self, item_id: int) -> CommandResult:
        item = self.editor.store.get_item(item_id)
        payload = item.to_dict()
        payload["connections"] = [c.id for c in self.editor.store.connections_of(item_id)]
        return CommandResult(ok=True, payload=payload)

    # --- Pipes ---

    @_command
    async def pipe_connect(self, start: int, end: int, gas_layer: str | None = None) -> CommandResult:
        conn = self.editor.connect(start, end, GasLayer(gas_layer) if gas_layer else None)
        return CommandResult(ok=True, payload=conn.to_dict())

    @_command
    async def pipe_set_connect_tool(self, enabled: bool, gas_layer: str | None = None) -> CommandResult:
        self.editor.set_connect_tool(enabled)
        if gas_layer:
            self.editor.set_active_layer(GasLayer(gas_layer))
        return CommandResult(ok=True, payload={
            "connect_tool": self.editor.connect_tool,
            "active_layer": self.editor.active_layer.value,
        })

    @_command
    async def pipe_click(self, item_id: int | None = None) -> CommandResult:
        """Click an item (``item_id``) or the empty canvas (``None``)."""
        if item_id is None:
            self.editor.click_canvas()
            conn = None
        else:
            conn = self.editor.click_item(item_id)
        return CommandResult(ok=True, payload={
            "connection": conn.to_dict() if conn else None,
            "pending_start": self.editor.pending_start,
            "selection": sorted(self.editor.selection),
        })

    @_command
    async def pipe_bend(
        self, connection_id: int, handle_x: float | None = None, bend_offset: float | None = None,
    ) -> CommandResult:
        if bend_offset is not None:
            conn = self.editor.set_bend_offset(connection_id, bend_offset)
        elif handle_x is not None:
            conn = self.editor.set_bend(connection_id, handle_x)
        else:
            return CommandResult(ok=False, error="Either handle_x or bend_offset is required")
        return CommandResult(ok=True, payload=conn.to_dict())

    async def pipe_list(self, gas_layer: str | None = None) -> CommandResult:
        rows = [
            r.to_dict() for r in self.editor.report_rows()
            if gas_layer is None or r.gas_layer.value == gas_layer
        ]
        return CommandResult(ok=True, payload={"connections": rows, "count": len(rows)})

    # --- CAD drawables ---

    @_command
    async def cad_set_mode(self, mode: str) -> CommandResult:
        self.editor.set_mode(Mode(mode))
        return CommandResult(ok=True, payload={"mode": self.editor.mode.value})

    @_command
    async def cad_set_tool(self, tool: str) -> CommandResult:
        self.editor.set_tool(Tool(tool))
        return CommandResult(ok=True, payload={"tool": self.editor.tool.value})

    @_command
    async def cad_line(self, points: list[list[float]], stroke: str = "#000000") -> CommandResult:
        d = self.editor.add_line([(p[0], p[1]) for p in points], stroke=stroke)
        return CommandResult(ok=True, payload=d.to_dict())

    @_command
    async def cad_rect(
        self, x: float, y: float, width: float, height: float,
        stroke: str = "#000000", fill: str | None = None, rotation: float = 0.0,
    ) -> CommandResult:
        d = self.editor.add_rect(x, y, width, height, stroke=stroke, fill=fill, rotation=rotation)
        return CommandResult(ok=True, payload=d.to_dict())

    @_command
    async def cad_text(self, x: float, y: float, text: str, font_size: float = 14.0) -> CommandResult:
        d = self.editor.place_text((x, y), text, font_size=font_size)
        return CommandResult(ok=True, payload=d.to_dict())

    @_command
    async def cad_move(self, drawable_id: int, dx: float, dy: float) -> CommandResult:
        return CommandResult(ok=True, payload=self.editor.move_drawable(drawable_id, dx, dy).to_dict())

    @_command
    async def cad_transform(self, drawable_id: int, changes: dict) -> CommandResult:
        try:
            d = self.editor.transform_drawable(drawable_id, **changes)
        except AttributeError as e:
            return CommandResult(ok=False, error=str(e))
        return CommandResult(ok=True, payload=d.to_dict())

    async def cad_list(self) -> CommandResult:
        drawables = [d.to_dict() for d in self.editor.doc.drawables.values()]
        return CommandResult(ok=True, payload={"drawables": drawables, "count": len(drawables)})

    # --- Generic entity commands ---

    async def entity_rotate(self, entity_id: int, delta: float = 90.0) -> CommandResult:
        entity = self.editor.rotate(entity_id, delta)
        if entity is None:
            return CommandResult(ok=False, error=f"Entity {entity_id} cannot be rotated")
        return CommandResult(ok=True, payload=entity.to_dict())

    async def entity_delete(self, entity_id: int) -> CommandResult:
        removed = self.editor.delete(entity_id)
        if not any(removed.values()):
            return CommandResult(ok=False, error=f"Entity {entity_id} not found")
        return CommandResult(ok=True, payload=_removed(removed))

    # --- Selection & context menu ---

    async def selection_set(self, ids: list[int]) -> CommandResult:
        self.editor.select(ids)
        return CommandResult(ok=True, payload={"selection": sorted(self.editor.selection)})

    async def selection_toggle(self, entity_id: int) -> CommandResult:
        self.editor.toggle_selection(entity_id)
        return CommandResult(ok=True, payload={"selection": sorted(self.editor.selection)})

    async def selection_clear(self) -> CommandResult:
        self.editor.clear_selection()
        return CommandResult(ok=True, payload={"selection": []})

    async def selection_delete(self) -> CommandResult:
        return CommandResult(ok=True, payload=_removed(self.editor.delete_selected()))

    @_command
    async def context_action(self, entity_id: int, action: str) -> CommandResult:
        self.editor.open_context_menu(entity_id)
        result = self.editor.context_action(ContextAction(action))
        if result is None:
            return CommandResult(ok=False, error=f"Entity {entity_id} cannot be rotated")
        if isinstance(result, dict):
            return CommandResult(ok=True, payload=_removed(result))
        return CommandResult(ok=True, payload=result.to_dict())

    # --- Gestures ---

    async def gesture_drag(self, entity_id: int, path: list[list[float]]) -> CommandResult:
        """Replay a pointer drag: press at ``path[0]``, move through the rest, release."""
        if not path:
            return CommandResult(ok=False, error="Drag path is empty")
        if not self.editor.begin_drag(entity_id, (path[0][0], path[0][1])):
            return CommandResult(ok=False, error=f"Entity {entity_id} cannot be dragged in {self.editor.mode.value} mode")
        for p in path[1:]:
            self.editor.update_drag((p[0], p[1]))
        entity = self.editor.end_drag()
        return CommandResult(ok=True, payload=entity.to_dict() if entity is not None else None)

    async def gesture_draw(self, path: list[list[float]], ortho: bool = False) -> CommandResult:
        """Replay a drawing gesture with the active CAD tool."""
        if not path:
            return CommandResult(ok=False, error="Drawing path is empty")
        if not self.editor.pointer_down((path[0][0], path[0][1])):
            return CommandResult(ok=False, error="Drawing requires CAD mode with the LINE or RECT tool")
        for p in path[1:]:
            self.editor.pointer_move((p[0], p[1]), ortho=ortho)
        d = self.editor.pointer_up()
        return CommandResult(ok=True, payload=d.to_dict() if d is not None else None)

    # --- Undo / Redo ---

    async def undo(self) -> CommandResult:
        if not self.editor.undo():
            return CommandResult(ok=False, error="Nothing to undo")
        return CommandResult(ok=True, payload={"history_step": self.editor.history.step})

    async def redo(self) -> CommandResult:
        if not self.editor.redo():
            return CommandResult(ok=False, error="Nothing to redo")
        return CommandResult(ok=True, payload={"history_step": self.editor.history.step})

    # --- View ---

    async def view_zoom(self, factor: float, x: float | None = None, y: float | None = None) -> CommandResult:
        vp = self.editor.viewport
        pointer = (x, y) if x is not None and y is not None else (vp.width / 2, vp.height / 2)
        vp.zoom_by(pointer, factor)
        return CommandResult(ok=True, payload=vp.to_dict())

    async def view_pan(self, dx: float, dy: float) -> CommandResult:
        self.editor.viewport.pan(dx, dy)
        return CommandResult(ok=True, payload=self.editor.viewport.to_dict())

    async def view_reset(self) -> CommandResult:
        self.editor.viewport.reset()
        return CommandResult(ok=True, payload=self.editor.viewport.to_dict())

    async def view_set_grid_snap(self, enabled: bool) -> CommandResult:
        self.editor.set_grid_snap(enabled)
        return CommandResult(ok=True, payload={"grid_snap": self.editor.grid_snap})

    async def view_state(self) -> CommandResult:
        return CommandResult(ok=True, payload=self.editor.render_state())

    async def get_screenshot(self) -> CommandResult:
        if isinstance(self._screenshot, MatplotlibScreenshotProvider):
            self._screenshot.doc = self.editor.doc
        data = self._screenshot.capture()
        if data:
            return CommandResult(ok=True, payload=data)
        return CommandResult(ok=False, error="Screenshot render failed")

    # --- Reports ---

    async def report_bom(self) -> CommandResult:
        return CommandResult(ok=True, payload=self.editor.bill_of_materials().to_dict())

    async def report_rows(self) -> CommandResult:
        return CommandResult(ok=True, payload=[r.to_dict() for r in self.editor.report_rows()])

    async def report_gas_load(self, room_type: str | None = None, bed_count: int | None = None) -> CommandResult:
        if bed_count is not None:
            load = calculate_gas_load(room_type or self.editor.doc.settings.room_type, bed_count)
        else:
            load = self.editor.gas_load(room_type)
        return CommandResult(ok=True, payload=load.to_dict())
