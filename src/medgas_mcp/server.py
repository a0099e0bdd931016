"""Medical gas diagram MCP server: 8 consolidated tools with operation dispatch.

Tools: document, item, pipe, cad, edit, view, report, system
"""

from __future__ import annotations

import structlog
from mcp.server.fastmcp import FastMCP

from medgas_mcp.client import (
    _json,
    _safe,
    add_screenshot_if_available,
    get_session,
)

# FastMCP validates return types via Pydantic. Tools that may return
# ImageContent (screenshot) alongside TextContent need a union return type.
ToolResult = str | list

log = structlog.get_logger()

mcp = FastMCP("medgas-mcp")


# ==========================================================================
# 1. document: Diagram file management
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas Document Operations", "readOnlyHint": False})
@_safe("document")
async def document(
    operation: str,
    path: str | None = None,
    data: dict | None = None,
    include_screenshot: bool = False,
) -> ToolResult:
    """Diagram file management and document settings.

    Operations:
      create           : Start a new empty diagram. data: {room_type?}
      info             : Settings, entity counts, viewport.
      save             : Save as JSON. path?
      open             : Load a JSON diagram. path
      export_dxf       : Write the diagram as DXF. path
      import_dxf       : Replace the background with a DXF plan. path, data: {target_width?, flip_y?}
      import_segments  : Replace the background with segments. data: {segments, flip_y?, target_width?}
      import_image     : Use a raster background. data: {handle, scale?}
      set_scale        : Pixels per meter for pipe lengths. data: {pixels_per_meter}
      set_room_type    : Room type for terminal labels and gas load. data: {room_type}
    """
    data = data or {}
    session = await get_session()

    if operation == "create":
        result = await session.document_create(data.get("room_type"))
    elif operation == "info":
        result = await session.document_info()
    elif operation == "save":
        result = await session.document_save(path)
    elif operation == "open":
        result = await session.document_open(path)
    elif operation == "export_dxf":
        result = await session.document_export_dxf(path)
    elif operation == "import_dxf":
        kwargs = {k: data[k] for k in ("target_width", "flip_y") if k in data}
        result = await session.document_import_dxf(path, **kwargs)
    elif operation == "import_segments":
        kwargs = {k: data[k] for k in ("target_width", "flip_y") if k in data}
        result = await session.document_import_segments(data["segments"], **kwargs)
    elif operation == "import_image":
        kwargs = {"scale": data["scale"]} if "scale" in data else {}
        result = await session.document_import_image(data["handle"], **kwargs)
    elif operation == "set_scale":
        result = await session.document_set_pixels_per_meter(data["pixels_per_meter"])
    elif operation == "set_room_type":
        result = await session.document_set_room_type(data.get("room_type"))
    else:
        return _json({"error": f"Unknown document operation: {operation}"})

    return await add_screenshot_if_available(result, include_screenshot)


# ==========================================================================
# 2. item: Sources, terminals and valves
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas Item Operations", "readOnlyHint": False})
@_safe("item")
async def item(
    operation: str,
    item_id: int | None = None,
    x: float | None = None,
    y: float | None = None,
    data: dict | None = None,
    include_screenshot: bool = False,
) -> ToolResult:
    """Place, query and modify diagram items.

    Operations:
      place   : data: {variant: Source|Terminal|Valve, label?, rotation?, icon?}, x?, y?
                 (omit x/y to place at the view center)
      move    : item_id, x, y
      relabel : item_id, data: {label}
      rotate  : item_id, data: {delta?} (default 90)
      delete  : item_id (attached pipes are removed too)
      list    : data: {variant?}
      get     : item_id
    """
    data = data or {}
    session = await get_session()

    if operation == "place":
        result = await session.item_place(
            data["variant"], x, y,
            label=data.get("label"), rotation=data.get("rotation", 0.0), icon=data.get("icon"),
        )
    elif operation == "move":
        result = await session.item_move(item_id, x, y)
    elif operation == "relabel":
        result = await session.item_relabel(item_id, data["label"])
    elif operation == "rotate":
        result = await session.entity_rotate(item_id, data.get("delta", 90.0))
    elif operation == "delete":
        result = await session.entity_delete(item_id)
    elif operation == "list":
        result = await session.item_list(data.get("variant"))
    elif operation == "get":
        result = await session.item_get(item_id)
    else:
        return _json({"error": f"Unknown item operation: {operation}"})

    return await add_screenshot_if_available(result, include_screenshot)


# ==========================================================================
# 3. pipe: Gas connections
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas Pipe Operations", "readOnlyHint": False})
@_safe("pipe")
async def pipe(
    operation: str,
    start: int | None = None,
    end: int | None = None,
    connection_id: int | None = None,
    gas_layer: str | None = None,
    data: dict | None = None,
    include_screenshot: bool = False,
) -> ToolResult:
    """Connect items with orthogonally routed pipes.

    Operations:
      connect      : start, end, gas_layer? (O2|MedicalAir|Vacuum, default: active layer)
      connect_tool : data: {enabled}, gas_layer? (arm two-click connecting)
      click        : data: {item_id?} (omit item_id to click empty canvas)
      bend         : connection_id, data: {handle_x} or data: {bend_offset}
      delete       : connection_id
      list         : gas_layer? → per-pipe labels, length, over-length flag
    """
    data = data or {}
    session = await get_session()

    if operation == "connect":
        result = await session.pipe_connect(start, end, gas_layer)
    elif operation == "connect_tool":
        result = await session.pipe_set_connect_tool(data["enabled"], gas_layer)
    elif operation == "click":
        result = await session.pipe_click(data.get("item_id"))
    elif operation == "bend":
        result = await session.pipe_bend(connection_id, data.get("handle_x"), data.get("bend_offset"))
    elif operation == "delete":
        result = await session.entity_delete(connection_id)
    elif operation == "list":
        result = await session.pipe_list(gas_layer)
    else:
        return _json({"error": f"Unknown pipe operation: {operation}"})

    return await add_screenshot_if_available(result, include_screenshot)


# ==========================================================================
# 4. cad: Free-form annotation shapes
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas CAD Operations", "readOnlyHint": False})
@_safe("cad")
async def cad(
    operation: str,
    drawable_id: int | None = None,
    points: list[list[float]] | None = None,
    data: dict | None = None,
    include_screenshot: bool = False,
) -> ToolResult:
    """Editor mode, drawing tools and annotation drawables.

    Operations:
      mode      : data: {mode: PIPE|CAD}
      tool      : data: {tool: SELECT|LINE|RECT|TEXT}
      line      : points: [[x,y],...], data: {stroke?}
      rect      : data: {x, y, width, height, stroke?, fill?, rotation?}
      text      : data: {x, y, text, font_size?}
      move      : drawable_id, data: {dx, dy}
      transform : drawable_id, data: {changes: {attr: value}}
      rotate    : drawable_id, data: {delta?}
      delete    : drawable_id
      list      : All drawables.
    """
    data = data or {}
    session = await get_session()

    if operation == "mode":
        result = await session.cad_set_mode(data["mode"])
    elif operation == "tool":
        result = await session.cad_set_tool(data["tool"])
    elif operation == "line":
        result = await session.cad_line(points or [], data.get("stroke", "#000000"))
    elif operation == "rect":
        result = await session.cad_rect(
            data["x"], data["y"], data["width"], data["height"],
            stroke=data.get("stroke", "#000000"), fill=data.get("fill"), rotation=data.get("rotation", 0.0),
        )
    elif operation == "text":
        result = await session.cad_text(data["x"], data["y"], data["text"], data.get("font_size", 14.0))
    elif operation == "move":
        result = await session.cad_move(drawable_id, data["dx"], data["dy"])
    elif operation == "transform":
        result = await session.cad_transform(drawable_id, data.get("changes", {}))
    elif operation == "rotate":
        result = await session.entity_rotate(drawable_id, data.get("delta", 90.0))
    elif operation == "delete":
        result = await session.entity_delete(drawable_id)
    elif operation == "list":
        result = await session.cad_list()
    else:
        return _json({"error": f"Unknown cad operation: {operation}"})

    return await add_screenshot_if_available(result, include_screenshot)


# ==========================================================================
# 5. edit: Selection, gestures, context menu, undo/redo
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas Edit Operations", "readOnlyHint": False})
@_safe("edit")
async def edit(
    operation: str,
    entity_id: int | None = None,
    ids: list[int] | None = None,
    path: list[list[float]] | None = None,
    data: dict | None = None,
    include_screenshot: bool = False,
) -> ToolResult:
    """Interactive editing.

    Operations:
      select          : ids: [...]
      toggle          : entity_id
      clear_selection : Empty the selection.
      delete_selected : Delete every selected entity as one undo step.
      context         : entity_id, data: {action: DELETE|ROTATE}
      drag            : entity_id, path: [[x,y],...] (world coords; items/bends in PIPE, drawables in CAD)
      draw            : path: [[x,y],...], data: {ortho?} (CAD mode, LINE or RECT tool)
      undo            : Step back one edit.
      redo            : Step forward one edit.
    """
    data = data or {}
    session = await get_session()

    if operation == "select":
        result = await session.selection_set(ids or [])
    elif operation == "toggle":
        result = await session.selection_toggle(entity_id)
    elif operation == "clear_selection":
        result = await session.selection_clear()
    elif operation == "delete_selected":
        result = await session.selection_delete()
    elif operation == "context":
        result = await session.context_action(entity_id, data["action"])
    elif operation == "drag":
        result = await session.gesture_drag(entity_id, path or [])
    elif operation == "draw":
        result = await session.gesture_draw(path or [], data.get("ortho", False))
    elif operation == "undo":
        result = await session.undo()
    elif operation == "redo":
        result = await session.redo()
    else:
        return _json({"error": f"Unknown edit operation: {operation}"})

    return await add_screenshot_if_available(result, include_screenshot)


# ==========================================================================
# 6. view: Viewport and screenshot
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas View Operations", "readOnlyHint": True})
@_safe("view")
async def view(
    operation: str,
    x: float | None = None,
    y: float | None = None,
    data: dict | None = None,
) -> ToolResult:
    """Viewport control, render state and screenshot capture.

    Operations:
      zoom          : data: {factor}, x?, y? (pointer in view coords; default view center)
      pan           : data: {dx, dy}
      reset         : Scale 1, no translation.
      grid_snap     : data: {enabled}
      state         : Full render snapshot (routes, lengths, selection, gestures).
      get_screenshot: Render the diagram as PNG image.
    """
    data = data or {}
    session = await get_session()

    if operation == "zoom":
        result = await session.view_zoom(data["factor"], x, y)
    elif operation == "pan":
        result = await session.view_pan(data["dx"], data["dy"])
    elif operation == "reset":
        result = await session.view_reset()
    elif operation == "grid_snap":
        result = await session.view_set_grid_snap(data["enabled"])
    elif operation == "state":
        result = await session.view_state()
    elif operation == "get_screenshot":
        result = await session.get_screenshot()
        if result.ok and result.payload:
            from mcp.types import ImageContent, TextContent

            return [
                TextContent(type="text", text=_json({"ok": True, "screenshot": "attached"})),
                ImageContent(type="image", data=result.payload, mimeType="image/png"),
            ]
        return _json(result.to_dict())
    else:
        return _json({"error": f"Unknown view operation: {operation}"})

    return _json(result.to_dict())


# ==========================================================================
# 7. report: Bill of materials and gas load
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas Reports", "readOnlyHint": True})
@_safe("report")
async def report(
    operation: str,
    data: dict | None = None,
) -> ToolResult:
    """Quantities and design flows.

    Operations:
      bom      : Item counts per variant, pipe meters per gas, over-length pipes.
      rows     : One row per pipe: labels, gas, length, over-length flag.
      gas_load : data: {room_type?, bed_count?} (defaults: document room type, terminal count)
    """
    data = data or {}
    session = await get_session()

    if operation == "bom":
        result = await session.report_bom()
    elif operation == "rows":
        result = await session.report_rows()
    elif operation == "gas_load":
        result = await session.report_gas_load(data.get("room_type"), data.get("bed_count"))
    else:
        return _json({"error": f"Unknown report operation: {operation}"})

    return _json(result.to_dict())


# ==========================================================================
# 8. system: Server management
# ==========================================================================


@mcp.tool(annotations={"title": "Medical Gas MCP System", "readOnlyHint": True})
@_safe("system")
async def system(
    operation: str,
    include_screenshot: bool = False,
) -> ToolResult:
    """Server status and management.

    Operations:
      status  : Session info, entity counts, history position.
      health  : Quick health check.
      runtime : Process/runtime details.
      init    : Discard the session and start a fresh one.
    """
    if operation == "status":
        session = await get_session()
        result = await session.status()
        return await add_screenshot_if_available(result, include_screenshot)
    elif operation == "health":
        try:
            session = await get_session()
            result = await session.status()
            return _json({"ok": result.ok, "session": session.name})
        except Exception as e:
            return _json({"ok": False, "error": str(e)})
    elif operation == "runtime":
        import os
        import sys

        return _json(
            {
                "ok": True,
                "platform": sys.platform,
                "python": sys.executable,
                "cwd": os.getcwd(),
                "room_type_env": os.environ.get("MEDGAS_ROOM_TYPE", ""),
                "only_text": os.environ.get("MEDGAS_MCP_ONLY_TEXT", ""),
            }
        )
    elif operation == "init":
        # Force re-initialization
        from medgas_mcp import client
        client._session = None
        session = await get_session()
        result = await session.status()
        return _json(result.to_dict())
    else:
        return _json({"error": f"Unknown system operation: {operation}"})


# ==========================================================================
# Main entry point
# ==========================================================================


def main():
    """Run the MCP server on stdio transport."""
    import logging
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
    )

    log.info("medgas_mcp_starting", version="0.1.0")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
