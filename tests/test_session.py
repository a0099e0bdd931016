"""Tests for the async diagram session."""

import json
import os
import tempfile

import ezdxf
import pytest

from medgas_mcp.screenshot import NullScreenshotProvider
from medgas_mcp.session import CommandResult, DiagramSession


@pytest.fixture
async def session():
    """Initialized session with previews disabled."""
    s = DiagramSession(NullScreenshotProvider())
    result = await s.initialize()
    assert result.ok
    await s.document_set_pixels_per_meter(50)
    return s


async def _place(session, variant, x, y, label=None):
    r = await session.item_place(variant, x, y, label=label)
    assert r.ok, r.error
    return r.payload["id"]


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class TestCommandResult:
    def test_ok_dict(self):
        assert CommandResult(ok=True, payload={"a": 1}).to_dict() == {"ok": True, "payload": {"a": 1}}

    def test_error_dict(self):
        assert CommandResult(ok=False, error="nope").to_dict() == {"ok": False, "error": "nope"}


# ---------------------------------------------------------------------------
# Document management
# ---------------------------------------------------------------------------


class TestDocument:
    async def test_status(self, session):
        r = await session.status()
        assert r.ok
        assert r.payload["session"] == "medgas"
        assert r.payload["items"] == 0
        assert r.payload["screenshots"] is False

    async def test_create_with_room_type(self, session):
        r = await session.document_create("ICU_Standard")
        assert r.ok
        assert r.payload["room_type"] == "icu_standard"
        r = await session.item_place("Terminal")
        assert r.payload["label"] == "ICU"

    async def test_save_and_open(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t_id = await _place(session, "Terminal", 300, 0)
        await session.pipe_connect(s_id, t_id, "O2")
        await session.view_zoom(2.0)

        with tempfile.NamedTemporaryFile(suffix=".json", delete=False) as f:
            path = f.name
        try:
            r = await session.document_save(path)
            assert r.ok
            with open(path, encoding="utf-8") as fh:
                assert json.load(fh)["version"] == 1

            await session.document_create()
            r = await session.document_open(path)
            assert r.ok
            assert r.payload["connections"] == 1
            assert session.editor.viewport.scale == 2.0
            assert not session.editor.history.can_undo
        finally:
            os.unlink(path)

    async def test_save_no_path(self, session):
        r = await session.document_save()
        assert not r.ok
        assert "No save path" in r.error

    async def test_open_malformed(self, session):
        with tempfile.NamedTemporaryFile(suffix=".json", delete=False, mode="w") as f:
            f.write('{"items": [{"id": 1}]}')
            path = f.name
        try:
            r = await session.document_open(path)
            assert not r.ok
            assert "missing field" in r.error
        finally:
            os.unlink(path)

    async def test_open_missing_file(self, session):
        r = await session.document_open(os.path.join(tempfile.gettempdir(), "missing_medgas_xyz.json"))
        assert not r.ok
        assert "Cannot read" in r.error

    async def test_export_and_import_dxf(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t_id = await _place(session, "Terminal", 300, 0)
        await session.pipe_connect(s_id, t_id, "MedicalAir")
        with tempfile.NamedTemporaryFile(suffix=".dxf", delete=False) as f:
            path = f.name
        try:
            r = await session.document_export_dxf(path)
            assert r.ok
            assert "MEDGAS-AIR" in ezdxf.readfile(path).layers

            r = await session.document_import_dxf(path)
            assert r.ok
            assert r.payload["segments"] > 0
        finally:
            os.unlink(path)

    async def test_import_segments_and_image(self, session):
        r = await session.document_import_segments([[0, 0, 150, 0]])
        assert r.ok
        assert r.payload["scale"] == 4.0
        r = await session.document_import_image("blob:plan", 0.25)
        assert r.ok
        assert session.editor.doc.settings.background_image_scale == 0.25
        assert not session.editor.doc.background

    async def test_invalid_scale(self, session):
        r = await session.document_set_pixels_per_meter(-1)
        assert not r.ok


# ---------------------------------------------------------------------------
# Items and pipes
# ---------------------------------------------------------------------------


class TestItemsAndPipes:
    async def test_place_and_get(self, session):
        s_id = await _place(session, "Source", 20, 40, label="O2 MANIFOLD")
        r = await session.item_get(s_id)
        assert r.ok
        assert r.payload["label"] == "O2 MANIFOLD"
        assert r.payload["connections"] == []

    async def test_invalid_variant(self, session):
        r = await session.item_place("Compressor", 0, 0)
        assert not r.ok
        assert "Compressor" in r.error

    async def test_get_missing(self, session):
        r = await session.item_get(123)
        assert not r.ok
        assert r.error == "Item 123 not found"

    async def test_list_filters_variant(self, session):
        await _place(session, "Source", 0, 0)
        await _place(session, "Valve", 0, 0)
        r = await session.item_list("Valve")
        assert r.payload["count"] == 1

    async def test_rejected_connection(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t1 = await _place(session, "Terminal", 300, 0)
        t2 = await _place(session, "Terminal", 0, 300)
        assert (await session.pipe_connect(s_id, t1, "O2")).ok
        r = await session.pipe_connect(s_id, t2, "Vacuum")
        assert not r.ok
        assert "already supplies O2" in r.error
        r = await session.pipe_list()
        assert r.payload["count"] == 1
        assert r.payload["connections"][0]["length"] == 6.0

    async def test_click_connect(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t_id = await _place(session, "Terminal", 100, 0)
        await session.pipe_set_connect_tool(True, "Vacuum")
        r = await session.pipe_click(s_id)
        assert r.payload["pending_start"] == s_id
        r = await session.pipe_click(t_id)
        assert r.payload["connection"]["gas_layer"] == "Vacuum"

    async def test_bend(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t_id = await _place(session, "Terminal", 100, 100)
        conn_id = (await session.pipe_connect(s_id, t_id)).payload["id"]
        r = await session.pipe_bend(conn_id, handle_x=80)
        assert r.payload["bend_offset"] == 30
        r = await session.pipe_bend(conn_id)
        assert not r.ok

    async def test_delete_cascades_and_undo(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t_id = await _place(session, "Terminal", 100, 0)
        conn_id = (await session.pipe_connect(s_id, t_id)).payload["id"]
        r = await session.entity_delete(s_id)
        assert r.payload == {"items": [s_id], "connections": [conn_id], "drawables": [], "background": []}
        assert (await session.undo()).ok
        assert conn_id in session.editor.doc.connections
        assert (await session.redo()).ok
        assert conn_id not in session.editor.doc.connections

    async def test_delete_unknown(self, session):
        r = await session.entity_delete(999)
        assert not r.ok


# ---------------------------------------------------------------------------
# CAD, gestures, view, reports
# ---------------------------------------------------------------------------


class TestCad:
    async def test_draw_gesture(self, session):
        r = await session.gesture_draw([[0, 0], [50, 5]])
        assert not r.ok
        await session.cad_set_mode("CAD")
        await session.cad_set_tool("LINE")
        r = await session.gesture_draw([[0, 0], [50, 5]], ortho=True)
        assert r.ok
        assert r.payload["points"] == [[0.0, 0.0], [50.0, 0.0]]

    async def test_drag_gesture(self, session):
        s_id = await _place(session, "Source", 0, 0)
        r = await session.gesture_drag(s_id, [[0, 0], [10, 10], [30, 20]])
        assert r.ok
        assert (r.payload["x"], r.payload["y"]) == (30.0, 20.0)

    async def test_transform(self, session):
        d_id = (await session.cad_rect(0, 0, 10, 10)).payload["id"]
        r = await session.cad_transform(d_id, {"width": 25})
        assert r.payload["width"] == 25
        r = await session.cad_transform(d_id, {"text": "x"})
        assert not r.ok
        r = await session.cad_transform(d_id, {"height": "tall"})
        assert not r.ok
        assert "finite number" in r.error

    async def test_selection_delete(self, session):
        d1 = (await session.cad_line([[0, 0], [1, 1]])).payload["id"]
        d2 = (await session.cad_text(5, 5, "A")).payload["id"]
        await session.selection_set([d1, d2])
        r = await session.selection_delete()
        assert sorted(r.payload["drawables"]) == sorted([d1, d2])
        assert (await session.cad_list()).payload["count"] == 0

    async def test_context_rotate(self, session):
        v_id = await _place(session, "Valve", 0, 0)
        r = await session.context_action(v_id, "ROTATE")
        assert r.payload["rotation"] == 90


class TestViewAndReports:
    async def test_zoom_and_state(self, session):
        await session.view_zoom(2.0, 0, 0)
        r = await session.view_state()
        assert r.payload["viewport"]["scale"] == 2.0
        assert r.payload["mode"] == "PIPE"

    async def test_bom(self, session):
        s_id = await _place(session, "Source", 0, 0)
        t_id = await _place(session, "Terminal", 300, 0)
        await session.pipe_connect(s_id, t_id, "O2")
        r = await session.report_bom()
        assert r.payload["pipe_length"]["O2"] == 6.0
        assert r.payload["counts"] == {"Source": 1, "Terminal": 1, "Valve": 0}

    async def test_gas_load(self, session):
        await session.document_set_room_type("ward")
        await _place(session, "Terminal", 0, 0)
        r = await session.report_gas_load()
        assert r.payload["oxygen"]["flow"] == 10
        r = await session.report_gas_load("theatre", 2)
        assert r.payload["oxygen"]["flow"] == 120

    async def test_screenshot_disabled(self, session):
        r = await session.get_screenshot()
        assert not r.ok

    async def test_nothing_to_undo(self):
        s = DiagramSession(NullScreenshotProvider())
        await s.initialize()
        r = await s.undo()
        assert not r.ok
