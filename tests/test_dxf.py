"""Tests for DXF import and export via ezdxf: no CAD application needed."""

import os
import tempfile

import ezdxf
import pytest

from medgas_mcp.dxf_export import GAS_LAYERS, export_document, setup_layers
from medgas_mcp.dxf_import import read_dxf_segments, segments_from_drawing
from medgas_mcp.entities import GasLayer, ItemVariant
from medgas_mcp.errors import ImportFailed


@pytest.fixture
def plan():
    """A small floor plan: one wall line and a closed room outline."""
    doc = ezdxf.new("R2013")
    msp = doc.modelspace()
    msp.add_line((0, 0), (1000, 0))
    msp.add_lwpolyline([(0, 100), (400, 100), (400, 300)], close=True)
    msp.add_circle((50, 50), 10)
    return doc


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class TestImport:
    def test_extracts_lines_and_polylines(self, plan):
        segments = segments_from_drawing(plan, flip_y=False)
        assert segments[0] == (0, 0, 1000, 0)
        # Three edges plus the closing edge
        assert len(segments) == 1 + 3
        assert segments[-1] == (400, 300, 0, 100)

    def test_flip_y(self, plan):
        segments = segments_from_drawing(plan)
        assert segments[1] == (0, -100, 400, -100)

    def test_open_polyline_has_no_closing_edge(self):
        doc = ezdxf.new("R2013")
        doc.modelspace().add_lwpolyline([(0, 0), (10, 0), (10, 10)])
        assert len(segments_from_drawing(doc)) == 2

    def test_read_from_file(self, plan):
        with tempfile.NamedTemporaryFile(suffix=".dxf", delete=False) as f:
            path = f.name
        try:
            plan.saveas(path)
            segments = read_dxf_segments(path)
            assert len(segments) == 4
        finally:
            os.unlink(path)

    def test_missing_file(self):
        with pytest.raises(ImportFailed):
            read_dxf_segments(os.path.join(tempfile.gettempdir(), "no_such_plan_xyz.dxf"))

    def test_garbage_file(self):
        with tempfile.NamedTemporaryFile(suffix=".dxf", delete=False, mode="w") as f:
            f.write("this is not a dxf file\n")
            path = f.name
        try:
            with pytest.raises(ImportFailed):
                read_dxf_segments(path)
        finally:
            os.unlink(path)

    def test_import_into_editor(self, editor, plan):
        result = editor.import_segments(segments_from_drawing(plan))
        assert result.scale == pytest.approx(0.6)
        assert len(editor.doc.background) == 4


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class TestExport:
    def test_layers(self):
        doc = ezdxf.new("R2013")
        count = setup_layers(doc)
        assert count == 7
        for name, _ in GAS_LAYERS.values():
            assert name in doc.layers
        # Idempotent
        assert setup_layers(doc) == 7

    def test_pipe_on_gas_layer(self, scenario):
        editor, s, t = scenario
        editor.connect(s.id, t.id, GasLayer.VACUUM)
        msp = export_document(editor.doc).modelspace()
        pipes = [e for e in msp if e.dxftype() == "LWPOLYLINE" and e.dxf.layer == "MEDGAS-VAC"]
        assert len(pipes) == 1
        points = [tuple(p) for p in pipes[0].get_points(format="xy")]
        assert points[0] == (0, 0)
        assert points[-1] == (300, 0)

    def test_length_annotation(self, scenario):
        editor, s, t = scenario
        editor.connect(s.id, t.id, GasLayer.O2)
        msp = export_document(editor.doc).modelspace()
        texts = [e.dxf.text for e in msp if e.dxftype() == "TEXT"]
        assert "6.00m" in texts
        assert "S" in texts and "T" in texts

    def test_items_and_y_flip(self, editor):
        editor.place_item(ItemVariant.VALVE, (40, 80))
        msp = export_document(editor.doc).modelspace()
        (circle,) = [e for e in msp if e.dxftype() == "CIRCLE"]
        assert (circle.dxf.center.x, circle.dxf.center.y) == (40, -80)

    def test_drawables_and_background(self, editor):
        editor.add_line([(0, 0), (10, 0)])
        editor.add_rect(0, 0, 20, 10)
        editor.place_text((5, 5), "NOTE")
        editor.import_segments([(0, 0, 300, 0)])
        msp = export_document(editor.doc).modelspace()
        by_layer = {}
        for e in msp:
            by_layer.setdefault(e.dxf.layer, []).append(e.dxftype())
        assert sorted(by_layer["MEDGAS-CAD"]) == ["LWPOLYLINE", "LWPOLYLINE", "TEXT"]
        (bg_line,) = [e for e in msp if e.dxf.layer == "MEDGAS-BACKGROUND"]
        # origin (100, 500) + 300 * scale 2
        assert bg_line.dxf.end.x == 700
        assert bg_line.dxf.end.y == -500

    def test_dangling_pipe_skipped(self, scenario):
        editor, s, t = scenario
        editor.connect(s.id, t.id, GasLayer.O2)
        del editor.doc.items[t.id]
        msp = export_document(editor.doc).modelspace()
        assert not [e for e in msp if e.dxf.layer == "MEDGAS-O2"]

    def test_export_saves(self, scenario):
        editor, s, t = scenario
        editor.connect(s.id, t.id, GasLayer.O2)
        with tempfile.NamedTemporaryFile(suffix=".dxf", delete=False) as f:
            path = f.name
        try:
            export_document(editor.doc).saveas(path)
            again = ezdxf.readfile(path)
            assert "MEDGAS-O2" in again.layers
        finally:
            os.unlink(path)
