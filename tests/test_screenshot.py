"""Tests for screenshot providers."""

import base64

import pytest

from medgas_mcp.entities import GasLayer, ItemVariant
from medgas_mcp.screenshot import MatplotlibScreenshotProvider, NullScreenshotProvider


# ---------------------------------------------------------------------------
# NullScreenshotProvider
# ---------------------------------------------------------------------------


class TestNullProvider:
    def test_returns_none(self):
        provider = NullScreenshotProvider()
        assert provider.capture() is None

    def test_multiple_calls_return_none(self):
        provider = NullScreenshotProvider()
        for _ in range(5):
            assert provider.capture() is None


# ---------------------------------------------------------------------------
# MatplotlibScreenshotProvider
# ---------------------------------------------------------------------------


@pytest.fixture
def diagram(scenario):
    editor, s, t = scenario
    editor.connect(s.id, t.id, GasLayer.O2)
    editor.place_item(ItemVariant.VALVE, (300, 200))
    return editor.doc


class TestMatplotlibProvider:
    def test_no_doc_returns_none(self):
        provider = MatplotlibScreenshotProvider()
        assert provider.capture() is None

    def test_empty_diagram_renders(self, editor):
        provider = MatplotlibScreenshotProvider(editor.doc)
        result = provider.capture()
        # Empty diagram should still render (blank image)
        assert result is not None
        decoded = base64.b64decode(result)
        assert decoded[:4] == b"\x89PNG"

    def test_diagram_renders(self, diagram):
        provider = MatplotlibScreenshotProvider(diagram)
        result = provider.capture()
        assert result is not None

        decoded = base64.b64decode(result)
        assert decoded[:8] == b"\x89PNG\r\n\x1a\n"
        assert len(decoded) > 1000

    def test_doc_setter(self, diagram):
        provider = MatplotlibScreenshotProvider()
        assert provider.doc is None
        provider.doc = diagram
        assert provider.doc is diagram

    def test_image_dimensions_reasonable(self, diagram):
        provider = MatplotlibScreenshotProvider(diagram, figsize=(8, 6), dpi=100)
        img_bytes = base64.b64decode(provider.capture())

        # IHDR is the first chunk after the 8-byte signature:
        # 4 bytes length, 4 bytes type, 4 bytes width, 4 bytes height
        assert img_bytes[12:16] == b"IHDR"
        width = int.from_bytes(img_bytes[16:20], "big")
        height = int.from_bytes(img_bytes[20:24], "big")
        assert 50 < width < 2000, f"Width {width} out of range"
        assert 50 < height < 2000, f"Height {height} out of range"

    def test_render_failure_returns_none(self, diagram, monkeypatch):
        import medgas_mcp.screenshot as screenshot_mod

        def boom(doc):
            raise RuntimeError("render backend exploded")

        monkeypatch.setattr(screenshot_mod, "export_document", boom)
        assert MatplotlibScreenshotProvider(diagram).capture() is None
