"""Shared fixtures for medgas-mcp tests."""

import pytest

from medgas_mcp.editor import Editor
from medgas_mcp.entities import ItemVariant


@pytest.fixture(autouse=True)
def _isolate_session(monkeypatch):
    """Reset the session singleton between tests."""
    import medgas_mcp.client as client_mod
    monkeypatch.setattr(client_mod, "_session", None)


@pytest.fixture
def editor():
    """Empty editor at 50 px/m."""
    e = Editor()
    e.set_pixels_per_meter(50.0)
    e.history.clear()
    return e


@pytest.fixture
def scenario(editor):
    """Source at (0, 0), terminal at (300, 0), no pipes yet."""
    s = editor.place_item(ItemVariant.SOURCE, (0, 0), label="S")
    t = editor.place_item(ItemVariant.TERMINAL, (300, 0), label="T")
    return editor, s, t
