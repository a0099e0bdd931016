"""Screenshot providers: matplotlib render of the diagram, or nothing."""

from __future__ import annotations

import base64
import io
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog

from medgas_mcp.dxf_export import export_document

if TYPE_CHECKING:
    from medgas_mcp.entities import Document

log = structlog.get_logger()


class ScreenshotProvider(ABC):
    """Abstract screenshot provider."""

    @abstractmethod
    def capture(self) -> str | None:
        """Return base64-encoded PNG, or None if capture fails."""


class NullScreenshotProvider(ScreenshotProvider):
    """No-op provider, used when only text feedback is wanted."""

    def capture(self) -> str | None:
        return None


class MatplotlibScreenshotProvider(ScreenshotProvider):
    """Render the current diagram to PNG via ezdxf's matplotlib backend."""

    def __init__(self, doc: Document | None = None, figsize: tuple[float, float] = (12, 9), dpi: int = 100):
        self._doc = doc
        self.figsize = figsize
        self.dpi = dpi

    @property
    def doc(self) -> Document | None:
        return self._doc

    @doc.setter
    def doc(self, value: Document):
        self._doc = value

    def capture(self) -> str | None:
        if self._doc is None:
            return None
        try:
            import matplotlib

            matplotlib.use("Agg")
            import matplotlib.pyplot as plt
            from ezdxf.addons.drawing import Frontend, RenderContext
            from ezdxf.addons.drawing.matplotlib import MatplotlibBackend

            drawing = export_document(self._doc)

            fig, ax = plt.subplots(figsize=self.figsize, dpi=self.dpi)
            ax.set_aspect("equal")

            ctx = RenderContext(drawing)
            out = MatplotlibBackend(ax)
            Frontend(ctx, out).draw_layout(drawing.modelspace())

            buf = io.BytesIO()
            fig.savefig(buf, format="png", bbox_inches="tight", pad_inches=0.1)
            plt.close(fig)
            buf.seek(0)
            return base64.b64encode(buf.read()).decode("ascii")
        except Exception as e:
            log.warning("matplotlib_screenshot_failed", error=str(e))
            return None
