"""Extract background line segments from a DXF plan via ezdxf."""

from __future__ import annotations

from pathlib import Path

import ezdxf
import structlog

from medgas_mcp.errors import ImportFailed
from medgas_mcp.importer import Segment

log = structlog.get_logger()


def segments_from_drawing(doc: ezdxf.document.Drawing, flip_y: bool = True) -> list[Segment]:
    """LINE and LWPOLYLINE geometry of the modelspace as flat segments.

    Polylines contribute one segment per consecutive vertex pair, plus a
    closing segment when closed. ``flip_y`` negates Y so the plan reads
    top-down on a canvas whose Y axis points down. Other entity types are
    ignored.
    """
    sign = -1.0 if flip_y else 1.0
    segments: list[Segment] = []
    skipped = 0
    for e in doc.modelspace():
        etype = e.dxftype()
        if etype == "LINE":
            s, t = e.dxf.start, e.dxf.end
            segments.append((s.x, sign * s.y, t.x, sign * t.y))
        elif etype == "LWPOLYLINE":
            pts = [(x, y) for x, y in e.get_points(format="xy")]
            if e.closed and len(pts) > 2:
                pts.append(pts[0])
            for (x1, y1), (x2, y2) in zip(pts, pts[1:]):
                segments.append((x1, sign * y1, x2, sign * y2))
        else:
            skipped += 1
    log.info("dxf_segments_extracted", segments=len(segments), skipped_entities=skipped)
    return segments


def read_dxf_segments(path: str | Path, flip_y: bool = True) -> list[Segment]:
    """Read ``path`` and return its segments; raises :class:`ImportFailed`."""
    try:
        doc = ezdxf.readfile(str(path))
    except IOError as e:
        raise ImportFailed(f"Cannot read DXF file '{path}': {e}") from e
    except ezdxf.DXFStructureError as e:
        raise ImportFailed(f"Invalid or corrupted DXF file '{path}': {e}") from e
    return segments_from_drawing(doc, flip_y=flip_y)
