"""Editor constants and environment configuration."""

from __future__ import annotations

import os

import structlog

log = structlog.get_logger()


def _env_float(name: str, default: float) -> float:
    """Read a positive float from env, falling back to ``default``."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning("config_value_invalid", name=name, value=raw, default=default)
        return default
    if value <= 0:
        log.warning("config_value_not_positive", name=name, value=value, default=default)
        return default
    return value


# Grid
GRID_SIZE = 20.0

# History
HISTORY_LIMIT = 20

# Pipe length scale (view pixels per meter) and display threshold (meters)
DEFAULT_PIXELS_PER_METER = _env_float("MEDGAS_PIXELS_PER_METER", 50.0)
OVER_LENGTH_THRESHOLD = 20.0

# Lateral distance between gas layers sharing a bend column
LAYER_SPACING = 12.0

# Import auto-fit
IMPORT_TARGET_WIDTH = 600.0
BACKGROUND_ORIGIN = (100.0, 500.0)
RASTER_DEFAULT_SCALE = 0.5

# Canvas / viewport
CANVAS_WIDTH = 800.0
CANVAS_HEIGHT = 600.0
ZOOM_MIN = 0.1
ZOOM_MAX = 10.0

# Room type used for terminal labels and gas load
DEFAULT_ROOM_TYPE = os.environ.get("MEDGAS_ROOM_TYPE", "").strip().lower() or None

# Screenshot
ONLY_TEXT_FEEDBACK = os.environ.get("MEDGAS_MCP_ONLY_TEXT", "").lower() in ("1", "true", "yes")
