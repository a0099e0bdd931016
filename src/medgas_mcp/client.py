"""Lazy session singleton, _safe/_error/_json helpers, screenshot utility."""

from __future__ import annotations

import functools
import json
from typing import Any

import structlog
from mcp.types import ImageContent, TextContent

from medgas_mcp.config import ONLY_TEXT_FEEDBACK
from medgas_mcp.screenshot import MatplotlibScreenshotProvider, NullScreenshotProvider
from medgas_mcp.session import CommandResult, DiagramSession

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Lazy session singleton
# ---------------------------------------------------------------------------

_session: DiagramSession | None = None


async def get_session() -> DiagramSession:
    """Return (and lazily initialize) the session singleton."""
    global _session
    if _session is not None:
        return _session

    screenshot = NullScreenshotProvider() if ONLY_TEXT_FEEDBACK else MatplotlibScreenshotProvider()
    _session = DiagramSession(screenshot)

    result = await _session.initialize()
    if not result.ok:
        _session = None
        raise RuntimeError(f"Session init failed: {result.error}")

    log.info("session_initialized", session=_session.name)
    return _session


# ---------------------------------------------------------------------------
# JSON serialization helper
# ---------------------------------------------------------------------------


def _json(data: Any) -> str:
    """Serialize to compact JSON string."""
    return json.dumps(data, default=str, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Error formatting with actionable hints
# ---------------------------------------------------------------------------


def _error(e: Exception, context: str = "") -> str:
    """Format an exception with an actionable hint."""
    msg = str(e)
    msg_lower = msg.lower()

    if "already supplies" in msg_lower:
        hint = "A source feeds a single gas. Pick the source's existing gas_layer or place another Source."
    elif "not found" in msg_lower:
        hint = "Unknown id. List current ids with item(operation='list') or pipe(operation='list')."
    elif "is not a valid" in msg_lower:
        hint = "Invalid enum value. Variants: Source, Terminal, Valve. Gas layers: O2, MedicalAir, Vacuum."
    elif "dxf" in msg_lower:
        hint = "Check the DXF path exists and the file opens in a CAD viewer."
    elif isinstance(e, KeyError):
        hint = f"Missing required field {msg} in data."
    else:
        hint = "Unexpected error. Check system(operation='status') and retry."

    return _json({"error": f"[{context}] {msg}" if context else msg, "hint": hint})


# ---------------------------------------------------------------------------
# _safe decorator for tool error handling
# ---------------------------------------------------------------------------


def _safe(tool_name: str):
    """Wrap an async tool handler with uniform error handling."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                op = kwargs.get("operation", "unknown")
                log.error("tool_error", tool=tool_name, operation=op, error=str(e))
                return _error(e, f"{tool_name}.{op}")

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Screenshot helper
# ---------------------------------------------------------------------------


def _format_result(
    result: CommandResult,
    include_screenshot: bool = False,
    screenshot_data: str | None = None,
) -> list[TextContent | ImageContent] | str:
    """Format a CommandResult for MCP response.

    Returns a list with TextContent + optional ImageContent if a screenshot
    was requested, or a plain JSON string otherwise.
    """
    text = _json(result.to_dict())

    if not include_screenshot or ONLY_TEXT_FEEDBACK or not screenshot_data:
        return text

    return [
        TextContent(type="text", text=text),
        ImageContent(
            type="image",
            data=screenshot_data,
            mimeType="image/png",
        ),
    ]


async def add_screenshot_if_available(
    result: CommandResult,
    include_screenshot: bool = False,
) -> list[TextContent | ImageContent] | str:
    """Conditionally append a diagram preview to the result."""
    if not include_screenshot or ONLY_TEXT_FEEDBACK:
        return _json(result.to_dict())

    session = await get_session()
    screenshot_result = await session.get_screenshot()

    if screenshot_result.ok and screenshot_result.payload:
        return _format_result(result, True, screenshot_result.payload)

    return _json(result.to_dict())
