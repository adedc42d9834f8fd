"""MCP tool handlers for vault sync.

This package contains MCP tool implementations that wrap the SyncService
with async handlers, report formatting, and structured error responses.
"""

from .errors import build_error_response, format_timestamp
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS, handle_sync_tool

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "format_timestamp",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # ToolSpec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    # Tool lists
    "SYNC_TOOLS",
    "handle_sync_tool",
]
