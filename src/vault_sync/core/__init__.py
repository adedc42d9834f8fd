"""Core helpers shared between the CLI and the MCP server."""

from .async_utils import maybe_await, run_sync

__all__ = ["maybe_await", "run_sync"]
