"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..config import load_runtime_config
from ..logger import apply_configured_file, apply_configured_level
from ..service import SyncService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
    log_file: str | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env, YAML config files and CLI overrides
      (CLI > env vars > .env > YAML > defaults)
    - Create the SyncService and start its configured trigger mode
    - Fail fast if the configuration is unusable

    On shutdown:
    - Stop the change watcher and the scheduler

    Args:
        config_overrides: Optional dict with config values from CLI
            (config, vault, state_file, sync_deletions)
        log_file: Log file given on the command line. When unset, the
            config file's ``logging.file`` is used.

    Yields:
        Dict with 'service' key containing the running SyncService

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("Vault Sync MCP Server starting...")

    try:
        config, sources = load_runtime_config(config_overrides)
        apply_configured_level("mcp", config.logging.level)
        if not log_file:
            apply_configured_file("mcp", config.logging.file)
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Vault: %s", config.vault.path)
        _stderr_print(f"  Vault: {config.vault.path}")
        service = SyncService(config)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure VAULT_SYNC_VAULT_PATH or vault.path is set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure VAULT_SYNC_VAULT_PATH or vault.path is set."
        ) from e

    _stderr_print(
        f"  Mappings: {len(config.mappings)} "
        f"({sum(1 for m in config.mappings if m.enabled)} enabled)"
    )
    _stderr_print(f"  Sync mode: {config.sync.mode}")

    await service.start()
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"service": service}
    finally:
        await service.stop()
        logger.info("MCP server shutting down")
        _stderr_print("Vault Sync MCP Server shutting down.")
