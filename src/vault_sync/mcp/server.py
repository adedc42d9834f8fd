"""MCP Server for project/vault document sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents trigger and inspect syncs between project documentation folders
and an Obsidian-style vault.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import DEFAULT_MCP_LOG_FILE, setup_logging
from ..service import SyncService
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("vault-sync-mcp")

# Global service instance (initialized in lifespan)
_service: SyncService | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- report that the service is up."""
    vault = service.vault_store.base_path
    if not vault.is_dir():
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Vault directory not found: {vault}. Check VAULT_SYNC_VAULT_PATH or vault.path.",
                )
            ],
            isError=True,
        )
    enabled = sum(1 for m in service.mappings if m.enabled)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=(
                    f"Vault Sync MCP server running (version {__version__}). "
                    f"Vault: {vault}; {enabled} enabled mapping(s)."
                ),
            )
        ]
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Check that the vault sync server is running and the vault is reachable",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    read_only=True,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_service() -> SyncService:
    """Get the global SyncService instance.

    Raises:
        RuntimeError: If service is not initialized
    """
    if _service is None:
        raise RuntimeError(
            "SyncService not initialized. Server lifespan not started."
        )
    return _service


def set_service(service: SyncService | None) -> None:
    """Set the global SyncService instance, or None to clear."""
    global _service
    _service = service


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools from the ToolRegistry."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    service = get_service()
    try:
        return await get_registry().call_tool(name, arguments, service)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), starts the
    sync service via the lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (config, vault, state_file, sync_deletions, log_file, read_only)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    read_only = bool(overrides.pop("read_only", False))

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file)

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_service() is called here rather than inside the lifespan so that
    # running this file as __main__ updates the module the handlers use.
    async with server_lifespan(
        config_overrides=overrides or None, log_file=log_file
    ) as ctx:
        set_service(ctx["service"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="vault-sync-mcp",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_service(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Vault Sync MCP Server - sync project docs with an Obsidian-style vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (.vault_sync/config.yml, .env)
  vault-sync-mcp

  # Point at a vault explicitly
  vault-sync-mcp --vault ~/Documents/Notes

  # Use a specific config file
  vault-sync-mcp --config ~/work/vault-sync.yml

  # Only expose status and listing tools
  vault-sync-mcp --read-only

  # Custom log file location
  vault-sync-mcp --log-file /var/log/vault-sync-mcp.log

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--config",
        help="Config file to use instead of discovering .vault_sync/config.yml",
    )
    parser.add_argument(
        "--vault",
        help="Override vault path (takes precedence over VAULT_SYNC_VAULT_PATH and config files)",
    )
    parser.add_argument(
        "--state-file",
        help="Override snapshot file location (takes precedence over VAULT_SYNC_STATE_FILE)",
    )
    parser.add_argument(
        "--sync-deletions",
        action="store_true",
        default=None,
        help="Propagate deletions detected since the last sync",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Expose only tools that never modify files",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help=(
            "Log file path (default: LOG_FILE, then logging.file, "
            f"then {DEFAULT_MCP_LOG_FILE})"
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vault-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.config:
        config_overrides["config"] = args.config
    if args.vault:
        config_overrides["vault"] = args.vault
    if args.state_file:
        config_overrides["state_file"] = args.state_file
    if args.sync_deletions:
        config_overrides["sync_deletions"] = True
    if args.read_only:
        config_overrides["read_only"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
