"""MCP tool handlers for project/vault sync.

Defines three tools:

- ``vault_sync`` -- sync one mapping or all enabled mappings (with
  optional dry-run and non-interactive conflict/deletion answers).
- ``vault_sync_status`` -- snapshot summary per mapping.
- ``vault_sync_mappings`` -- configured mappings with their effective
  policy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...config_schema import describe_custom_settings
from ...sync.decisions import fixed_confirmation, fixed_decision
from ...sync.reporter import (
    dry_run_to_json,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .errors import build_error_response, format_timestamp
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...service import SyncService

logger = logging.getLogger(__name__)

# Answers accepted by ``on_conflict``.
CONFLICT_CHOICES = ("skip", "use-project", "use-vault")


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="vault_sync",
        description=(
            "Synchronize project documentation folders with their vault "
            "folders. Syncs one mapping, or every enabled mapping when "
            "'mapping' is omitted."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "mapping": {
                    "type": "string",
                    "description": "Mapping id from config (default: all enabled)",
                },
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Preview changes without applying them",
                },
                "on_conflict": {
                    "type": "string",
                    "enum": list(CONFLICT_CHOICES),
                    "default": "skip",
                    "description": (
                        "Answer for conflicts under the always-ask strategy"
                    ),
                },
                "confirm_deletions": {
                    "type": "boolean",
                    "default": False,
                    "description": (
                        "Apply detected deletions when confirmation is required"
                    ),
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="vault_sync_status",
        description=(
            "Show sync state per mapping -- last sync time and number of "
            "files in the snapshot on each side."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "mapping": {
                    "type": "string",
                    "description": "Mapping id from config (default: all)",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="vault_sync_mappings",
        description=(
            "List configured mappings with their folders, direction and "
            "per-mapping overrides."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Tool handler
# ---------------------------------------------------------------------------


async def handle_sync_tool(
    name: str,
    arguments: dict[str, Any] | None,
    service: SyncService,
) -> types.CallToolResult:
    """Dispatch and execute a sync tool.

    Args:
        name: Tool name.
        arguments: Tool arguments dict.
        service: The running SyncService.

    Returns:
        ``CallToolResult`` with tool output or error details.
    """
    args = arguments or {}

    match name:
        case "vault_sync":
            return await _handle_vault_sync(service, args)
        case "vault_sync_status":
            return await _handle_vault_sync_status(service, args)
        case "vault_sync_mappings":
            return await _handle_vault_sync_mappings(service, args)
        case _:
            raise ValueError(f"Unknown sync tool: {name}")


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_vault_sync(
    service: SyncService,
    args: dict[str, Any],
) -> types.CallToolResult:
    """Handle the ``vault_sync`` tool."""
    mapping_id = args.get("mapping")
    dry_run = bool(args.get("dry_run", False))
    on_conflict = args.get("on_conflict", "skip")
    if on_conflict not in CONFLICT_CHOICES:
        return build_error_response(
            "validation_error",
            f"Invalid on_conflict '{on_conflict}'",
            f"Use one of: {', '.join(CONFLICT_CHOICES)}.",
        )

    if mapping_id:
        service.get_mapping(mapping_id)
    elif not service.mappings:
        return build_error_response(
            "not_found",
            "No mappings configured.",
            "Add a 'mappings' list to the sync configuration file "
            "(.vault_sync/config.yml).",
        )

    if dry_run:
        if mapping_id:
            previews = [await service.dry_run_mapping(mapping_id)]
        else:
            previews = await service.dry_run_all()
        text = "\n\n".join(format_dry_run_preview(p) for p in previews)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=text)],
            structuredContent={
                "dry_run": True,
                "results": [dry_run_to_json(p) for p in previews],
            },
        )

    handler = fixed_decision(on_conflict)
    confirmer = fixed_confirmation(bool(args.get("confirm_deletions", False)))
    if mapping_id:
        results = [await service.run_mapping(mapping_id, handler, confirmer)]
    else:
        results = await service.run_all(handler, confirmer)

    text = "\n\n".join(format_sync_report(r) for r in results)
    structured = {
        "dry_run": False,
        "results": [report_to_json(r) for r in results],
    }

    failed = [r for r in results if r.error]
    if failed and len(failed) == len(results):
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"{text}\n\nAction: Fix the reported mapping "
                    "error and retry.",
                )
            ],
            structuredContent=structured,
            isError=True,
        )

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


async def _handle_vault_sync_status(
    service: SyncService,
    args: dict[str, Any],
) -> types.CallToolResult:
    """Handle the ``vault_sync_status`` tool."""
    mapping_id = args.get("mapping")
    entries = service.status()
    if mapping_id:
        service.get_mapping(mapping_id)
        entries = [e for e in entries if e["id"] == mapping_id]

    lines = [f"Sync status (mode: {service.mode or service.config.sync.mode})"]
    for entry in entries:
        flags = []
        if not entry["enabled"]:
            flags.append("disabled")
        if entry["running"]:
            flags.append("syncing")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        lines.append(f"  {entry['name']} ({entry['id']}){suffix}")
        lines.append(f"    Direction:     {entry['direction']}")
        lines.append(
            f"    Last sync:     {format_timestamp(entry['last_sync_time'])}"
        )
        lines.append(
            f"    Tracked files: {entry['project_files']} project, "
            f"{entry['vault_files']} vault"
        )
    if not entries:
        lines.append("  No mappings configured.")

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={"mappings": entries},
    )


async def _handle_vault_sync_mappings(
    service: SyncService,
    args: dict[str, Any],
) -> types.CallToolResult:
    """Handle the ``vault_sync_mappings`` tool."""
    entries = []
    lines = [f"Vault: {service.vault_store.base_path}"]
    for mapping in service.mappings:
        policy = service.engine.effective_policy(mapping)
        vault_folder = mapping.vault_docs_path() or "(vault root)"
        entries.append(
            {
                "id": mapping.id,
                "name": mapping.name,
                "enabled": mapping.enabled,
                "project_path": str(mapping.project_docs_path()),
                "vault_path": mapping.vault_docs_path(),
                "direction": policy.direction,
                "conflict_strategy": policy.conflict_strategy,
                "file_types": list(policy.file_types),
                "exclude_patterns": list(policy.exclude_patterns),
            }
        )
        lines.append(
            f"  {mapping.id}: {mapping.project_docs_path()} <-> {vault_folder}"
        )
        lines.append(
            f"    {policy.direction}, {policy.conflict_strategy}; "
            f"{describe_custom_settings(mapping)}"
            + ("" if mapping.enabled else " (disabled)")
        )
    if not service.mappings:
        lines.append("  No mappings configured.")

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={"mappings": entries},
    )


# ---------------------------------------------------------------------------
# Specs
# ---------------------------------------------------------------------------


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SYNC_TOOLS[0],
        read_only=False,
        handler=_handle_vault_sync,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[1],
        read_only=True,
        handler=_handle_vault_sync_status,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[2],
        read_only=True,
        handler=_handle_vault_sync_mappings,
    ),
]
