"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``format_conflict`` -- one conflict, for interactive review.
- ``report_to_json`` / ``dry_run_to_json`` -- structured dicts for MCP
  tool output and ``--json``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import SyncAction
from .resolver import format_time_difference, is_significant_conflict

if TYPE_CHECKING:
    from .models import ConflictInfo, DryRunResult, SyncResult

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(result: SyncResult) -> str:
    """Format a completed sync result as human-readable text.

    Sections are only included when they contain at least one file.
    Skipped files are summarised by count only to avoid excessive output.

    Args:
        result: The completed sync result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(f"Sync report for '{result.mapping_name}'")
    lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at} ({result.duration_ms} ms)")
    lines.append("")

    if result.error:
        lines.append(f"FAILED: {result.error}")
        return "\n".join(lines).rstrip()

    lines.append(
        f"Synced {result.files_processed} files: "
        f"{result.files_copied} copied, {result.files_skipped} skipped, "
        f"{result.files_deleted} deleted, {len(result.conflicts)} conflicts, "
        f"{len(result.errors)} errors"
    )
    lines.append("")

    sections = (
        (SyncAction.COPY, "Copied:"),
        (SyncAction.UPDATE, "Updated:"),
        (SyncAction.DELETE, "Deleted:"),
    )
    for action, title in sections:
        done = [f for f in result.files if f.success and f.action == action]
        if not done:
            continue
        lines.append(title)
        for f in done:
            arrow = f" ({f.direction.value})" if f.direction else ""
            lines.append(f"  {f.relative_path}{arrow}")
        lines.append("")

    if result.conflicts:
        lines.append("Conflicts:")
        for conflict in result.conflicts:
            lines.append(f"  {format_conflict(conflict)}")
        lines.append("")

    if result.failed_files:
        lines.append("Errors:")
        for f in result.failed_files:
            lines.append(f"  {f.relative_path}: {f.error}")
        lines.append("")

    if result.files_skipped > 0:
        lines.append(f"Skipped: {result.files_skipped} files")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(result: DryRunResult) -> str:
    """Format a dry-run preview grouped by action type.

    Each proposed action is shown as ``source -> target  (reason)``.

    Args:
        result: A dry-run result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Mapping: {result.mapping_name}")
    lines.append("")

    if result.error:
        lines.append(f"FAILED: {result.error}")
        return "\n".join(lines).rstrip()

    for action in (SyncAction.COPY, SyncAction.UPDATE):
        planned = result.actions_of(action)
        if not planned:
            continue
        lines.append(f"[{action.value.upper()}]")
        for p in planned:
            lines.append(f"  {p.source_path} -> {p.target_path}  ({p.reason})")
        lines.append("")

    if result.planned_deletions:
        lines.append("[DELETE]")
        for d in result.planned_deletions:
            lines.append(
                f"  {d.target_path}  (deleted from {d.deleted_from.value})"
            )
        lines.append("")

    skip_count = len(result.actions_of(SyncAction.SKIP))
    if skip_count > 0:
        lines.append(f"Skipped: {skip_count} files")
        lines.append("")

    if not result.has_changes:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflicts
# ------------------------------------------------------------------


def format_conflict(conflict: ConflictInfo) -> str:
    """One-line description of a conflict.

    Significant conflicts (different sizes, or more than a minute apart)
    are prefixed with ``!``.
    """
    newer = (
        "vault" if conflict.vault_mtime > conflict.project_mtime else "project"
    )
    marker = "! " if is_significant_conflict(conflict) else ""
    return (
        f"{marker}{conflict.relative_path}: {newer} copy newer by "
        f"{format_time_difference(conflict)} "
        f"(project {conflict.project_size} B, vault {conflict.vault_size} B)"
    )


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(result: SyncResult) -> dict:
    """Convert a sync result to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    files_list = []
    for f in result.files:
        entry: dict = {
            "relative_path": f.relative_path,
            "action": f.action.value,
            "success": f.success,
        }
        if f.direction:
            entry["direction"] = f.direction.value
        if f.error:
            entry["error"] = f.error
        files_list.append(entry)

    return {
        "mapping_id": result.mapping_id,
        "mapping_name": result.mapping_name,
        "status": result.status,
        "success": result.success,
        "error": result.error,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "duration_ms": result.duration_ms,
        "counts": {
            "processed": result.files_processed,
            "copied": result.files_copied,
            "skipped": result.files_skipped,
            "deleted": result.files_deleted,
            "conflicts": len(result.conflicts),
            "errors": len(result.errors),
        },
        "conflicts": [c.model_dump(mode="json") for c in result.conflicts],
        "errors": list(result.errors),
        "files": files_list,
    }


def dry_run_to_json(result: DryRunResult) -> dict:
    """Convert a dry-run result to a structured dict."""
    return {
        "mapping_id": result.mapping_id,
        "mapping_name": result.mapping_name,
        "dry_run": True,
        "error": result.error,
        "has_changes": result.has_changes,
        "planned_actions": [
            a.model_dump(mode="json") for a in result.planned_actions
        ],
        "planned_deletions": [
            {
                "relative_path": d.relative_path,
                "deleted_from": d.deleted_from.value,
                "exists_in": d.exists_in.value,
                "target_path": d.target_path,
            }
            for d in result.planned_deletions
        ],
        "conflicts": [c.model_dump(mode="json") for c in result.conflicts],
        "errors": list(result.errors),
    }
