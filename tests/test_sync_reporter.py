"""Tests for sync reporter formatting functions.

Covers:
- format_sync_report with various result combinations
- format_dry_run_preview formatting
- format_conflict significance marker
- report_to_json / dry_run_to_json structure and completeness
- Empty report (all skipped) produces concise output
"""

from __future__ import annotations

import json

from vault_sync.sync.models import (
    ConflictInfo,
    DetectedDeletion,
    DryRunResult,
    FileState,
    PlannedAction,
    Side,
    SyncAction,
    SyncDirection,
    SyncFileResult,
    SyncResult,
)
from vault_sync.sync.reporter import (
    dry_run_to_json,
    format_conflict,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_result(
    files: list[SyncFileResult] | None = None,
    conflicts: list[ConflictInfo] | None = None,
    errors: list[str] | None = None,
    error: str | None = None,
) -> SyncResult:
    """Build a SyncResult with sensible defaults."""
    return SyncResult(
        mapping_id="docs",
        mapping_name="My Docs",
        files=files or [],
        conflicts=conflicts or [],
        errors=errors or [],
        started_at="2026-02-07T10:00:00+00:00",
        completed_at="2026-02-07T10:00:01+00:00",
        duration_ms=1000,
        error=error,
    )


def _file(
    rel: str,
    action: SyncAction,
    direction: SyncDirection | None = SyncDirection.PROJECT_TO_VAULT,
    success: bool = True,
    error: str | None = None,
) -> SyncFileResult:
    return SyncFileResult(
        relative_path=rel,
        action=action,
        direction=direction,
        success=success,
        error=error,
    )


def _conflict(project_size: int = 10, vault_mtime: int = 2000) -> ConflictInfo:
    return ConflictInfo(
        relative_path="a.md",
        project_path="/p/a.md",
        vault_path="/v/a.md",
        project_mtime=0,
        vault_mtime=vault_mtime,
        project_size=project_size,
        vault_size=10,
    )


def _deletion() -> DetectedDeletion:
    return DetectedDeletion(
        deleted_from=Side.PROJECT,
        exists_in=Side.VAULT,
        target_path="/v/old.md",
        target_location="old.md",
        last_known=FileState(
            relative_path="old.md", content_hash="x", modified_time=0, size=1
        ),
    )


# ---------------------------------------------------------------------------
# format_sync_report
# ---------------------------------------------------------------------------


class TestFormatSyncReport:
    """Tests for format_sync_report()."""

    def test_header_and_summary(self):
        result = _make_result(
            files=[
                _file("a.md", SyncAction.COPY),
                _file("b.md", SyncAction.SKIP, direction=None),
            ]
        )
        text = format_sync_report(result)

        assert text.startswith("Sync report for 'My Docs'")
        assert "Synced 2 files: 1 copied, 1 skipped, 0 deleted, 0 conflicts, 0 errors" in text
        assert "Copied:\n  a.md (project-to-vault)" in text
        assert "Skipped: 1 files" in text

    def test_sections_only_when_non_empty(self):
        text = format_sync_report(_make_result(files=[_file("a.md", SyncAction.UPDATE)]))
        assert "Updated:" in text
        assert "Copied:" not in text
        assert "Deleted:" not in text
        assert "Errors:" not in text

    def test_errors_section(self):
        result = _make_result(
            files=[_file("a.md", SyncAction.COPY, success=False, error="denied")],
            errors=["a.md: denied"],
        )
        text = format_sync_report(result)
        assert "Errors:\n  a.md: denied" in text
        assert "Copied:" not in text

    def test_conflicts_section(self):
        text = format_sync_report(_make_result(conflicts=[_conflict()]))
        assert "Conflicts:" in text
        assert "a.md: vault copy newer by 2 seconds" in text

    def test_fatal_error_short_circuits(self):
        text = format_sync_report(_make_result(error="Project folder does not exist: /x"))
        assert "FAILED: Project folder does not exist: /x" in text
        assert "Synced" not in text

    def test_all_skipped_is_concise(self):
        files = [_file(f"{i}.md", SyncAction.SKIP, direction=None) for i in range(5)]
        text = format_sync_report(_make_result(files=files))
        assert "Skipped: 5 files" in text
        assert "0.md" not in text


# ---------------------------------------------------------------------------
# format_dry_run_preview
# ---------------------------------------------------------------------------


class TestFormatDryRunPreview:
    def test_groups_by_action(self):
        preview = DryRunResult(
            mapping_id="docs",
            mapping_name="My Docs",
            planned_actions=[
                PlannedAction(
                    relative_path="a.md",
                    action=SyncAction.COPY,
                    direction=SyncDirection.PROJECT_TO_VAULT,
                    source_path="/p/a.md",
                    target_path="/v/a.md",
                    reason="File exists only in the project",
                ),
                PlannedAction(
                    relative_path="b.md", action=SyncAction.SKIP, reason="Files are unchanged"
                ),
            ],
            planned_deletions=[_deletion()],
        )
        text = format_dry_run_preview(preview)

        assert text.startswith("DRY RUN -- No changes will be made")
        assert "Mapping: My Docs" in text
        assert "[COPY]\n  /p/a.md -> /v/a.md  (File exists only in the project)" in text
        assert "[DELETE]\n  /v/old.md  (deleted from project)" in text
        assert "Skipped: 1 files" in text
        assert "No changes needed." not in text

    def test_no_changes(self):
        text = format_dry_run_preview(DryRunResult(mapping_id="d", mapping_name="D"))
        assert "No changes needed." in text

    def test_error(self):
        preview = DryRunResult(mapping_id="d", mapping_name="D", error="boom")
        assert "FAILED: boom" in format_dry_run_preview(preview)


class TestFormatConflict:
    def test_marks_significant(self):
        assert format_conflict(_conflict(project_size=99)).startswith("! a.md")

    def test_plain_when_minor(self):
        text = format_conflict(_conflict())
        assert text.startswith("a.md: vault copy newer by 2 seconds")
        assert "(project 10 B, vault 10 B)" in text


# ---------------------------------------------------------------------------
# JSON output
# ---------------------------------------------------------------------------


class TestReportToJson:
    def test_structure(self):
        result = _make_result(
            files=[
                _file("a.md", SyncAction.COPY),
                _file("b.md", SyncAction.DELETE, SyncDirection.VAULT_TO_PROJECT),
                _file("c.md", SyncAction.UPDATE, success=False, error="denied"),
            ],
            conflicts=[_conflict()],
            errors=["c.md: denied"],
        )
        data = report_to_json(result)

        assert data["status"] == "partial"
        assert data["success"] is False
        assert data["counts"] == {
            "processed": 3,
            "copied": 1,
            "skipped": 0,
            "deleted": 1,
            "conflicts": 1,
            "errors": 1,
        }
        assert data["files"][1] == {
            "relative_path": "b.md",
            "action": "delete",
            "success": True,
            "direction": "vault-to-project",
        }
        assert data["files"][2]["error"] == "denied"
        assert data["conflicts"][0]["relative_path"] == "a.md"
        json.dumps(data)

    def test_dry_run(self):
        data = dry_run_to_json(
            DryRunResult(
                mapping_id="d", mapping_name="D", planned_deletions=[_deletion()]
            )
        )
        assert data["dry_run"] is True
        assert data["has_changes"] is True
        assert data["planned_deletions"][0] == {
            "relative_path": "old.md",
            "deleted_from": "project",
            "exists_in": "vault",
            "target_path": "/v/old.md",
        }
        json.dumps(data)
