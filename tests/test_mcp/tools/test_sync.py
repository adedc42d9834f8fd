"""Tests for the sync MCP tools (vault_sync, vault_sync_status, vault_sync_mappings)."""

import pytest

from vault_sync.config_schema import MappingConfig
from vault_sync.mcp.tools.sync import (
    CONFLICT_CHOICES,
    SYNC_SPECS,
    SYNC_TOOLS,
    handle_sync_tool,
)
from vault_sync.service import SyncService


@pytest.fixture
def service(make_config):
    return SyncService(make_config())


def _text(result) -> str:
    return result.content[0].text


# -------------------------------------------------------------------------
# Tool definitions
# -------------------------------------------------------------------------


class TestToolDefinitions:
    def test_names(self):
        assert [t.name for t in SYNC_TOOLS] == [
            "vault_sync",
            "vault_sync_status",
            "vault_sync_mappings",
        ]

    def test_read_only_flags(self):
        assert [s.read_only for s in SYNC_SPECS] == [False, True, True]

    def test_on_conflict_enum(self):
        schema = SYNC_TOOLS[0].inputSchema
        assert schema["properties"]["on_conflict"]["enum"] == list(CONFLICT_CHOICES)


# -------------------------------------------------------------------------
# vault_sync
# -------------------------------------------------------------------------


class TestVaultSync:
    async def test_sync_all(self, service, project_dir, vault_dir, make_file):
        make_file(project_dir / "a.md", "A")

        result = await handle_sync_tool("vault_sync", {}, service)

        assert not result.isError
        assert "Sync report for 'Docs'" in _text(result)
        report = result.structuredContent["results"][0]
        assert result.structuredContent["dry_run"] is False
        assert report["status"] == "success"
        assert report["counts"]["copied"] == 1
        assert (vault_dir / "Projects" / "demo" / "a.md").exists()

    async def test_dry_run(self, service, project_dir, vault_dir, make_file):
        make_file(project_dir / "a.md", "A")

        result = await handle_sync_tool(
            "vault_sync", {"mapping": "docs", "dry_run": True}, service
        )

        assert "DRY RUN" in _text(result)
        assert result.structuredContent["results"][0]["has_changes"] is True
        assert not (vault_dir / "Projects").exists()

    async def test_on_conflict_answers_always_ask(
        self, make_config, project_dir, vault_dir, make_file, base_time
    ):
        service = SyncService(make_config(conflict_strategy="always-ask"))
        make_file(project_dir / "a.md", "project", base_time + 10_000)
        make_file(vault_dir / "Projects" / "demo" / "a.md", "vault", base_time)

        await handle_sync_tool(
            "vault_sync", {"mapping": "docs", "on_conflict": "use-vault"}, service
        )

        assert (project_dir / "a.md").read_text() == "vault"

    async def test_deletions_declined_by_default(
        self, make_config, project_dir, vault_dir, make_file
    ):
        service = SyncService(make_config(sync_deletions=True))
        make_file(project_dir / "a.md", "A")
        await handle_sync_tool("vault_sync", {}, service)
        (project_dir / "a.md").unlink()

        await handle_sync_tool("vault_sync", {}, service)
        assert (project_dir / "a.md").exists()

        (project_dir / "a.md").unlink()
        result = await handle_sync_tool(
            "vault_sync", {"confirm_deletions": True}, service
        )
        assert result.structuredContent["results"][0]["counts"]["deleted"] == 1
        assert not (vault_dir / "Projects" / "demo" / "a.md").exists()

    async def test_invalid_on_conflict(self, service):
        result = await handle_sync_tool(
            "vault_sync", {"on_conflict": "merge"}, service
        )
        assert result.isError
        assert "validation_error" in _text(result)

    async def test_unknown_mapping_raises_key_error(self, service):
        with pytest.raises(KeyError):
            await handle_sync_tool("vault_sync", {"mapping": "nope"}, service)

    async def test_no_mappings(self, make_config):
        service = SyncService(make_config(mappings=[]))
        result = await handle_sync_tool("vault_sync", {}, service)
        assert result.isError
        assert "No mappings configured" in _text(result)

    async def test_all_failed_is_error(self, make_config, tmp_path):
        mapping = MappingConfig(
            id="gone", name="Gone", project_root=str(tmp_path / "missing")
        )
        service = SyncService(make_config(mappings=[mapping]))

        result = await handle_sync_tool("vault_sync", {}, service)

        assert result.isError
        assert "Project folder does not exist" in _text(result)
        assert result.structuredContent["results"][0]["status"] == "failed"


# -------------------------------------------------------------------------
# vault_sync_status / vault_sync_mappings
# -------------------------------------------------------------------------


class TestVaultSyncStatus:
    async def test_before_and_after_sync(self, service, project_dir, make_file):
        make_file(project_dir / "a.md", "A")

        before = await handle_sync_tool("vault_sync_status", {}, service)
        assert "Last sync:     never" in _text(before)
        assert "mode: manual" in _text(before)

        await service.run_all()
        after = await handle_sync_tool("vault_sync_status", {"mapping": "docs"}, service)

        entry = after.structuredContent["mappings"][0]
        assert entry["project_files"] == 1
        assert entry["last_sync_time"] is not None

    async def test_unknown_mapping(self, service):
        with pytest.raises(KeyError):
            await handle_sync_tool("vault_sync_status", {"mapping": "x"}, service)


class TestVaultSyncMappings:
    async def test_lists_effective_policy(self, make_config, project_dir):
        mapping = MappingConfig(
            id="docs",
            name="Docs",
            project_root=str(project_dir),
            bidirectional=False,
            conflict_strategy_override="project-wins",
        )
        service = SyncService(make_config(mappings=[mapping]))

        result = await handle_sync_tool("vault_sync_mappings", {}, service)

        entry = result.structuredContent["mappings"][0]
        assert entry["direction"] == "project-to-vault"
        assert entry["conflict_strategy"] == "project-wins"
        assert entry["vault_path"] == ""
        assert "(vault root)" in _text(result)
        assert "conflict: project-wins" in _text(result)


async def test_unknown_tool_name(service):
    with pytest.raises(ValueError, match="Unknown sync tool"):
        await handle_sync_tool("vault_merge", {}, service)
