"""Tests for the coalescing change watcher."""

from __future__ import annotations

import asyncio

import pytest
from watchfiles import Change

from vault_sync.config_schema import MappingConfig, SyncPolicyConfig
from vault_sync.sync.models import Side
from vault_sync.sync.watcher import ChangeType, ChangeWatcher, WatchBatch


@pytest.fixture
def make_watcher(vault_dir):
    def _make(debounce_ms: int = 20) -> tuple[ChangeWatcher, list[WatchBatch]]:
        watcher = ChangeWatcher(
            policy=SyncPolicyConfig(debounce_ms=debounce_ms), vault_base=vault_dir
        )
        batches: list[WatchBatch] = []
        watcher.on_batch(batches.append)
        return watcher, batches

    return _make


class TestCoalescing:
    async def test_events_for_same_file_coalesce(self, make_watcher):
        watcher, batches = make_watcher()

        watcher.record_event("m", Side.PROJECT, "a.md", ChangeType.ADDED)
        watcher.record_event("m", Side.PROJECT, "a.md", ChangeType.MODIFIED)
        watcher.record_event("m", Side.VAULT, "a.md", ChangeType.MODIFIED)
        assert watcher.pending_count == 2
        await asyncio.sleep(0.1)

        assert len(batches) == 1
        events = batches[0].events
        assert [(e.side, e.change) for e in events] == [
            (Side.PROJECT, ChangeType.MODIFIED),
            (Side.VAULT, ChangeType.MODIFIED),
        ]
        assert watcher.pending_count == 0

    async def test_idle_timer_restarts(self, make_watcher):
        watcher, batches = make_watcher(debounce_ms=80)

        watcher.record_event("m", Side.PROJECT, "a.md", ChangeType.ADDED)
        await asyncio.sleep(0.05)
        watcher.record_event("m", Side.PROJECT, "b.md", ChangeType.ADDED)
        await asyncio.sleep(0.05)
        assert batches == []

        await asyncio.sleep(0.1)
        assert len(batches) == 1
        assert len(batches[0]) == 2

    async def test_deletes_are_ignored(self, make_watcher):
        watcher, batches = make_watcher()

        watcher.record_event("m", Side.VAULT, "a.md", ChangeType.DELETED)
        await asyncio.sleep(0.05)

        assert watcher.pending_count == 0
        assert batches == []

    async def test_mapping_ids_in_first_seen_order(self, make_watcher):
        watcher, batches = make_watcher()

        watcher.record_event("second", Side.PROJECT, "a.md", ChangeType.ADDED)
        watcher.record_event("first", Side.VAULT, "a.md", ChangeType.ADDED)
        watcher.record_event("second", Side.VAULT, "b.md", ChangeType.ADDED)
        await asyncio.sleep(0.1)

        assert batches[0].mapping_ids == ["second", "first"]

    async def test_callback_error_does_not_stop_delivery(self, make_watcher, caplog):
        watcher, batches = make_watcher()

        async def broken(batch):
            raise RuntimeError("boom")

        watcher.on_batch(broken)
        watcher.record_event("m", Side.PROJECT, "a.md", ChangeType.ADDED)
        await asyncio.sleep(0.1)
        watcher.record_event("m", Side.PROJECT, "b.md", ChangeType.ADDED)
        await asyncio.sleep(0.1)

        assert len(batches) == 2
        assert "Change batch callback failed" in caplog.text

    async def test_stop_drops_pending(self, make_watcher):
        watcher, batches = make_watcher(debounce_ms=50)

        watcher.record_event("m", Side.PROJECT, "a.md", ChangeType.ADDED)
        await watcher.stop()
        await asyncio.sleep(0.1)

        assert batches == []


class TestFiltering:
    async def test_raw_events_are_filtered(self, make_watcher, project_dir):
        watcher, _ = make_watcher(debounce_ms=10_000)
        mapping = MappingConfig(id="m", name="M", project_root=str(project_dir))
        await watcher.start([mapping])
        try:
            project_sub, vault_sub = watcher._subscriptions
            watcher._handle_raw(project_sub, Change.modified, "node_modules/x.md")
            watcher._handle_raw(project_sub, Change.modified, "script.py")
            watcher._handle_raw(vault_sub, Change.added, ".obsidian/app.md")
            watcher._handle_raw(project_sub, Change.added, ".obsidian/snippets/a.md")
            assert watcher.pending_count == 0

            watcher._handle_raw(project_sub, Change.added, "notes/a.md")
            assert watcher.pending_count == 1

            watcher._handle_raw(project_sub, Change.added, ".vscode/notes.md")
            assert watcher.pending_count == 2
        finally:
            await watcher.stop()

    async def test_disabled_mappings_not_watched(self, make_watcher, project_dir):
        watcher, _ = make_watcher()
        mapping = MappingConfig(
            id="m", name="M", project_root=str(project_dir), enabled=False
        )

        await watcher.start([mapping])

        assert not watcher.is_running
        await watcher.stop()


@pytest.mark.slow
class TestLiveWatch:
    async def test_file_write_produces_batch(self, make_watcher, project_dir):
        watcher, batches = make_watcher(debounce_ms=100)
        mapping = MappingConfig(
            id="m", name="M", project_root=str(project_dir), vault_root="M"
        )

        async with watcher.watching([mapping]):
            await asyncio.sleep(0.3)
            (project_dir / "new.md").write_text("hi")
            for _ in range(50):
                if batches:
                    break
                await asyncio.sleep(0.1)

        assert batches
        assert batches[0].events[0].relative_path == "new.md"
        assert batches[0].events[0].side is Side.PROJECT
