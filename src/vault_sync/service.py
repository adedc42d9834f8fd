"""Long-running sync service shared by the CLI and the MCP server.

``SyncService`` wires the configured stores, the snapshot store, the
engine and the change watcher together, and applies the configured
trigger mode:

- ``manual``     -- nothing runs until a host asks.
- ``on-startup`` -- one full sync when the service starts.
- ``on-change``  -- the watcher triggers a sync of every mapping that
  appears in a flushed change batch.
- ``scheduled``  -- a background task syncs everything every
  ``scheduled_interval_minutes``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .config_schema import MappingConfig, UnifiedConfig
from .stores import ProjectStore, VaultStore
from .sync.engine import ConflictHandler, DeletionConfirmer, SyncEngine
from .sync.models import DryRunResult, SyncResult
from .sync.state import SnapshotStore
from .sync.watcher import ChangeWatcher, WatchBatch

logger = logging.getLogger(__name__)


class SyncService:
    """Owns one engine and its triggers for a loaded configuration.

    Args:
        config: Validated configuration (vault path must be set).
        conflict_handler: Default decision channel for ``always-ask``.
        deletion_confirmer: Default confirmation channel for deletions.
    """

    def __init__(
        self,
        config: UnifiedConfig,
        conflict_handler: ConflictHandler | None = None,
        deletion_confirmer: DeletionConfirmer | None = None,
    ) -> None:
        if not config.vault.path:
            raise ValueError("A vault path is required to start the service")

        self.config = config
        self.vault_store = VaultStore(
            config.vault.path,
            config_dir=config.vault.config_dir,
            trash_dir=config.vault.trash_dir,
        )
        self.project_store = ProjectStore(
            extra_exclusions=(config.vault.config_dir,)
        )
        self.snapshots = SnapshotStore(Path(config.sync.state_file))
        self.engine = SyncEngine(
            project_store=self.project_store,
            vault_store=self.vault_store,
            snapshots=self.snapshots,
            policy=config.sync,
            conflict_handler=conflict_handler,
            deletion_confirmer=deletion_confirmer,
        )
        self.watcher = ChangeWatcher(
            policy=config.sync,
            vault_base=self.vault_store.base_path,
            vault_exclusions=(config.vault.config_dir, config.vault.trash_dir),
            project_exclusions=(config.vault.config_dir,),
        )
        self.watcher.on_batch(self.handle_batch)
        self._scheduler: asyncio.Task[None] | None = None
        self._mode: str | None = None

    @property
    def mappings(self) -> list[MappingConfig]:
        return self.config.mappings

    @property
    def mode(self) -> str | None:
        """Trigger mode the service was started in, or ``None``."""
        return self._mode

    def get_mapping(self, mapping_id: str) -> MappingConfig:
        """Return the mapping with *mapping_id*.

        Raises:
            KeyError: If no such mapping is configured.
        """
        mapping = self.config.get_mapping(mapping_id)
        if mapping is None:
            raise KeyError(mapping_id)
        return mapping

    # ------------------------------------------------------------------
    # Sync entry points
    # ------------------------------------------------------------------

    async def run_all(
        self,
        conflict_handler: ConflictHandler | None = None,
        deletion_confirmer: DeletionConfirmer | None = None,
    ) -> list[SyncResult]:
        return await self.engine.sync_all(
            self.mappings, conflict_handler, deletion_confirmer
        )

    async def run_mapping(
        self,
        mapping_id: str,
        conflict_handler: ConflictHandler | None = None,
        deletion_confirmer: DeletionConfirmer | None = None,
    ) -> SyncResult:
        return await self.engine.sync_mapping(
            self.get_mapping(mapping_id), conflict_handler, deletion_confirmer
        )

    async def dry_run_all(self) -> list[DryRunResult]:
        return await self.engine.dry_run_all(self.mappings)

    async def dry_run_mapping(self, mapping_id: str) -> DryRunResult:
        return await self.engine.dry_run_mapping(self.get_mapping(mapping_id))

    async def handle_batch(self, batch: WatchBatch) -> list[SyncResult]:
        """Sync every mapping touched by a watcher batch, in order."""
        results = []
        for mapping_id in batch.mapping_ids:
            mapping = self.config.get_mapping(mapping_id)
            if mapping is None or not mapping.enabled:
                continue
            logger.info(
                "Changes detected in '%s'; syncing", mapping.name
            )
            results.append(await self.engine.sync_mapping(mapping))
        return results

    def status(self) -> list[dict]:
        """Snapshot summary per configured mapping."""
        entries = []
        for mapping in self.mappings:
            state = self.snapshots.get(mapping.id)
            entries.append(
                {
                    "id": mapping.id,
                    "name": mapping.name,
                    "enabled": mapping.enabled,
                    "direction": mapping.effective_direction,
                    "running": self.engine.is_running(mapping.id),
                    "last_sync_time": state.last_sync_time if state else None,
                    "project_files": len(state.project_files) if state else 0,
                    "vault_files": len(state.vault_files) if state else 0,
                }
            )
        return entries

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def start(self, mode: str | None = None) -> None:
        """Apply *mode* (default: the configured ``sync.mode``)."""
        mode = mode or self.config.sync.mode
        self._mode = mode
        logger.info("Sync service starting in '%s' mode", mode)

        match mode:
            case "on-startup":
                await self.run_all()
            case "on-change":
                await self.watcher.start(self.mappings)
            case "scheduled":
                self._scheduler = asyncio.create_task(self._schedule_loop())
            case _:
                pass

    async def stop(self) -> None:
        """Tear down the watcher and the scheduler task."""
        await self.watcher.stop()
        if self._scheduler is not None:
            self._scheduler.cancel()
            try:
                await self._scheduler
            except asyncio.CancelledError:
                pass
            self._scheduler = None
        self._mode = None
        logger.info("Sync service stopped")

    async def _schedule_loop(self) -> None:
        interval = self.config.sync.scheduled_interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            logger.info("Running scheduled sync")
            await self.run_all()

    async def __aenter__(self) -> SyncService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
