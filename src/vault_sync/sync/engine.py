"""Core sync engine that reconciles one project/vault mapping.

The ``SyncEngine`` ties together the two store adapters, the snapshot
store and the conflict resolver.  For each mapping it:

1. Validates the project folder and creates the vault folder if needed.
2. Lists both sides with the mapping's effective filters.
3. Optionally detects deletions against the snapshot, asks for
   confirmation, and applies them.
4. Walks the project listing: copies project-only files to the vault,
   skips files whose modification times are within one second, and
   resolves the rest as conflicts.
5. Walks the vault listing for bidirectional or vault-to-project
   mappings: copies vault-only files to the project (and, one-way,
   pushes strictly newer vault copies).
6. Applies every copy/update as it is decided: backup, write, then
   restore the source modification time on the destination.
7. Rebuilds and saves the mapping's snapshot.

Dry runs execute steps 1-5 without any I/O and return planned actions.

Error handling is per-file: a single file failure does not abort the run,
and a mapping failure never escapes ``sync_mapping()``.  Runs of the same
mapping are serialised by a per-mapping lock (``on_busy="queue"``) or
rejected while one is active (``on_busy="skip"``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..config_schema import (
    EffectivePolicy,
    MappingConfig,
    SyncPolicyConfig,
    resolve_policy,
)
from ..core.async_utils import maybe_await, run_sync
from .models import (
    ConflictInfo,
    DetectedDeletion,
    DryRunResult,
    FileInfo,
    PlannedAction,
    Resolution,
    RunStage,
    Side,
    SyncAction,
    SyncDirection,
    SyncFileResult,
    SyncResult,
)
from .resolver import (
    ConflictResolver,
    create_resolver,
    is_significant_conflict,
    resolve_with_external_choice,
)
from .state import SnapshotStore

if TYPE_CHECKING:
    from ..stores.base import StoreAdapter

logger = logging.getLogger(__name__)

# Modification times closer than this are treated as the same version.
TIME_TOLERANCE_MS = 1000

ConflictHandler = Callable[[ConflictInfo], "Resolution | str | Awaitable[Resolution | str]"]
DeletionConfirmer = Callable[[list[DetectedDeletion]], "bool | Awaitable[bool]"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def backup_suffix(now: datetime | None = None) -> str:
    """Suffix for backup copies: ``.backup-2026-01-31T12-00-00-000Z``."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S") + f"-{now.microsecond // 1000:03d}Z"
    return f".backup-{stamp}"


def compare_times(project: FileInfo, vault: FileInfo) -> str:
    """Return ``"same"``, ``"project-newer"`` or ``"vault-newer"``."""
    if abs(project.modified_time - vault.modified_time) < TIME_TOLERANCE_MS:
        return "same"
    if project.modified_time > vault.modified_time:
        return "project-newer"
    return "vault-newer"


class MappingValidationError(Exception):
    """The mapping cannot be synced (missing or invalid project folder)."""


@dataclass
class _RunContext:
    """Mutable bookkeeping for one mapping run."""

    mapping: MappingConfig
    policy: EffectivePolicy
    dry_run: bool
    conflict_handler: ConflictHandler | None = None
    deletion_confirmer: DeletionConfirmer | None = None
    project_root: str = ""
    vault_root: str = ""
    project_files: dict[str, FileInfo] = field(default_factory=dict)
    vault_files: dict[str, FileInfo] = field(default_factory=dict)
    files: list[SyncFileResult] = field(default_factory=list)
    planned: list[PlannedAction] = field(default_factory=list)
    planned_deletions: list[DetectedDeletion] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    stage: RunStage = RunStage.VALIDATING

    def listing(self, side: Side) -> dict[str, FileInfo]:
        return self.project_files if side is Side.PROJECT else self.vault_files

    def root(self, side: Side) -> str:
        return self.project_root if side is Side.PROJECT else self.vault_root


class SyncEngine:
    """Reconcile project/vault mappings.

    Args:
        project_store: Adapter for the project side.
        vault_store: Adapter for the vault side.
        snapshots: Snapshot store shared by all mappings.
        policy: Global sync policy; per-mapping overrides are merged in
            once per run.
        conflict_handler: Decision channel used under ``always-ask``.
            May return a ``Resolution`` (or its string value) or an
            awaitable of one.  Without a handler such conflicts are
            skipped.
        deletion_confirmer: Confirmation channel for detected deletions
            when ``confirm_deletions`` is on.  Without one, deletions
            needing confirmation are skipped.
    """

    def __init__(
        self,
        project_store: StoreAdapter,
        vault_store: StoreAdapter,
        snapshots: SnapshotStore,
        policy: SyncPolicyConfig,
        conflict_handler: ConflictHandler | None = None,
        deletion_confirmer: DeletionConfirmer | None = None,
    ) -> None:
        self.project_store = project_store
        self.vault_store = vault_store
        self.snapshots = snapshots
        self.policy = policy
        self.conflict_handler = conflict_handler
        self.deletion_confirmer = deletion_confirmer
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def effective_policy(self, mapping: MappingConfig) -> EffectivePolicy:
        return resolve_policy(mapping, self.policy)

    def is_running(self, mapping_id: str) -> bool:
        lock = self._locks.get(mapping_id)
        return lock is not None and lock.locked()

    async def sync_mapping(
        self,
        mapping: MappingConfig,
        conflict_handler: ConflictHandler | None = None,
        deletion_confirmer: DeletionConfirmer | None = None,
    ) -> SyncResult:
        """Run a full sync for one mapping.

        Never raises: failures are reported in the returned result.

        Args:
            mapping: The mapping to reconcile.
            conflict_handler: Overrides the engine's handler for this run.
            deletion_confirmer: Overrides the engine's confirmer for this run.
        """
        lock = self._locks.setdefault(mapping.id, asyncio.Lock())
        if lock.locked() and self.policy.on_busy == "skip":
            logger.info(
                "Sync of '%s' already in progress; skipping trigger",
                mapping.name,
            )
            now = _now_iso()
            return SyncResult(
                mapping_id=mapping.id,
                mapping_name=mapping.name,
                started_at=now,
                completed_at=now,
                error="Sync already in progress",
                stage=RunStage.ERROR,
            )

        async with lock:
            return await self._sync(
                mapping,
                conflict_handler or self.conflict_handler,
                deletion_confirmer or self.deletion_confirmer,
            )

    async def dry_run_mapping(self, mapping: MappingConfig) -> DryRunResult:
        """Plan a sync for one mapping without touching either store."""
        ctx = _RunContext(
            mapping=mapping,
            policy=self.effective_policy(mapping),
            dry_run=True,
        )
        try:
            await self._reconcile(ctx)
        except MappingValidationError as exc:
            return DryRunResult(
                mapping_id=mapping.id,
                mapping_name=mapping.name,
                error=str(exc),
            )
        except Exception as exc:
            logger.exception("Dry run of '%s' failed", mapping.name)
            return DryRunResult(
                mapping_id=mapping.id,
                mapping_name=mapping.name,
                planned_actions=ctx.planned,
                planned_deletions=ctx.planned_deletions,
                conflicts=ctx.conflicts,
                errors=ctx.errors,
                error=str(exc),
            )

        return DryRunResult(
            mapping_id=mapping.id,
            mapping_name=mapping.name,
            planned_actions=ctx.planned,
            planned_deletions=ctx.planned_deletions,
            conflicts=ctx.conflicts,
            errors=ctx.errors,
        )

    async def sync_all(
        self,
        mappings: Iterable[MappingConfig],
        conflict_handler: ConflictHandler | None = None,
        deletion_confirmer: DeletionConfirmer | None = None,
    ) -> list[SyncResult]:
        """Sync every enabled mapping, strictly one after another."""
        results = []
        for mapping in mappings:
            if not mapping.enabled:
                logger.debug("Skipping disabled mapping '%s'", mapping.name)
                continue
            results.append(
                await self.sync_mapping(
                    mapping, conflict_handler, deletion_confirmer
                )
            )
        return results

    async def dry_run_all(
        self, mappings: Iterable[MappingConfig]
    ) -> list[DryRunResult]:
        """Plan every enabled mapping, one after another."""
        results = []
        for mapping in mappings:
            if mapping.enabled:
                results.append(await self.dry_run_mapping(mapping))
        return results

    # ------------------------------------------------------------------
    # Run orchestration
    # ------------------------------------------------------------------

    async def _sync(
        self,
        mapping: MappingConfig,
        conflict_handler: ConflictHandler | None,
        deletion_confirmer: DeletionConfirmer | None,
    ) -> SyncResult:
        started_at = _now_iso()
        started = time.monotonic()
        ctx = _RunContext(
            mapping=mapping,
            policy=self.effective_policy(mapping),
            dry_run=False,
            conflict_handler=conflict_handler,
            deletion_confirmer=deletion_confirmer,
        )
        logger.info(
            "Starting sync of '%s' (%s)", mapping.name, ctx.policy.direction
        )

        error: str | None = None
        try:
            await self._reconcile(ctx)
            self._enter(ctx, RunStage.SNAPSHOTTING)
            await self._update_snapshot(ctx)
            self._enter(ctx, RunStage.DONE)
        except MappingValidationError as exc:
            logger.error("Cannot sync '%s': %s", mapping.name, exc)
            error = str(exc)
            ctx.stage = RunStage.ERROR
        except Exception as exc:
            logger.exception("Sync of '%s' failed", mapping.name)
            error = str(exc)
            ctx.stage = RunStage.ERROR

        result = SyncResult(
            mapping_id=mapping.id,
            mapping_name=mapping.name,
            files=ctx.files,
            conflicts=ctx.conflicts,
            errors=ctx.errors,
            started_at=started_at,
            completed_at=_now_iso(),
            duration_ms=int((time.monotonic() - started) * 1000),
            error=error,
            stage=ctx.stage,
        )
        logger.info(
            "Finished sync of '%s': %d processed, %d copied, %d skipped, "
            "%d deleted, %d errors",
            mapping.name,
            result.files_processed,
            result.files_copied,
            result.files_skipped,
            result.files_deleted,
            len(result.errors),
        )
        return result

    async def _reconcile(self, ctx: _RunContext) -> None:
        """Steps 1-5; applies actions immediately unless dry-running."""
        await self._validate(ctx)
        await self._list(ctx)

        if ctx.policy.sync_deletions:
            await self._handle_deletions(ctx)

        self._enter(ctx, RunStage.DIFFING)
        resolver = create_resolver(ctx.policy.conflict_strategy)
        direction = ctx.policy.direction

        if direction != "vault-to-project":
            await self._reconcile_project_side(ctx, resolver)
        if direction == "bidirectional":
            await self._copy_vault_only(ctx)
        elif direction == "vault-to-project":
            await self._reconcile_vault_authoritative(ctx)

    def _enter(self, ctx: _RunContext, stage: RunStage) -> None:
        if ctx.stage is not stage:
            logger.debug(
                "Mapping '%s': %s -> %s",
                ctx.mapping.id,
                ctx.stage.value,
                stage.value,
            )
            ctx.stage = stage

    # ------------------------------------------------------------------
    # Steps 1-2: validation and listing
    # ------------------------------------------------------------------

    async def _validate(self, ctx: _RunContext) -> None:
        self._enter(ctx, RunStage.VALIDATING)
        project_root = str(ctx.mapping.project_docs_path())
        if not await run_sync(self.project_store.exists, project_root):
            raise MappingValidationError(
                f"Project folder does not exist: {project_root}"
            )
        if not await run_sync(self.project_store.is_directory, project_root):
            raise MappingValidationError(
                f"Project path is not a directory: {project_root}"
            )
        ctx.project_root = project_root

        vault_root = self.vault_store.join("", ctx.mapping.vault_docs_path())
        ctx.vault_root = vault_root
        if ctx.dry_run:
            return
        if not await run_sync(self.vault_store.exists, vault_root):
            logger.info(
                "Creating vault folder %s",
                self.vault_store.absolute_path(vault_root),
            )
            await run_sync(self.vault_store.ensure_directory, vault_root)

    async def _list(self, ctx: _RunContext) -> None:
        self._enter(ctx, RunStage.LISTING)
        policy = ctx.policy
        for side, store in (
            (Side.PROJECT, self.project_store),
            (Side.VAULT, self.vault_store),
        ):
            files = await run_sync(
                store.list_files,
                ctx.root(side),
                policy.file_types,
                policy.exclude_patterns,
                policy.follow_symlinks,
            )
            listing = ctx.listing(side)
            listing.clear()
            listing.update((f.relative_path, f) for f in files)
        logger.debug(
            "Mapping '%s': %d project files, %d vault files",
            ctx.mapping.id,
            len(ctx.project_files),
            len(ctx.vault_files),
        )

    # ------------------------------------------------------------------
    # Step 3: deletions
    # ------------------------------------------------------------------

    async def _handle_deletions(self, ctx: _RunContext) -> None:
        self._enter(ctx, RunStage.DELETION_HANDLING)
        deletions = self.snapshots.detect_deletions(
            ctx.mapping.id,
            ctx.policy.direction,
            ctx.project_files,
            ctx.vault_files,
        )
        if not deletions:
            return

        if ctx.dry_run:
            ctx.planned_deletions.extend(deletions)
            for deletion in deletions:
                ctx.listing(deletion.exists_in).pop(
                    deletion.relative_path, None
                )
            return

        if ctx.policy.confirm_deletions:
            if ctx.deletion_confirmer is None:
                logger.warning(
                    "%d deletion(s) in '%s' need confirmation but no "
                    "confirmation handler is available; skipping them",
                    len(deletions),
                    ctx.mapping.name,
                )
                return
            confirmed = await maybe_await(ctx.deletion_confirmer(deletions))
            if not confirmed:
                logger.info(
                    "Deletions in '%s' declined; skipping %d file(s)",
                    ctx.mapping.name,
                    len(deletions),
                )
                return

        for deletion in deletions:
            await self._apply_deletion(ctx, deletion)

    async def _apply_deletion(
        self, ctx: _RunContext, deletion: DetectedDeletion
    ) -> None:
        store = self._store(deletion.exists_in)
        rel = deletion.relative_path
        direction = SyncDirection.towards(deletion.exists_in)
        try:
            if ctx.policy.create_backups:
                await self._backup(store, deletion.target_location)
            await run_sync(store.delete, deletion.target_location)
        except Exception as exc:
            self._record_failure(ctx, rel, SyncAction.DELETE, direction, exc)
        else:
            logger.info(
                "Deleted %s from %s (removed from %s)",
                rel,
                deletion.exists_in.value,
                deletion.deleted_from.value,
            )
            ctx.files.append(
                SyncFileResult(
                    relative_path=rel,
                    action=SyncAction.DELETE,
                    direction=direction,
                    success=True,
                )
            )
        # Either way the path must not be resurrected by the copy passes.
        ctx.listing(deletion.exists_in).pop(rel, None)

    # ------------------------------------------------------------------
    # Steps 4-5: reconciliation
    # ------------------------------------------------------------------

    async def _reconcile_project_side(
        self, ctx: _RunContext, resolver: ConflictResolver
    ) -> None:
        for rel, project_file in list(ctx.project_files.items()):
            vault_file = ctx.vault_files.get(rel)
            if vault_file is None:
                await self._transfer(
                    ctx,
                    project_file,
                    Side.VAULT,
                    SyncAction.COPY,
                    "File exists only in the project",
                )
                continue

            if compare_times(project_file, vault_file) == "same":
                self._skip(ctx, rel, "Files are unchanged")
                continue

            await self._resolve_conflict(
                ctx, resolver, project_file, vault_file
            )

    async def _resolve_conflict(
        self,
        ctx: _RunContext,
        resolver: ConflictResolver,
        project_file: FileInfo,
        vault_file: FileInfo,
    ) -> None:
        rel = project_file.relative_path
        conflict = ConflictInfo(
            relative_path=rel,
            project_path=project_file.absolute_path,
            vault_path=vault_file.absolute_path,
            project_mtime=project_file.modified_time,
            vault_mtime=vault_file.modified_time,
            project_size=project_file.size,
            vault_size=vault_file.size,
        )
        ctx.conflicts.append(conflict)

        decision = resolver.resolve(conflict)
        if resolver.requires_decision:
            if ctx.dry_run:
                self._skip(ctx, rel, "Conflict needs a decision (always-ask)")
                return
            self._enter(ctx, RunStage.CONFLICT_RESOLUTION)
            if ctx.conflict_handler is None:
                logger.warning(
                    "Conflict on %s needs a decision but no handler is "
                    "available; skipping",
                    rel,
                )
                self._skip(ctx, rel, "Conflict left unresolved")
                return
            if is_significant_conflict(conflict):
                logger.warning("Significant conflict on %s", rel)
            try:
                choice = await maybe_await(ctx.conflict_handler(conflict))
                decision = resolve_with_external_choice(conflict, choice)
            except Exception as exc:
                self._record_failure(ctx, rel, SyncAction.SKIP, None, exc)
                return
            finally:
                self._enter(ctx, RunStage.DIFFING)

        match decision.resolution:
            case Resolution.USE_PROJECT:
                reason = (
                    "Chosen project version"
                    if decision.user_chosen
                    else "Project version wins"
                )
                await self._transfer(
                    ctx, project_file, Side.VAULT, SyncAction.UPDATE, reason
                )
            case Resolution.USE_VAULT if ctx.policy.bidirectional:
                reason = (
                    "Chosen vault version"
                    if decision.user_chosen
                    else "Vault version wins"
                )
                await self._transfer(
                    ctx, vault_file, Side.PROJECT, SyncAction.UPDATE, reason
                )
            case Resolution.USE_VAULT:
                self._skip(
                    ctx, rel, "Vault version is newer (one-way mapping)"
                )
            case _:
                self._skip(ctx, rel, "Conflict skipped")

    async def _copy_vault_only(self, ctx: _RunContext) -> None:
        for rel, vault_file in list(ctx.vault_files.items()):
            if rel not in ctx.project_files:
                await self._transfer(
                    ctx,
                    vault_file,
                    Side.PROJECT,
                    SyncAction.COPY,
                    "File exists only in the vault",
                )

    async def _reconcile_vault_authoritative(self, ctx: _RunContext) -> None:
        for rel, vault_file in list(ctx.vault_files.items()):
            project_file = ctx.project_files.get(rel)
            if project_file is None:
                await self._transfer(
                    ctx,
                    vault_file,
                    Side.PROJECT,
                    SyncAction.COPY,
                    "File exists only in the vault",
                )
            elif compare_times(project_file, vault_file) == "vault-newer":
                await self._transfer(
                    ctx,
                    vault_file,
                    Side.PROJECT,
                    SyncAction.UPDATE,
                    "Vault version is newer (one-way mapping)",
                )
            else:
                self._skip(ctx, rel, "Project copy is current")

    # ------------------------------------------------------------------
    # Step 6: apply
    # ------------------------------------------------------------------

    async def _transfer(
        self,
        ctx: _RunContext,
        source: FileInfo,
        target_side: Side,
        action: SyncAction,
        reason: str,
    ) -> None:
        """Copy *source* onto *target_side*, or plan it when dry-running."""
        rel = source.relative_path
        direction = SyncDirection.towards(target_side)
        src_store = self._store(target_side.other)
        dst_store = self._store(target_side)
        target = dst_store.join(ctx.root(target_side), rel)

        if ctx.dry_run:
            ctx.planned.append(
                PlannedAction(
                    relative_path=rel,
                    action=action,
                    direction=direction,
                    source_path=source.absolute_path,
                    target_path=dst_store.absolute_path(target),
                    reason=reason,
                )
            )
            return

        self._enter(ctx, RunStage.APPLYING)
        try:
            data = await run_sync(src_store.read, source.location)
            current = await run_sync(src_store.stat, source.location)
            mtime = current.modified_time if current else source.modified_time
            if ctx.policy.create_backups and await run_sync(
                dst_store.exists, target
            ):
                await self._backup(dst_store, target)
            await run_sync(dst_store.write, target, data)
            await run_sync(dst_store.set_modified_time, target, mtime)
        except Exception as exc:
            self._record_failure(ctx, rel, action, direction, exc)
        else:
            logger.info("%s %s (%s)", action.value.capitalize(), rel, direction.value)
            ctx.files.append(
                SyncFileResult(
                    relative_path=rel,
                    action=action,
                    direction=direction,
                    success=True,
                )
            )
        finally:
            self._enter(ctx, RunStage.DIFFING)

    async def _backup(self, store: StoreAdapter, location: str) -> None:
        backup = location + backup_suffix()
        data = await run_sync(store.read, location)
        await run_sync(store.write, backup, data)
        logger.debug("Backed up %s to %s", location, backup)

    # ------------------------------------------------------------------
    # Step 7: snapshot
    # ------------------------------------------------------------------

    async def _update_snapshot(self, ctx: _RunContext) -> None:
        policy = ctx.policy
        states = {}
        for side, store in (
            (Side.PROJECT, self.project_store),
            (Side.VAULT, self.vault_store),
        ):
            files = await run_sync(
                store.list_files,
                ctx.root(side),
                policy.file_types,
                policy.exclude_patterns,
                policy.follow_symlinks,
            )
            states[side] = await run_sync(
                SnapshotStore.build_file_states, store, files
            )
        self.snapshots.update(
            ctx.mapping.id, states[Side.PROJECT], states[Side.VAULT]
        )
        self.snapshots.save()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _store(self, side: Side) -> StoreAdapter:
        return self.project_store if side is Side.PROJECT else self.vault_store

    def _skip(self, ctx: _RunContext, rel: str, reason: str) -> None:
        if ctx.dry_run:
            ctx.planned.append(
                PlannedAction(
                    relative_path=rel, action=SyncAction.SKIP, reason=reason
                )
            )
        else:
            ctx.files.append(
                SyncFileResult(
                    relative_path=rel, action=SyncAction.SKIP, success=True
                )
            )

    def _record_failure(
        self,
        ctx: _RunContext,
        rel: str,
        action: SyncAction,
        direction: SyncDirection | None,
        exc: Exception,
    ) -> None:
        logger.error("Error syncing %s (%s): %s", rel, action.value, exc)
        message = f"{rel}: {exc}"
        ctx.errors.append(message)
        ctx.files.append(
            SyncFileResult(
                relative_path=rel,
                action=action,
                direction=direction,
                success=False,
                error=str(exc),
            )
        )
