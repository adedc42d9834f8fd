"""Bidirectional document sync engine.

Public API for synchronising a project's documentation folder with a
folder inside an Obsidian-style vault.

Architecture
------------
Each run lists both sides, compares modification times (within a one
second tolerance) and copies the winning version across.  A per-mapping
snapshot of content hashes taken after every successful run is the only
memory between runs; it is used to tell "deleted on one side" apart from
"new on the other side".

Modules:

- ``engine``    -- ``SyncEngine``: validates, lists, reconciles and
  applies one mapping at a time.
- ``state``     -- ``SnapshotStore``: load/save/query the JSON snapshot
  file and detect deletions.
- ``models``    -- ``FileInfo``, ``ConflictInfo``, ``SyncResult``,
  ``DryRunResult`` and friends: core data contracts.
- ``filters``   -- Hard-coded exclusions, exclude patterns and file-type
  matching shared by stores and the watcher.
- ``resolver``  -- Conflict resolution strategies (newer-wins,
  project-wins, vault-wins, always-ask).
- ``decisions`` -- Host-side conflict and deletion answer channels.
- ``watcher``   -- ``ChangeWatcher``: coalesced live change batches.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from vault_sync.config_schema import MappingConfig, SyncPolicyConfig
    from vault_sync.stores import ProjectStore, VaultStore
    from vault_sync.sync import SnapshotStore, SyncEngine, format_sync_report

    engine = SyncEngine(
        project_store=ProjectStore(),
        vault_store=VaultStore(Path("~/Notes").expanduser()),
        snapshots=SnapshotStore(Path(".vault_sync")),
        policy=SyncPolicyConfig(),
    )
    mapping = MappingConfig(
        id="docs", name="Docs", project_root=".", vault_root="Projects/demo"
    )

    result = await engine.sync_mapping(mapping)
    print(format_sync_report(result))
"""

from .decisions import AsyncDecisionQueue, fixed_confirmation, fixed_decision
from .engine import MappingValidationError, SyncEngine
from .models import (
    ConflictInfo,
    DetectedDeletion,
    DryRunResult,
    FileInfo,
    PlannedAction,
    Resolution,
    Side,
    SyncAction,
    SyncDirection,
    SyncFileResult,
    SyncResult,
)
from .reporter import (
    dry_run_to_json,
    format_conflict,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .state import SnapshotStore
from .watcher import ChangeEvent, ChangeType, ChangeWatcher, WatchBatch

__all__ = [
    "AsyncDecisionQueue",
    "ChangeEvent",
    "ChangeType",
    "ChangeWatcher",
    "ConflictInfo",
    "DetectedDeletion",
    "DryRunResult",
    "FileInfo",
    "MappingValidationError",
    "PlannedAction",
    "Resolution",
    "Side",
    "SnapshotStore",
    "SyncAction",
    "SyncDirection",
    "SyncEngine",
    "SyncFileResult",
    "SyncResult",
    "WatchBatch",
    "dry_run_to_json",
    "fixed_confirmation",
    "fixed_decision",
    "format_conflict",
    "format_dry_run_preview",
    "format_sync_report",
    "report_to_json",
]
