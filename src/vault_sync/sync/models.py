"""Pydantic models for the vault sync engine.

Defines the core data contracts used across all sync modules:

- ``Side``, ``SyncDirection``, ``SyncAction``, ``Resolution``,
  ``RunStage``: enums naming the two stores, copy directions, per-file
  operations, conflict decisions and engine states.
- ``FileInfo``: one entry of a store listing.
- ``FileState``: snapshot record of one file (hash, mtime, size).
- ``MappingSyncState``: persisted snapshot for one mapping.
- ``ConflictInfo`` / ``ConflictResolution``: a differing shared file and
  the decision taken for it.
- ``DetectedDeletion``: a deletion inferred from the snapshot.
- ``PlannedAction`` / ``SyncFileResult``: dry-run projection and executed
  outcome for one file.
- ``SyncResult`` / ``DryRunResult``: aggregate results for one mapping.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class Side(str, Enum):
    """The two stores of a mapping."""

    PROJECT = "project"
    VAULT = "vault"

    @property
    def other(self) -> Side:
        return Side.VAULT if self is Side.PROJECT else Side.PROJECT


class SyncDirection(str, Enum):
    """Direction a file travels."""

    PROJECT_TO_VAULT = "project-to-vault"
    VAULT_TO_PROJECT = "vault-to-project"

    @classmethod
    def towards(cls, target: Side) -> SyncDirection:
        """Direction whose destination is *target*."""
        if target is Side.VAULT:
            return cls.PROJECT_TO_VAULT
        return cls.VAULT_TO_PROJECT


class SyncAction(str, Enum):
    """Per-file sync operations."""

    COPY = "copy"
    UPDATE = "update"
    SKIP = "skip"
    DELETE = "delete"


class Resolution(str, Enum):
    """Outcome of resolving a conflict."""

    USE_PROJECT = "use-project"
    USE_VAULT = "use-vault"
    SKIP = "skip"


class RunStage(str, Enum):
    """States of a single mapping run."""

    VALIDATING = "validating"
    LISTING = "listing"
    DIFFING = "diffing"
    CONFLICT_RESOLUTION = "conflict-resolution"
    DELETION_HANDLING = "deletion-handling"
    APPLYING = "applying"
    SNAPSHOTTING = "snapshotting"
    DONE = "done"
    ERROR = "error"


class FileInfo(BaseModel):
    """One file as reported by a store listing.

    Attributes:
        relative_path: Slash-separated path relative to the listing root.
        location: Store-native address accepted by read/write/delete.
        absolute_path: Absolute filesystem path, for display.
        modified_time: Modification time in epoch milliseconds.
        size: Size in bytes.
    """

    relative_path: str
    location: str
    absolute_path: str
    modified_time: int
    size: int

    model_config = {"frozen": True}


class FileState(BaseModel):
    """Snapshot record of one file on one side of a mapping."""

    relative_path: str
    content_hash: str
    modified_time: int
    size: int

    model_config = {"frozen": True}


class MappingSyncState(BaseModel):
    """Persisted snapshot for one mapping.

    Attributes:
        mapping_id: Owning mapping.
        last_sync_time: Epoch milliseconds of the last successful sync.
        project_files: Project-side file states observed at that sync.
        vault_files: Vault-side file states observed at that sync.
        version: Schema version the entry was written with.
    """

    mapping_id: str
    last_sync_time: int
    project_files: list[FileState] = []
    vault_files: list[FileState] = []
    version: int = 1

    model_config = {"frozen": True}


class ConflictInfo(BaseModel):
    """A file present on both sides whose modification times differ."""

    relative_path: str
    project_path: str
    vault_path: str
    project_mtime: int
    vault_mtime: int
    project_size: int
    vault_size: int

    model_config = {"frozen": True}


class ConflictResolution(BaseModel):
    """A conflict together with the decision taken for it."""

    conflict: ConflictInfo
    resolution: Resolution
    user_chosen: bool = False

    model_config = {"frozen": True}


class DetectedDeletion(BaseModel):
    """A path deleted from one side since the last snapshot.

    Attributes:
        deleted_from: Side on which the file disappeared.
        exists_in: Side that still holds a copy.
        target_path: Absolute path of the copy that should now be removed.
        target_location: Store-native address of that copy.
        last_known: The file's state as recorded in the snapshot.
    """

    deleted_from: Side
    exists_in: Side
    target_path: str
    target_location: str
    last_known: FileState

    model_config = {"frozen": True}

    @property
    def relative_path(self) -> str:
        return self.last_known.relative_path


class PlannedAction(BaseModel):
    """Dry-run projection for one file."""

    relative_path: str
    action: SyncAction
    direction: SyncDirection | None = None
    source_path: str | None = None
    target_path: str | None = None
    reason: str

    model_config = {"frozen": True}


class SyncFileResult(BaseModel):
    """Executed outcome for one file."""

    relative_path: str
    action: SyncAction
    direction: SyncDirection | None = None
    success: bool
    error: str | None = None

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Aggregate result for one mapping run.

    Attributes:
        mapping_id: Mapping that was synced.
        mapping_name: Human-readable mapping name.
        files: Per-file outcomes, in processing order.
        conflicts: Every conflict encountered, decided or not.
        errors: Per-file error messages.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
        duration_ms: Wall-clock duration of the run.
        error: Fatal top-level error, if the run was aborted.
        stage: Last stage reached (``done`` or ``error``).
    """

    mapping_id: str
    mapping_name: str
    files: list[SyncFileResult] = []
    conflicts: list[ConflictInfo] = []
    errors: list[str] = []
    started_at: str
    completed_at: str | None = None
    duration_ms: int = 0
    error: str | None = None
    stage: RunStage = RunStage.DONE

    model_config = {"frozen": True}

    def _count(self, *actions: SyncAction) -> int:
        return sum(
            1 for f in self.files if f.success and f.action in actions
        )

    @property
    def files_processed(self) -> int:
        return len(self.files)

    @property
    def files_copied(self) -> int:
        """Successful copies and updates."""
        return self._count(SyncAction.COPY, SyncAction.UPDATE)

    @property
    def files_skipped(self) -> int:
        return self._count(SyncAction.SKIP)

    @property
    def files_deleted(self) -> int:
        return self._count(SyncAction.DELETE)

    @property
    def failed_files(self) -> list[SyncFileResult]:
        return [f for f in self.files if not f.success]

    @property
    def success(self) -> bool:
        """True when the run completed with no fatal or per-file error."""
        return self.error is None and not self.errors

    @property
    def status(self) -> str:
        """``success``, ``partial`` (file errors) or ``failed`` (fatal)."""
        if self.error is not None:
            return "failed"
        if self.errors:
            return "partial"
        return "success"


class DryRunResult(BaseModel):
    """Planned actions for one mapping, without any I/O performed."""

    mapping_id: str
    mapping_name: str
    planned_actions: list[PlannedAction] = []
    planned_deletions: list[DetectedDeletion] = []
    conflicts: list[ConflictInfo] = []
    errors: list[str] = []
    error: str | None = None

    model_config = {"frozen": True}

    def actions_of(self, action: SyncAction) -> list[PlannedAction]:
        """Planned actions of the given kind."""
        return [a for a in self.planned_actions if a.action == action]

    @property
    def has_changes(self) -> bool:
        return bool(self.planned_deletions) or any(
            a.action != SyncAction.SKIP for a in self.planned_actions
        )
