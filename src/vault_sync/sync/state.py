"""Snapshot persistence layer.

Keeps, per mapping, the file states observed on both sides at the last
successful sync, in a single JSON document (``sync-state.json`` by
default)::

    {
      "version": 1,
      "mappings": {
        "<mapping id>": {
          "mapping_id": "...",
          "last_sync_time": 1760000000000,
          "project_files": [{"relative_path": ..., "content_hash": ...,
                             "modified_time": ..., "size": ...}],
          "vault_files": [...],
          "version": 1
        }
      }
    }

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Reset on doubt** -- a document written by a newer schema version, or
  one that cannot be read or parsed, is discarded and the store starts
  empty.  Future runs stay available; the cost is one additive-only sync.
* **Wholesale updates** -- ``update()`` replaces a mapping's entry; there
  is no incremental merge.
* **Tombstone-free deletion detection** -- ``detect_deletions()`` infers a
  deletion from presence in the snapshot plus absence from the current
  listing.  Without a snapshot it reports nothing, so a first sync is
  always additive.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .models import (
    DetectedDeletion,
    FileInfo,
    FileState,
    MappingSyncState,
    Side,
)

if TYPE_CHECKING:
    from ..stores.base import StoreAdapter

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1
STATE_FILE_NAME = "sync-state.json"


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw file bytes."""
    return hashlib.sha256(data).hexdigest()


class SnapshotStore:
    """Load, save, and query per-mapping sync snapshots.

    Args:
        state_file: Path of the JSON document.  A directory may be given,
            in which case ``sync-state.json`` inside it is used.
    """

    def __init__(self, state_file: Path) -> None:
        state_file = Path(state_file).expanduser()
        if state_file.is_dir():
            state_file = state_file / STATE_FILE_NAME
        self._path = state_file
        self._mappings: dict[str, MappingSyncState] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load the snapshot document from disk.

        A missing file yields an empty store.  A newer schema version or
        any read/parse failure is logged and also yields an empty store.
        """
        self._loaded = True
        self._mappings = {}
        if not self._path.exists():
            return

        try:
            with open(self._path, encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not read sync state %s (%s); starting fresh",
                self._path,
                exc,
            )
            return

        if not isinstance(raw, dict):
            logger.warning(
                "Sync state %s is not a JSON object; starting fresh",
                self._path,
            )
            return

        version = raw.get("version", CURRENT_VERSION)
        if not isinstance(version, int) or version > CURRENT_VERSION:
            logger.warning(
                "Sync state %s has unsupported version %r (expected <= %d); "
                "starting fresh",
                self._path,
                version,
                CURRENT_VERSION,
            )
            return

        try:
            self._mappings = {
                mapping_id: MappingSyncState.model_validate(entry)
                for mapping_id, entry in (raw.get("mappings") or {}).items()
            }
        except (ValidationError, AttributeError, TypeError) as exc:
            logger.warning(
                "Malformed sync state %s (%s); starting fresh",
                self._path,
                exc,
            )
            self._mappings = {}

    def save(self) -> bool:
        """Persist the store to disk atomically.

        Writes to a temporary file in the same directory then atomically
        replaces the target.  Creates the parent directory if needed.

        Returns:
            ``True`` on success.  Failures are logged, not raised.
        """
        document = {
            "version": CURRENT_VERSION,
            "mappings": {
                mapping_id: state.model_dump(mode="json")
                for mapping_id, state in self._mappings.items()
            },
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._path.parent), suffix=".tmp"
            )
        except OSError as exc:
            logger.error("Failed to save sync state %s: %s", self._path, exc)
            return False

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.error("Failed to save sync state %s: %s", self._path, exc)
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            return False
        return True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # ------------------------------------------------------------------
    # Entry access
    # ------------------------------------------------------------------

    def get(self, mapping_id: str) -> MappingSyncState | None:
        """Return the snapshot for *mapping_id*, or ``None`` if absent."""
        self._ensure_loaded()
        return self._mappings.get(mapping_id)

    def all(self) -> dict[str, MappingSyncState]:
        """Return a copy of every stored snapshot keyed by mapping id."""
        self._ensure_loaded()
        return dict(self._mappings)

    def is_first_sync(self, mapping_id: str) -> bool:
        return self.get(mapping_id) is None

    def update(
        self,
        mapping_id: str,
        project_files: list[FileState],
        vault_files: list[FileState],
    ) -> MappingSyncState:
        """Replace the snapshot for *mapping_id* with the given states."""
        self._ensure_loaded()
        state = MappingSyncState(
            mapping_id=mapping_id,
            last_sync_time=int(time.time() * 1000),
            project_files=project_files,
            vault_files=vault_files,
            version=CURRENT_VERSION,
        )
        self._mappings[mapping_id] = state
        return state

    def clear(self, mapping_id: str) -> None:
        """Remove the snapshot for *mapping_id*.  No-op if absent."""
        self._ensure_loaded()
        self._mappings.pop(mapping_id, None)

    # ------------------------------------------------------------------
    # Deletion detection
    # ------------------------------------------------------------------

    def detect_deletions(
        self,
        mapping_id: str,
        direction: str,
        project_files: Mapping[str, FileInfo],
        vault_files: Mapping[str, FileInfo],
    ) -> list[DetectedDeletion]:
        """Infer deletions since the last snapshot.

        Only the authoritative side's deletions propagate: both sides for
        a bidirectional mapping, the project side for ``project-to-vault``
        and the vault side for ``vault-to-project``.

        Args:
            mapping_id: Mapping whose snapshot is consulted.
            direction: ``bidirectional``, ``project-to-vault`` or
                ``vault-to-project``.
            project_files: Current project listing keyed by relative path.
            vault_files: Current vault listing keyed by relative path.

        Returns:
            Detected deletions, project-side first, each in snapshot order.
            Empty when there is no prior snapshot.
        """
        previous = self.get(mapping_id)
        if previous is None:
            return []

        current = {Side.PROJECT: project_files, Side.VAULT: vault_files}
        recorded = {
            Side.PROJECT: previous.project_files,
            Side.VAULT: previous.vault_files,
        }
        sides: list[Side] = []
        if direction in ("bidirectional", "project-to-vault"):
            sides.append(Side.PROJECT)
        if direction in ("bidirectional", "vault-to-project"):
            sides.append(Side.VAULT)

        deletions: list[DetectedDeletion] = []
        for side in sides:
            survivors = current[side.other]
            for state in recorded[side]:
                if state.relative_path in current[side]:
                    continue
                survivor = survivors.get(state.relative_path)
                if survivor is None:
                    continue
                deletions.append(
                    DetectedDeletion(
                        deleted_from=side,
                        exists_in=side.other,
                        target_path=survivor.absolute_path,
                        target_location=survivor.location,
                        last_known=state,
                    )
                )
        return deletions

    # ------------------------------------------------------------------
    # File state construction
    # ------------------------------------------------------------------

    @staticmethod
    def build_file_states(
        adapter: StoreAdapter, files: list[FileInfo]
    ) -> list[FileState]:
        """Hash every listed file; unreadable files are skipped."""
        states: list[FileState] = []
        for info in files:
            try:
                data = adapter.read(info.location)
            except OSError as exc:
                logger.debug(
                    "Skipping %s in snapshot: %s", info.absolute_path, exc
                )
                continue
            states.append(
                FileState(
                    relative_path=info.relative_path,
                    content_hash=content_hash(data),
                    modified_time=info.modified_time,
                    size=info.size,
                )
            )
        return states
