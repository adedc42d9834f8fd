"""Store adapter protocol and the shared tree walk.

Both concrete stores list files the same way, using the filters in
``vault_sync.sync.filters``:

* hardcoded system/version-control folders, the extra folders of the
  store (vault configuration, trash) and caller exclusion patterns are
  skipped per path segment;
* files are included by whole-name suffix match;
* symlinks are skipped unless following is enabled; broken links are
  always skipped;
* errors on a single entry or directory are logged at DEBUG and the walk
  continues.
"""

from __future__ import annotations

import logging
import os
import stat as stat_mod
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Protocol

from ..sync.filters import is_excluded, matches_file_types
from ..sync.models import FileInfo

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class StoreAdapter(Protocol):
    """Uniform interface over one file tree.

    A *location* is the store-native address of a file: an absolute path
    for the project store, a vault-relative path for the vault store.
    """

    def list_files(
        self,
        root: str,
        file_types: Iterable[str],
        exclude_patterns: Iterable[str],
        follow_symlinks: bool = False,
    ) -> list[FileInfo]:
        """Recursively list files under *root* matching the filters."""
        ...  # pragma: no cover

    def join(self, root: str, relative_path: str) -> str:
        """Location of *relative_path* under *root*."""
        ...  # pragma: no cover

    def absolute_path(self, location: str) -> str:
        """Absolute filesystem path of *location*."""
        ...  # pragma: no cover

    def exists(self, location: str) -> bool: ...  # pragma: no cover

    def is_directory(self, location: str) -> bool: ...  # pragma: no cover

    def stat(self, location: str) -> FileInfo | None:
        """File info for *location*, or ``None`` if it does not exist."""
        ...  # pragma: no cover

    def read(self, location: str) -> bytes: ...  # pragma: no cover

    def write(self, location: str, data: bytes) -> None:
        """Write *data*, creating missing parent directories."""
        ...  # pragma: no cover

    def delete(self, location: str) -> None: ...  # pragma: no cover

    def ensure_directory(self, location: str) -> None: ...  # pragma: no cover

    def set_modified_time(self, location: str, mtime_ms: int) -> None:
        ...  # pragma: no cover


def to_mtime_ms(st: os.stat_result) -> int:
    """Modification time of *st* in whole epoch milliseconds."""
    return st.st_mtime_ns // 1_000_000


# ---------------------------------------------------------------------------
# Tree walk
# ---------------------------------------------------------------------------


def walk_tree(
    base: Path,
    file_types: Iterable[str],
    exclude_patterns: Iterable[str],
    follow_symlinks: bool = False,
    extra_exclusions: Iterable[str] = (),
) -> Iterator[tuple[str, Path, os.stat_result]]:
    """Yield ``(relative_path, path, stat)`` for every matching file.

    Traversal is depth-first in sorted name order.  The relative path is
    slash-separated and relative to *base*.
    """
    types = tuple(file_types)
    patterns = tuple(exclude_patterns)
    extras = tuple(extra_exclusions)
    # Real paths of directories on the current descent; guards against
    # symlink cycles when following links.
    active: set[str] = set()

    def _walk(current: Path, prefix: str):
        real = os.path.realpath(current)
        if real in active:
            logger.debug("Skipping symlink cycle at %s", current)
            return
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logger.debug("Cannot read directory %s: %s", current, exc)
            return

        active.add(real)
        try:
            for entry in entries:
                if is_excluded(entry.name, patterns, extras):
                    continue
                rel = f"{prefix}{entry.name}"
                try:
                    if entry.is_symlink():
                        if not follow_symlinks:
                            continue
                        try:
                            st = os.stat(entry.path)
                        except OSError:
                            # Broken link
                            continue
                    else:
                        st = entry.stat(follow_symlinks=False)
                except OSError as exc:
                    logger.debug("Cannot stat %s: %s", entry.path, exc)
                    continue

                if stat_mod.S_ISDIR(st.st_mode):
                    yield from _walk(Path(entry.path), rel + "/")
                elif stat_mod.S_ISREG(st.st_mode):
                    if matches_file_types(entry.name, types):
                        yield rel, Path(entry.path), st
        finally:
            active.discard(real)

    if not base.is_dir():
        return
    yield from _walk(base, "")
