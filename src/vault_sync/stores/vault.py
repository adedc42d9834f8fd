"""Vault store: a managed document tree rooted at the vault directory.

Locations are vault-relative POSIX paths (``"Notes/a.md"``; ``""`` is the
vault root).  The store owns its disk I/O:

* writes go to a temp file in the destination folder and are then
  atomically swapped in with ``os.replace()``, so the vault application
  never observes a half-written note;
* deletes move the file into the vault's trash folder (``.trash`` by
  default) instead of unlinking it;
* the vault configuration folder and the trash folder are never listed.
"""

from __future__ import annotations

import logging
import os
import stat as stat_mod
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from ..sync.models import FileInfo
from .base import to_mtime_ms, walk_tree

logger = logging.getLogger(__name__)


def _file_mode(target: Path) -> int:
    """Permission bits for a write: the existing file's, else the umask default.

    ``mkstemp`` creates owner-only files, so the temp file must be widened
    before it replaces *target*.
    """
    try:
        return stat_mod.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


class VaultStore:
    """Store adapter over the vault directory.

    Args:
        base_path: Absolute vault base directory.
        config_dir: Vault configuration folder name, always excluded.
        trash_dir: Vault-relative folder receiving deleted files.
    """

    def __init__(
        self,
        base_path: str | Path,
        config_dir: str = ".obsidian",
        trash_dir: str = ".trash",
    ) -> None:
        self.base_path = Path(base_path).expanduser().resolve()
        self.config_dir = config_dir
        self.trash_dir = trash_dir

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    @staticmethod
    def normalize(location: str) -> str:
        """Normalise a vault-relative path; reject escapes from the vault."""
        parts = [
            p for p in location.replace("\\", "/").split("/") if p not in ("", ".")
        ]
        if ".." in parts:
            raise ValueError(f"Path escapes the vault: '{location}'")
        return "/".join(parts)

    def _fs_path(self, location: str) -> Path:
        normalized = self.normalize(location)
        return self.base_path / normalized if normalized else self.base_path

    def join(self, root: str, relative_path: str) -> str:
        root = self.normalize(root)
        if not root:
            return self.normalize(relative_path)
        return self.normalize(str(PurePosixPath(root) / relative_path))

    def absolute_path(self, location: str) -> str:
        return str(self._fs_path(location))

    # ------------------------------------------------------------------
    # Listing / queries
    # ------------------------------------------------------------------

    def list_files(
        self,
        root: str,
        file_types: Iterable[str],
        exclude_patterns: Iterable[str],
        follow_symlinks: bool = False,
    ) -> list[FileInfo]:
        root = self.normalize(root)
        return [
            FileInfo(
                relative_path=rel,
                location=self.join(root, rel),
                absolute_path=str(path),
                modified_time=to_mtime_ms(st),
                size=st.st_size,
            )
            for rel, path, st in walk_tree(
                self._fs_path(root),
                file_types,
                exclude_patterns,
                follow_symlinks,
                (self.config_dir, self.trash_dir),
            )
        ]

    def exists(self, location: str) -> bool:
        return self._fs_path(location).exists()

    def is_directory(self, location: str) -> bool:
        return self._fs_path(location).is_dir()

    def stat(self, location: str) -> FileInfo | None:
        path = self._fs_path(location)
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        return FileInfo(
            relative_path=PurePosixPath(self.normalize(location)).name,
            location=self.normalize(location),
            absolute_path=str(path),
            modified_time=to_mtime_ms(st),
            size=st.st_size,
        )

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def read(self, location: str) -> bytes:
        return self._fs_path(location).read_bytes()

    def write(self, location: str, data: bytes) -> None:
        target = self._fs_path(location)
        target.parent.mkdir(parents=True, exist_ok=True)
        mode = _file_mode(target)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(target.parent), prefix=".", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def delete(self, location: str) -> None:
        """Move *location* into the vault trash folder."""
        source = self._fs_path(location)
        if not source.is_file():
            raise FileNotFoundError(f"No such vault file: '{location}'")
        destination = self._fs_path(
            self.join(self.trash_dir, self.normalize(location))
        )
        if destination.exists():
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
            destination = destination.with_name(
                f"{destination.name}.{stamp}"
            )
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, destination)
        logger.debug("Trashed %s -> %s", location, destination)

    def ensure_directory(self, location: str) -> None:
        self._fs_path(location).mkdir(parents=True, exist_ok=True)

    def set_modified_time(self, location: str, mtime_ms: int) -> None:
        ns = mtime_ms * 1_000_000
        os.utime(self._fs_path(location), ns=(ns, ns))
