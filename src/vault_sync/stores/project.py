"""Project store: a plain directory tree on the local filesystem.

Locations are absolute paths.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from ..sync.models import FileInfo
from .base import to_mtime_ms, walk_tree

logger = logging.getLogger(__name__)


class ProjectStore:
    """Store adapter over an externally managed directory tree.

    Args:
        extra_exclusions: Folder names skipped in addition to the
            hardcoded system folders.
    """

    def __init__(self, extra_exclusions: Iterable[str] = ()) -> None:
        self.extra_exclusions = tuple(extra_exclusions)

    def list_files(
        self,
        root: str,
        file_types: Iterable[str],
        exclude_patterns: Iterable[str],
        follow_symlinks: bool = False,
    ) -> list[FileInfo]:
        base = Path(root)
        return [
            FileInfo(
                relative_path=rel,
                location=str(path),
                absolute_path=str(path),
                modified_time=to_mtime_ms(st),
                size=st.st_size,
            )
            for rel, path, st in walk_tree(
                base,
                file_types,
                exclude_patterns,
                follow_symlinks,
                self.extra_exclusions,
            )
        ]

    def join(self, root: str, relative_path: str) -> str:
        return str(Path(root) / relative_path)

    def absolute_path(self, location: str) -> str:
        return str(Path(location).absolute())

    def exists(self, location: str) -> bool:
        return Path(location).exists()

    def is_directory(self, location: str) -> bool:
        return Path(location).is_dir()

    def stat(self, location: str) -> FileInfo | None:
        path = Path(location)
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        return FileInfo(
            relative_path=path.name,
            location=location,
            absolute_path=str(path.absolute()),
            modified_time=to_mtime_ms(st),
            size=st.st_size,
        )

    def read(self, location: str) -> bytes:
        return Path(location).read_bytes()

    def write(self, location: str, data: bytes) -> None:
        path = Path(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def delete(self, location: str) -> None:
        Path(location).unlink()
        logger.debug("Deleted %s", location)

    def ensure_directory(self, location: str) -> None:
        Path(location).mkdir(parents=True, exist_ok=True)

    def set_modified_time(self, location: str, mtime_ms: int) -> None:
        ns = mtime_ms * 1_000_000
        os.utime(location, ns=(ns, ns))
