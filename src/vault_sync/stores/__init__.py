"""Store adapters for the two sides of a mapping.

- ``ProjectStore`` -- externally managed directory tree.
- ``VaultStore``   -- managed vault directory (atomic writes, trash on delete).
- ``StoreAdapter`` -- protocol the sync engine is written against.
"""

from .base import StoreAdapter, walk_tree
from .project import ProjectStore
from .vault import VaultStore

__all__ = [
    "ProjectStore",
    "StoreAdapter",
    "VaultStore",
    "walk_tree",
]
