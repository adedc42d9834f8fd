"""Path filters shared by the store tree walk and the change watcher.

* **Exclusions** are matched against each path segment (file or folder
  name).  Hardcoded system/version-control folders always apply;
  caller-supplied patterns match by equality or substring, so ``build``
  also excludes ``prebuild``.
* **File types** are suffixes tested against the whole file name, so a
  compound suffix like ``.excalidraw.md`` and a simple one like ``.md``
  are checked independently.
"""

from __future__ import annotations

from collections.abc import Iterable

HARDCODED_EXCLUSIONS = ("node_modules", ".git", ".DS_Store", ".space")


def is_excluded(
    segment: str,
    exclude_patterns: Iterable[str],
    extra_exclusions: Iterable[str] = (),
) -> bool:
    """Return ``True`` if one path *segment* must be skipped."""
    for exclusion in (*HARDCODED_EXCLUSIONS, *extra_exclusions):
        if segment == exclusion:
            return True
    for pattern in exclude_patterns:
        if not pattern:
            continue
        if segment == pattern or pattern in segment:
            return True
    return False


def is_excluded_path(
    relative_path: str,
    exclude_patterns: Iterable[str],
    extra_exclusions: Iterable[str] = (),
) -> bool:
    """Return ``True`` if any segment of *relative_path* is excluded."""
    patterns = tuple(exclude_patterns)
    extras = tuple(extra_exclusions)
    return any(
        is_excluded(segment, patterns, extras)
        for segment in relative_path.split("/")
        if segment
    )


def matches_file_types(name: str, file_types: Iterable[str]) -> bool:
    """Return ``True`` if file *name* ends with any configured suffix."""
    return any(name.endswith(suffix) for suffix in file_types if suffix)

