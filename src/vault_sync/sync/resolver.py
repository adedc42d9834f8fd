"""Conflict resolution strategies for the sync engine.

Provides one resolver per strategy:

- ``NewerWinsResolver``: the later modification time wins; ties go to the
  project side.
- ``ProjectWinsResolver``: always picks the project copy.
- ``VaultWinsResolver``: always picks the vault copy.
- ``AlwaysAskResolver``: returns ``skip`` as a placeholder; the engine
  must obtain an explicit decision and call
  ``resolve_with_external_choice()``.

The ``create_resolver()`` factory maps config strategy strings to resolver
instances.  Unknown or missing strategies fall back to newer-wins.

Resolvers are pure: no I/O, no state.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .models import ConflictInfo, ConflictResolution, Resolution

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = "newer-wins"

# Size difference or a time gap above this marks a conflict as significant.
SIGNIFICANT_TIME_GAP_MS = 60_000


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    #: True when the resolver cannot decide on its own.
    requires_decision: bool

    def resolve(self, conflict: ConflictInfo) -> ConflictResolution:
        """Determine the resolution for a conflict."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class NewerWinsResolver:
    """Resolve in favour of the more recently modified copy."""

    requires_decision = False

    def resolve(self, conflict: ConflictInfo) -> ConflictResolution:
        if conflict.vault_mtime > conflict.project_mtime:
            resolution = Resolution.USE_VAULT
        else:
            resolution = Resolution.USE_PROJECT
        return ConflictResolution(conflict=conflict, resolution=resolution)


class ProjectWinsResolver:
    """Always resolve in favour of the project copy."""

    requires_decision = False

    def resolve(self, conflict: ConflictInfo) -> ConflictResolution:
        return ConflictResolution(
            conflict=conflict, resolution=Resolution.USE_PROJECT
        )


class VaultWinsResolver:
    """Always resolve in favour of the vault copy."""

    requires_decision = False

    def resolve(self, conflict: ConflictInfo) -> ConflictResolution:
        return ConflictResolution(
            conflict=conflict, resolution=Resolution.USE_VAULT
        )


class AlwaysAskResolver:
    """Defer every conflict to an external decision-maker."""

    requires_decision = True

    def resolve(self, conflict: ConflictInfo) -> ConflictResolution:
        return ConflictResolution(
            conflict=conflict, resolution=Resolution.SKIP
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "newer-wins": NewerWinsResolver,
    "project-wins": ProjectWinsResolver,
    "vault-wins": VaultWinsResolver,
    "always-ask": AlwaysAskResolver,
}


def create_resolver(strategy: str | None) -> ConflictResolver:
    """Create a conflict resolver for the given strategy string.

    Args:
        strategy: One of ``"newer-wins"``, ``"project-wins"``,
            ``"vault-wins"``, ``"always-ask"``.  Anything else (including
            ``None``) selects newer-wins.

    Returns:
        A ``ConflictResolver`` implementation instance.
    """
    cls = _STRATEGY_MAP.get(strategy or "")
    if cls is None:
        logger.warning(
            "Unknown conflict strategy %r; using %s",
            strategy,
            DEFAULT_STRATEGY,
        )
        cls = _STRATEGY_MAP[DEFAULT_STRATEGY]
    return cls()  # type: ignore[return-value]


def resolve(strategy: str | None, conflict: ConflictInfo) -> Resolution:
    """Decide *conflict* under *strategy*.

    ``always-ask`` yields ``Resolution.SKIP``; callers must then obtain a
    decision and pass it to ``resolve_with_external_choice()``.
    """
    return create_resolver(strategy).resolve(conflict).resolution


def resolve_with_external_choice(
    conflict: ConflictInfo, decision: Resolution | str
) -> ConflictResolution:
    """Record an explicit decision taken by an external decision-maker."""
    return ConflictResolution(
        conflict=conflict,
        resolution=Resolution(decision),
        user_chosen=True,
    )


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


def time_difference_ms(conflict: ConflictInfo) -> int:
    """Absolute modification time gap between the two copies."""
    return abs(conflict.project_mtime - conflict.vault_mtime)


def is_significant_conflict(conflict: ConflictInfo) -> bool:
    """True when sizes differ or the copies are over a minute apart."""
    return (
        conflict.project_size != conflict.vault_size
        or time_difference_ms(conflict) > SIGNIFICANT_TIME_GAP_MS
    )


def format_time_difference(conflict: ConflictInfo) -> str:
    """Human-readable time gap, e.g. ``"3 hours"``."""
    diff_ms = time_difference_ms(conflict)
    seconds = diff_ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if value > 0:
            return f"{value} {unit}{'s' if value > 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
