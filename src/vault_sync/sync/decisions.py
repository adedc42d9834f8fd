"""Host-side helpers for answering the engine's suspension points.

The engine suspends on two channels: a conflict handler under the
``always-ask`` strategy and a deletion confirmer when confirmation is on.
Both may be plain functions or coroutine functions.

``AsyncDecisionQueue`` turns the conflict channel into a message exchange:
each conflict is parked behind a future until the host answers it, so a
host can list pending conflicts, answer them in any order, or answer
them all at once.

``fixed_decision`` and ``fixed_confirmation`` are the non-interactive
answers used by the MCP tools.
"""

from __future__ import annotations

import asyncio
import logging

from .models import ConflictInfo, DetectedDeletion, Resolution

logger = logging.getLogger(__name__)


class AsyncDecisionQueue:
    """Conflict handler that waits for the host to answer each conflict."""

    def __init__(self) -> None:
        self._futures: dict[str, asyncio.Future[Resolution]] = {}
        self._conflicts: dict[str, ConflictInfo] = {}
        self._arrivals: asyncio.Queue[ConflictInfo] = asyncio.Queue()

    async def __call__(self, conflict: ConflictInfo) -> Resolution:
        future = asyncio.get_running_loop().create_future()
        key = conflict.relative_path
        self._futures[key] = future
        self._conflicts[key] = conflict
        self._arrivals.put_nowait(conflict)
        logger.debug("Waiting for a decision on %s", key)
        try:
            return await future
        finally:
            self._futures.pop(key, None)
            self._conflicts.pop(key, None)

    @property
    def pending(self) -> list[ConflictInfo]:
        """Conflicts currently waiting for an answer."""
        return list(self._conflicts.values())

    async def next_pending(self) -> ConflictInfo:
        """Wait until a conflict is parked and return it."""
        while True:
            conflict = await self._arrivals.get()
            if conflict.relative_path in self._futures:
                return conflict

    def answer(self, relative_path: str, resolution: Resolution | str) -> bool:
        """Resolve the conflict on *relative_path*.

        Returns:
            ``False`` if no conflict is waiting on that path.
        """
        future = self._futures.get(relative_path)
        if future is None or future.done():
            return False
        future.set_result(Resolution(resolution))
        return True

    def answer_all(self, resolution: Resolution | str) -> int:
        """Resolve every waiting conflict the same way; returns the count."""
        return sum(
            1 for path in list(self._futures) if self.answer(path, resolution)
        )


def fixed_decision(resolution: Resolution | str):
    """Conflict handler that always answers *resolution*."""
    decided = Resolution(resolution)

    def _handler(conflict: ConflictInfo) -> Resolution:
        logger.info(
            "Resolving conflict on %s with '%s'",
            conflict.relative_path,
            decided.value,
        )
        return decided

    return _handler


def fixed_confirmation(confirm: bool):
    """Deletion confirmer that always answers *confirm*."""

    def _confirmer(deletions: list[DetectedDeletion]) -> bool:
        logger.info(
            "%s %d detected deletion(s)",
            "Accepting" if confirm else "Declining",
            len(deletions),
        )
        return confirm

    return _confirmer
