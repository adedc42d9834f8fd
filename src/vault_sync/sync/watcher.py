"""Live change watcher for both sides of every enabled mapping.

Each enabled mapping gets two ``watchfiles.awatch`` subscriptions, one on
the project folder and one on the vault folder.  Raw events are coalesced:

* added/modified events are recorded in a pending map keyed by
  ``(mapping id, side, relative path)``, so a later event for the same
  file replaces the earlier one;
* deleted events are dropped; deletions are propagated by snapshot
  comparison at sync time;
* a single idle timer shared by all subscriptions is restarted on every
  recorded event.  When it fires, all pending events are delivered as one
  ``WatchBatch`` to every registered callback and the map is cleared.

Paths excluded by the store rules, or not matching the mapping's file
types, never produce events.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from watchfiles import Change, awatch

from ..config_schema import MappingConfig, SyncPolicyConfig, resolve_policy
from ..core.async_utils import maybe_await
from .filters import is_excluded_path, matches_file_types
from .models import Side

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kinds of file events."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"

    @classmethod
    def from_watchfiles(cls, change: Change) -> ChangeType:
        return {
            Change.added: cls.ADDED,
            Change.modified: cls.MODIFIED,
            Change.deleted: cls.DELETED,
        }[change]


@dataclass(frozen=True)
class ChangeEvent:
    """One coalesced file event."""

    mapping_id: str
    side: Side
    relative_path: str
    change: ChangeType


@dataclass(frozen=True)
class WatchBatch:
    """Events flushed together after an idle window."""

    events: tuple[ChangeEvent, ...]

    @property
    def mapping_ids(self) -> list[str]:
        """Distinct mapping ids, in first-seen order."""
        return list(dict.fromkeys(e.mapping_id for e in self.events))

    def __len__(self) -> int:
        return len(self.events)


BatchCallback = Callable[[WatchBatch], Awaitable[Any] | Any]


@dataclass
class _Subscription:
    mapping: MappingConfig
    side: Side
    path: Path
    file_types: tuple[str, ...]
    exclude_patterns: tuple[str, ...]
    extra_exclusions: tuple[str, ...]


@dataclass
class ChangeWatcher:
    """Coalescing watcher over the project and vault folders of mappings.

    Example:
        ```python
        watcher = ChangeWatcher(policy=config.sync, vault_base=vault_path)
        watcher.on_batch(service.handle_batch)

        async with watcher.watching(config.mappings):
            await asyncio.sleep(3600)
        ```
    """

    policy: SyncPolicyConfig
    """Global policy (debounce window and default filters)."""

    vault_base: Path
    """Vault base directory; mapping vault folders are relative to it."""

    vault_exclusions: tuple[str, ...] = (".obsidian", ".trash")
    """Vault folders that never produce events."""

    project_exclusions: tuple[str, ...] = (".obsidian",)
    """Project folders that never produce events."""

    _callbacks: list[BatchCallback] = field(default_factory=list, repr=False)
    _pending: dict[tuple[str, Side, str], ChangeEvent] = field(
        default_factory=dict, repr=False
    )
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, repr=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _subscriptions: list[_Subscription] = field(default_factory=list, repr=False)
    _dispatched: set[asyncio.Task[Any]] = field(default_factory=set, repr=False)

    @property
    def idle_seconds(self) -> float:
        return self.policy.debounce_ms / 1000

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def on_batch(self, callback: BatchCallback) -> None:
        """Register *callback* to receive every flushed batch."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, mappings: Iterable[MappingConfig]) -> None:
        """Open two subscriptions per enabled mapping."""
        if self._tasks:
            return  # Already running

        self._stop_event.clear()
        self._subscriptions = []
        for mapping in mappings:
            if not mapping.enabled:
                continue
            policy = resolve_policy(mapping, self.policy)
            vault_path = self.vault_base / mapping.vault_docs_path()
            for side, path, extras in (
                (
                    Side.PROJECT,
                    mapping.project_docs_path(),
                    self.project_exclusions,
                ),
                (Side.VAULT, vault_path, self.vault_exclusions),
            ):
                sub = _Subscription(
                    mapping=mapping,
                    side=side,
                    path=path,
                    file_types=policy.file_types,
                    exclude_patterns=policy.exclude_patterns,
                    extra_exclusions=extras,
                )
                self._subscriptions.append(sub)
                self._tasks.append(asyncio.create_task(self._watch_loop(sub)))
        logger.info(
            "Watching %d folder(s) for changes", len(self._subscriptions)
        )

    async def stop(self) -> None:
        """Stop all subscriptions and drop pending events.

        Syncs already dispatched to callbacks keep running.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()

        if not self._tasks:
            return
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        self._subscriptions = []
        logger.info("Change watcher stopped")

    @contextlib.asynccontextmanager
    async def watching(self, mappings: Iterable[MappingConfig]):
        """Run the watcher for the duration of an ``async with`` block."""
        await self.start(mappings)
        try:
            yield self
        finally:
            await self.stop()

    async def _watch_loop(self, sub: _Subscription) -> None:
        if not sub.path.is_dir():
            logger.warning(
                "Not watching %s side of '%s': %s is not a directory",
                sub.side.value,
                sub.mapping.name,
                sub.path,
            )
            return

        async for changes in awatch(sub.path, stop_event=self._stop_event):
            for change, raw_path in changes:
                try:
                    relative = Path(raw_path).relative_to(sub.path).as_posix()
                except ValueError:
                    continue
                self._handle_raw(sub, change, relative)

    def _handle_raw(
        self, sub: _Subscription, change: Change, relative_path: str
    ) -> None:
        if is_excluded_path(
            relative_path, sub.exclude_patterns, sub.extra_exclusions
        ):
            return
        if not matches_file_types(relative_path.rsplit("/", 1)[-1], sub.file_types):
            return
        self.record_event(
            sub.mapping.id,
            sub.side,
            relative_path,
            ChangeType.from_watchfiles(change),
        )

    # ------------------------------------------------------------------
    # Coalescing
    # ------------------------------------------------------------------

    def record_event(
        self,
        mapping_id: str,
        side: Side,
        relative_path: str,
        change: ChangeType,
    ) -> None:
        """Record one filtered event and restart the idle timer."""
        if change is ChangeType.DELETED:
            logger.debug(
                "Ignoring delete of %s (%s side of %s)",
                relative_path,
                side.value,
                mapping_id,
            )
            return

        key = (mapping_id, side, relative_path)
        self._pending[key] = ChangeEvent(
            mapping_id=mapping_id,
            side=side,
            relative_path=relative_path,
            change=change,
        )
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.idle_seconds, self._flush)

    def _flush(self) -> None:
        self._timer = None
        if not self._pending:
            return
        batch = WatchBatch(events=tuple(self._pending.values()))
        self._pending.clear()
        logger.debug(
            "Flushing %d change(s) across %d mapping(s)",
            len(batch),
            len(batch.mapping_ids),
        )
        for callback in list(self._callbacks):
            task = asyncio.ensure_future(self._deliver(callback, batch))
            self._dispatched.add(task)
            task.add_done_callback(self._dispatched.discard)

    async def _deliver(self, callback: BatchCallback, batch: WatchBatch) -> None:
        # Don't let callback errors kill the watcher
        try:
            await maybe_await(callback(batch))
        except Exception:
            logger.exception("Change batch callback failed")
