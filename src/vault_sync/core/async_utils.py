"""Async utilities for running blocking store I/O from async code."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used to wrap filesystem calls made by the store adapters so that the
    MCP server and the change watcher stay responsive during a sync.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        files = await run_sync(store.list_files, root, [".md"], [])
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Return *value*, awaiting it first if it is awaitable.

    Lets host callbacks (conflict decisions, deletion confirmations,
    watcher batch handlers) be plain functions or coroutine functions.
    """
    if inspect.isawaitable(value):
        return await value
    return value
