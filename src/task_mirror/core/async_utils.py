"""Async utilities for bridging blocking I/O into the sync event loop."""

import asyncio
import inspect
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking function in a worker thread without stalling the event loop.

    HTTP calls (``requests``) and blob storage writes are blocking, so the
    sync layer wraps them with this helper; every such call becomes a
    suspension point for the caller.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        page = await run_sync(client.retrieve_page, page_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def call_maybe_async(
    func: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """Call *func* and await the result if it is awaitable.

    Lets listener registries accept plain callables and coroutine
    functions alike.
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
