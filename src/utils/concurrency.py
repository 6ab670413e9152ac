"""Shared concurrency primitives for the indexing pipeline.

Two patterns are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  Used to read many
   documents from the host source without opening all of them at once.

2. **cooperative_yield** -- Hands control back to the event loop between
   large batch iterations so interactive work can interleave with a
   long-running indexing run.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")

# Default cap on concurrent document reads.  Reads are cheap but a vault can
# hold thousands of notes; an unbounded gather would open every file at once.
DEFAULT_READ_CONCURRENCY = 16


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Each coroutine is wrapped so it acquires the semaphore before executing
    and releases it afterward.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  A fresh semaphore of
        ``DEFAULT_READ_CONCURRENCY`` slots is created when omitted (a
        module-level semaphore would bind to whichever event loop used it
        first).
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(DEFAULT_READ_CONCURRENCY)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def cooperative_yield() -> None:
    """Let other tasks on the event loop run before continuing."""
    await asyncio.sleep(0)
