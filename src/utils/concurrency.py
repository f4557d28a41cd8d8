"""Bounded fan-out helpers for calls to rate-limited upstream services.

Two patterns are exposed:

1. **gather_in_groups** -- Runs coroutine factories in fixed-size groups.
   Every call inside a group starts at once, the group is joined as a whole
   (``return_exceptions=True``), and only then does the next group start.
   Each call is individually bounded by ``asyncio.wait_for``.  Results come
   back in input order, whatever the completion order was.  The embedding
   batch runner is built on this.

2. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  Used for fan-out
   where grouping does not matter, only a concurrency ceiling (bulk
   document deletion).
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def gather_in_groups(
    factories: list[Callable[[], Awaitable[_T]]],
    group_size: int = 10,
    timeout: float | None = None,
) -> list[_T | BaseException]:
    """Run *factories* in sequential groups of concurrent calls.

    Parameters
    ----------
    factories:
        Zero-argument callables that each return a fresh awaitable.  A
        factory is only invoked when its group starts, so no coroutine is
        created (and left un-awaited) ahead of time.
    group_size:
        Maximum number of calls in flight at once.
    timeout:
        Per-call timeout in seconds.  A call that exceeds it yields an
        :class:`asyncio.TimeoutError` in its result slot.

    Returns
    -------
    list[_T | BaseException]
        One entry per factory, in input order.  Failed calls hold the
        exception instead of a value.
    """
    if group_size < 1:
        raise ValueError(f"group_size must be >= 1, got {group_size}")

    async def _bounded(factory: Callable[[], Awaitable[_T]]) -> _T:
        if timeout is None:
            return await factory()
        return await asyncio.wait_for(factory(), timeout=timeout)

    results: list[_T | BaseException] = []
    for start in range(0, len(factories), group_size):
        group = factories[start : start + group_size]
        outcomes = await asyncio.gather(
            *(_bounded(f) for f in group),
            return_exceptions=True,
        )
        failures = sum(1 for o in outcomes if isinstance(o, BaseException))
        _logger.debug(
            "group_complete",
            group_start=start,
            group_size=len(group),
            failures=failures,
        )
        results.extend(outcomes)
    return results


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` of them at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Concurrency limiter.  Defaults to a fresh ``Semaphore(5)``.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(5)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *(_wrapped(c) for c in coros),
        return_exceptions=return_exceptions,
    )
