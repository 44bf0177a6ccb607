"""Helpers for racing network calls against a run's cancellation event."""

from __future__ import annotations

import asyncio
from typing import Awaitable, List, Optional, TypeVar

T = TypeVar("T")


class CancellationRequested(Exception):
    """The caller cancelled the run while an awaited call was in flight."""


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event] = None,
    *,
    timeout: Optional[float] = None,
) -> T:
    """Await ``awaitable`` unless the run is cancelled or ``timeout`` expires.

    Raises ``CancellationRequested`` if the event fires first and
    ``asyncio.TimeoutError`` on timeout. In both cases the pending call is
    cancelled locally; anything it already broadcast stays broadcast.
    """
    task = asyncio.ensure_future(awaitable)
    if cancel_event is None:
        return await asyncio.wait_for(task, timeout)

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if waiter in done:
        raise CancellationRequested()
    raise asyncio.TimeoutError()


async def gather_or_cancel(*awaitables: Awaitable[T]) -> List[T]:
    """``asyncio.gather`` that never leaves siblings running behind an error.

    If any awaitable raises (or the caller is cancelled), the remaining tasks
    are cancelled and awaited before the exception propagates.
    """
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
