"""Helpers for aborting waits and requests when a caller's cancel event fires."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from ebook_ai.exceptions import OperationCancelledError

T = TypeVar("T")


def raise_if_cancelled(cancel_event: Optional[asyncio.Event], what: str = "operation") -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"{what} cancelled")


async def cancellable_sleep(seconds: float, cancel_event: Optional[asyncio.Event] = None) -> None:
    """Sleep for ``seconds``, returning early with an error if the event is set."""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return
    raise_if_cancelled(cancel_event, "wait")
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError("wait cancelled")


async def run_cancellable(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event] = None,
                          what: str = "request") -> T:
    """Await ``awaitable`` unless ``cancel_event`` fires first, in which case it is aborted."""
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelledError(f"{what} cancelled")

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if work in done:
        return work.result()

    work.cancel()
    try:
        await work
    except (asyncio.CancelledError, Exception):
        # outcome of the aborted request is discarded
        pass
    raise OperationCancelledError(f"{what} cancelled")
