"""SIGINT/SIGTERM handling for a session running on the event loop."""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Coroutine, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@asynccontextmanager
async def shutdown_signals() -> AsyncIterator[asyncio.Event]:
    """Yield an event that is set when SIGINT or SIGTERM arrives."""
    loop = asyncio.get_running_loop()
    event = asyncio.Event()
    previous = {sig: signal.getsignal(sig) for sig in SHUTDOWN_SIGNALS}

    def _on_signal(sig: signal.Signals) -> None:
        _logger.info("Received %s, shutting down", sig.name)
        event.set()

    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, _on_signal, sig)
    try:
        yield event
    finally:
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)
            if previous[sig] is not None:
                signal.signal(sig, previous[sig])


async def run_interruptible(coro: Coroutine[Any, Any, T]) -> tuple[T | None, bool]:
    """Run ``coro`` until it finishes or a shutdown signal arrives.

    On a signal the coroutine is cancelled and awaited, so its own cleanup
    (process shutdown, reader flushing) completes before this returns.
    Returns ``(result, interrupted)``.
    """
    async with shutdown_signals() as stop:
        task = asyncio.ensure_future(coro)
        stopper = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stopper.cancel()

        if task.done():
            return task.result(), False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return None, True
