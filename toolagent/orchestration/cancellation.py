"""
Cancellation signal threaded through a run.

The loop races every suspension point (the model call and each tool call)
against the token; whichever finishes first wins, and a fired token always
takes priority.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from ..errors import RunCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """A one-shot, externally triggered cancellation signal."""

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.debug("Cancellation requested: %s", reason)

    def cancel_after(self, seconds: float) -> None:
        """Fire the token after a wall-clock delay. Must run inside an event loop."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(seconds, self.cancel, f"timed out after {seconds}s")

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelledError(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        Raises:
            RunCancelledError: The token fired before or while waiting; the
                pending work is cancelled.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelledError(self._reason or "cancelled")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()

        if self.cancelled:
            await _discard(work)
            raise RunCancelledError(self._reason or "cancelled")
        return work.result()


async def _discard(task: asyncio.Future) -> None:
    """Cancel ``task`` and wait for it, dropping whatever it ends with."""
    if not task.done():
        task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug("Work abandoned after cancellation ended with: %s", e)
