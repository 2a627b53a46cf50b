"""Single-slot debounce scheduler for coroutine functions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """Postpone a coroutine call until *delay* seconds pass without a new call.

    Each ``trigger()`` cancels the pending timer and arms a new one, so a
    burst of calls results in one trailing invocation.  Only one timer is
    held at a time.  Exceptions raised by the invocation are logged.

    Args:
        delay: Quiet period in seconds.
    """

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        """``True`` while a timer is armed and has not fired."""
        return self._handle is not None

    def trigger(self, func: Callable[[], Awaitable[Any]]) -> None:
        """Arm the timer for *func*, replacing any pending one.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Debounced call superseded")
        self._handle = loop.call_later(self.delay, self._fire, func)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def drain(self) -> None:
        """Wait for invocations that already fired.  Pending timers are left armed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, func: Callable[[], Awaitable[Any]]) -> None:
        self._handle = None
        task = asyncio.ensure_future(func())
        self._tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced call failed: %s", exc)
