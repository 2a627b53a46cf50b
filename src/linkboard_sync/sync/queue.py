"""Ordered queue of named sync operations.

Operations run strictly one at a time, each under the ``SyncState`` gate.
The worker waits for the gate to be free before taking it, so a queued
operation never overlaps a running ``sync_data`` pass.
A failed operation goes back to the *front* of the queue, ahead of anything
enqueued after it, until it has been retried ``max_retries`` times.  The
gate stays held between attempts.  After that it is dropped and recorded in
``failures`` and the state's error log; nothing propagates to whoever
enqueued it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .state import SyncState

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.1

Operation = Callable[[], Awaitable[Any]]


@dataclass
class QueueItem:
    operation: Operation
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)
    retries: int = 0
    added_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


@dataclass(frozen=True)
class QueueFailure:
    """An operation dropped after exhausting its retries."""

    name: str
    attempts: int
    error: str
    metadata: dict[str, Any]


class SyncQueue:
    """FIFO queue with retry-to-front.

    Args:
        state: Gate shared with the engine.
        max_retries: Retries after the first attempt.
        retry_delay: Pause in seconds between two processed items.
    """

    def __init__(
        self,
        state: SyncState,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self.state = state
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.failures: list[QueueFailure] = []
        self._items: deque[QueueItem] = deque()
        self._worker: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def add(
        self,
        operation: Operation,
        name: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append *operation* and start processing if idle.

        Must be called from a running event loop.
        """
        logger.info("Adding operation to sync queue: %s", name)
        self._items.append(
            QueueItem(operation=operation, name=name, metadata=metadata or {})
        )
        if not self.processing:
            self._worker = asyncio.ensure_future(self._process())

    async def join(self) -> None:
        """Wait until the queue is empty and the worker has stopped."""
        while self.processing:
            assert self._worker is not None
            await asyncio.shield(self._worker)

    def clear(self) -> None:
        count = len(self._items)
        self._items.clear()
        logger.info("Cleared %d operations from sync queue", count)

    def get_status(self) -> dict[str, Any]:
        return {
            "queue_length": len(self._items),
            "is_processing": self.processing,
            "pending_operations": [
                {
                    "name": item.name,
                    "retries": item.retries,
                    "added_at": item.added_at.isoformat(),
                }
                for item in self._items
            ],
            "failures": len(self.failures),
        }

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _process(self) -> None:
        token: int | None = None
        try:
            while self._items:
                if token is None:
                    await self.state.wait_until_idle()
                    if not self._items:
                        break
                    token = self.state.start_sync()
                item = self._items.popleft()
                if await self._run(item, token):
                    token = None
                if self._items:
                    await asyncio.sleep(self.retry_delay)
        finally:
            if token is not None:
                self.state.end_sync(False, token=token)
        logger.debug("Sync queue is empty, processing complete")

    async def _run(self, item: QueueItem, token: int) -> bool:
        """Run one attempt of *item*.

        Returns:
            ``True`` once the gate has been released, ``False`` while the
            item waits at the front for its retry.
        """
        logger.info(
            "Processing sync operation: %s (attempt %d)",
            item.name,
            item.retries + 1,
        )
        try:
            await item.operation()
        except Exception as exc:
            logger.error("Error in sync operation %s: %s", item.name, exc)
            if item.retries < self.max_retries:
                item.retries += 1
                logger.info(
                    "Retrying operation %s (attempt %d/%d)",
                    item.name,
                    item.retries + 1,
                    self.max_retries + 1,
                )
                self._items.appendleft(item)
                return False
            logger.error(
                "Operation %s failed after %d attempts",
                item.name,
                item.retries + 1,
            )
            self.failures.append(
                QueueFailure(
                    name=item.name,
                    attempts=item.retries + 1,
                    error=str(exc),
                    metadata=item.metadata,
                )
            )
            self.state.end_sync(False, exc, token=token)
        else:
            logger.info("Sync operation completed successfully: %s", item.name)
            self.state.end_sync(True, token=token)
        return True
