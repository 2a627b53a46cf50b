"""In-memory sync state: the gate around a reconciliation pass.

``SyncState`` is an explicit object owned by one ``SyncEngine`` (and its
queue) rather than module-level globals, so several engines can coexist in
one process.  It tracks:

* **the gate** -- ``is_syncing``, toggled only by ``start_sync()`` and
  ``end_sync()``.  ``start_sync()`` hands out a token; ``end_sync()`` with
  a stale token records the outcome but leaves the gate to its current
  holder;
* **history** -- ``last_sync_time`` on success, ``error_log`` on failure;
* **pending changes** -- local edits recorded since the last successful
  pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncErrorEntry:
    """One failed pass or exhausted queue operation."""

    timestamp: datetime
    message: str


@dataclass(frozen=True)
class PendingChange:
    """A local edit that has not been pushed yet."""

    entity: str
    change_type: str
    entity_id: str | None
    timestamp: datetime


class SyncState:
    """Gate and history for one engine instance."""

    def __init__(self) -> None:
        self.is_syncing = False
        self.last_sync_time: datetime | None = None
        self.error_log: list[SyncErrorEntry] = []
        self.pending_changes: list[PendingChange] = []
        self._generation = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def start_sync(self) -> int:
        """Close the gate and return the holder's token."""
        self.is_syncing = True
        self._generation += 1
        self._idle.clear()
        logger.debug("Sync started (token %d)", self._generation)
        return self._generation

    def end_sync(
        self,
        success: bool = True,
        error: BaseException | str | None = None,
        token: int | None = None,
    ) -> None:
        """Release the gate and record the outcome.

        A failure without *error* releases the gate without touching the
        error log.  When *token* is given and the gate has since been
        reset and taken by someone else, the gate stays closed.
        """
        if token is None or token == self._generation:
            self._release()
        else:
            logger.debug("Gate token %d is stale, leaving gate held", token)
        now = datetime.now(timezone.utc)
        if success:
            self.last_sync_time = now
            logger.debug("Sync completed successfully at %s", now.isoformat())
        elif error is not None:
            message = str(error) or type(error).__name__
            self.error_log.append(SyncErrorEntry(timestamp=now, message=message))
            logger.error("Sync failed: %s", message)

    def is_sync_in_progress(self) -> bool:
        return self.is_syncing

    async def wait_until_idle(self) -> None:
        """Wait until no pass holds the gate."""
        while self.is_syncing:
            await self._idle.wait()

    def _release(self) -> None:
        self.is_syncing = False
        self._idle.set()

    # ------------------------------------------------------------------
    # Pending changes
    # ------------------------------------------------------------------

    def add_pending_change(
        self, entity: str, change_type: str, entity_id: str | None = None
    ) -> None:
        if not entity or not change_type:
            logger.error(
                "Invalid pending change: entity=%r type=%r", entity, change_type
            )
            return
        self.pending_changes.append(
            PendingChange(
                entity=entity,
                change_type=change_type,
                entity_id=entity_id,
                timestamp=datetime.now(timezone.utc),
            )
        )
        logger.debug("Added pending change: %s %s %s", change_type, entity, entity_id)

    def clear_pending_changes(self) -> None:
        count = len(self.pending_changes)
        self.pending_changes = []
        logger.debug("Cleared %d pending changes", count)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        return {
            "is_syncing": self.is_syncing,
            "last_sync_time": (
                self.last_sync_time.isoformat() if self.last_sync_time else None
            ),
            "pending_changes_count": len(self.pending_changes),
            "has_errors": bool(self.error_log),
            "last_error": self.error_log[-1].message if self.error_log else None,
        }

    def reset(self) -> None:
        """Force the gate open and invalidate the current token.

        History is kept.
        """
        if self.is_syncing:
            logger.warning("Resetting sync state while a sync is in progress")
        self._generation += 1
        self._release()
