"""Sync engine that orchestrates reconciliation passes for one identity.

The ``SyncEngine`` ties together the session provider, the two stores, the
reconcilers, the gate, the operation queue and the debouncer.  Its entry
points:

1. ``init_smart_sync()`` -- first load after sign-in.  Remote wins as soon
   as it has any post; an empty remote is seeded from local.
2. ``sync_data()`` -- gated pass.  Resolves the direction from the newest
   timestamps and runs one reconciler.  Returns immediately (``None``) if a
   pass is already running.
3. ``force_sync()`` -- resets the gate and runs local -> remote followed by
   remote -> local (the union pass).
4. ``debounced_sync()`` -- coalesces bursts into one trailing ``sync_data``.

Every pass first checks the identity (refreshing an expired session).
Entity-level failures are collected in the returned ``SyncReport``;
pass-level failures emit ``LOCAL_DATA_READY`` and propagate.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from linkboard_sync.auth import require_identity
from linkboard_sync.store.protocols import (
    LocalStoreProtocol,
    RemoteStoreProtocol,
    SessionProviderProtocol,
)
from linkboard_sync.sync.debounce import Debouncer
from linkboard_sync.sync.direction import (
    DIRECTION_THRESHOLD_MS,
    resolve_direction,
)
from linkboard_sync.sync.models import (
    Post,
    SyncDirection,
    SyncReport,
    SyncResult,
)
from linkboard_sync.sync.posts import PostReconciler
from linkboard_sync.sync.queue import SyncQueue
from linkboard_sync.sync.state import SyncState
from linkboard_sync.sync.tags import TagReconciler

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0

Listener = Callable[[list[Post]], Any]


class SyncEvent(str, Enum):
    """Signals emitted to the presentation layer."""

    REMOTE_DATA_READY = "remote_data_ready"
    LOCAL_DATA_READY = "local_data_ready"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Run reconciliation passes between a local and a remote store.

    Args:
        local: Per-identity local store.
        remote: Remote store scoped to the signed-in identity.
        sessions: Identity/session provider.
        state: Gate; a fresh one by default.
        queue: Operation queue; built over *state* by default.
        debouncer: Debounce scheduler for ``debounced_sync``.
        direction_threshold_ms: Clock-skew tolerance for direction
            resolution.
    """

    def __init__(
        self,
        local: LocalStoreProtocol,
        remote: RemoteStoreProtocol,
        sessions: SessionProviderProtocol,
        *,
        state: SyncState | None = None,
        queue: SyncQueue | None = None,
        debouncer: Debouncer | None = None,
        direction_threshold_ms: int = DIRECTION_THRESHOLD_MS,
    ) -> None:
        self.local = local
        self.remote = remote
        self.sessions = sessions
        self.state = state if state is not None else SyncState()
        self.queue = queue if queue is not None else SyncQueue(self.state)
        self.debouncer = (
            debouncer if debouncer is not None else Debouncer(DEFAULT_DEBOUNCE_SECONDS)
        )
        self.direction_threshold_ms = direction_threshold_ms

        self.tags = TagReconciler(local, remote)
        self.posts = PostReconciler(local, remote, self.tags)
        self._listeners: dict[SyncEvent, list[Listener]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def subscribe(self, event: SyncEvent, callback: Listener) -> None:
        """Register *callback* for *event*.  Coroutine callbacks are awaited."""
        self._listeners[event].append(callback)

    async def _emit(self, event: SyncEvent, posts: list[Post]) -> None:
        logger.debug("Emitting %s with %d posts", event.value, len(posts))
        for callback in list(self._listeners[event]):
            try:
                outcome = callback(posts)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.error("Listener for %s failed: %s", event.value, exc)

    async def _emit_local_fallback(self, identity: str | None) -> None:
        posts = self.local.load_posts(identity) if identity else []
        await self._emit(SyncEvent.LOCAL_DATA_READY, posts)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def init_smart_sync(self) -> SyncReport:
        """Initial sync after sign-in, biased toward remote data.

        Raises:
            IdentityError: If no identity is available.
        """
        started_at = _now()
        identity = (await require_identity(self.sessions)).id
        logger.info("Initializing smart sync with cloud priority")

        try:
            remote_posts = await self.remote.get_posts()
            if remote_posts:
                logger.info(
                    "Using %d remote posts as source of truth", len(remote_posts)
                )
                direction = SyncDirection.CLOUD_TO_LOCAL
                posts, results = await self.posts.remote_to_local(identity)
                await self._emit(SyncEvent.REMOTE_DATA_READY, posts)
            elif self.local.load_posts(identity):
                logger.info("No remote posts, seeding remote from local data")
                direction = SyncDirection.LOCAL_TO_CLOUD
                results = await self.posts.local_to_remote(identity)
            else:
                logger.info("No data found remotely or locally, nothing to sync")
                direction = SyncDirection.IN_SYNC
                results = []
        except Exception as exc:
            logger.error("Error in smart sync: %s", exc)
            await self._emit_local_fallback(identity)
            raise

        return self._report("init_smart_sync", direction, results, started_at)

    async def sync_data(self, skip_render: bool = False) -> SyncReport | None:
        """Run one gated pass in the direction of the newest data.

        Args:
            skip_render: Do not emit ``REMOTE_DATA_READY``.

        Returns:
            The pass report, or ``None`` when a pass was already running.

        Raises:
            IdentityError: If no identity is available.
        """
        if self.state.is_sync_in_progress():
            logger.info("Sync already in progress, skipping")
            return None

        started_at = _now()
        token = self.state.start_sync()
        identity: str | None = None
        success = False
        error: BaseException | None = None
        try:
            identity = (await require_identity(self.sessions)).id
            local_posts = self.local.load_posts(identity)
            remote_posts = await self.remote.get_posts()
            direction = resolve_direction(
                local_posts, remote_posts, self.direction_threshold_ms
            )
            logger.info(
                "Sync direction: %s (local %d, remote %d)",
                direction.value,
                len(local_posts),
                len(remote_posts),
            )

            results: list[SyncResult] = []
            if direction == SyncDirection.LOCAL_TO_CLOUD:
                results = await self.posts.local_to_remote(identity)
            elif direction == SyncDirection.CLOUD_TO_LOCAL:
                posts, results = await self.posts.remote_to_local(identity)
                if not skip_render:
                    await self._emit(SyncEvent.REMOTE_DATA_READY, posts)
            elif not skip_render:
                await self._emit(SyncEvent.REMOTE_DATA_READY, remote_posts)

            success = True
        except Exception as exc:
            error = exc
            logger.error("Error during sync: %s", exc)
            await self._emit_local_fallback(identity)
            raise
        finally:
            self.state.end_sync(success, error, token=token)

        self.state.clear_pending_changes()
        return self._report("sync_data", direction, results, started_at)

    async def force_sync(
        self, skip_apply_remote_to_local: bool = False
    ) -> SyncReport:
        """Run the full bidirectional pass regardless of the gate.

        Args:
            skip_apply_remote_to_local: Only push local edits.

        Raises:
            IdentityError: If no identity is available.
        """
        logger.info(
            "Forcing sync%s",
            " (local -> remote only)" if skip_apply_remote_to_local else "",
        )
        started_at = _now()
        self.state.reset()
        token = self.state.start_sync()
        identity: str | None = None
        success = False
        error: BaseException | None = None
        try:
            identity = (await require_identity(self.sessions)).id
            results = await self.posts.local_to_remote(identity)
            if not skip_apply_remote_to_local:
                posts, pulled = await self.posts.remote_to_local(identity)
                results.extend(pulled)
                await self._emit(SyncEvent.REMOTE_DATA_READY, posts)
            success = True
        except Exception as exc:
            error = exc
            logger.error("Error during forced sync: %s", exc)
            await self._emit_local_fallback(identity)
            raise
        finally:
            self.state.end_sync(success, error, token=token)

        self.state.clear_pending_changes()
        return self._report("force_sync", None, results, started_at)

    def debounced_sync(self) -> None:
        """Schedule ``sync_data`` after the debounce window.

        Calls within the window replace the pending one.
        """
        self.debouncer.trigger(self.sync_data)

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def record_local_change(
        self, entity: str, change_type: str, entity_id: str | None = None
    ) -> None:
        """Record a local edit and schedule a debounced sync."""
        self.state.add_pending_change(entity, change_type, entity_id)
        self.debounced_sync()

    def enqueue_post_sync(self, post: Post) -> None:
        """Queue a single-post push.  Failures are retried by the queue."""

        async def operation() -> None:
            identity = (await require_identity(self.sessions)).id
            await self.posts.sync_single_post(identity, post)

        self.queue.add(
            operation,
            f"sync post {post.url}",
            {"url": post.url, "post_id": post.id},
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_sync_in_progress(self) -> bool:
        return self.state.is_sync_in_progress()

    def last_sync_time(self) -> datetime | None:
        return self.state.last_sync_time

    def status(self) -> dict[str, Any]:
        return {
            **self.state.get_status(),
            "debounce_pending": self.debouncer.pending,
            "queue": self.queue.get_status(),
        }

    async def aclose(self) -> None:
        """Cancel the pending debounce and wait for queued work."""
        self.debouncer.cancel()
        await self.debouncer.drain()
        await self.queue.join()

    @staticmethod
    def _report(
        operation: str,
        direction: SyncDirection | None,
        results: list[SyncResult],
        started_at: str,
    ) -> SyncReport:
        report = SyncReport(
            operation=operation,
            direction=direction,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info(
            "%s finished: %d results, %d errors",
            operation,
            len(report.results),
            len(report.errors),
        )
        return report
