"""Sync direction resolution.

Compares the freshest timestamp on each side and picks the direction of the
next reconciliation pass.  A fixed threshold absorbs clock skew between the
device clock and the remote service clock.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from .models import Post, SyncDirection
from .normalize import post_timestamp_ms

logger = logging.getLogger(__name__)

DIRECTION_THRESHOLD_MS = 5000


def newest_timestamp_ms(posts: Sequence[Post]) -> int:
    """Return the newest ``updated_at``/``created_at`` across *posts* (0 if none)."""
    return max((post_timestamp_ms(p) for p in posts), default=0)


def resolve_direction(
    local_posts: Sequence[Post],
    remote_posts: Sequence[Post],
    threshold_ms: int = DIRECTION_THRESHOLD_MS,
) -> SyncDirection:
    """Decide which way to sync.

    Args:
        local_posts: Full local collection for the current identity.
        remote_posts: Full remote collection for the current identity.
        threshold_ms: Minimum lead, in milliseconds, one side needs over
            the other before it is considered newer.

    Returns:
        ``LOCAL_TO_CLOUD`` when only local has posts or local is newer by
        more than the threshold, ``CLOUD_TO_LOCAL`` in the symmetric case,
        ``IN_SYNC`` otherwise (including when both sides are empty).
    """
    if not remote_posts and local_posts:
        return SyncDirection.LOCAL_TO_CLOUD
    if not local_posts and remote_posts:
        return SyncDirection.CLOUD_TO_LOCAL

    newest_local = newest_timestamp_ms(local_posts)
    newest_remote = newest_timestamp_ms(remote_posts)
    logger.debug(
        "Newest local: %s, newest remote: %s",
        _fmt_ms(newest_local),
        _fmt_ms(newest_remote),
    )

    if newest_local > newest_remote + threshold_ms:
        return SyncDirection.LOCAL_TO_CLOUD
    if newest_remote > newest_local + threshold_ms:
        return SyncDirection.CLOUD_TO_LOCAL
    return SyncDirection.IN_SYNC


def _fmt_ms(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
