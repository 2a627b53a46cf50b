"""One-time adoption of remote ids by an existing local cache.

Caches written before posts and tags carried remote surrogate keys only have
natural keys.  ``migrate_ids`` copies the remote ids onto matching local
entities (by URL and by tag name) and sets a per-identity marker flag so it
runs once.
"""

from __future__ import annotations

import logging

from linkboard_sync.store.protocols import (
    LocalStoreProtocol,
    RemoteStoreProtocol,
)
from linkboard_sync.sync.normalize import post_map_by_url, tag_map_by_name

logger = logging.getLogger(__name__)

MIGRATION_FLAG = "migration_completed"


def is_migration_needed(local: LocalStoreProtocol, identity: str) -> bool:
    """``True`` unless the marker is set or no local post lacks an id."""
    if local.get_flag(identity, MIGRATION_FLAG):
        logger.debug("Migration already completed for %s", identity)
        return False
    return any(not post.id for post in local.load_posts(identity))


async def migrate_ids(
    local: LocalStoreProtocol, remote: RemoteStoreProtocol, identity: str
) -> bool:
    """Copy remote ids onto local posts and tags, then set the marker.

    Returns:
        ``True`` on success.  Failures are logged and return ``False`` so
        the migration is attempted again next time.
    """
    logger.info("Starting id migration for %s", identity)
    try:
        local_posts = local.load_posts(identity)
        local_tags = local.load_tags(identity)
        remote_posts = post_map_by_url(await remote.get_posts())
        remote_tags = tag_map_by_name(await remote.get_tags())
    except Exception as exc:
        logger.error("Error during migration: %s", exc)
        return False

    post_count = 0
    for post in local_posts:
        match = remote_posts.get(post.key)
        if match is not None and match.id and match.id != post.id:
            post.id = match.id
            post.synced = True
            post_count += 1

    migrated_tags = []
    tag_count = 0
    for tag in local_tags:
        match = remote_tags.get(tag.key)
        if match is not None and match.id and match.id != tag.id:
            tag = tag.model_copy(update={"id": match.id})
            tag_count += 1
        migrated_tags.append(tag)

    local.save_posts(identity, local_posts)
    local.save_tags(identity, migrated_tags)
    local.set_flag(identity, MIGRATION_FLAG, True)
    logger.info(
        "Migration completed: %d post ids, %d tag ids adopted",
        post_count,
        tag_count,
    )
    return True
