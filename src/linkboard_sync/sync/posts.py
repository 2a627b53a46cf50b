"""Post reconciliation keyed by URL.

``PostReconciler`` runs one direction of a pass:

* ``local_to_remote`` -- push local posts (create or update by URL), then
  converge each post's associations.
* ``remote_to_local`` -- pull remote posts into the local collection
  (append unknown URLs, overwrite known ones) with tags resolved from the
  join rows.
* ``sync_single_post`` -- push one post right after a local edit.

Posts are processed sequentially in collection order.  A failure on one
post is logged, recorded as a failed ``SyncResult`` and the pass moves on.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from linkboard_sync.store.protocols import (
    LocalStoreProtocol,
    RemoteStoreProtocol,
)
from linkboard_sync.sync.models import (
    Post,
    SyncAction,
    SyncResult,
    Tag,
)
from linkboard_sync.sync.normalize import (
    dedupe_tags,
    merge_duplicate_posts,
    post_map_by_url,
    scalar_changes,
    tag_map_by_name,
)
from linkboard_sync.sync.tags import TagReconciler, sync_post_tags

logger = logging.getLogger(__name__)


class PostReconciler:
    """Reconcile posts between the local and remote stores.

    Args:
        local: Local store.
        remote: Remote store.
        tags: Tag reconciler; defaults to one over the same stores.
    """

    def __init__(
        self,
        local: LocalStoreProtocol,
        remote: RemoteStoreProtocol,
        tags: TagReconciler | None = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.tags = tags or TagReconciler(local, remote)

    # ------------------------------------------------------------------
    # Local -> remote
    # ------------------------------------------------------------------

    async def local_to_remote(self, identity: str) -> list[SyncResult]:
        """Push every local post to the remote store.

        Returns:
            One ``SyncResult`` per tag write and per post, in order.
        """
        results: list[SyncResult] = []
        local_posts = merge_duplicate_posts(self.local.load_posts(identity))
        if not local_posts:
            logger.info("No local posts to sync")
            return results

        tag_map = await self.tags.sync_tags_to_remote(
            identity, local_posts, results
        )
        remote_by_url = post_map_by_url(await self.remote.get_posts())
        logger.info(
            "Pushing %d local posts (%d remote)",
            len(local_posts),
            len(remote_by_url),
        )

        for post in local_posts:
            try:
                result = await self._push_post(
                    post, remote_by_url.get(post.key), tag_map
                )
            except Exception as exc:
                logger.error("Error syncing post %s: %s", post.url, exc)
                result = SyncResult(
                    key=post.url,
                    action=SyncAction.SKIP,
                    success=False,
                    error=str(exc),
                )
            else:
                remote_by_url.setdefault(post.key, post)
            results.append(result)

        self.local.save_posts(identity, local_posts)
        return results

    async def _push_post(
        self,
        post: Post,
        remote_post: Post | None,
        tag_map: dict[str, Tag],
    ) -> SyncResult:
        """Create or update *post* remotely, then converge its tags.

        Mutates *post* with the remote id and canonical tags on success.
        """
        if remote_post is None or not remote_post.id:
            logger.info("Creating new remote post: %s", post.url)
            created = await self.remote.create_post(post)
            remote_id = created.id
            post.created_at = post.created_at or created.created_at
            post.updated_at = post.updated_at or created.updated_at
            action = SyncAction.CREATE_REMOTE
        else:
            remote_id = remote_post.id
            changes = scalar_changes(post, remote_post)
            if changes:
                logger.info(
                    "Updating remote post %s (%s)",
                    remote_id,
                    ", ".join(sorted(changes)),
                )
                changes["updated_at"] = post.updated_at or remote_post.updated_at
                await self.remote.update_post(remote_id, changes)
                action = SyncAction.UPDATE_REMOTE
            else:
                action = SyncAction.SKIP

        if not remote_id:
            raise RuntimeError(f"Remote store returned no id for {post.url}")

        post.id = remote_id
        post.synced = True
        delta = await sync_post_tags(self.remote, remote_id, post.tags, tag_map)
        post.tags = [tag_map.get(t.key, t) for t in post.tags]

        if action == SyncAction.SKIP and delta.changed:
            action = SyncAction.UPDATE_REMOTE
        return SyncResult(
            key=post.url,
            action=action,
            tags_added=delta.added,
            tags_removed=delta.removed,
        )

    # ------------------------------------------------------------------
    # Remote -> local
    # ------------------------------------------------------------------

    async def remote_to_local(
        self, identity: str
    ) -> tuple[list[Post], list[SyncResult]]:
        """Pull remote posts into the local collection.

        Remote is authoritative for scalar fields and tags of posts known on
        both sides.  Local-only posts are kept.

        Returns:
            The saved local collection and one ``SyncResult`` per remote
            post.
        """
        results: list[SyncResult] = []
        remote_posts = await self.remote.get_posts()
        local_posts = merge_duplicate_posts(self.local.load_posts(identity))
        if not remote_posts:
            logger.info("No remote posts to pull")
            return local_posts, results

        associations = await self.remote.get_all_post_tag_associations()
        tags_by_post: dict[str, list[Tag]] = defaultdict(list)
        for assoc in associations:
            if assoc.tag is not None:
                tags_by_post[assoc.post_id].append(assoc.tag)

        local_by_url = post_map_by_url(local_posts)
        logger.info(
            "Pulling %d remote posts (%d local, %d associations)",
            len(remote_posts),
            len(local_posts),
            len(associations),
        )

        for remote_post in remote_posts:
            try:
                result = self._apply_remote_post(
                    remote_post,
                    local_by_url,
                    local_posts,
                    dedupe_tags(tags_by_post.get(remote_post.id or "", [])),
                )
            except Exception as exc:
                logger.error("Error pulling post %s: %s", remote_post.url, exc)
                result = SyncResult(
                    key=remote_post.url,
                    action=SyncAction.SKIP,
                    success=False,
                    error=str(exc),
                )
            results.append(result)

        self.local.save_posts(identity, local_posts)
        self._merge_remote_tags(identity, tags_by_post)
        return local_posts, results

    @staticmethod
    def _apply_remote_post(
        remote_post: Post,
        local_by_url: dict[str, Post],
        local_posts: list[Post],
        tags: list[Tag],
    ) -> SyncResult:
        existing = local_by_url.get(remote_post.key)
        if existing is None:
            new_post = remote_post.model_copy(
                update={"tags": tags, "synced": True}
            )
            local_posts.append(new_post)
            local_by_url[new_post.key] = new_post
            return SyncResult(key=remote_post.url, action=SyncAction.CREATE_LOCAL)

        before = existing.model_dump()
        existing.id = remote_post.id
        existing.platform = remote_post.platform
        existing.title = remote_post.title
        existing.description = remote_post.description
        existing.created_at = remote_post.created_at
        existing.updated_at = remote_post.updated_at
        existing.user_id = remote_post.user_id or existing.user_id
        existing.tags = tags
        existing.synced = True
        action = (
            SyncAction.SKIP
            if existing.model_dump() == before
            else SyncAction.UPDATE_LOCAL
        )
        return SyncResult(key=remote_post.url, action=action)

    def _merge_remote_tags(
        self, identity: str, tags_by_post: dict[str, list[Tag]]
    ) -> None:
        """Add tags seen remotely to the local tag collection."""
        local_tags = self.local.load_tags(identity)
        remote_map = tag_map_by_name(
            tag for tags in tags_by_post.values() for tag in tags
        )
        merged = []
        for tag in local_tags:
            merged.append(remote_map.pop(tag.key, tag))
        merged.extend(remote_map.values())
        self.local.save_tags(identity, merged)

    # ------------------------------------------------------------------
    # Single post
    # ------------------------------------------------------------------

    async def sync_single_post(self, identity: str, post: Post) -> Post:
        """Push one post to the remote store and record its remote id locally.

        Raises:
            ValueError: If *post* has no URL.
            Exception: Any remote failure propagates, so a queue can retry.
        """
        if not post.key:
            raise ValueError("Cannot sync a post without a URL")

        post.user_id = post.user_id or identity
        tag_map = await self.tags.sync_tags_to_remote(identity, [post])
        remote_by_url = post_map_by_url(await self.remote.get_posts())
        await self._push_post(post, remote_by_url.get(post.key), tag_map)

        local_posts = self.local.load_posts(identity)
        for index, local_post in enumerate(local_posts):
            if local_post.key == post.key:
                local_posts[index] = post
                break
        else:
            local_posts.append(post)
        self.local.save_posts(identity, local_posts)
        return post
