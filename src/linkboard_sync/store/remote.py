"""Remote store adapter over the Supabase ``posts``, ``tags`` and
``post_tags`` tables.

Every call is scoped to the current identity (``user_id``) and runs the
blocking HTTP request in a worker thread, so it only suspends the calling
task.  Entity creation never writes associations; those go through
``add_associations``/``remove_associations`` explicitly.
"""

from __future__ import annotations

import logging
from typing import Any

from linkboard_sync.core.async_utils import run_sync_limited
from linkboard_sync.core.client import SupabaseClient
from linkboard_sync.errors import IdentityError, RemoteStoreError
from linkboard_sync.store.protocols import SessionProviderProtocol
from linkboard_sync.sync.models import Post, PostTagAssociation, Tag
from linkboard_sync.sync.normalize import (
    post_to_remote_row,
    remote_row_to_post,
    remote_row_to_tag,
)

logger = logging.getLogger(__name__)

POSTS_TABLE = "posts"
TAGS_TABLE = "tags"
POST_TAGS_TABLE = "post_tags"

_POST_WRITABLE_FIELDS = {
    "url",
    "platform",
    "title",
    "description",
    "created_at",
    "updated_at",
}
_TAG_WRITABLE_FIELDS = {"name", "color"}


def _in_filter(ids: list[str]) -> str:
    return "in.(" + ",".join(ids) + ")"


class SupabaseRemoteStore:
    """Async remote store for one signed-in user.

    Args:
        client: Blocking Supabase HTTP client.
        sessions: Provider used to resolve the owner id for each call.
    """

    def __init__(
        self, client: SupabaseClient, sessions: SessionProviderProtocol
    ) -> None:
        self._client = client
        self._sessions = sessions

    async def _owner_id(self) -> str:
        identity = await self._sessions.get_current_identity()
        if identity is None:
            raise IdentityError("No user logged in")
        return identity.id

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def get_posts(self) -> list[Post]:
        owner = await self._owner_id()
        rows = await run_sync_limited(
            self._client.select,
            POSTS_TABLE,
            {
                "select": "*,post_tags(tag:tags(*))",
                "user_id": f"eq.{owner}",
                "order": "created_at.desc",
            },
        )
        return [remote_row_to_post(row) for row in rows]

    async def create_post(self, draft: Post) -> Post:
        owner = await self._owner_id()
        rows = await run_sync_limited(
            self._client.insert, POSTS_TABLE, [post_to_remote_row(draft, owner)]
        )
        if not rows:
            raise RemoteStoreError("Post creation returned no data")
        return remote_row_to_post(rows[0])

    async def update_post(self, post_id: str, fields: dict[str, Any]) -> Post:
        owner = await self._owner_id()
        data = {k: v for k, v in fields.items() if k in _POST_WRITABLE_FIELDS}
        rows = await run_sync_limited(
            self._client.update,
            POSTS_TABLE,
            {"id": f"eq.{post_id}", "user_id": f"eq.{owner}"},
            data,
        )
        if not rows:
            raise RemoteStoreError(f"Post {post_id} not found")
        return remote_row_to_post(rows[0])

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def get_tags(self) -> list[Tag]:
        owner = await self._owner_id()
        rows = await run_sync_limited(
            self._client.select,
            TAGS_TABLE,
            {"select": "*", "user_id": f"eq.{owner}"},
        )
        return [remote_row_to_tag(row) for row in rows]

    async def create_tag(self, draft: Tag) -> Tag:
        owner = await self._owner_id()
        rows = await run_sync_limited(
            self._client.insert,
            TAGS_TABLE,
            [{"user_id": owner, "name": draft.name, "color": draft.color}],
        )
        if not rows:
            raise RemoteStoreError(f"Tag creation returned no data: {draft.name}")
        return remote_row_to_tag(rows[0])

    async def update_tag(self, tag_id: str, fields: dict[str, Any]) -> Tag:
        owner = await self._owner_id()
        data = {k: v for k, v in fields.items() if k in _TAG_WRITABLE_FIELDS}
        rows = await run_sync_limited(
            self._client.update,
            TAGS_TABLE,
            {"id": f"eq.{tag_id}", "user_id": f"eq.{owner}"},
            data,
        )
        if not rows:
            raise RemoteStoreError(f"Tag {tag_id} not found")
        return remote_row_to_tag(rows[0])

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    async def get_post_tag_associations(
        self, post_id: str
    ) -> list[PostTagAssociation]:
        await self._owner_id()
        rows = await run_sync_limited(
            self._client.select,
            POST_TAGS_TABLE,
            {"select": "post_id,tag_id,tag:tags(*)", "post_id": f"eq.{post_id}"},
        )
        return [self._association(row) for row in rows]

    async def get_all_post_tag_associations(self) -> list[PostTagAssociation]:
        owner = await self._owner_id()
        rows = await run_sync_limited(
            self._client.select,
            POST_TAGS_TABLE,
            {
                "select": "post_id,tag_id,post:posts!inner(user_id),tag:tags!inner(*)",
                "post.user_id": f"eq.{owner}",
            },
        )
        return [self._association(row) for row in rows]

    async def add_associations(self, post_id: str, tag_ids: list[str]) -> bool:
        valid = [tid for tid in tag_ids if tid]
        if not valid:
            logger.debug("No valid tag ids to add to post %s", post_id)
            return False
        await self._owner_id()
        await run_sync_limited(
            self._client.insert,
            POST_TAGS_TABLE,
            [{"post_id": post_id, "tag_id": tid} for tid in valid],
        )
        return True

    async def remove_associations(
        self, post_id: str, tag_ids: list[str]
    ) -> bool:
        valid = [tid for tid in tag_ids if tid]
        if not valid:
            logger.debug("No valid tag ids to remove from post %s", post_id)
            return False
        await self._owner_id()
        await run_sync_limited(
            self._client.delete,
            POST_TAGS_TABLE,
            {"post_id": f"eq.{post_id}", "tag_id": _in_filter(valid)},
        )
        return True

    @staticmethod
    def _association(row: dict[str, Any]) -> PostTagAssociation:
        tag_row = row.get("tag")
        return PostTagAssociation(
            post_id=row["post_id"],
            tag_id=row.get("tag_id"),
            tag=remote_row_to_tag(tag_row) if tag_row else None,
        )
