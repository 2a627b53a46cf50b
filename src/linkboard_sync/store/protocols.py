"""Protocol definitions (ports) for the stores the engine consumes.

The reconcilers and the orchestrator depend only on these protocols, so
tests can swap in in-memory fakes and the Supabase adapter stays
replaceable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from linkboard_sync.sync.models import (
        Identity,
        Post,
        PostTagAssociation,
        Session,
        Tag,
    )


class KeyValueStore(Protocol):
    """Generic string key-value persistence (browser-storage style)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class LocalStoreProtocol(Protocol):
    """Per-identity local cache.  Reads and writes never suspend."""

    def load_posts(self, identity: str) -> list[Post]: ...

    def save_posts(self, identity: str, posts: list[Post]) -> None: ...

    def load_tags(self, identity: str) -> list[Tag]: ...

    def save_tags(self, identity: str, tags: list[Tag]) -> None: ...

    def get_flag(self, identity: str, name: str) -> bool: ...

    def set_flag(self, identity: str, name: str, value: bool) -> None: ...


class RemoteStoreProtocol(Protocol):
    """Relational CRUD scoped to the current identity."""

    async def get_posts(self) -> list[Post]: ...

    async def create_post(self, draft: Post) -> Post: ...

    async def update_post(self, post_id: str, fields: dict[str, Any]) -> Post: ...

    async def get_tags(self) -> list[Tag]: ...

    async def create_tag(self, draft: Tag) -> Tag: ...

    async def update_tag(self, tag_id: str, fields: dict[str, Any]) -> Tag: ...

    async def get_post_tag_associations(
        self, post_id: str
    ) -> list[PostTagAssociation]: ...

    async def get_all_post_tag_associations(
        self,
    ) -> list[PostTagAssociation]: ...

    async def add_associations(self, post_id: str, tag_ids: list[str]) -> bool: ...

    async def remove_associations(
        self, post_id: str, tag_ids: list[str]
    ) -> bool: ...


class SessionProviderProtocol(Protocol):
    """Identity/session queries.  Consumed, not owned, by the engine."""

    async def get_current_identity(self) -> Identity | None: ...

    async def get_current_session(self) -> Session | None: ...

    async def refresh_session(self) -> Session: ...
