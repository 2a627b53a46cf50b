"""Shared pytest fixtures and in-memory fakes for linkboard-sync tests."""

from __future__ import annotations

import itertools
from typing import Any

import pytest

import linkboard_sync.core.async_utils as async_utils
from linkboard_sync.config import Config
from linkboard_sync.errors import IdentityError, RemoteStoreError
from linkboard_sync.store.local import JsonFileStore, LocalStore
from linkboard_sync.sync.engine import SyncEngine
from linkboard_sync.sync.models import (
    Identity,
    Post,
    PostTagAssociation,
    Session,
    Tag,
)
from linkboard_sync.sync.normalize import (
    post_to_remote_row,
    remote_row_to_post,
)

USER_ID = "user-1"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRemoteStore:
    """In-memory remote store that records every write.

    Attributes:
        posts: Remote posts by id, without tags.
        tags: Remote tags by id.
        links: ``(post_id, tag_id)`` association pairs.
        writes: ``(operation, detail)`` for every mutating call.
        calls: Names of every call, reads included.
        fail_create_tag: Tag names whose creation raises.
        fail_posts: URLs whose create/update raises.
    """

    def __init__(self) -> None:
        self.posts: dict[str, Post] = {}
        self.tags: dict[str, Tag] = {}
        self.links: list[tuple[str, str]] = []
        self.writes: list[tuple[str, Any]] = []
        self.calls: list[str] = []
        self.fail_create_tag: set[str] = set()
        self.fail_posts: set[str] = set()
        self.fail_get_posts = False
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    # -- seeding helpers --------------------------------------------------

    def seed_tag(self, name: str, color: str = "#cccccc") -> Tag:
        tag = Tag(id=self._next_id("t"), name=name, color=color)
        self.tags[tag.id] = tag
        return tag

    def seed_post(
        self, url: str, tags: list[str] = (), **fields: Any
    ) -> Post:
        post = Post(id=self._next_id("p"), url=url, user_id=USER_ID, **fields)
        self.posts[post.id] = post
        for name in tags:
            tag = self.find_tag(name) or self.seed_tag(name)
            self.links.append((post.id, tag.id))
        return post

    def find_tag(self, name: str) -> Tag | None:
        for tag in self.tags.values():
            if tag.key == name.strip().lower():
                return tag
        return None

    def tag_names_for(self, url: str) -> set[str]:
        post = next(p for p in self.posts.values() if p.url == url)
        return {self.tags[tid].name for pid, tid in self.links if pid == post.id}

    # -- RemoteStoreProtocol ----------------------------------------------

    def _with_tags(self, post: Post) -> Post:
        tags = [self.tags[tid] for pid, tid in self.links if pid == post.id]
        return post.model_copy(update={"tags": tags})

    async def get_posts(self) -> list[Post]:
        self.calls.append("get_posts")
        if self.fail_get_posts:
            raise RemoteStoreError("service unavailable", status_code=503)
        return [self._with_tags(p) for p in self.posts.values()]

    async def create_post(self, draft: Post) -> Post:
        self.calls.append("create_post")
        if draft.url in self.fail_posts:
            raise RemoteStoreError(f"create failed: {draft.url}")
        row = post_to_remote_row(draft, USER_ID)
        row["id"] = self._next_id("p")
        post = remote_row_to_post(row)
        self.posts[post.id] = post
        self.writes.append(("create_post", draft.url))
        return post

    async def update_post(self, post_id: str, fields: dict[str, Any]) -> Post:
        self.calls.append("update_post")
        post = self.posts[post_id]
        if post.url in self.fail_posts:
            raise RemoteStoreError(f"update failed: {post.url}")
        updated = post.model_copy(update=fields)
        self.posts[post_id] = updated
        self.writes.append(("update_post", post_id))
        return updated

    async def get_tags(self) -> list[Tag]:
        self.calls.append("get_tags")
        return list(self.tags.values())

    async def create_tag(self, draft: Tag) -> Tag:
        self.calls.append("create_tag")
        if draft.key in self.fail_create_tag:
            raise RemoteStoreError(f"create tag failed: {draft.name}")
        tag = Tag(id=self._next_id("t"), name=draft.name, color=draft.color)
        self.tags[tag.id] = tag
        self.writes.append(("create_tag", draft.name))
        return tag

    async def update_tag(self, tag_id: str, fields: dict[str, Any]) -> Tag:
        self.calls.append("update_tag")
        updated = self.tags[tag_id].model_copy(update=fields)
        self.tags[tag_id] = updated
        self.writes.append(("update_tag", tag_id))
        return updated

    async def get_post_tag_associations(
        self, post_id: str
    ) -> list[PostTagAssociation]:
        self.calls.append("get_post_tag_associations")
        return [
            PostTagAssociation(post_id=pid, tag_id=tid, tag=self.tags[tid])
            for pid, tid in self.links
            if pid == post_id
        ]

    async def get_all_post_tag_associations(self) -> list[PostTagAssociation]:
        self.calls.append("get_all_post_tag_associations")
        return [
            PostTagAssociation(post_id=pid, tag_id=tid, tag=self.tags[tid])
            for pid, tid in self.links
        ]

    async def add_associations(self, post_id: str, tag_ids: list[str]) -> bool:
        self.calls.append("add_associations")
        for tid in tag_ids:
            self.links.append((post_id, tid))
        self.writes.append(("add_associations", (post_id, tuple(tag_ids))))
        return True

    async def remove_associations(
        self, post_id: str, tag_ids: list[str]
    ) -> bool:
        self.calls.append("remove_associations")
        self.links = [
            (pid, tid)
            for pid, tid in self.links
            if not (pid == post_id and tid in tag_ids)
        ]
        self.writes.append(("remove_associations", (post_id, tuple(tag_ids))))
        return True


class FakeSessionProvider:
    """Session provider with a fixed identity and a controllable session."""

    def __init__(
        self,
        identity: Identity | None = None,
        session: Session | None = None,
        refresh_error: Exception | None = None,
    ) -> None:
        self.identity = identity
        self.session = session
        self.refresh_error = refresh_error
        self.refresh_calls = 0

    async def get_current_identity(self) -> Identity | None:
        return self.identity

    async def get_current_session(self) -> Session | None:
        return self.session

    async def refresh_session(self) -> Session:
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        if self.session is None:
            raise IdentityError("No refresh token available")
        self.session = self.session.model_copy(update={"expires_at": None})
        return self.session


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def identity() -> Identity:
    return Identity(id=USER_ID, email="user@example.com")


@pytest.fixture
def sessions(identity) -> FakeSessionProvider:
    return FakeSessionProvider(
        identity=identity,
        session=Session(access_token="token", refresh_token="refresh"),
    )


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def local(tmp_path) -> LocalStore:
    return LocalStore(JsonFileStore(tmp_path / "cache"))


@pytest.fixture
def engine(local, remote, sessions) -> SyncEngine:
    return SyncEngine(local, remote, sessions)


@pytest.fixture
def mock_config(tmp_path) -> Config:
    """A valid Config pointing at a fake Supabase project."""
    return Config(
        supabase_url="https://project.supabase.co",
        supabase_key="anon-key",
        access_token="access",
        refresh_token="refresh",
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
def restore_semaphore():
    """Put back the module-level request semaphore after a lifespan test."""
    original = async_utils._semaphore
    yield
    async_utils._semaphore = original
