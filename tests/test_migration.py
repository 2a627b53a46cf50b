"""Tests for the one-time id migration of older local caches."""

from __future__ import annotations

from linkboard_sync.sync.migration import (
    MIGRATION_FLAG,
    is_migration_needed,
    migrate_ids,
)
from linkboard_sync.sync.models import Post, Tag

USER_ID = "user-1"


class TestIsMigrationNeeded:
    def test_posts_without_ids(self, local):
        local.save_posts(USER_ID, [Post(url="https://x.com/1")])
        assert is_migration_needed(local, USER_ID) is True

    def test_all_posts_have_ids(self, local):
        local.save_posts(USER_ID, [Post(id="p1", url="https://x.com/1")])
        assert is_migration_needed(local, USER_ID) is False

    def test_flag_set(self, local):
        local.save_posts(USER_ID, [Post(url="https://x.com/1")])
        local.set_flag(USER_ID, MIGRATION_FLAG, True)
        assert is_migration_needed(local, USER_ID) is False


class TestMigrateIds:
    async def test_adopts_remote_ids(self, local, remote):
        remote_post = remote.seed_post("https://x.com/1", tags=["News"])
        remote_tag = remote.find_tag("news")
        local.save_posts(
            USER_ID,
            [Post(url="HTTPS://x.com/1"), Post(url="https://x.com/local-only")],
        )
        local.save_tags(USER_ID, [Tag(name="news"), Tag(name="other")])

        assert await migrate_ids(local, remote, USER_ID) is True

        posts = {p.url: p for p in local.load_posts(USER_ID)}
        assert posts["HTTPS://x.com/1"].id == remote_post.id
        assert posts["HTTPS://x.com/1"].synced is True
        assert posts["https://x.com/local-only"].id is None
        tags = {t.name: t for t in local.load_tags(USER_ID)}
        assert tags["news"].id == remote_tag.id
        assert tags["other"].id is None
        assert local.get_flag(USER_ID, MIGRATION_FLAG) is True

    async def test_makes_no_remote_writes(self, local, remote):
        remote.seed_post("https://x.com/1")
        local.save_posts(USER_ID, [Post(url="https://x.com/1")])

        await migrate_ids(local, remote, USER_ID)

        assert remote.writes == []

    async def test_remote_failure_leaves_flag_unset(self, local, remote):
        remote.fail_get_posts = True
        local.save_posts(USER_ID, [Post(url="https://x.com/1")])

        assert await migrate_ids(local, remote, USER_ID) is False
        assert local.get_flag(USER_ID, MIGRATION_FLAG) is False
        assert local.load_posts(USER_ID)[0].id is None
