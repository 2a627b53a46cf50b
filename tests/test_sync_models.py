"""Tests for sync data models.

Covers:
- Tag name trimming, colour defaulting, explicit-colour tracking
- Tag.from_ref for every reference form
- Post tag normalization and de-duplication at the boundary
- Session expiry
- SyncReport aggregate properties and summary
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from linkboard_sync.sync.models import (
    DEFAULT_PLATFORM,
    DEFAULT_TAG_COLOR,
    Post,
    Session,
    SyncAction,
    SyncDirection,
    SyncReport,
    SyncResult,
    Tag,
)

# ---------------------------------------------------------------------------
# Tag
# ---------------------------------------------------------------------------


class TestTag:
    def test_name_is_trimmed_and_key_lowercased(self):
        tag = Tag(name="  News ")
        assert tag.name == "News"
        assert tag.key == "news"

    def test_default_color_is_not_explicit(self):
        tag = Tag(name="a")
        assert tag.color == DEFAULT_TAG_COLOR
        assert not tag.has_explicit_color

    def test_given_color_is_explicit(self):
        assert Tag(name="a", color="#222").has_explicit_color

    def test_empty_color_falls_back_to_default(self):
        assert Tag(name="a", color="").color == DEFAULT_TAG_COLOR

    def test_frozen(self):
        tag = Tag(name="a")
        with pytest.raises(ValidationError):
            tag.name = "b"


class TestTagFromRef:
    def test_from_string(self):
        tag = Tag.from_ref("News")
        assert tag is not None
        assert tag.name == "News"
        assert not tag.has_explicit_color

    def test_from_dict_with_color_and_id(self):
        tag = Tag.from_ref({"name": "news", "color": "#111", "id": 7})
        assert tag == Tag(id="7", name="news", color="#111")
        assert tag.has_explicit_color

    def test_from_dict_without_color(self):
        tag = Tag.from_ref({"name": "news"})
        assert not tag.has_explicit_color

    def test_tag_passes_through(self):
        tag = Tag(name="x")
        assert Tag.from_ref(tag) is tag

    @pytest.mark.parametrize(
        "ref", ["", "   ", None, 42, {"color": "#111"}, {"name": ""}, Tag(name=" ")]
    )
    def test_invalid_refs(self, ref):
        assert Tag.from_ref(ref) is None


# ---------------------------------------------------------------------------
# Post
# ---------------------------------------------------------------------------


class TestPost:
    def test_defaults(self):
        post = Post(url="https://x.com/1")
        assert post.platform == DEFAULT_PLATFORM
        assert post.title == ""
        assert post.tags == []
        assert post.synced is False

    def test_mixed_tag_refs_normalized_and_deduped(self):
        post = Post(
            url="u",
            tags=["News", {"name": "news", "color": "#111"}, "", {"name": "b"}],
        )
        assert [t.name for t in post.tags] == ["News", "b"]

    def test_none_text_fields_become_empty(self):
        post = Post(url="u", title=None, description=None)
        assert post.title == ""
        assert post.description == ""

    def test_numeric_ids_stringified(self):
        post = Post(id=12, url="u", user_id=3)
        assert post.id == "12"
        assert post.user_id == "3"

    def test_datetime_timestamps_stored_as_iso(self):
        ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        post = Post(url="u", created_at=ts)
        assert post.created_at == ts.isoformat()

    def test_url_key(self):
        assert Post(url=" HTTPS://X.com/1 ").key == "https://x.com/1"


class TestSession:
    def test_no_expiry_never_expires(self):
        assert not Session(access_token="t").is_expired()

    def test_expired(self):
        assert Session(access_token="t", expires_at=100).is_expired(now=101)

    def test_not_yet_expired(self):
        assert not Session(access_token="t", expires_at=100).is_expired(now=99)


# ---------------------------------------------------------------------------
# SyncReport
# ---------------------------------------------------------------------------


def _report() -> SyncReport:
    return SyncReport(
        operation="sync_data",
        direction=SyncDirection.LOCAL_TO_CLOUD,
        started_at="2024-01-01T00:00:00+00:00",
        results=[
            SyncResult(key="a", action=SyncAction.CREATE_REMOTE),
            SyncResult(key="b", action=SyncAction.UPDATE_REMOTE),
            SyncResult(key="c", action=SyncAction.SKIP),
            SyncResult(entity="tag", key="news", action=SyncAction.CREATE_TAG),
            SyncResult(
                key="d",
                action=SyncAction.SKIP,
                success=False,
                error="boom",
            ),
        ],
    )


class TestSyncReport:
    def test_counts(self):
        report = _report()
        assert len(report.created_remote) == 1
        assert len(report.updated_remote) == 1
        assert len(report.skipped) == 1
        assert len(report.tag_changes) == 1
        assert [r.key for r in report.errors] == ["d"]

    def test_failed_results_not_counted_as_actions(self):
        report = _report()
        assert "d" not in [r.key for r in report.skipped]

    def test_summary(self):
        summary = _report().summary()
        assert "sync_data" in summary
        assert "local-to-cloud" in summary
        assert "Errors:         1" in summary
        assert "Total:          5" in summary
