"""Normalization helpers shared by the reconcilers.

Covers three concerns:

* tag references -- bare names, mappings and ``Tag`` objects all become
  ``Tag`` records (``normalize_tag``, ``process_tags``, ``dedupe_tags``);
* natural-key lookup maps (``tag_map_by_name``, ``post_map_by_url``);
* conversion between ``Post`` and remote ``posts`` rows, and timestamp
  parsing for direction resolution.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from .models import Post, Tag

logger = logging.getLogger(__name__)

# Scalar post fields compared (and pushed) during reconciliation.
POST_SCALAR_FIELDS = ("title", "description", "platform")

# Fractional seconds, padded or cut to microseconds before parsing.
_FRACTION_RE = re.compile(r"\.(\d+)")


def normalize_tag(ref: Any) -> Tag | None:
    """Convert any tag reference into a ``Tag``, or ``None`` if invalid."""
    return Tag.from_ref(ref)


def process_tags(refs: Iterable[Any] | None) -> list[Tag]:
    """Normalize a list of tag references, dropping invalid entries.

    Order is preserved; duplicates are kept (see ``dedupe_tags``).
    """
    if not refs:
        return []
    tags = []
    for ref in refs:
        tag = normalize_tag(ref)
        if tag is not None:
            tags.append(tag)
    return tags


def dedupe_tags(tags: Iterable[Tag]) -> list[Tag]:
    """Drop tags whose natural key was already seen; first occurrence wins."""
    seen: set[str] = set()
    unique: list[Tag] = []
    for tag in tags:
        if tag.key in seen:
            continue
        seen.add(tag.key)
        unique.append(tag)
    return unique


def tag_map_by_name(tags: Iterable[Tag]) -> dict[str, Tag]:
    """Map tags by natural key.  Later duplicates do not replace earlier ones."""
    mapping: dict[str, Tag] = {}
    for tag in tags:
        if tag.key and tag.key not in mapping:
            mapping[tag.key] = tag
    return mapping


def post_map_by_url(posts: Iterable[Post]) -> dict[str, Post]:
    """Map posts by URL natural key.  First occurrence wins."""
    mapping: dict[str, Post] = {}
    for post in posts:
        if post.key and post.key not in mapping:
            mapping[post.key] = post
    return mapping


def merge_duplicate_posts(posts: Iterable[Post]) -> list[Post]:
    """Collapse posts sharing a URL natural key into the first occurrence.

    Tags of later duplicates are appended to the survivor's tag list.
    Posts without a URL are dropped.
    """
    merged: dict[str, Post] = {}
    for post in posts:
        if not post.key:
            logger.warning("Dropping local post without URL: %r", post.id)
            continue
        survivor = merged.get(post.key)
        if survivor is None:
            merged[post.key] = post
            continue
        logger.info("Merging duplicate local post for %s", post.url)
        survivor.tags = dedupe_tags([*survivor.tags, *post.tags])
    return list(merged.values())


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def parse_timestamp_ms(value: Any) -> int:
    """Parse an ISO 8601 string or datetime to epoch milliseconds.

    Missing or unparsable values are treated as epoch zero.  Naive values
    are assumed to be UTC.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(
            lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1
        )
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparsable timestamp treated as epoch: %r", value)
            return 0
    else:
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def post_timestamp_ms(post: Post) -> int:
    """Freshness of a post: ``updated_at``, else ``created_at``, else 0."""
    if post.updated_at:
        return parse_timestamp_ms(post.updated_at)
    return parse_timestamp_ms(post.created_at)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Remote row conversion
# ---------------------------------------------------------------------------


def post_to_remote_row(post: Post, user_id: str | None = None) -> dict[str, Any]:
    """Build the ``posts`` row payload for creating *post* remotely.

    Tags are never part of the row; associations are written separately.
    """
    row: dict[str, Any] = {
        "url": post.url,
        "platform": post.platform,
        "title": post.title,
        "description": post.description,
        "created_at": post.created_at or utc_now_iso(),
        "updated_at": post.updated_at or post.created_at or utc_now_iso(),
    }
    owner = user_id or post.user_id
    if owner:
        row["user_id"] = owner
    return row


def scalar_changes(local: Post, remote: Post) -> dict[str, Any]:
    """Return the scalar fields where *local* differs from *remote*."""
    return {
        name: getattr(local, name)
        for name in POST_SCALAR_FIELDS
        if getattr(local, name) != getattr(remote, name)
    }


def remote_row_to_post(row: Mapping[str, Any]) -> Post:
    """Convert a ``posts`` row (optionally embedding ``post_tags``) to a ``Post``.

    Embedded associations may come as ``post_tags: [{"tag": {...}}]``.
    """
    tags: list[Any] = []
    for link in row.get("post_tags") or []:
        tag_row = link.get("tag") if isinstance(link, Mapping) else None
        if tag_row:
            tags.append(tag_row)
    return Post(
        id=row.get("id"),
        url=row.get("url") or "",
        platform=row.get("platform"),
        title=row.get("title"),
        description=row.get("description"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        user_id=row.get("user_id"),
        tags=tags,
        synced=True,
    )


def remote_row_to_tag(row: Mapping[str, Any]) -> Tag:
    data: dict[str, Any] = {"name": row.get("name") or ""}
    if row.get("id") is not None:
        data["id"] = str(row["id"])
    if row.get("color"):
        data["color"] = row["color"]
    return Tag(**data)


