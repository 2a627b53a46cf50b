"""Pydantic models for the sync engine.

Defines the data contracts shared by the reconcilers, the stores and the
orchestrator:

- ``Tag``, ``Post``, ``PostTagAssociation``: the synchronised entities.
- ``Identity``, ``Session``: what the session provider hands out.
- ``SyncDirection``: outcome of direction resolution.
- ``SyncAction``, ``SyncResult``, ``SyncReport``: per-entity and per-pass
  outcomes.

``Tag`` and the result models are frozen.  ``Post`` is mutable because the
reconcilers write remote ids and tag lists back into local copies.
"""

from __future__ import annotations

import time
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .keys import natural_key

DEFAULT_TAG_COLOR = "#cccccc"
DEFAULT_PLATFORM = "website"


class Tag(BaseModel):
    """A tag, matched across stores by its lower-cased name.

    Attributes:
        id: Remote surrogate key, ``None`` until the tag exists remotely.
        name: Display name.  Comparison always uses ``natural_key(name)``.
        color: Hex colour.  ``"color" in tag.model_fields_set`` tells whether
            the colour was given explicitly or defaulted.
    """

    id: str | None = None
    name: str
    color: str = DEFAULT_TAG_COLOR

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("color", mode="before")
    @classmethod
    def _default_color(cls, value: Any) -> Any:
        return value or DEFAULT_TAG_COLOR

    @property
    def key(self) -> str:
        return natural_key(self.name)

    @property
    def has_explicit_color(self) -> bool:
        return "color" in self.model_fields_set

    @classmethod
    def from_ref(cls, ref: Any) -> Tag | None:
        """Build a ``Tag`` from any tag reference.

        Accepts a bare name string, a mapping with ``name`` (and optionally
        ``color``/``id``), or an existing ``Tag``.  Returns ``None`` for
        anything without a usable name.
        """
        if isinstance(ref, Tag):
            return ref if ref.key else None
        if isinstance(ref, str):
            return cls(name=ref) if natural_key(ref) else None
        if isinstance(ref, dict):
            name = ref.get("name")
            if not isinstance(name, str) or not natural_key(name):
                return None
            data: dict[str, Any] = {"name": name}
            if ref.get("color"):
                data["color"] = ref["color"]
            if ref.get("id") is not None:
                data["id"] = str(ref["id"])
            return cls(**data)
        return None


def _coerce_tags(value: Any) -> list[Tag]:
    """Normalize a list of tag references, dropping invalid and duplicate ones."""
    if not value:
        return []
    seen: set[str] = set()
    tags: list[Tag] = []
    for ref in value:
        tag = Tag.from_ref(ref)
        if tag is None or tag.key in seen:
            continue
        seen.add(tag.key)
        tags.append(tag)
    return tags


class Post(BaseModel):
    """A saved link.

    Attributes:
        id: Remote surrogate key.  Local copies may carry a temporary
            local-only id, or ``None``, before their first sync.
        url: Natural key, unique per owner.
        platform: Source platform (``instagram``, ``tiktok``, ``website``...).
        title: Display title.
        description: Free-form description.
        image_url: Preview image.
        embed_html: Cached embed markup.
        tags: Ordered, de-duplicated tag list.
        created_at: ISO 8601 creation timestamp, kept verbatim.
        updated_at: ISO 8601 modification timestamp, kept verbatim.
        user_id: Owner identity id, when known.
        synced: ``True`` once the post is known to exist remotely.
    """

    id: str | None = None
    url: str
    platform: str = DEFAULT_PLATFORM
    title: str = ""
    description: str = ""
    image_url: str = ""
    embed_html: str = ""
    tags: list[Tag] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None
    user_id: str | None = None
    synced: bool = False

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[Tag]:
        return _coerce_tags(value)

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("title", "description", "image_url", "embed_html", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("platform", mode="before")
    @classmethod
    def _default_platform(cls, value: Any) -> Any:
        return value or DEFAULT_PLATFORM

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp_to_str(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        return value or None

    @property
    def key(self) -> str:
        return natural_key(self.url)


class PostTagAssociation(BaseModel):
    """A join row between a post and a tag."""

    post_id: str
    tag_id: str | None = None
    tag: Tag | None = None

    model_config = {"frozen": True}

    @field_validator("post_id", "tag_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return None if value is None else str(value)


class Identity(BaseModel):
    """The authenticated owner of both stores."""

    id: str
    email: str | None = None

    model_config = {"frozen": True}


class Session(BaseModel):
    """An auth session as issued by the identity service.

    Attributes:
        access_token: Bearer token for remote calls.
        refresh_token: Token used to obtain a fresh session.
        expires_at: Expiry as a Unix timestamp in seconds, if known.
        user: Identity the session belongs to, if known.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None
    user: Identity | None = None

    model_config = {"frozen": True}

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at < current


class SyncDirection(str, Enum):
    """Which way a reconciliation pass should flow."""

    LOCAL_TO_CLOUD = "local-to-cloud"
    CLOUD_TO_LOCAL = "cloud-to-local"
    IN_SYNC = "in-sync"


class SyncAction(str, Enum):
    """What happened to one entity during a pass."""

    SKIP = "skip"
    CREATE_REMOTE = "create_remote"
    UPDATE_REMOTE = "update_remote"
    CREATE_LOCAL = "create_local"
    UPDATE_LOCAL = "update_local"
    CREATE_TAG = "create_tag"
    UPDATE_TAG = "update_tag"


class SyncResult(BaseModel):
    """Outcome of reconciling one entity.

    Attributes:
        entity: ``"post"`` or ``"tag"``.
        key: Natural key of the entity (URL or tag name).
        action: What the reconciler did.
        success: Whether the operation succeeded.
        error: Error message when ``success`` is False.
        tags_added: Tag names newly associated with the post.
        tags_removed: Tag names no longer associated with the post.
    """

    entity: str = "post"
    key: str
    action: SyncAction
    success: bool = True
    error: str | None = None
    tags_added: list[str] = []
    tags_removed: list[str] = []

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one engine entry point invocation.

    Attributes:
        operation: Entry point that produced the report.
        direction: Resolved direction, when one was resolved.
        results: Per-entity results in processing order.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass finished.
    """

    operation: str
    direction: SyncDirection | None = None
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _by_action(self, action: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action == action and r.success]

    @property
    def created_remote(self) -> list[SyncResult]:
        return self._by_action(SyncAction.CREATE_REMOTE)

    @property
    def updated_remote(self) -> list[SyncResult]:
        return self._by_action(SyncAction.UPDATE_REMOTE)

    @property
    def created_local(self) -> list[SyncResult]:
        return self._by_action(SyncAction.CREATE_LOCAL)

    @property
    def updated_local(self) -> list[SyncResult]:
        return self._by_action(SyncAction.UPDATE_LOCAL)

    @property
    def tag_changes(self) -> list[SyncResult]:
        return [
            r
            for r in self.results
            if r.success
            and r.action in (SyncAction.CREATE_TAG, SyncAction.UPDATE_TAG)
        ]

    @property
    def skipped(self) -> list[SyncResult]:
        return self._by_action(SyncAction.SKIP)

    @property
    def errors(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """Format a short multi-line summary with counts by action."""
        header = f"Sync report for '{self.operation}'"
        if self.direction is not None:
            header += f" ({self.direction.value})"
        lines = [
            header,
            f"  Created remote: {len(self.created_remote)}",
            f"  Updated remote: {len(self.updated_remote)}",
            f"  Created local:  {len(self.created_local)}",
            f"  Updated local:  {len(self.updated_local)}",
            f"  Tag changes:    {len(self.tag_changes)}",
            f"  Unchanged:      {len(self.skipped)}",
            f"  Errors:         {len(self.errors)}",
            f"  Total:          {len(self.results)}",
        ]
        return "\n".join(lines)
