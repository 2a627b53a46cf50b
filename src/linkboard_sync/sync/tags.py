"""Tag and association reconciliation.

``TagReconciler`` makes sure every locally known tag exists remotely and
returns the canonical ``natural_key -> Tag`` map for the pass.
``sync_post_tags`` converges the association set of one remote post to a
desired tag list by delta: only missing links are added and only stale
links are removed.

Tags are never deleted here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from linkboard_sync.store.protocols import (
    LocalStoreProtocol,
    RemoteStoreProtocol,
)
from linkboard_sync.sync.models import (
    Post,
    PostTagAssociation,
    SyncAction,
    SyncResult,
    Tag,
)
from linkboard_sync.sync.normalize import (
    dedupe_tags,
    process_tags,
    tag_map_by_name,
)

logger = logging.getLogger(__name__)


@dataclass
class AssociationDelta:
    """Tag names linked to and unlinked from one post."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


async def find_or_create_tag(
    remote: RemoteStoreProtocol, tag: Tag, tag_map: dict[str, Tag]
) -> Tag | None:
    """Return the remote tag for *tag*, creating it if the map lacks it.

    A failed create is followed by one re-read of the remote tags, so a tag
    inserted by a concurrent writer is picked up rather than duplicated.
    The result is stored in *tag_map*.  Returns ``None`` when the tag can
    neither be found nor created.
    """
    existing = tag_map.get(tag.key)
    if existing is not None and existing.id:
        return existing

    try:
        created = await remote.create_tag(Tag(name=tag.name, color=tag.color))
    except Exception as exc:
        logger.warning(
            "Creating tag %r failed, re-checking remote tags: %s", tag.name, exc
        )
        try:
            found = tag_map_by_name(await remote.get_tags()).get(tag.key)
        except Exception as lookup_exc:
            logger.error("Re-reading remote tags failed: %s", lookup_exc)
            return None
        if found is None:
            logger.error("Tag %r could not be created", tag.name)
            return None
        created = found
    else:
        logger.info("Created remote tag %r (%s)", created.name, created.id)

    tag_map[tag.key] = created
    return created


class TagReconciler:
    """Push locally known tags to the remote store.

    Args:
        local: Local store; its tag collection is one source of candidates
            and receives the canonical remote ids.
        remote: Remote store.
    """

    def __init__(
        self, local: LocalStoreProtocol, remote: RemoteStoreProtocol
    ) -> None:
        self.local = local
        self.remote = remote

    def collect_local_tags(
        self, identity: str, posts: Iterable[Post]
    ) -> list[Tag]:
        """Local tag collection followed by every post tag, de-duplicated."""
        candidates = list(self.local.load_tags(identity))
        for post in posts:
            candidates.extend(post.tags)
        return dedupe_tags(candidates)

    async def sync_tags_to_remote(
        self,
        identity: str,
        posts: Sequence[Post],
        results: list[SyncResult] | None = None,
    ) -> dict[str, Tag]:
        """Create missing remote tags and align remote colours with local.

        Args:
            identity: Current identity id (local store scope).
            posts: Local posts whose tags are candidates too.
            results: Optional list receiving one ``SyncResult`` per tag
                write.

        Returns:
            Canonical map of natural key to remote ``Tag``.
        """
        sink = results if results is not None else []
        candidates = self.collect_local_tags(identity, posts)
        tag_map = tag_map_by_name(await self.remote.get_tags())

        to_create = [t for t in candidates if t.key not in tag_map]
        to_update = [
            (t, tag_map[t.key])
            for t in candidates
            if t.key in tag_map
            and t.has_explicit_color
            and t.color.lower() != tag_map[t.key].color.lower()
        ]
        logger.debug(
            "Tags: %d local, %d remote, %d to create, %d to recolor",
            len(candidates),
            len(tag_map),
            len(to_create),
            len(to_update),
        )

        if to_create:
            created = await asyncio.gather(
                *(find_or_create_tag(self.remote, t, tag_map) for t in to_create)
            )
            for tag, remote_tag in zip(to_create, created):
                sink.append(
                    SyncResult(
                        entity="tag",
                        key=tag.name,
                        action=SyncAction.CREATE_TAG,
                        success=remote_tag is not None,
                        error=None if remote_tag else "tag creation failed",
                    )
                )

        if to_update:
            await asyncio.gather(
                *(
                    self._update_color(local_tag, remote_tag, tag_map, sink)
                    for local_tag, remote_tag in to_update
                )
            )

        self._store_remote_ids(identity, candidates, tag_map)
        return tag_map

    async def _update_color(
        self,
        local_tag: Tag,
        remote_tag: Tag,
        tag_map: dict[str, Tag],
        results: list[SyncResult],
    ) -> None:
        if not remote_tag.id:
            return
        try:
            updated = await self.remote.update_tag(
                remote_tag.id, {"color": local_tag.color}
            )
        except Exception as exc:
            logger.error("Updating tag %r failed: %s", remote_tag.name, exc)
            results.append(
                SyncResult(
                    entity="tag",
                    key=local_tag.name,
                    action=SyncAction.UPDATE_TAG,
                    success=False,
                    error=str(exc),
                )
            )
            return
        tag_map[local_tag.key] = updated
        results.append(
            SyncResult(
                entity="tag", key=local_tag.name, action=SyncAction.UPDATE_TAG
            )
        )

    def _store_remote_ids(
        self, identity: str, candidates: list[Tag], tag_map: dict[str, Tag]
    ) -> None:
        updated = []
        for tag in candidates:
            remote_tag = tag_map.get(tag.key)
            if remote_tag is not None and remote_tag.id and remote_tag.id != tag.id:
                tag = tag.model_copy(update={"id": remote_tag.id})
            updated.append(tag)
        self.local.save_tags(identity, updated)


async def sync_post_tags(
    remote: RemoteStoreProtocol,
    post_id: str,
    desired: Sequence[Any] | None,
    tag_map: dict[str, Tag],
) -> AssociationDelta:
    """Converge the associations of *post_id* to *desired*.

    Args:
        remote: Remote store.
        post_id: Remote id of the post.
        desired: Desired tags in any tag-reference form.  An empty list
            means "no tags" and clears every association.
        tag_map: Canonical tag map; tags created here are added to it.

    Returns:
        The applied delta.  No remote write happens when it is empty.
    """
    desired_tags = dedupe_tags(process_tags(desired))
    desired_keys = {t.key for t in desired_tags}

    existing = await remote.get_post_tag_associations(post_id)
    existing_by_key: dict[str, PostTagAssociation] = {}
    stale: list[PostTagAssociation] = []
    for assoc in existing:
        if assoc.tag is None or not assoc.tag.key:
            continue
        if assoc.tag.key in existing_by_key:
            # second link to a same-named tag
            stale.append(assoc)
            continue
        existing_by_key[assoc.tag.key] = assoc

    to_add = [t for t in desired_tags if t.key not in existing_by_key]
    stale.extend(a for k, a in existing_by_key.items() if k not in desired_keys)

    if not to_add and not stale:
        logger.debug("Tags of post %s already up to date", post_id)
        return AssociationDelta()

    delta = AssociationDelta()

    if to_add:
        tag_ids = []
        for tag in to_add:
            canonical = await find_or_create_tag(remote, tag, tag_map)
            if canonical is not None and canonical.id:
                tag_ids.append(canonical.id)
                delta.added.append(canonical.name)
        if tag_ids:
            await remote.add_associations(post_id, tag_ids)

    if stale:
        if not desired_tags:
            logger.info("Clearing all tags of post %s", post_id)
        tag_ids = [a.tag_id or a.tag.id for a in stale if a.tag_id or a.tag.id]
        if tag_ids:
            await remote.remove_associations(post_id, tag_ids)
            delta.removed.extend(a.tag.name for a in stale)

    logger.debug(
        "Post %s tags: +%s -%s", post_id, delta.added, delta.removed
    )
    return delta
