"""Device-local cache.

Two layers:

* ``JsonFileStore`` -- a string key-value store with one file per key under
  a cache directory.  Writes are atomic: the value goes to a temp file in
  the same directory which then replaces the target via ``os.replace()``.
* ``LocalStore`` -- the per-identity Post/Tag adapter the engine uses.
  Collections live under ``linkboard_posts_<identity>`` and
  ``linkboard_tags_<identity>``.  A corrupted collection (invalid JSON or a
  non-list payload) is reset to empty instead of raising.  Only fields that
  were set are written, so a defaulted tag colour is still a default after
  a reload.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from linkboard_sync.store.protocols import KeyValueStore
from linkboard_sync.sync.models import Post, Tag

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileStore:
    """Key-value store backed by one file per key.

    Args:
        root: Directory holding the value files.  Created on first write.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        """Write *value* under *key* atomically."""
        self._root.mkdir(parents=True, exist_ok=True)
        target = self._path(key)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._root), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def _path(self, key: str) -> Path:
        return self._root / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"


class LocalStore:
    """Per-identity Post/Tag persistence over a ``KeyValueStore``.

    Args:
        kv: Underlying key-value store.
        prefix: Key prefix shared by every collection.
    """

    def __init__(self, kv: KeyValueStore, prefix: str = "linkboard") -> None:
        self._kv = kv
        self._prefix = prefix

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def load_posts(self, identity: str) -> list[Post]:
        key = self._key("posts", identity)
        return [
            post
            for item in self._load_list(key)
            if (post := self._parse(Post, item, key)) is not None
        ]

    def save_posts(self, identity: str, posts: list[Post]) -> None:
        self._save_list(
            self._key("posts", identity),
            [p.model_dump(mode="json", exclude_unset=True) for p in posts],
        )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def load_tags(self, identity: str) -> list[Tag]:
        key = self._key("tags", identity)
        tags = []
        for item in self._load_list(key):
            tag = Tag.from_ref(item)
            if tag is None:
                logger.warning("Skipping invalid tag in %s: %r", key, item)
                continue
            tags.append(tag)
        return tags

    def save_tags(self, identity: str, tags: list[Tag]) -> None:
        self._save_list(
            self._key("tags", identity),
            [t.model_dump(mode="json", exclude_unset=True) for t in tags],
        )

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def get_flag(self, identity: str, name: str) -> bool:
        return self._kv.get(self._key(name, identity)) == "true"

    def set_flag(self, identity: str, name: str, value: bool) -> None:
        key = self._key(name, identity)
        if value:
            self._kv.set(key, "true")
        else:
            self._kv.remove(key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _key(self, collection: str, identity: str) -> str:
        return f"{self._prefix}_{collection}_{identity}"

    def _load_list(self, key: str) -> list[Any]:
        raw = self._kv.get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupted local cache %s reset: %s", key, exc)
            self._kv.remove(key)
            return []
        if not isinstance(data, list):
            logger.warning(
                "Corrupted local cache %s reset: expected list, got %s",
                key,
                type(data).__name__,
            )
            self._kv.remove(key)
            return []
        return data

    def _save_list(self, key: str, items: list[dict[str, Any]]) -> None:
        self._kv.set(key, json.dumps(items, indent=2))

    @staticmethod
    def _parse(model: type[Post], item: Any, key: str) -> Post | None:
        if not isinstance(item, dict):
            logger.warning("Skipping invalid entry in %s: %r", key, item)
            return None
        try:
            return model.model_validate(item)
        except ValidationError as exc:
            logger.warning("Skipping invalid entry in %s: %s", key, exc)
            return None
