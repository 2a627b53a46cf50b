"""Bidirectional post/tag sync engine.

Public API for reconciling a per-user local cache of posts and tags with
the remote relational store.

Architecture
------------
Posts are matched across stores by URL and tags by lower-cased name
(``keys.natural_key``); surrogate ids are only adopted, never used for
matching.  A pass runs in one direction chosen from the newest timestamps
on each side, or in both directions for ``force_sync``.  Merges are
additive: nothing is ever deleted, except stale post/tag associations.

Modules:

- ``engine``    -- ``SyncEngine``: entry points, identity check, signals.
- ``direction`` -- ``resolve_direction`` with a clock-skew threshold.
- ``posts``     -- ``PostReconciler``: local <-> remote post passes.
- ``tags``      -- ``TagReconciler`` and ``sync_post_tags`` (delta
  association reconciliation).
- ``state``     -- ``SyncState``: the gate, history, pending changes.
- ``queue``     -- ``SyncQueue``: FIFO operations with retry-to-front.
- ``debounce``  -- ``Debouncer``: single-slot trailing scheduler.
- ``migration`` -- one-time adoption of remote ids by an old cache.
- ``models``    -- ``Post``, ``Tag``, ``SyncResult``, ``SyncReport``...
- ``normalize`` -- tag references, lookup maps, row conversion.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from linkboard_sync.sync import SyncEngine, format_sync_report

    engine = SyncEngine(local_store, remote_store, session_provider)
    engine.subscribe(SyncEvent.REMOTE_DATA_READY, render_posts)

    report = await engine.init_smart_sync()
    print(format_sync_report(report))

    # after a local edit
    engine.record_local_change("post", "update", post.id)
"""

from .debounce import Debouncer
from .direction import resolve_direction
from .engine import SyncEngine, SyncEvent
from .models import (
    Post,
    PostTagAssociation,
    SyncAction,
    SyncDirection,
    SyncReport,
    SyncResult,
    Tag,
)
from .queue import SyncQueue
from .reporter import format_status, format_sync_report, report_to_json
from .state import SyncState

__all__ = [
    "Debouncer",
    "Post",
    "PostTagAssociation",
    "SyncAction",
    "SyncDirection",
    "SyncEngine",
    "SyncEvent",
    "SyncQueue",
    "SyncReport",
    "SyncResult",
    "SyncState",
    "Tag",
    "format_status",
    "format_sync_report",
    "report_to_json",
    "resolve_direction",
]
