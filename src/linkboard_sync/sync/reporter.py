"""Sync report formatting functions.

- ``format_sync_report`` -- human-readable post-sync summary.
- ``format_status`` -- human-readable engine status.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import SyncReport, SyncResult

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _tag_delta(result: SyncResult) -> str:
    parts = [f"+{name}" for name in result.tags_added]
    parts.extend(f"-{name}" for name in result.tags_removed)
    return f" [{' '.join(parts)}]" if parts else ""


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Unchanged posts are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report for '{report.operation}'"
    if report.direction is not None:
        header += f" ({report.direction.value})"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    pushed = len(report.created_remote) + len(report.updated_remote)
    pulled = len(report.created_local) + len(report.updated_local)
    lines.append(
        f"Synced {len(report.results)} entities: "
        f"{pushed} pushed, {pulled} pulled, "
        f"{len(report.tag_changes)} tag changes, {len(report.errors)} errors"
    )
    lines.append("")

    sections = [
        ("Created remotely:", report.created_remote),
        ("Updated remotely:", report.updated_remote),
        ("Created locally:", report.created_local),
        ("Updated locally:", report.updated_local),
    ]
    for title, results in sections:
        if not results:
            continue
        lines.append(title)
        for r in results:
            lines.append(f"  {r.key}{_tag_delta(r)}")
        lines.append("")

    if report.tag_changes:
        lines.append("Tags:")
        for r in report.tag_changes:
            verb = "created" if r.action.value == "create_tag" else "recolored"
            lines.append(f"  {r.key} ({verb})")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.entity} {r.key}: {r.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Unchanged: {len(report.skipped)} posts")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_status(status: dict[str, Any]) -> str:
    """Format ``SyncEngine.status()`` output."""
    queue = status.get("queue", {})
    lines = [
        f"Syncing: {'yes' if status.get('is_syncing') else 'no'}",
        f"Last sync: {status.get('last_sync_time') or 'never'}",
        f"Pending changes: {status.get('pending_changes_count', 0)}",
        f"Queued operations: {queue.get('queue_length', 0)}",
        f"Failed operations: {queue.get('failures', 0)}",
    ]
    if status.get("last_error"):
        lines.append(f"Last error: {status['last_error']}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with operation info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "entity": r.entity,
            "key": r.key,
            "action": r.action.value,
            "success": r.success,
        }
        if r.tags_added:
            entry["tags_added"] = list(r.tags_added)
        if r.tags_removed:
            entry["tags_removed"] = list(r.tags_removed)
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "operation": report.operation,
        "direction": report.direction.value if report.direction else None,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "created_remote": len(report.created_remote),
            "updated_remote": len(report.updated_remote),
            "created_local": len(report.created_local),
            "updated_local": len(report.updated_local),
            "tag_changes": len(report.tag_changes),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
        },
        "results": results_list,
    }
