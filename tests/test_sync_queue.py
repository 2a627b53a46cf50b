"""Tests for the sync operation queue.

Covers:
- FIFO execution, one operation at a time
- Retry-to-front: a failed operation runs again before later ones
- Retry bound: four attempts in total, then dropped and recorded
- Gate held during each operation and between retries
- Worker waits while another pass holds the gate
- clear() and get_status()
"""

from __future__ import annotations

import asyncio

from linkboard_sync.sync.queue import SyncQueue
from linkboard_sync.sync.state import SyncState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _recording(log: list[str], name: str, fail_times: int = 0):
    """Operation that appends *name* to *log* and fails *fail_times* times."""
    remaining = {"fails": fail_times}

    async def operation():
        log.append(name)
        if remaining["fails"] > 0:
            remaining["fails"] -= 1
            raise RuntimeError(f"{name} failed")

    return operation


def _queue(**kwargs) -> SyncQueue:
    kwargs.setdefault("retry_delay", 0)
    return SyncQueue(SyncState(), **kwargs)


class TestOrdering:
    async def test_fifo(self):
        log: list[str] = []
        queue = _queue()
        for name in ("a", "b", "c"):
            queue.add(_recording(log, name), name)

        await queue.join()

        assert log == ["a", "b", "c"]

    async def test_failed_operation_retried_before_later_ones(self):
        log: list[str] = []
        queue = _queue()
        queue.add(_recording(log, "a", fail_times=2), "a")
        queue.add(_recording(log, "b"), "b")

        await queue.join()

        assert log == ["a", "a", "a", "b"]
        assert queue.failures == []

    async def test_one_at_a_time(self):
        running = 0
        peak = 0

        async def operation():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            running -= 1

        queue = _queue()
        for i in range(3):
            queue.add(operation, f"op{i}")
        await queue.join()

        assert peak == 1


class TestRetries:
    async def test_dropped_after_four_attempts(self):
        log: list[str] = []
        queue = _queue()
        queue.add(_recording(log, "a", fail_times=10), "a", {"url": "u"})
        queue.add(_recording(log, "b"), "b")

        await queue.join()

        assert log == ["a", "a", "a", "a", "b"]
        assert len(queue.failures) == 1
        failure = queue.failures[0]
        assert (failure.name, failure.attempts, failure.metadata) == ("a", 4, {"url": "u"})
        assert failure.error == "a failed"

    async def test_exhaustion_recorded_once_in_error_log(self):
        log: list[str] = []
        queue = _queue(max_retries=1)
        queue.add(_recording(log, "a", fail_times=5), "a")

        await queue.join()

        assert log == ["a", "a"]
        assert [e.message for e in queue.state.error_log] == ["a failed"]
        assert queue.state.last_sync_time is None

    async def test_gate_held_during_operation(self):
        queue = _queue()
        seen = []

        async def operation():
            seen.append(queue.state.is_sync_in_progress())

        queue.add(operation, "check")
        await queue.join()

        assert seen == [True]
        assert not queue.state.is_sync_in_progress()
        assert queue.state.last_sync_time is not None


class TestGate:
    async def test_waits_for_gate_held_elsewhere(self):
        log: list[str] = []
        queue = _queue()
        token = queue.state.start_sync()

        queue.add(_recording(log, "a"), "a")
        await asyncio.sleep(0.01)

        assert log == []
        assert queue.state.is_sync_in_progress()

        queue.state.end_sync(True, token=token)
        await queue.join()

        assert log == ["a"]
        assert not queue.state.is_sync_in_progress()

    async def test_gate_held_between_retries(self):
        attempts: list[str] = []
        queue = _queue(retry_delay=0.05)
        queue.add(_recording(attempts, "flaky", fail_times=1), "flaky")

        await asyncio.sleep(0.02)

        assert attempts == ["flaky"]
        assert queue.state.is_sync_in_progress()
        assert queue.state.last_sync_time is None

        await queue.join()

        assert attempts == ["flaky", "flaky"]
        assert not queue.state.is_sync_in_progress()
        assert queue.state.error_log == []
        assert queue.state.last_sync_time is not None

    async def test_cleared_retry_releases_gate(self):
        queue = _queue(retry_delay=0.05)
        queue.add(_recording([], "a", fail_times=5), "a")
        await asyncio.sleep(0.02)

        queue.clear()
        await queue.join()

        assert not queue.state.is_sync_in_progress()
        assert queue.state.error_log == []


class TestStatus:
    async def test_clear_and_status(self):
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        log: list[str] = []
        queue = _queue()
        queue.add(blocker, "blocker")
        queue.add(_recording(log, "later"), "later")
        await asyncio.sleep(0)

        status = queue.get_status()
        assert status["is_processing"] is True
        assert [op["name"] for op in status["pending_operations"]] == ["later"]

        queue.clear()
        release.set()
        await queue.join()

        assert log == []
        assert len(queue) == 0
        assert queue.get_status()["is_processing"] is False
