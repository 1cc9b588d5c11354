"""Tests for the operation supervisor."""

import asyncio
import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from estimator.errors import DeadlineExceeded
from estimator.metrics import OperationSupervisor


class TestStartEnd:
    """Tests for opening and closing log entries."""

    def test_single_operation(self, supervisor, clock):
        supervisor.start("x")
        clock.advance(15)
        entry = supervisor.end("x", True)

        entries = supervisor.entries()
        assert len(entries) == 1
        assert entries[0].success is True
        assert entries[0].duration_ms == 15
        assert entry.end_time == entries[0].end_time

    def test_immediate_end_has_non_negative_duration(self):
        supervisor = OperationSupervisor()
        supervisor.start("x")
        supervisor.end("x", True)

        entries = supervisor.entries()
        assert len(entries) == 1
        assert entries[0].duration_ms >= 0

    def test_nested_same_name_closes_most_recent(self, supervisor, clock):
        supervisor.start("x", {"run": 1})
        clock.advance(5)
        supervisor.start("x", {"run": 2})
        clock.advance(5)
        supervisor.end("x", True)

        first, second = supervisor.entries()
        assert first.is_open
        assert first.metadata == {"run": 1}
        assert not second.is_open
        assert second.metadata == {"run": 2}
        assert second.duration_ms == 5

        supervisor.end("x", False, "late")
        first, _ = supervisor.entries()
        assert first.duration_ms == 10
        assert first.error == "late"

    def test_end_without_open_entry(self, supervisor):
        assert supervisor.end("missing") is None
        assert supervisor.entries() == []

    def test_metadata_shallow_merge(self, supervisor):
        supervisor.start("extraction", {"reviewId": "r1", "attempt": 1})
        supervisor.end("extraction", True, metadata={"attempt": 2, "items": 4})

        entry = supervisor.entries()[0]
        assert entry.metadata == {"reviewId": "r1", "attempt": 2, "items": 4}

    def test_metadata_merge_does_not_leak_between_entries(self, supervisor):
        shared = {"reviewId": "r1"}
        supervisor.start("a", shared)
        supervisor.start("b", shared)
        supervisor.end("a", True, metadata={"extra": True})

        a, b = supervisor.entries()
        assert a.metadata == {"reviewId": "r1", "extra": True}
        assert b.metadata == {"reviewId": "r1"}
        assert shared == {"reviewId": "r1"}

    def test_closed_entry_stays_closed(self, supervisor):
        supervisor.start("x")
        supervisor.end("x", True)
        assert supervisor.end("x", False, "again") is None
        assert supervisor.entries()[0].success is True


class TestEnforceMaxRuntime:
    """Tests for the runtime ceiling."""

    def test_over_limit_raises(self, supervisor, clock):
        t0 = clock()
        clock.advance(20001)

        with pytest.raises(DeadlineExceeded) as exc_info:
            supervisor.enforce_max_runtime(t0, 20000)

        assert exc_info.value.elapsed_ms == 20001
        assert exc_info.value.max_ms == 20000

    def test_at_limit_passes(self, supervisor, clock):
        t0 = clock()
        clock.advance(20000)
        assert supervisor.enforce_max_runtime(t0, 20000) == 20000

    def test_default_limit(self, supervisor, clock):
        t0 = clock()
        clock.advance(20001)
        with pytest.raises(DeadlineExceeded):
            supervisor.enforce_max_runtime(t0)


class TestTracking:
    """Tests for the wrapping helpers."""

    def test_track_success(self, supervisor):
        assert supervisor.track("add", lambda a, b: a + b, 2, 3) == 5
        assert supervisor.entries()[0].success is True

    def test_track_failure_reraises(self, supervisor):
        def fail():
            raise RuntimeError("model unavailable")

        with pytest.raises(RuntimeError, match="model unavailable"):
            supervisor.track("extraction", fail, metadata={"reviewId": "r1"})

        entry = supervisor.entries()[0]
        assert entry.success is False
        assert entry.error == "model unavailable"
        assert entry.metadata == {"reviewId": "r1"}

    def test_track_async(self, supervisor):
        async def work(value):
            await asyncio.sleep(0)
            return value * 2

        assert asyncio.run(supervisor.track_async("double", work, 21)) == 42
        assert supervisor.entries()[0].success is True

    def test_track_async_failure(self, supervisor):
        async def fail():
            raise ValueError("bad json")

        with pytest.raises(ValueError):
            asyncio.run(supervisor.track_async("parse", fail))

        assert supervisor.entries()[0].error == "bad json"

    def test_tracked_context_manager(self, supervisor):
        with supervisor.tracked("persist"):
            pass
        with pytest.raises(KeyError):
            with supervisor.tracked("persist"):
                raise KeyError("reviews")

        ok, failed = supervisor.entries()
        assert ok.success is True
        assert failed.success is False


class TestSummary:
    """Tests for aggregation and retention."""

    def test_empty_summary(self, supervisor):
        summary = supervisor.get_summary()
        assert summary.total_operations == 0
        assert summary.avg_duration_ms == 0

    def test_summary_excludes_open_entries(self, supervisor, clock):
        supervisor.start("a")
        clock.advance(10)
        supervisor.end("a", True)
        supervisor.start("b")
        clock.advance(30)
        supervisor.end("b", False, "boom")
        supervisor.start("orphan")

        summary = supervisor.get_summary()
        assert summary.total_operations == 2
        assert summary.successful_operations == 1
        assert summary.failed_operations == 1
        assert summary.avg_duration_ms == 20
        assert summary.max_duration_ms == 30
        assert len(supervisor.open_entries()) == 1

    def test_per_operation_breakdown(self, supervisor, clock):
        for duration, success in [(100, True), (300, False), (200, True)]:
            supervisor.start("extraction")
            clock.advance(duration)
            supervisor.end("extraction", success, None if success else "timeout")
        supervisor.start("persist")
        clock.advance(10)
        supervisor.end("persist", True)
        supervisor.start("persist")

        summary = supervisor.get_summary()

        assert summary.success_rate == 75.0
        assert summary.min_duration_ms == 10
        assert summary.max_duration_ms == 300
        assert set(summary.operations) == {"extraction", "persist"}
        extraction = summary.operations["extraction"]
        assert (extraction.calls, extraction.successes, extraction.failures) == (3, 2, 1)
        assert extraction.avg_duration_ms == 200
        assert summary.operations["persist"].calls == 1

    def test_retention_drops_oldest(self, clock):
        supervisor = OperationSupervisor(max_entries=3, clock=clock)
        for name in ["a", "b", "c", "d", "e"]:
            supervisor.start(name)

        assert [entry.operation for entry in supervisor.entries()] == ["c", "d", "e"]
        assert supervisor.end("a") is None
        assert supervisor.end("e") is not None

    def test_retention_on_completed_entries(self, clock):
        supervisor = OperationSupervisor(max_entries=2, clock=clock)
        for _ in range(4):
            supervisor.start("x")
            supervisor.end("x", True)

        assert len(supervisor.entries()) == 2
        assert supervisor.get_summary().total_operations == 2

    def test_invalid_cap(self):
        with pytest.raises(ValueError):
            OperationSupervisor(max_entries=0)

    def test_clear(self, supervisor):
        supervisor.start("x")
        supervisor.log_retry("extraction", 1, 3, "timeout")
        supervisor.clear()

        assert supervisor.entries() == []
        assert supervisor.retry_count() == 0
        assert supervisor.end("x") is None

    def test_recent_errors(self, supervisor):
        for i in range(3):
            supervisor.start("extraction")
            supervisor.end("extraction", False, f"error {i}")

        errors = supervisor.get_recent_errors(limit=2)
        assert [e["error"] for e in errors] == ["error 1", "error 2"]

    def test_export(self, supervisor):
        supervisor.start("x")
        supervisor.end("x", True)
        supervisor.log_retry("extraction", 1, 3, "timeout")

        exported = json.loads(supervisor.export())
        assert exported["summary"]["total_operations"] == 1
        assert exported["retries"] == {"extraction": 1}
        assert exported["entries"][0]["operation"] == "x"


class TestRetries:
    """Tests for retry accounting."""

    def test_counts_per_operation(self, supervisor):
        supervisor.log_retry("extraction", 1, 3, "timeout")
        supervisor.log_retry("extraction", 2, 3, "timeout")
        supervisor.log_retry("persist", 1, 3, "conn reset")

        assert supervisor.retry_count("extraction") == 2
        assert supervisor.retry_count("persist") == 1
        assert supervisor.retry_count() == 3


class TestConcurrency:
    """Tests for shared use across threads."""

    def test_concurrent_start_end(self):
        supervisor = OperationSupervisor(max_entries=10_000)

        def run(i):
            name = f"op-{i % 7}"
            supervisor.start(name, {"i": i})
            supervisor.end(name, True)

        with ThreadPoolExecutor(max_workers=16) as executor:
            list(executor.map(run, range(500)))

        summary = supervisor.get_summary()
        assert summary.total_operations == 500
        assert summary.successful_operations == 500
        assert supervisor.open_entries() == []
