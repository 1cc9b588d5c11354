"""Operation supervisor - timing, runtime ceiling and operational log."""

import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import DeadlineExceeded
from .models import OperationLogEntry, OperationStats, SupervisorSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RUNTIME_MS = 20000
DEFAULT_MAX_ENTRIES = 1000


def now_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.perf_counter() * 1000.0


class OperationSupervisor:
    """Tracks supervised operations in a bounded, shared log.

    One instance may be shared by concurrent pipeline runs. Every read and
    write of the log goes through ``_lock``. Open entries are indexed per
    operation name as a stack, so ``end`` always closes the most recently
    opened entry with that name.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = now_ms,
    ):
        """Initialize the supervisor.

        Args:
            max_entries: Retention cap; oldest entries are evicted beyond it
            clock: Millisecond clock, injectable for tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.clock = clock
        self._lock = threading.Lock()
        self._entries: list[OperationLogEntry] = []
        self._open: dict[str, list[OperationLogEntry]] = {}
        self._retries: dict[str, int] = {}

    # ========================================================================
    # Start / End
    # ========================================================================

    def start(self, operation: str, metadata: Optional[dict] = None) -> OperationLogEntry:
        """Open a new log entry for ``operation``."""
        entry = OperationLogEntry(
            operation=operation,
            start_time=self.clock(),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._entries.append(entry)
            self._open.setdefault(operation, []).append(entry)
            self._evict()

        logger.info(f"[PERF] START: {operation} {metadata or ''}".rstrip())
        return entry

    def end(
        self,
        operation: str,
        success: bool = True,
        error: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[OperationLogEntry]:
        """Close the most recently opened entry for ``operation``.

        Returns:
            The closed entry, or None if no entry with that name is open
        """
        end_time = self.clock()
        with self._lock:
            stack = self._open.get(operation)
            if not stack:
                entry = None
            else:
                entry = stack.pop()
                if not stack:
                    del self._open[operation]
                entry.end_time = end_time
                entry.duration_ms = end_time - entry.start_time
                entry.success = success
                entry.error = error
                if metadata:
                    entry.metadata = {**entry.metadata, **metadata}
            self._evict()

        if entry is None:
            logger.warning(f"[PERF] No open operation named {operation!r} to close")
            return None

        status = "SUCCESS" if success else "FAILED"
        logger.info(f"[PERF] {status}: {operation} ({entry.duration_ms:.0f}ms) {error or ''}".rstrip())
        return entry

    def _evict(self) -> None:
        """Drop the oldest entries beyond the cap. Caller holds the lock."""
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        evicted = self._entries[:overflow]
        self._entries = self._entries[overflow:]
        for entry in evicted:
            if not entry.is_open:
                continue
            stack = self._open.get(entry.operation, [])
            remaining = [e for e in stack if e is not entry]
            if remaining:
                self._open[entry.operation] = remaining
            else:
                self._open.pop(entry.operation, None)

    # ========================================================================
    # Wrapping helpers
    # ========================================================================

    def track(
        self,
        operation: str,
        fn: Callable[..., T],
        *args: Any,
        metadata: Optional[dict] = None,
        **kwargs: Any,
    ) -> T:
        """Run ``fn`` between ``start`` and ``end``, re-raising failures."""
        self.start(operation, metadata)
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            self.end(operation, False, _describe(e), metadata)
            raise
        self.end(operation, True, None, metadata)
        return result

    async def track_async(
        self,
        operation: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        metadata: Optional[dict] = None,
        **kwargs: Any,
    ) -> T:
        """Async counterpart of ``track``."""
        self.start(operation, metadata)
        try:
            result = await fn(*args, **kwargs)
        except Exception as e:
            self.end(operation, False, _describe(e), metadata)
            raise
        self.end(operation, True, None, metadata)
        return result

    @contextmanager
    def tracked(self, operation: str, metadata: Optional[dict] = None):
        """Context manager form of ``track``.

        Usage:
            with supervisor.tracked("persist"):
                store.save_analysis(...)
        """
        self.start(operation, metadata)
        try:
            yield
        except Exception as e:
            self.end(operation, False, _describe(e), metadata)
            raise
        self.end(operation, True, None, metadata)

    # ========================================================================
    # Runtime ceiling
    # ========================================================================

    def enforce_max_runtime(self, start_time: float, max_ms: float = DEFAULT_MAX_RUNTIME_MS) -> float:
        """Raise DeadlineExceeded once ``now - start_time`` exceeds ``max_ms``.

        Cooperative checkpoint: nothing already in flight is interrupted.

        Returns:
            Elapsed milliseconds when still within budget
        """
        elapsed = self.clock() - start_time
        if elapsed > max_ms:
            error = DeadlineExceeded(elapsed, max_ms)
            self.log_failure("max_runtime", error.message, fatal=True)
            raise error
        return elapsed

    # ========================================================================
    # Retry and failure accounting
    # ========================================================================

    def log_retry(self, operation: str, attempt: int, max_attempts: int, error: str) -> None:
        """Count a failed attempt that the caller is about to retry."""
        with self._lock:
            self._retries[operation] = self._retries.get(operation, 0) + 1
        logger.warning(f"[AI-RETRY] {operation}: attempt {attempt}/{max_attempts} failed: {error}")

    def retry_count(self, operation: Optional[str] = None) -> int:
        with self._lock:
            if operation is None:
                return sum(self._retries.values())
            return self._retries.get(operation, 0)

    def log_failure(self, operation: str, error: str, fatal: bool = False) -> None:
        level = "FATAL" if fatal else "ERROR"
        logger.error(f"[{level}] {operation}: {error}")

    # ========================================================================
    # Queries
    # ========================================================================

    def entries(self) -> list[OperationLogEntry]:
        """Snapshot of the log, oldest first."""
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._entries]

    def open_entries(self, operation: Optional[str] = None) -> list[OperationLogEntry]:
        """Snapshot of entries still open, oldest first."""
        with self._lock:
            return [
                entry.model_copy(deep=True)
                for entry in self._entries
                if entry.is_open and (operation is None or entry.operation == operation)
            ]

    def get_summary(self) -> SupervisorSummary:
        """Aggregate over completed entries only."""
        with self._lock:
            completed = [entry for entry in self._entries if not entry.is_open]

        if not completed:
            return SupervisorSummary()

        durations = [entry.duration_ms or 0.0 for entry in completed]
        successful = sum(1 for entry in completed if entry.success)

        by_operation: dict[str, list[OperationLogEntry]] = {}
        for entry in completed:
            by_operation.setdefault(entry.operation, []).append(entry)

        operations = {}
        for operation, op_entries in by_operation.items():
            op_successes = sum(1 for entry in op_entries if entry.success)
            op_durations = [entry.duration_ms or 0.0 for entry in op_entries]
            operations[operation] = OperationStats(
                calls=len(op_entries),
                successes=op_successes,
                failures=len(op_entries) - op_successes,
                avg_duration_ms=round(sum(op_durations) / len(op_durations)),
            )

        return SupervisorSummary(
            total_operations=len(completed),
            successful_operations=successful,
            failed_operations=len(completed) - successful,
            success_rate=successful / len(completed) * 100,
            avg_duration_ms=round(sum(durations) / len(durations)),
            max_duration_ms=max(durations),
            min_duration_ms=min(durations),
            operations=operations,
        )

    def get_recent_errors(self, limit: int = 10) -> list[dict]:
        with self._lock:
            failed = [entry for entry in self._entries if not entry.success and entry.error]
        return [
            {"operation": entry.operation, "error": entry.error, "timestamp": entry.start_time}
            for entry in failed[-limit:]
        ]

    def clear(self) -> None:
        """Drop all entries and retry counts, e.g. between batches."""
        with self._lock:
            self._entries = []
            self._open = {}
            self._retries = {}
        logger.info("[PERF] Operation log cleared")

    def export(self) -> str:
        """Log, summary and retry counts as a JSON document."""
        with self._lock:
            retries = dict(self._retries)
        return json.dumps(
            {
                "entries": [entry.model_dump() for entry in self.entries()],
                "summary": self.get_summary().model_dump(),
                "retries": retries,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            indent=2,
        )


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__
