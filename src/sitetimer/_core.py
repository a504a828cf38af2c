"""Timer records, the registry that owns them, and the scoped start/stop protocol.

Design by Contract (fail-fast):
- A record is created once per name and never removed or moved
- total_duration == sum of the durations of all completed spans
- stop() on a record that is not running raises TimerProtocolError
- Operation counts MUST be non-negative

Threading: registry growth is locked, so distinct names may be measured from
different threads. Record fields are not synchronized; measuring the same
name from two threads at once is a caller error.
"""

import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from loguru import logger

from sitetimer._config import typechecked

if TYPE_CHECKING:
    from sitetimer._profiler import Profiler


class TimerProtocolError(AssertionError):
    """stop() was called on a measurement that is not running."""


def qualified_name(name: str, category: str | None = None) -> str:
    """Join an optional category prefix and a call-site label as ``category::name``."""
    if category:
        return f"{category}::{name}"
    return name


class TimerRecord:
    """Accumulated statistics for one named call site.

    Attributes:
        name: Call-site label (optionally ``category::label``)
        index: Registration position in the owning registry
        use_counters: Query the counter adapter for operation deltas
        last_duration: Duration of the most recent completed span (seconds)
        total_duration: Sum of all completed span durations (seconds)
        last_operations: Operation delta of the most recent completed span
        total_operations: Sum of all operation deltas
        calls: Number of accepted start() calls
    """

    def __init__(self, name: str, index: int, use_counters: bool = True) -> None:
        self.name = name
        self.index = index
        self.use_counters = use_counters
        self.last_duration: float = 0.0
        self.total_duration: float = 0.0
        self.last_operations: int = 0
        self.total_operations: int = 0
        self.calls: int = 0
        self._owner: "ScopedMeasurement | None" = None

    @property
    def running(self) -> bool:
        return self._owner is not None

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.calls if self.calls > 0 else 0.0

    def __repr__(self) -> str:
        return (
            f"TimerRecord(name={self.name!r}, calls={self.calls}, "
            f"total_duration={self.total_duration:.6g}, total_operations={self.total_operations})"
        )


class TimerRegistry:
    """Insertion-ordered, append-only collection of TimerRecords.

    Thread-safe for concurrent get_or_create() calls.

    Example:
        registry = TimerRegistry()
        work = registry.get_or_create("work")
        assert registry.get_or_create("work") is work
    """

    def __init__(self) -> None:
        self._records: list[TimerRecord] = []
        self._by_name: dict[str, TimerRecord] = {}
        self._lock = threading.Lock()

    @typechecked
    def get_or_create(self, name: str, use_counters: bool = True) -> TimerRecord:
        """Return the record for ``name``, registering a zeroed one on first use.

        ``use_counters`` only applies when the record is created.
        """
        assert name, "Timer name must be non-empty"
        with self._lock:
            record = self._by_name.get(name)
            if record is None:
                record = TimerRecord(name, index=len(self._records), use_counters=use_counters)
                self._records.append(record)
                self._by_name[name] = record
                logger.debug(f"Registered timer #{record.index}: {name}")
            return record

    def get(self, name: str) -> TimerRecord | None:
        return self._by_name.get(name)

    def snapshot(self) -> list[TimerRecord]:
        """Copy of the records in registration order."""
        with self._lock:
            return list(self._records)

    def reset(self) -> None:
        """Forget every record. Only for isolating test cases."""
        with self._lock:
            self._records.clear()
            self._by_name.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TimerRecord]:
        return iter(self.snapshot())

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


class ScopedMeasurement:
    """One start/stop span bound to a TimerRecord.

    Used as a context manager, stop() runs on every exit path (normal,
    early return, exception) if start() was accepted. A start() on a record
    that is already running is a no-op: the span is not nested and the call
    count is not incremented.

    Usage:
        with ScopedMeasurement(profiler.registry.get_or_create("solve"), profiler) as m:
            solve()
            m.add_operations(2 * n**3)
    """

    def __init__(self, record: TimerRecord, profiler: "Profiler", verbose: bool = False) -> None:
        self.record = record
        self.verbose = verbose
        self._profiler = profiler
        self._active = False
        self.start_time: float = 0.0
        self.start_operations: int = 0
        self.operations: int = 0

    @property
    def active(self) -> bool:
        """True while this measurement owns the running span of its record."""
        return self._active

    @typechecked
    def start(self, verbose: bool = False) -> bool:
        """Begin a span. Returns False if the record was already running."""
        record = self.record
        if record.running:
            return False
        record._owner = self
        self._active = True
        record.calls += 1

        profiler = self._profiler
        try:
            if (
                verbose
                or self.verbose
                or record.calls == 1
                or record.last_duration >= profiler.config.min_duration_for_start_log
            ):
                profiler.reporter.show_last(record, "start")
        except BaseException:
            record.calls -= 1
            record._owner = None
            self._active = False
            raise

        self.start_operations = profiler.counters.total_operations() if record.use_counters else 0
        self.operations = 0
        self.start_time = profiler.clock.now()
        return True

    @typechecked
    def add_operations(self, n: int) -> None:
        """Attribute ``n`` operations to the current span, overriding the counter delta."""
        assert n >= 0, f"Operation count must be non-negative: {n}"
        owner = self.record._owner
        if not self._active and owner is not None:
            owner.operations += n
        else:
            self.operations += n

    @typechecked
    def stop(self, verbose: bool = False) -> None:
        """End the span. On a nested no-op measurement, ends the owning span."""
        profiler = self._profiler
        stop_time = profiler.clock.now()
        record = self.record
        if not record.running:
            raise TimerProtocolError(f"stop() called on timer {record.name!r} which is not running")
        if not self._active:
            record._owner.stop(verbose)
            return

        try:
            if self.operations != 0:
                delta = self.operations
            elif record.use_counters:
                end_operations = profiler.counters.total_operations()
                # Zero if the counter source failed during the span.
                delta = end_operations - self.start_operations if profiler.counters.enabled else 0
            else:
                delta = 0

            duration = stop_time - self.start_time
            record.last_duration = duration
            record.last_operations = delta
            record.total_duration += duration
            record.total_operations += delta

            if (
                verbose
                or self.verbose
                or record.calls == 1
                or duration >= profiler.config.min_duration_for_stop_log
            ):
                profiler.reporter.show_last(record, "stop ")

            profiler.autodisplay.maybe_trigger(stop_time)
        finally:
            record._owner = None
            self._active = False

    def __enter__(self) -> "ScopedMeasurement":
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._active:
            self.stop()
