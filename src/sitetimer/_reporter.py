"""Report lines for timer records and the throttled automatic dump.

Line shapes (widths/precision are stable, scripts parse them):

    <name> : <pct>% <calls> calls. Last <dur> secs <tput> <unit> (<ops> per call)
    <name> : <pct>% <calls> calls. Avg <avg>(<cum>) secs <tput> <unit> (<avg-ops>(<cum-ops>) <op-unit>)
    <tag> ------------ total <elapsed> secs -----------------------

Ratios with a zero denominator are printed as 0 rather than raising.
"""

from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from loguru import logger

from sitetimer._clock import Clock
from sitetimer._config import typechecked
from sitetimer._core import TimerRecord

if TYPE_CHECKING:
    from sitetimer._profiler import Profiler

# Bookkeeping records measuring the dump itself.
DUMP_PROBE = "Timer"
DUMP_PROBE_NOFLOP = "Timer-noflop"
DUMP_PROBE_TEST = "Timer-test"


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator != 0 else 0.0


class Reporter:
    """Formats record statistics and dumps the registry sorted by cost."""

    def __init__(self, profiler: "Profiler") -> None:
        self._profiler = profiler

    def _display_name(self, record: TimerRecord) -> str:
        width = self._profiler.config.name_width
        return "%*s" % (width, record.name[:width])

    def format_last(self, record: TimerRecord) -> str:
        config = self._profiler.config
        total_time = self._profiler.clock.elapsed()
        return "%s :%5.1f%%%9d calls. Last %.3E secs%8.3f %s (%.3E per call)" % (
            self._display_name(record),
            _ratio(record.total_duration, total_time) * 100,
            record.calls,
            record.last_duration,
            _ratio(record.last_operations, record.last_duration) / config.throughput_scale,
            config.throughput_unit,
            float(record.last_operations),
        )

    def format_average(self, record: TimerRecord) -> str:
        config = self._profiler.config
        total_time = self._profiler.clock.elapsed()
        return "%s :%7.3f%%%9d calls. Avg %.2E(%.2E) secs%6.2f %s (%.2E(%.2E) %s)" % (
            self._display_name(record),
            _ratio(record.total_duration, total_time) * 100,
            record.calls,
            record.average_duration,
            record.total_duration,
            _ratio(record.total_operations, record.total_duration) / config.throughput_scale,
            config.throughput_unit,
            _ratio(record.total_operations, record.calls),
            float(record.total_operations),
            config.operation_unit,
        )

    @typechecked
    def show_last(self, record: TimerRecord, tag: str = "") -> None:
        self._profiler.gate.report("Timer", tag, self.format_last(record))

    @typechecked
    def show_average(self, record: TimerRecord, tag: str = "") -> None:
        self._profiler.gate.report("Timer", tag, self.format_average(record))

    def show(self, record: TimerRecord, tag: str = "") -> None:
        self.show_average(record, tag)

    def _measure_self(self) -> None:
        profiler = self._profiler
        total = profiler.registry.get_or_create(DUMP_PROBE, use_counters=False)
        noflop = profiler.registry.get_or_create(DUMP_PROBE_NOFLOP, use_counters=False)
        probe = profiler.registry.get_or_create(DUMP_PROBE_TEST, use_counters=False)
        total.use_counters = False
        noflop.use_counters = False
        probe.use_counters = False

        with profiler.measure(probe):
            pass
        with profiler.measure(total):
            probe.use_counters = True
            with profiler.measure(probe):
                pass
        with profiler.measure(noflop):
            probe.use_counters = False
            with profiler.measure(probe):
                pass

    @typechecked
    def dump(self, tag: str = "") -> None:
        """Print every record's averages, most expensive first.

        The sort is stable: records with equal total duration keep their
        registration order.
        """
        profiler = self._profiler
        with profiler.autodisplay.hold():
            self._measure_self()
            total_time = profiler.clock.elapsed()
            records = sorted(
                profiler.registry.snapshot(),
                key=lambda record: record.total_duration,
                reverse=True,
            )
            banner = "%s ------------ total %.4e secs -----------------------" % (tag, total_time)
            profiler.gate.report("Timer", "display-start", banner)
            for record in records:
                self.show_average(record, "display")
            profiler.gate.report("Timer", "display-end  ", banner)


class AutodisplayScheduler:
    """Triggers a full dump at most once per interval, checked on every stop().

    Args:
        clock: Clock used to initialize the last-trigger time
        interval: Callable returning the minimum interval in seconds
        on_trigger: Called when a dump is due

    The interval is a lower bound on the spacing of automatic dumps: the
    check only runs when some measurement stops.
    """

    @typechecked
    def __init__(
        self,
        clock: Clock,
        interval: Callable[[], float],
        on_trigger: Callable[[], object],
    ) -> None:
        self._clock = clock
        self._interval = interval
        self._on_trigger = on_trigger
        self._last_triggered: float | None = None
        self._holds = 0
        self.trigger_count = 0

    @property
    def last_triggered(self) -> float:
        if self._last_triggered is None:
            self._last_triggered = self._clock.now()
        return self._last_triggered

    def maybe_trigger(self, now: float | None = None) -> bool:
        """Run the dump if more than the interval has passed since the last one."""
        if now is None:
            now = self._clock.now()
        last = self.last_triggered
        if self._holds:
            return False
        if now - last > self._interval():
            self._last_triggered = now
            self.trigger_count += 1
            logger.debug(f"Autodisplay #{self.trigger_count} after {now - last:.1f}s")
            self._on_trigger()
            return True
        return False

    @contextmanager
    def hold(self) -> Generator[None, None, None]:
        """Suppress automatic dumps while a dump is already printing."""
        self._holds += 1
        try:
            yield
        finally:
            self._holds -= 1
