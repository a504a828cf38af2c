"""Operation-count adapter.

The adapter wraps an optional counter source, a callable returning the
cumulative number of operations performed by the whole process (all
threads) since the source was set up. Without a source every query
returns 0 and throughput figures degrade to zero.

The delta between two queries approximates the operations performed in
between; it is not race-free against other threads.
"""

from collections.abc import Callable

import psutil
from loguru import logger

from sitetimer._clock import RankGate
from sitetimer._config import typechecked

# Failures of a counter source that degrade counting to zero.
COUNTER_ERRORS = (psutil.Error, OSError, AttributeError)


class ProcessCounterSource:
    """Counter source reading process-wide event counts via psutil.

    Args:
        metric: ``"ctx_switches"`` (voluntary + involuntary context switches)
            or ``"io_ops"`` (read + write syscalls; not available on macOS)

    Counts are reported relative to the value captured by setup(), so the
    first query after setup() starts near zero.
    """

    METRICS = ("ctx_switches", "io_ops")

    @typechecked
    def __init__(self, metric: str = "ctx_switches") -> None:
        assert metric in self.METRICS, f"Unknown counter metric {metric!r}, expected one of {self.METRICS}"
        self.metric = metric
        self._process: psutil.Process | None = None
        self._baseline = 0

    def setup(self) -> None:
        self._process = psutil.Process()
        self._baseline = self._read()

    def _read(self) -> int:
        if self.metric == "ctx_switches":
            switches = self._process.num_ctx_switches()
            return switches.voluntary + switches.involuntary
        io = self._process.io_counters()
        return io.read_count + io.write_count

    def __call__(self) -> int:
        if self._process is None:
            self.setup()
        return self._read() - self._baseline


class CounterAdapter:
    """Init-once wrapper around an optional operation counter source.

    Args:
        source: Callable returning cumulative operations, or None to disable
            counting. If the source has a ``setup()`` method it is called once
            by init().
        gate: RankGate used for the init Start./Finish. lines

    Design by Contract:
        - init() is idempotent
        - total_operations() == 0 when disabled
        - a source that fails (psutil.Error, OSError, AttributeError) is
          disabled after one warning; counts degrade to 0
    """

    @typechecked
    def __init__(self, source: Callable[[], int] | None, gate: RankGate) -> None:
        self._source = source
        self._gate = gate
        self._initialized = False

    @property
    def enabled(self) -> bool:
        return self._source is not None

    def _disable(self, error: Exception) -> None:
        logger.warning(f"Operation counter {self._source!r} unavailable, counting disabled: {error!r}")
        self._source = None

    def init(self) -> None:
        if self._initialized or self._source is None:
            return
        # Flag first: init may run from inside a report.
        self._initialized = True
        self._gate.report("Counters", "init", "Start.")
        setup = getattr(self._source, "setup", None)
        if setup is not None:
            try:
                setup()
            except COUNTER_ERRORS as error:
                self._disable(error)
        logger.debug(f"Operation counters initialized from {self._source!r}")
        self._gate.report("Counters", "init", "Finish.")

    def total_operations(self) -> int:
        if self._source is None:
            return 0
        self.init()
        if self._source is None:
            return 0
        try:
            return self._source()
        except COUNTER_ERRORS as error:
            self._disable(error)
            return 0
