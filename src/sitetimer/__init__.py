"""sitetimer: named call-site timers with sorted, rank-gated reporting.

Provides:
- Profiler: Owns the timer registry and wires clock, rank gate, counters and reporting
- ScopedMeasurement: Start/stop span bound to one named record (context manager)
- TimerRegistry / TimerRecord: Append-only table of per-call-site accumulators
- Reporter: Last/average lines and the dump sorted by total duration
- AutodisplayScheduler: Dumps automatically at most once per interval
- CounterAdapter / ProcessCounterSource: Optional operation counts for throughput
- TimerConfig: Logging thresholds, autodisplay interval and line format units

Usage:
    from sitetimer import Profiler

    profiler = Profiler()

    with profiler.timer("assemble"):
        assemble()

    @profiler.timed(operations=2 * n**3)
    def solve():
        ...

    profiler.dump("final")

Module-level timer(), timed() and dump() use a process-default Profiler.
"""

from sitetimer._clock import Clock, RankGate, env_rank, mpi_rank, standalone_rank
from sitetimer._config import TimerConfig
from sitetimer._core import (
    ScopedMeasurement,
    TimerProtocolError,
    TimerRecord,
    TimerRegistry,
    qualified_name,
)
from sitetimer._counters import CounterAdapter, ProcessCounterSource
from sitetimer._profiler import (
    Profiler,
    dump,
    get_profiler,
    reset_profiler,
    set_profiler,
    timed,
    timer,
)
from sitetimer._reporter import AutodisplayScheduler, Reporter

__all__ = [
    "AutodisplayScheduler",
    "Clock",
    "CounterAdapter",
    "ProcessCounterSource",
    "Profiler",
    "RankGate",
    "Reporter",
    "ScopedMeasurement",
    "TimerConfig",
    "TimerProtocolError",
    "TimerRecord",
    "TimerRegistry",
    "dump",
    "env_rank",
    "get_profiler",
    "mpi_rank",
    "qualified_name",
    "reset_profiler",
    "set_profiler",
    "standalone_rank",
    "timed",
    "timer",
]

__version__ = "0.1.0"
