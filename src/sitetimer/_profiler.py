"""Profiler: wires the clock, rank gate, counters, registry, reporter and autodisplay.

A Profiler is constructed once at process start and lives for the rest of
the run; tests construct their own and inject fakes for the clock source,
rank provider, counter source and sink. The module-level helpers operate on
a lazily created process-default Profiler.
"""

import functools
import threading
from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, TypeVar, cast

from sitetimer._clock import Clock, RankGate, env_rank
from sitetimer._config import TimerConfig, typechecked
from sitetimer._core import ScopedMeasurement, TimerRecord, TimerRegistry, qualified_name
from sitetimer._counters import CounterAdapter
from sitetimer._reporter import AutodisplayScheduler, Reporter

F = TypeVar("F", bound=Callable[..., Any])


class Profiler:
    """Flat table of named timers with sorted reporting.

    Args:
        config: TimerConfig (default: TimerConfig())
        clock: Clock (default: wall clock)
        rank_provider: Callable returning this process's rank (default: env_rank)
        counter_source: Cumulative operation counter, or None to disable
        sink: Callable receiving report lines (default: loguru INFO)
        registry: TimerRegistry to record into (default: a fresh one)

    Example:
        profiler = Profiler()
        for _ in range(3):
            with profiler.timer("assemble"):
                assemble()
        with profiler.timer("solve", operations=2 * n**3):
            solve()
        profiler.dump("final")
    """

    @typechecked
    def __init__(
        self,
        config: TimerConfig | None = None,
        clock: Clock | None = None,
        rank_provider: Callable[[], int] = env_rank,
        counter_source: Callable[[], int] | None = None,
        sink: Callable[[str], object] | None = None,
        registry: TimerRegistry | None = None,
    ) -> None:
        self.config = config if config is not None else TimerConfig()
        self.clock = clock if clock is not None else Clock()
        self.gate = RankGate(rank_provider, sink, max_line_length=self.config.max_line_length)
        self.counters = CounterAdapter(counter_source, self.gate)
        self.registry = registry if registry is not None else TimerRegistry()
        self.reporter = Reporter(self)
        self.autodisplay = AutodisplayScheduler(
            self.clock,
            lambda: self.config.min_autodisplay_interval,
            lambda: self.reporter.dump("autodisplay"),
        )
        self.clock.epoch()
        self.counters.init()

    @typechecked
    def measure(
        self,
        name: TimerRecord | str,
        category: str | None = None,
        verbose: bool = False,
        use_counters: bool = True,
    ) -> ScopedMeasurement:
        """Unstarted measurement bound to the record for ``name``.

        ``use_counters`` only applies when the record is created.
        """
        if isinstance(name, TimerRecord):
            record = name
        else:
            record = self.registry.get_or_create(qualified_name(name, category), use_counters)
        return ScopedMeasurement(record, self, verbose=verbose)

    @typechecked
    @contextmanager
    def timer(
        self,
        name: str,
        category: str | None = None,
        verbose: bool = False,
        operations: int | None = None,
        use_counters: bool = True,
    ) -> Generator[ScopedMeasurement, None, None]:
        """Measure the enclosed block under ``name``.

        Passing ``operations`` attributes that many operations to each span and
        creates the record with counters disabled.

        Yields:
            The ScopedMeasurement, for add_operations() inside the block
        """
        if operations is not None:
            use_counters = False
        measurement = self.measure(name, category, verbose=verbose, use_counters=use_counters)
        with measurement:
            if operations is not None:
                measurement.add_operations(operations)
            yield measurement

    def timed(
        self,
        name: str | F | None = None,
        category: str | None = None,
        verbose: bool = False,
        operations: int | None = None,
        use_counters: bool = True,
    ) -> F | Callable[[F], F]:
        """Decorator measuring every call of the wrapped function.

        Usable bare (``@profiler.timed``) or with arguments
        (``@profiler.timed("kernel", operations=1000)``). The default name is
        the function's ``__qualname__``.
        """
        return _timed_decorator(
            lambda: self,
            name,
            dict(category=category, verbose=verbose, operations=operations, use_counters=use_counters),
        )

    @typechecked
    def dump(self, tag: str = "") -> None:
        self.reporter.dump(tag)

    def check_autodisplay(self) -> bool:
        """Run the autodisplay check against the current time."""
        return self.autodisplay.maybe_trigger()


def _timed_decorator(
    resolve: Callable[[], Profiler],
    name: str | F | None,
    timer_kwargs: dict[str, Any],
) -> F | Callable[[F], F]:
    def decorator(func: F) -> F:
        label = name if isinstance(name, str) else func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with resolve().timer(label, **timer_kwargs):
                return func(*args, **kwargs)

        return cast(F, wrapper)

    if callable(name):
        return decorator(name)
    return decorator


_default_profiler: Profiler | None = None
_default_lock = threading.Lock()


def get_profiler() -> Profiler:
    """Process-default Profiler, created on first use with TimerConfig.from_env()."""
    global _default_profiler
    with _default_lock:
        if _default_profiler is None:
            _default_profiler = Profiler(config=TimerConfig.from_env())
        return _default_profiler


@typechecked
def set_profiler(profiler: Profiler) -> None:
    global _default_profiler
    with _default_lock:
        _default_profiler = profiler


def reset_profiler() -> None:
    """Drop the process-default Profiler; the next get_profiler() builds a fresh one."""
    global _default_profiler
    with _default_lock:
        _default_profiler = None


def timer(
    name: str,
    category: str | None = None,
    verbose: bool = False,
    operations: int | None = None,
    use_counters: bool = True,
) -> AbstractContextManager[ScopedMeasurement]:
    """``Profiler.timer`` on the process-default Profiler."""
    return get_profiler().timer(
        name, category=category, verbose=verbose, operations=operations, use_counters=use_counters
    )


def timed(
    name: str | F | None = None,
    category: str | None = None,
    verbose: bool = False,
    operations: int | None = None,
    use_counters: bool = True,
) -> F | Callable[[F], F]:
    """``Profiler.timed`` resolving the process-default Profiler at call time."""
    return _timed_decorator(
        get_profiler,
        name,
        dict(category=category, verbose=verbose, operations=operations, use_counters=use_counters),
    )


def dump(tag: str = "") -> None:
    get_profiler().dump(tag)
