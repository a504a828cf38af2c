"""Wall-clock source, process epoch, and the rank-gated console sink.

The rank gate is the only path report lines take to the console: every
other component formats text and hands it to ``RankGate.report``.
"""

import functools
import os
import time
from collections.abc import Callable

from loguru import logger

from sitetimer._config import typechecked

# Launcher variables carrying the process rank, checked in order.
RANK_ENV_VARS = (
    "OMPI_COMM_WORLD_RANK",
    "PMI_RANK",
    "PMIX_RANK",
    "SLURM_PROCID",
    "RANK",
)


def standalone_rank() -> int:
    """Rank provider for single-process runs."""
    return 0


def env_rank() -> int:
    """Read the rank exported by common MPI / SLURM / torchrun launchers.

    Returns 0 when no launcher variable is set or the first one set is not
    an integer.
    """
    for name in RANK_ENV_VARS:
        value = os.environ.get(name)
        if value:
            try:
                return int(value)
            except ValueError:
                logger.warning(f"Ignoring malformed rank {name}={value!r}, using rank 0")
                return 0
    return 0


@functools.cache
def mpi_rank() -> int:
    """Rank in ``MPI.COMM_WORLD``, resolved once. Requires the ``mpi`` extra (mpi4py)."""
    from mpi4py import MPI

    return MPI.COMM_WORLD.Get_rank()


class Clock:
    """Wall-clock seconds with a lazily captured process epoch.

    Args:
        source: Callable returning wall-clock seconds (default: time.time)

    Design by Contract:
        - epoch() is set on the first now() query and never reset
        - elapsed() >= 0 for a monotone source
    """

    @typechecked
    def __init__(self, source: Callable[[], float] = time.time) -> None:
        self._source = source
        self._epoch: float | None = None

    def now(self) -> float:
        current = self._source()
        if self._epoch is None:
            self._epoch = current
        return current

    def epoch(self) -> float:
        if self._epoch is None:
            self.now()
        return self._epoch

    def elapsed(self) -> float:
        """Seconds since the process epoch."""
        epoch = self.epoch()
        return self.now() - epoch


class RankGate:
    """Writes report lines to the console sink only on rank 0.

    Args:
        rank_provider: Callable returning this process's rank
        sink: Callable receiving one formatted line (default: loguru INFO)
        max_line_length: Lines longer than this are silently truncated

    Usage:
        gate = RankGate(rank_provider=env_rank)
        gate.report("Timer", "start", "work : ...")
    """

    @typechecked
    def __init__(
        self,
        rank_provider: Callable[[], int] = env_rank,
        sink: Callable[[str], object] | None = None,
        max_line_length: int = 2048,
    ) -> None:
        assert max_line_length > 0, f"Max line length must be positive: {max_line_length}"
        self._rank_provider = rank_provider
        self._sink = sink if sink is not None else logger.info
        self.max_line_length = max_line_length

    def rank(self) -> int:
        return self._rank_provider()

    @typechecked
    def report(self, category: str, tag: str, message: str) -> None:
        """Emit ``<category>::<tag> : <message>`` unless this is not rank 0."""
        if self.rank() != 0:
            return
        line = f"{category}::{tag} : {message}"
        self._sink(line[: self.max_line_length])
