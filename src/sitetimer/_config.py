"""Process-wide timer configuration.

Design by Contract:
- Thresholds and intervals MUST be non-negative
- Display widths and line lengths MUST be positive
- Fail-fast on violations (AssertionError at construction)
"""

import os
from dataclasses import dataclass

from beartype import BeartypeConf, beartype

# Accept ints wherever floats are annotated (PEP 484 implicit numeric tower).
typechecked = beartype(conf=BeartypeConf(is_pep484_tower=True))


@typechecked
@dataclass
class TimerConfig:
    """Options recognized by the profiler.

    Attributes:
        min_autodisplay_interval: Minimum spacing (seconds) between automatic dumps
        min_duration_for_stop_log: A stop line is printed when the last call took
            at least this long (seconds)
        min_duration_for_start_log: A start line is printed when the previous call
            took at least this long (seconds)
        name_width: Display width record names are truncated/padded to
        max_line_length: Formatted lines are cut to this many characters
        throughput_unit: Label printed after throughput figures
        throughput_scale: Divisor turning operations/second into throughput_unit
        operation_unit: Label printed after cumulative operation counts

    Mutate fields on the owning Profiler before the first measurement; later
    changes apply from the next check onward.
    """

    min_autodisplay_interval: float = 60.0
    min_duration_for_stop_log: float = 0.1
    min_duration_for_start_log: float = 0.1
    name_width: int = 30
    max_line_length: int = 2048
    throughput_unit: str = "Gflops"
    throughput_scale: float = 1.0e9
    operation_unit: str = "flops"

    def __post_init__(self) -> None:
        assert self.min_autodisplay_interval >= 0, (
            f"Autodisplay interval must be non-negative: {self.min_autodisplay_interval}"
        )
        assert self.min_duration_for_stop_log >= 0, (
            f"Stop log threshold must be non-negative: {self.min_duration_for_stop_log}"
        )
        assert self.min_duration_for_start_log >= 0, (
            f"Start log threshold must be non-negative: {self.min_duration_for_start_log}"
        )
        assert self.name_width > 0, f"Name width must be positive: {self.name_width}"
        assert self.max_line_length > 0, (
            f"Max line length must be positive: {self.max_line_length}"
        )
        assert self.throughput_scale > 0, (
            f"Throughput scale must be positive: {self.throughput_scale}"
        )

    @classmethod
    def from_env(cls, prefix: str = "SITETIMER_") -> "TimerConfig":
        """Build a config with defaults overridden from environment variables.

        Recognized: ``<prefix>MIN_AUTODISPLAY_INTERVAL``,
        ``<prefix>MIN_DURATION_FOR_STOP_LOG``, ``<prefix>MIN_DURATION_FOR_START_LOG``.
        """
        overrides: dict[str, float] = {}
        for field_name in (
            "min_autodisplay_interval",
            "min_duration_for_stop_log",
            "min_duration_for_start_log",
        ):
            raw = os.environ.get(prefix + field_name.upper())
            if raw is not None:
                overrides[field_name] = float(raw)
        return cls(**overrides)
