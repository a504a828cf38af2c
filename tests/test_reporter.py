"""Tests for report line formats, the sorted dump, rank gating and autodisplay."""

import re

import pytest

from sitetimer import (
    AutodisplayScheduler,
    Clock,
    Profiler,
    TimerConfig,
    standalone_rank,
)
from sitetimer._reporter import DUMP_PROBE, DUMP_PROBE_NOFLOP, DUMP_PROBE_TEST

AVERAGE_LINE = re.compile(
    r"^(?P<name>.{30}) :(?P<pct>[ \d.]{7})%(?P<calls>[ \d]{9}) calls\. "
    r"Avg (?P<avg>\S+)\((?P<cum>\S+)\) secs"
)


def display_names(lines: list[str]) -> list[str]:
    prefix = "Timer::display : "
    return [line[len(prefix):len(prefix) + 30].strip() for line in lines if line.startswith(prefix)]


def set_totals(profiler: Profiler, totals: dict[str, float]) -> None:
    for name, total in totals.items():
        record = profiler.registry.get_or_create(name)
        record.total_duration = total
        record.calls = 1


# ---------------------------------------------------------------------------
# Line formats
# ---------------------------------------------------------------------------

class TestLineFormats:
    def test_last_line(self, counting_profiler, fake_time, fake_counter):
        measurement = counting_profiler.measure("work")
        measurement.start()
        fake_time.advance(0.5)
        fake_counter.value = 1_000_000_000
        measurement.stop()

        line = counting_profiler.reporter.format_last(measurement.record)
        assert line == (
            "work".rjust(30)
            + " :100.0%        1 calls. Last 5.000E-01 secs   2.000 Gflops (1.000E+09 per call)"
        )

    def test_average_line_end_to_end(self, profiler, fake_time):
        for duration in (0.1, 0.2, 0.3):
            with profiler.timer("work", use_counters=False):
                fake_time.advance(duration)
        fake_time.advance(1.4)

        record = profiler.registry.get("work")
        line = profiler.reporter.format_average(record)
        assert line == (
            "work".rjust(30)
            + " : 30.000%        3 calls. Avg 2.00E-01(6.00E-01) secs  0.00 Gflops"
            + " (0.00E+00(0.00E+00) flops)"
        )

        match = AVERAGE_LINE.match(line)
        assert match is not None
        expected_pct = record.total_duration / profiler.clock.elapsed() * 100
        assert float(match["pct"]) == pytest.approx(expected_pct, abs=1e-3)
        assert int(match["calls"]) == 3
        assert float(match["avg"]) == pytest.approx(0.2)
        assert float(match["cum"]) == pytest.approx(0.6)

    def test_average_line_with_operations(self, profiler, fake_time):
        with profiler.timer("matmul", operations=4_000_000_000):
            fake_time.advance(2.0)

        line = profiler.reporter.format_average(profiler.registry.get("matmul"))
        assert "secs  2.00 Gflops (4.00E+09(4.00E+09) flops)" in line

    def test_custom_units(self, fake_time, lines):
        config = TimerConfig(throughput_unit="Mops", throughput_scale=1e6, operation_unit="ops")
        profiler = Profiler(
            config=config, clock=Clock(fake_time), rank_provider=standalone_rank, sink=lines.append
        )
        with profiler.timer("io", operations=3_000_000):
            fake_time.advance(1.0)

        line = profiler.reporter.format_average(profiler.registry.get("io"))
        assert line.endswith("secs  3.00 Mops (3.00E+06(3.00E+06) ops)")

    def test_long_names_are_truncated(self, profiler):
        name = "abcdefghij" * 4
        record = profiler.registry.get_or_create(name)
        line = profiler.reporter.format_average(record)
        assert line.startswith(name[:30] + " :")
        assert name[:31] not in line

    def test_never_called_record_formats_as_zero(self, profiler):
        record = profiler.registry.get_or_create("idle")
        line = profiler.reporter.format_average(record)
        assert "  0.000%        0 calls. Avg 0.00E+00(0.00E+00) secs" in line
        assert "Last 0.000E+00 secs" in profiler.reporter.format_last(record)

    def test_zero_elapsed_does_not_raise(self, profiler):
        record = profiler.registry.get_or_create("instant")
        record.total_duration = 1.0
        record.calls = 1
        assert "  0.000%" in profiler.reporter.format_average(record)

    def test_lines_are_truncated_to_max_length(self, fake_time, lines):
        profiler = Profiler(
            config=TimerConfig(max_line_length=40),
            clock=Clock(fake_time),
            rank_provider=standalone_rank,
            sink=lines.append,
        )
        with profiler.timer("work"):
            pass
        profiler.dump("tag")
        assert lines
        assert all(len(line) <= 40 for line in lines)

    def test_show_is_show_average(self, profiler, lines):
        record = profiler.registry.get_or_create("alias")
        profiler.reporter.show(record, "custom")
        assert lines == ["Timer::custom : " + profiler.reporter.format_average(record)]


# ---------------------------------------------------------------------------
# dump
# ---------------------------------------------------------------------------

class TestDump:
    def test_sorted_descending_with_stable_ties(self, profiler, lines):
        set_totals(profiler, {"A": 5.0, "B": 5.0, "C": 3.0})
        profiler.dump("final")

        names = display_names(lines)
        assert names[:3] == ["A", "B", "C"]

    def test_ties_keep_registration_order(self, profiler, lines):
        set_totals(profiler, {"small": 1.0, "tie1": 2.0, "big": 9.0, "tie2": 2.0})
        profiler.dump()
        assert display_names(lines)[:4] == ["big", "tie1", "tie2", "small"]

    def test_banners_wrap_the_table(self, profiler, fake_time, lines):
        fake_time.advance(12.5)
        profiler.dump("final")

        banners = [line for line in lines if "------------ total" in line]
        assert banners == [
            "Timer::display-start : final ------------ total 1.2500e+01 secs -----------------------",
            "Timer::display-end   : final ------------ total 1.2500e+01 secs -----------------------",
        ]
        table = lines[lines.index(banners[0]) + 1 : lines.index(banners[1])]
        assert table
        assert all(line.startswith("Timer::display : ") for line in table)

    def test_dump_measures_itself(self, profiler, lines):
        profiler.dump("first")
        assert profiler.registry.get(DUMP_PROBE).calls == 1
        assert profiler.registry.get(DUMP_PROBE_NOFLOP).calls == 1
        assert profiler.registry.get(DUMP_PROBE_TEST).calls == 3

        names = display_names(lines)
        assert {DUMP_PROBE, DUMP_PROBE_NOFLOP, DUMP_PROBE_TEST} <= set(names)

        profiler.dump("second")
        assert profiler.registry.get(DUMP_PROBE_TEST).calls == 6

    def test_dump_probes_do_not_use_counters_afterwards(self, counting_profiler):
        counting_profiler.dump()
        assert counting_profiler.registry.get(DUMP_PROBE_TEST).use_counters is False

    def test_dump_does_not_reorder_registry(self, profiler):
        set_totals(profiler, {"low": 1.0, "high": 2.0})
        profiler.dump()
        assert [r.name for r in profiler.registry][:2] == ["low", "high"]


# ---------------------------------------------------------------------------
# Rank gate
# ---------------------------------------------------------------------------

class TestRankGate:
    def test_non_primary_rank_prints_nothing(self, fake_time, fake_counter, lines):
        profiler = Profiler(
            config=TimerConfig(min_autodisplay_interval=1.0),
            clock=Clock(fake_time),
            rank_provider=lambda: 3,
            counter_source=fake_counter,
            sink=lines.append,
        )
        for _ in range(5):
            with profiler.timer("work", verbose=True):
                fake_time.advance(2.0)
        profiler.dump("final")

        assert lines == []
        assert profiler.registry.get("work").calls == 5

    def test_report_line_shape(self, profiler, lines):
        profiler.gate.report("Cat", "tag", "message")
        assert lines == ["Cat::tag : message"]

    def test_counter_init_lines(self, counting_profiler, fake_counter, lines):
        assert lines[:2] == ["Counters::init : Start.", "Counters::init : Finish."]
        counting_profiler.counters.init()
        assert fake_counter.setup_calls == 1
        assert len(lines) == 2

    def test_default_sink_is_loguru(self, fake_time):
        from loguru import logger

        captured: list[str] = []
        handler_id = logger.add(lambda message: captured.append(message.record["message"]), level="INFO")
        try:
            profiler = Profiler(clock=Clock(fake_time), rank_provider=lambda: 0)
            profiler.gate.report("Timer", "start", "hello")
        finally:
            logger.remove(handler_id)
        assert "Timer::start : hello" in captured


# ---------------------------------------------------------------------------
# Autodisplay
# ---------------------------------------------------------------------------

class TestAutodisplay:
    def test_scheduler_throttles(self, fake_time):
        fired: list[float] = []
        scheduler = AutodisplayScheduler(Clock(fake_time), lambda: 10.0, lambda: fired.append(fake_time.now))

        assert scheduler.maybe_trigger(11.0) is True
        assert scheduler.maybe_trigger(14.0) is False
        assert scheduler.maybe_trigger(19.0) is False
        assert scheduler.maybe_trigger(22.0) is True
        assert len(fired) == 2
        assert scheduler.last_triggered == 22.0

    def test_interval_is_strict(self, fake_time):
        scheduler = AutodisplayScheduler(Clock(fake_time), lambda: 10.0, lambda: None)
        assert scheduler.maybe_trigger(10.0) is False
        assert scheduler.maybe_trigger(10.5) is True

    def test_last_triggered_starts_at_first_query(self, fake_time):
        fake_time.advance(100.0)
        scheduler = AutodisplayScheduler(Clock(fake_time), lambda: 10.0, lambda: None)
        assert scheduler.maybe_trigger(105.0) is False
        assert scheduler.last_triggered == 100.0

    def test_hold_suppresses(self, fake_time):
        scheduler = AutodisplayScheduler(Clock(fake_time), lambda: 1.0, lambda: None)
        with scheduler.hold():
            assert scheduler.maybe_trigger(50.0) is False
        assert scheduler.maybe_trigger(50.0) is True

    def test_stop_triggers_dump(self, fake_time, lines):
        profiler = Profiler(
            config=TimerConfig(min_autodisplay_interval=10.0),
            clock=Clock(fake_time),
            rank_provider=standalone_rank,
            sink=lines.append,
        )

        def span_ending_at(t: float) -> None:
            with profiler.timer("loop"):
                fake_time.now = t

        def autodisplays() -> int:
            return sum(1 for line in lines if line.startswith("Timer::display-start : autodisplay "))

        span_ending_at(1.0)
        assert autodisplays() == 0
        span_ending_at(12.0)
        assert autodisplays() == 1
        span_ending_at(15.0)
        span_ending_at(20.0)
        assert autodisplays() == 1
        span_ending_at(23.0)
        assert autodisplays() == 2
        assert profiler.autodisplay.trigger_count == 2

    def test_interval_follows_config(self, profiler, fake_time):
        profiler.config.min_autodisplay_interval = 5.0
        with profiler.timer("first"):
            pass
        fake_time.advance(6.0)
        assert profiler.check_autodisplay() is True

    def test_zero_interval_does_not_recurse(self, fake_time, lines):
        profiler = Profiler(
            config=TimerConfig(min_autodisplay_interval=0.0),
            clock=Clock(fake_time),
            rank_provider=standalone_rank,
            sink=lines.append,
        )
        with profiler.timer("tick"):
            pass
        fake_time.advance(1.0)
        with profiler.timer("tick"):
            fake_time.advance(1.0)
        assert profiler.autodisplay.trigger_count == 1
