import pytest

from fakes import FakeCounter, FakeTime
from sitetimer import Clock, Profiler, standalone_rank


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def fake_counter() -> FakeCounter:
    return FakeCounter()


@pytest.fixture
def lines() -> list[str]:
    return []


@pytest.fixture
def profiler(fake_time, lines) -> Profiler:
    return Profiler(clock=Clock(fake_time), rank_provider=standalone_rank, sink=lines.append)


@pytest.fixture
def counting_profiler(fake_time, fake_counter, lines) -> Profiler:
    return Profiler(
        clock=Clock(fake_time),
        rank_provider=standalone_rank,
        counter_source=fake_counter,
        sink=lines.append,
    )
