import itertools

import pytest

from cqrs_event_sourcing import CQRSService, InMemoryEventLog, LocalEventBus, NoPacing
from sample_aggregate import BASE_TIME, build_aggregate


@pytest.fixture
def clock():
    """A clock that moves forward one millisecond per reading."""
    counter = itertools.count(BASE_TIME)
    return lambda: next(counter)


@pytest.fixture
def log():
    return InMemoryEventLog()


@pytest.fixture
def bus():
    return LocalEventBus()


@pytest.fixture
def aggregate():
    return build_aggregate()


@pytest.fixture
def test_service(log, bus, aggregate, clock):
    return CQRSService("test", log, bus, aggregate, clock=clock, pacing=NoPacing())


@pytest.fixture
def internals(log, bus):
    return CQRSService("internals", log, bus, pacing=NoPacing())
