import pytest

from cqrs_event_sourcing import (
    ConfigurationError,
    Event,
    EventFilter,
    InMemoryEventLog,
    Projection,
    ProjectionEngine,
    UnknownEventPolicy,
)
from cqrs_event_sourcing.errors import InvalidTransitionError
from sample_aggregate import CREATED, DELETED, GENERIC_EVENT, build_projection


def make_event(version, type, timestamp, **payload):
    return Event(
        aggregate_id="A",
        aggregate_name="test",
        type=type,
        payload=payload,
        timestamp=timestamp,
        aggregate_version=version,
    )


@pytest.fixture
def events():
    return [
        make_event(1, CREATED, 100),
        make_event(2, GENERIC_EVENT, 101, i=0),
        make_event(3, GENERIC_EVENT, 102, i=1),
        make_event(4, DELETED, 103),
    ]


async def filled_log(events):
    log = InMemoryEventLog()
    await log.append_all(events)
    return log


def test_unknown_event_types_are_skipped():
    projection = build_projection()
    state = projection.init()
    assert projection.apply(state, make_event(1, "other/thing", 1)) is state


def test_strict_projection_raises_on_unknown_event_types():
    projection = Projection(init=dict, unknown_events=UnknownEventPolicy.RAISE)
    with pytest.raises(InvalidTransitionError, match="other/thing"):
        projection.apply({}, make_event(1, "other/thing", 1))


def test_transitions_from_mapping():
    projection = Projection(init=lambda: 0, transitions={"count": lambda state, event: state + 1})
    assert projection.handles("count")
    assert projection.event_types == ["count"]
    assert projection.apply(0, make_event(1, "count", 1)) == 1


def test_init_must_be_callable():
    with pytest.raises(ConfigurationError):
        Projection(init={})


@pytest.mark.asyncio
async def test_materialize_folds_all_events(events):
    engine = ProjectionEngine(await filled_log(events), build_projection(), "test")
    state = await engine.materialize(EventFilter(aggregate_ids=["A"]))
    assert state == {"created_at": 100, "deleted_at": 103, "i": 1}


@pytest.mark.asyncio
async def test_materialize_point_in_time(events):
    engine = ProjectionEngine(await filled_log(events), build_projection(), "test")

    state = await engine.materialize(EventFilter(aggregate_ids=["A"], finish_time=101))
    assert state == {"created_at": 100, "deleted_at": None, "i": 0}

    # Same finish time, same state.
    again = await engine.materialize(EventFilter(aggregate_ids=["A"], finish_time=101))
    assert again == state

    state = await engine.materialize(EventFilter(aggregate_ids=["A"], limit=1))
    assert state == {"created_at": 100, "deleted_at": None, "i": None}


@pytest.mark.asyncio
async def test_materialize_empty_range_returns_init(events):
    engine = ProjectionEngine(await filled_log(events), build_projection(), "test")
    state = await engine.materialize(EventFilter(aggregate_ids=["missing"]))
    assert state == {"created_at": None, "deleted_at": None, "i": None}


@pytest.mark.asyncio
async def test_materialize_without_projection():
    engine = ProjectionEngine(InMemoryEventLog(), None, "internals")
    with pytest.raises(ConfigurationError, match="No projection bound to 'internals'"):
        await engine.materialize(EventFilter(aggregate_ids=["A"]))
