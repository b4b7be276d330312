import asyncio
import os
import tempfile

import pytest
from pytest_asyncio import fixture

from cqrs_event_sourcing import ConcurrencyConflict, Event, EventFilter, cqrs_service_factory
from cqrs_event_sourcing.adaptors.sqlite import build_query, sqlite_event_log
from sample_aggregate import build_aggregate


def make_event(aggregate_id, version, type="test/generic-event", timestamp=None, **payload):
    return Event(
        aggregate_id=aggregate_id,
        aggregate_name="test",
        type=type,
        payload=payload,
        timestamp=timestamp if timestamp is not None else 1000 + version,
        aggregate_version=version,
    )


@fixture
async def event_log():
    """Provides a SQLite event log over a clean in-memory database for each test function."""
    async with sqlite_event_log(":memory:", pool_size=2) as log:
        yield log


@pytest.mark.asyncio
async def test_append_single_event(event_log):
    stored = await event_log.append(make_event("a", 1, i=1))
    assert stored.sequence_id == 1

    events = await event_log.query(EventFilter())
    assert len(events) == 1
    assert events[0].type == "test/generic-event"
    assert events[0].payload == {"i": 1}
    assert events[0].aggregate_version == 1


@pytest.mark.asyncio
async def test_query_filters(event_log):
    await event_log.append_all([
        make_event("a", 1, type="test/created", timestamp=10),
        make_event("b", 1, type="test/created", timestamp=11),
        make_event("a", 2, timestamp=12),
        make_event("a", 3, type="test/deleted", timestamp=13),
    ])

    events = await event_log.query(EventFilter(aggregate_ids=["a"]))
    assert [e.aggregate_version for e in events] == [1, 2, 3]

    events = await event_log.query(EventFilter(event_types=["test/created", "test/deleted"]))
    assert [(e.aggregate_id, e.type) for e in events] == [
        ("a", "test/created"), ("b", "test/created"), ("a", "test/deleted"),
    ]

    events = await event_log.query(EventFilter(aggregate_ids=["a"], finish_time=12))
    assert [e.timestamp for e in events] == [10, 12]

    events = await event_log.query(EventFilter(start_time=11, limit=1))
    assert [e.timestamp for e in events] == [11]

    assert await event_log.query(EventFilter(event_types=[])) == []
    assert await event_log.query(EventFilter(limit=0)) == []


@pytest.mark.asyncio
async def test_cursor_pagination(event_log):
    await event_log.append_all([make_event("a", v) for v in range(1, 6)])
    first_page = await event_log.query(EventFilter(limit=3))
    cursor = event_log.next_cursor(first_page)
    second_page = await event_log.query(EventFilter(cursor=cursor))
    assert [e.aggregate_version for e in second_page] == [4, 5]


@pytest.mark.asyncio
async def test_concurrency_control(event_log):
    await event_log.append(make_event("a", 1))
    with pytest.raises(ConcurrencyConflict, match="Concurrency conflict"):
        await event_log.append(make_event("a", 1))

    # The log is still writable after a rejected append.
    await event_log.append(make_event("a", 2))
    events = await event_log.query(EventFilter(aggregate_ids=["a"]))
    assert [e.aggregate_version for e in events] == [1, 2]


@pytest.mark.asyncio
async def test_batch_is_atomic(event_log):
    await event_log.append(make_event("a", 1))
    with pytest.raises(ConcurrencyConflict):
        await event_log.append_all([make_event("b", 1), make_event("a", 1)])
    events = await event_log.query(EventFilter())
    assert [(e.aggregate_id, e.aggregate_version) for e in events] == [("a", 1)]


@pytest.mark.asyncio
async def test_concurrent_writes_different_aggregates(event_log):
    async def writer(aggregate_id, num_events):
        for version in range(1, num_events + 1):
            await event_log.append(make_event(aggregate_id, version))

    num_events_per_aggregate = 20
    await asyncio.gather(
        writer("aggregate_1", num_events_per_aggregate),
        writer("aggregate_2", num_events_per_aggregate),
    )

    for aggregate_id in ("aggregate_1", "aggregate_2"):
        events = await event_log.query(EventFilter(aggregate_ids=[aggregate_id]))
        assert [e.aggregate_version for e in events] == list(range(1, num_events_per_aggregate + 1))


@pytest.mark.asyncio
async def test_file_persistence():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "events.db")

        # Session 1: write an event
        async with sqlite_event_log(db_path, pool_size=1) as log:
            await log.append(make_event("a", 1, type="test/created"))

        # Session 2: read and verify
        async with sqlite_event_log(db_path, pool_size=1) as log:
            events = await log.query(EventFilter())
            assert len(events) == 1
            assert events[0].type == "test/created"


@pytest.mark.asyncio
async def test_missing_db_path():
    with pytest.raises(ValueError, match="db_path"):
        async with sqlite_event_log(""):
            pass


def test_build_query_only_uses_present_fields():
    sql, params = build_query(EventFilter(aggregate_ids=["a"], finish_time=5, limit=0))
    assert sql == (
        "SELECT id, aggregate_id, aggregate_name, event_type, timestamp, payload, aggregate_version "
        "FROM events WHERE aggregate_id IN (?) AND timestamp <= ? ORDER BY id LIMIT ?"
    )
    assert params == ["a", 5, 0]

    sql, params = build_query(EventFilter())
    assert "WHERE" not in sql
    assert params == []


@pytest.mark.asyncio
async def test_concurrent_reads_and_writes_in_memory(event_log):
    async def writer(aggregate_id, num_events):
        for version in range(1, num_events + 1):
            await event_log.append_all([make_event(aggregate_id, version)])

    async def reader(aggregate_id, num_reads):
        for _ in range(num_reads):
            events = await event_log.query(EventFilter(aggregate_ids=[aggregate_id]))
            assert [e.aggregate_version for e in events] == list(range(1, len(events) + 1))

    await asyncio.gather(
        *(writer(f"aggregate_{n}", 20) for n in range(5)),
        *(reader(f"aggregate_{n}", 20) for n in range(5)),
    )

    assert len(await event_log.query(EventFilter())) == 100


@pytest.mark.asyncio
async def test_concurrent_commands_and_reads_on_in_memory_factory():
    async with cqrs_service_factory({"db_path": ":memory:"}) as create_service:
        service = create_service("test", build_aggregate())

        async def run_commands(aggregate_id, num_cmd):
            await service.command(aggregate_id, "createTest", {})
            for i in range(num_cmd):
                await service.command(aggregate_id, "genericCommandTest", {"i": i})
                await service.read_model(aggregate_id)
                await service.history(aggregate_id)

        await asyncio.gather(*(run_commands(f"uuid-{n}", 20) for n in range(10)))

        for n in range(10):
            state = await service.read_model(f"uuid-{n}")
            assert state["i"] == 19
            assert len(await service.history(f"uuid-{n}")) == 21


@pytest.mark.asyncio
async def test_in_memory_logs_are_isolated():
    async with sqlite_event_log(":memory:") as first, sqlite_event_log(":memory:") as second:
        await first.append(make_event("a", 1))
        assert len(await first.query(EventFilter())) == 1
        assert await second.query(EventFilter()) == []
