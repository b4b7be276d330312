"""
This module provides the SQLite implementation of the `EventLog` protocol.
All writes go through one dedicated connection guarded by an `asyncio.Lock`
and wrapped in a `SAVEPOINT`, so a batch of events is appended atomically.
Reads on a file database are served from a pool of read-only connections, so
concurrent projections, history reads and replays never wait on each other.
An in-memory database lives on the write connection alone; its reads take the
write lock and never observe a half-written batch.

The unique `(aggregate_id, aggregate_version)` index is what rejects a second
writer appending the same aggregate version.
"""
import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Tuple

import aiosqlite
import pydantic_core

from ..errors import ConcurrencyConflict, StorageError
from ..models import Event, EventFilter
from .filtering import decode_cursor, encode_cursor

_COLUMNS = "id, aggregate_id, aggregate_name, event_type, timestamp, payload, aggregate_version"


def build_query(event_filter: EventFilter) -> Tuple[str, List[Any]]:
    """Translates an event filter into a SELECT over the events table."""
    query = event_filter.as_query()
    conditions: List[str] = []
    params: List[Any] = []

    for key, column in (("aggregate_ids", "aggregate_id"), ("event_types", "event_type")):
        if key not in query:
            continue
        values = query[key]
        if not values:
            conditions.append("1 = 0")
            continue
        placeholders = ", ".join("?" for _ in values)
        conditions.append(f"{column} IN ({placeholders})")
        params.extend(values)

    if "start_time" in query:
        conditions.append("timestamp >= ?")
        params.append(query["start_time"])
    if "finish_time" in query:
        conditions.append("timestamp <= ?")
        params.append(query["finish_time"])
    if "cursor" in query:
        conditions.append("id > ?")
        params.append(decode_cursor(query["cursor"]))

    sql = f"SELECT {_COLUMNS} FROM events"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY id"
    if "limit" in query:
        sql += " LIMIT ?"
        params.append(query["limit"])
    return sql, params


def _row_to_event(row) -> Event:
    sequence_id, aggregate_id, aggregate_name, event_type, timestamp, payload_json, version = row
    try:
        return Event(
            aggregate_id=aggregate_id,
            aggregate_name=aggregate_name,
            type=event_type,
            payload=json.loads(payload_json),
            timestamp=timestamp,
            aggregate_version=version,
            sequence_id=sequence_id,
        )
    except (json.JSONDecodeError, pydantic_core.ValidationError) as e:
        raise StorageError(f"Corrupt event row with id {sequence_id}: {e}", sequence_id=sequence_id) from e


async def create_schema(conn: aiosqlite.Connection):
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            aggregate_id TEXT NOT NULL,
            aggregate_name TEXT NOT NULL,
            event_type TEXT NOT NULL,
            timestamp INTEGER NOT NULL,
            payload TEXT NOT NULL,
            aggregate_version INTEGER NOT NULL
        )
        """
    )
    await conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_event_aggregate_version
        ON events (aggregate_id, aggregate_version)
        """
    )
    # Replays select by event type, read models by time range.
    await conn.execute("CREATE INDEX IF NOT EXISTS idx_event_type ON events (event_type, id)")
    await conn.execute("CREATE INDEX IF NOT EXISTS idx_event_timestamp ON events (timestamp)")
    await conn.commit()


class SQLiteEventLog:
    def __init__(
        self,
        write_conn: aiosqlite.Connection,
        write_lock: asyncio.Lock,
        read_pool: Optional[asyncio.Queue] = None,
    ):
        """Without a `read_pool`, queries run on the write connection under `write_lock`."""
        self.write_conn = write_conn
        self.write_lock = write_lock
        self.read_pool = read_pool

    async def append(self, event: Event) -> Event:
        stored = await self.append_all([event])
        return stored[0]

    async def append_all(self, events: List[Event]) -> List[Event]:
        if not events:
            return []
        async with self.write_lock:
            conn = self.write_conn
            stored = []
            try:
                await conn.execute("SAVEPOINT event_append")
                for event in events:
                    cursor = await conn.execute(
                        "INSERT INTO events (aggregate_id, aggregate_name, event_type, timestamp, payload, aggregate_version) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            event.aggregate_id,
                            event.aggregate_name,
                            event.type,
                            event.timestamp,
                            json.dumps(event.payload),
                            event.aggregate_version,
                        ),
                    )
                    stored.append(event.model_copy(update={"sequence_id": cursor.lastrowid}))
                    await cursor.close()
                await conn.execute("RELEASE SAVEPOINT event_append")
                await conn.commit()
            except sqlite3.IntegrityError as e:
                await self._rollback()
                first = events[0]
                raise ConcurrencyConflict(
                    f"Concurrency conflict: version {first.aggregate_version} of aggregate "
                    f"{first.aggregate_id} already exists",
                    aggregate_id=first.aggregate_id,
                    aggregate_name=first.aggregate_name,
                ) from e
            except (sqlite3.Error, TypeError) as e:
                await self._rollback()
                logging.error(f"Failed to append events to SQLite: {e}")
                raise StorageError(f"Failed to append events: {e}") from e
            return stored

    async def _rollback(self):
        await self.write_conn.execute("ROLLBACK TO SAVEPOINT event_append")
        await self.write_conn.execute("RELEASE SAVEPOINT event_append")

    async def query(self, event_filter: EventFilter) -> List[Event]:
        sql, params = build_query(event_filter)
        try:
            async with self._read_connection() as conn:
                async with conn.execute(sql, params) as cursor:
                    return [_row_to_event(row) async for row in cursor]
        except sqlite3.Error as e:
            logging.error(f"Failed to query events {event_filter.as_query()}: {e}")
            raise StorageError(f"Failed to query events {event_filter.as_query()}: {e}") from e

    @asynccontextmanager
    async def _read_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self.read_pool is None:
            async with self.write_lock:
                yield self.write_conn
            return
        conn = await self.read_pool.get()
        try:
            yield conn
        finally:
            await self.read_pool.put(conn)

    def next_cursor(self, events: List[Event], prev_cursor: Optional[str] = None) -> Optional[str]:
        if not events:
            return prev_cursor
        return encode_cursor(events[-1].sequence_id)


async def _configure(conn: aiosqlite.Connection, cache_size_kib: int):
    await conn.execute("PRAGMA journal_mode=WAL;")
    await conn.execute("PRAGMA synchronous = NORMAL;")
    await conn.execute(f"PRAGMA cache_size = {cache_size_kib};")
    await conn.execute("PRAGMA busy_timeout = 5000;")


@asynccontextmanager
async def sqlite_event_log(
    db_path: str,
    *,
    cache_size_kib: int = -16384,
    pool_size: int = 10,
) -> AsyncIterator[SQLiteEventLog]:
    """
    Opens the connections behind a `SQLiteEventLog` and closes them on exit.
    `db_path=":memory:"` gives a private in-memory database held by a single
    connection, so `pool_size` only applies to file databases.
    """
    if not db_path:
        raise ValueError("`db_path` must be provided in the configuration.")

    is_memory_db = db_path == ":memory:"
    write_conn = await aiosqlite.connect(db_path)
    read_connections: List[aiosqlite.Connection] = []
    try:
        await _configure(write_conn, cache_size_kib)
        await create_schema(write_conn)

        if is_memory_db:
            logging.info("SQLite event log opened in memory on a single connection")
            yield SQLiteEventLog(write_conn=write_conn, write_lock=asyncio.Lock())
            return

        pool: asyncio.Queue = asyncio.Queue(maxsize=pool_size)
        for _ in range(pool_size):
            conn = await aiosqlite.connect(f"file:{db_path}?mode=ro", uri=True)
            read_connections.append(conn)
            await conn.execute(f"PRAGMA cache_size = {cache_size_kib};")
            await conn.execute("PRAGMA busy_timeout = 5000;")
            await pool.put(conn)
        logging.info(f"SQLite event log opened at {db_path} with {pool_size} read connections")

        yield SQLiteEventLog(write_conn=write_conn, write_lock=asyncio.Lock(), read_pool=pool)
    finally:
        await asyncio.gather(*(conn.close() for conn in read_connections))
        await write_conn.close()
        logging.info(f"SQLite event log closed at {db_path}")
