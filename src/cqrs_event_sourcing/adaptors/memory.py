import asyncio
import logging
from typing import Dict, List, Optional

from ..errors import ConcurrencyConflict
from ..models import Event, EventFilter
from .filtering import decode_cursor, encode_cursor, event_matches


class InMemoryEventLog:
    """
    An event log kept in a Python list. Appends are serialized with a lock and
    checked for aggregate version conflicts like the SQLite log; nothing
    survives the process.
    """

    def __init__(self):
        self._events: List[Event] = []
        self._versions: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    def __len__(self):
        return len(self._events)

    async def append(self, event: Event) -> Event:
        stored = await self.append_all([event])
        return stored[0]

    async def append_all(self, events: List[Event]) -> List[Event]:
        async with self._lock:
            versions = dict(self._versions)
            for event in events:
                current = versions.get(event.aggregate_id, 0)
                if event.aggregate_version <= current:
                    raise ConcurrencyConflict(
                        f"Concurrency conflict: aggregate {event.aggregate_id} is at version "
                        f"{current}, cannot append version {event.aggregate_version}",
                        aggregate_id=event.aggregate_id,
                        aggregate_name=event.aggregate_name,
                    )
                versions[event.aggregate_id] = event.aggregate_version

            stored = []
            for event in events:
                event = event.model_copy(update={"sequence_id": len(self._events) + 1})
                self._events.append(event)
                stored.append(event)
            self._versions = versions
            logging.debug(f"Appended {len(stored)} events, log size {len(self._events)}")
            return stored

    async def query(self, event_filter: EventFilter) -> List[Event]:
        after = decode_cursor(event_filter.cursor)
        limit = event_filter.limit
        result = []
        for event in self._events:
            if limit is not None and len(result) >= limit:
                break
            if event.sequence_id > after and event_matches(event, event_filter):
                result.append(event)
        return result

    def next_cursor(self, events: List[Event], prev_cursor: Optional[str] = None) -> Optional[str]:
        if not events:
            return prev_cursor
        return encode_cursor(events[-1].sequence_id)

    def clear(self):
        self._events = []
        self._versions = {}
