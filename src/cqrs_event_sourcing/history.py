import logging
import time
from datetime import datetime, timedelta, timezone
from typing import List

from .models import Event, EventFilter, HistoryEntry
from .protocols import EventLog

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_history_entry(event: Event, include_payload: bool = False) -> HistoryEntry:
    entry = HistoryEntry(
        version=event.aggregate_version,
        timestamp=event.timestamp,
        datetime=(_EPOCH + timedelta(milliseconds=event.timestamp)).isoformat(timespec="milliseconds"),
        event_type=event.type,
    )
    if include_payload:
        entry = entry.model_copy(update={"payload": event.payload})
    return entry


class HistoryReader:
    """Lists past events in log order, optionally with their payloads."""

    def __init__(self, log: EventLog):
        self.log = log

    async def load_history(self, event_filter: EventFilter, include_payload: bool = False) -> List[HistoryEntry]:
        start = time.perf_counter()
        events = await self.log.query(event_filter)
        history = [to_history_entry(event, include_payload) for event in events]
        elapsed_ms = (time.perf_counter() - start) * 1000
        logging.info(f"Loaded {len(history)} history entries (payload={include_payload}) in {elapsed_ms:.2f}ms")
        return history
