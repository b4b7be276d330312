"""
This module defines the abstract protocols for the collaborators of the CQRS
layer: the event log, the aggregate executor, the consumers and the transport
that delivers events to them.

The orchestration code (gateway, projection engine, history reader, replay
coordinator) only talks to these protocols. The concrete log adapters and the
in-process bus shipped with the package are one implementation each; a
PostgreSQL log or a message-broker transport can be swapped in without
touching the orchestration code.
"""
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from .models import Event, EventFilter


class EventLog(Protocol):
    """
    Append-only, range-queryable event store.

    Implementations must reject a second event with the same
    `(aggregate_id, aggregate_version)` by raising `ConcurrencyConflict`, and
    raise `StorageError` when the store itself fails.
    """

    async def append(self, event: Event) -> Event:
        ...

    async def append_all(self, events: List[Event]) -> List[Event]:
        ...

    async def query(self, event_filter: EventFilter) -> List[Event]:
        ...

    def next_cursor(self, events: List[Event], prev_cursor: Optional[str] = None) -> Optional[str]:
        ...


class AggregateExecutor(Protocol):
    """Turns a command into zero or more events, or raises a business-rule error."""

    async def execute(
        self,
        aggregate_id: str,
        aggregate_name: str,
        command_type: str,
        payload: Dict[str, Any],
    ) -> List[Event]:
        ...


class Consumer(Protocol):
    """
    One physical instance of a consumer group (a view model). Several
    instances may share a group name.
    """
    group: str
    event_types: Set[str]

    async def dispose(self) -> Any:
        ...

    async def receive(self, event_type: str, event: Event) -> Any:
        ...


class Transport(Protocol):
    """Delivers events to consumer groups."""

    async def publish(self, event: Event):
        ...

    async def emit(self, event_type: str, event: Event, groups: Iterable[str]) -> int:
        ...

    async def broadcast(self, event_type: str, event: Event, groups: Optional[Iterable[str]] = None) -> int:
        ...

    def event_types_for(self, groups: Iterable[str]) -> Set[str]:
        ...

    async def dispose(self, group: str) -> Any:
        ...
