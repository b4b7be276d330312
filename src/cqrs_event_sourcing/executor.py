"""
The default aggregate executor. It rebuilds the current state of an aggregate
from the log with the aggregate's own projection, runs the matching command
handler against it and turns the handler's output into versioned events.

Business rules live in the command handlers: a handler refuses a command by
raising (typically `BusinessRuleError`).
"""
import inspect
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from .aggregate import Aggregate
from .errors import CommandValidationError
from .models import Event, EventFilter
from .protocols import EventLog


def epoch_millis() -> int:
    return int(time.time() * 1000)


class AggregateCommandExecutor:
    def __init__(
        self,
        log: EventLog,
        aggregates: Iterable[Aggregate] = (),
        clock: Optional[Callable[[], int]] = None,
    ):
        self.log = log
        self.aggregates: Dict[str, Aggregate] = {}
        self.clock = clock or epoch_millis
        for aggregate in aggregates:
            self.register(aggregate)

    def register(self, aggregate: Aggregate, name: Optional[str] = None):
        """Registers an aggregate, under another name than its own if given."""
        self.aggregates[name or aggregate.name] = aggregate

    async def execute(
        self,
        aggregate_id: str,
        aggregate_name: str,
        command_type: str,
        payload: Dict[str, Any],
    ) -> List[Event]:
        aggregate = self.aggregates.get(aggregate_name)
        if aggregate is None:
            raise CommandValidationError(
                f"Aggregate '{aggregate_name}' is not registered",
                aggregate_name=aggregate_name,
            )
        handler = aggregate.commands.get(command_type)
        if handler is None:
            raise CommandValidationError(
                f"Command type '{command_type}' is not registered for aggregate '{aggregate_name}'",
                aggregate_name=aggregate_name,
                command_type=command_type,
            )

        history = await self.log.query(EventFilter(aggregate_ids=[aggregate_id]))
        state = aggregate.projection.init()
        for event in history:
            state = aggregate.projection.apply(state, event)
        last_version = history[-1].aggregate_version if history else 0
        last_timestamp = history[-1].timestamp if history else 0

        result = handler(state, payload, aggregate_id)
        if inspect.isawaitable(result):
            result = await result

        timestamp = max(self.clock(), last_timestamp)
        return [
            Event(
                aggregate_id=aggregate_id,
                aggregate_name=aggregate_name,
                type=item["type"],
                payload=item.get("payload") or {},
                timestamp=timestamp,
                aggregate_version=last_version + i + 1,
            )
            for i, item in enumerate(self._as_event_dicts(result, aggregate_name, command_type))
        ]

    @staticmethod
    def _as_event_dicts(result: Any, aggregate_name: str, command_type: str) -> List[Dict[str, Any]]:
        if result is None:
            return []
        items = [result] if isinstance(result, dict) else list(result)
        for item in items:
            if not isinstance(item, dict) or not item.get("type"):
                raise CommandValidationError(
                    f"Command '{aggregate_name}.{command_type}' produced an event without a type: {item!r}",
                    aggregate_name=aggregate_name,
                    command_type=command_type,
                )
        return items
