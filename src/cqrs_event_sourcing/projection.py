"""
Projections and point-in-time state materialization.

A `Projection` is an initial-state factory plus an explicit mapping from event
type to a pure transition `(state, event) -> state`. The `ProjectionEngine`
folds the events matching a filter through that mapping, which rebuilds the
state of an aggregate as it was at any `finish_time`.
"""
import enum
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import ConfigurationError, InvalidTransitionError
from .models import Event, EventFilter
from .protocols import EventLog

Transition = Callable[[Any, Event], Any]


class UnknownEventPolicy(enum.Enum):
    SKIP = "skip"
    RAISE = "raise"


class Projection:
    """
    Usage:
        projection = Projection(init=lambda: {"count": 0})

        @projection.on("counter/incremented")
        def incremented(state, event):
            return {**state, "count": state["count"] + 1}
    """

    def __init__(
        self,
        init: Callable[[], Any],
        transitions: Optional[Mapping[str, Transition]] = None,
        unknown_events: UnknownEventPolicy = UnknownEventPolicy.SKIP,
    ):
        if not callable(init):
            raise ConfigurationError("Projection init must be callable")
        self.init = init
        self.unknown_events = unknown_events
        self._transitions: Dict[str, Transition] = {}
        for event_type, transition in (transitions or {}).items():
            self.register(event_type, transition)

    def register(self, event_type: str, transition: Transition) -> None:
        if not callable(transition):
            raise ConfigurationError(f"Transition for '{event_type}' must be callable")
        self._transitions[event_type] = transition

    def on(self, event_type: str) -> Callable[[Transition], Transition]:
        def decorator(transition: Transition) -> Transition:
            self.register(event_type, transition)
            return transition
        return decorator

    @property
    def event_types(self):
        return list(self._transitions)

    def handles(self, event_type: str) -> bool:
        return event_type in self._transitions

    def apply(self, state: Any, event: Event) -> Any:
        transition = self._transitions.get(event.type)
        if transition is None:
            if self.unknown_events is UnknownEventPolicy.RAISE:
                raise InvalidTransitionError(
                    f"No transition for event type: {event.type}",
                    event_type=event.type,
                    aggregate_id=event.aggregate_id,
                )
            return state
        return transition(state, event)


class ProjectionEngine:
    """Materializes projection state by folding events read from the log."""

    def __init__(self, log: EventLog, projection: Optional[Projection], aggregate_name: str = ""):
        self.log = log
        self.projection = projection
        self.aggregate_name = aggregate_name

    async def materialize(self, event_filter: EventFilter) -> Any:
        if self.projection is None:
            raise ConfigurationError(
                f"No projection bound to '{self.aggregate_name}', cannot materialize {event_filter.as_query()}",
                aggregate_name=self.aggregate_name,
                event_filter=event_filter.as_query(),
            )
        start = time.perf_counter()
        state = self.projection.init()
        events = await self.log.query(event_filter)
        for event in events:
            state = self.projection.apply(state, event)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logging.info(
            f"Materialized '{self.aggregate_name}' from {len(events)} events "
            f"(filter {event_filter.as_query()}) in {elapsed_ms:.2f}ms"
        )
        return state
