"""
An in-process transport. Consumers register under a group name; several
instances of one group behave like replicas of the same service.

`emit` hands an event to one instance per group (round-robin), `broadcast`
hands it to every instance. Deliveries are awaited one after the other, so a
caller that awaits `emit`/`broadcast` knows the consumers have seen the event.
"""
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .errors import ConsumerNotFound
from .models import Event
from .protocols import Consumer


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class ViewModel:
    """
    A consumer built from plain callables.

    `handlers` maps event types to `handler(event)`; their keys are the event
    types the consumer declares interest in. Without a `dispose` callable the
    consumer cannot be reset and reports itself as not found.
    """

    def __init__(
        self,
        group: str,
        handlers: Mapping[str, Callable[[Event], Any]],
        dispose: Optional[Callable[[], Any]] = None,
    ):
        self.group = group
        self.handlers = dict(handlers)
        self.event_types: Set[str] = set(self.handlers)
        self._dispose = dispose

    async def receive(self, event_type: str, event: Event) -> Any:
        handler = self.handlers.get(event_type)
        if handler is None:
            return None
        return await _maybe_await(handler(event))

    async def dispose(self) -> Any:
        if self._dispose is None:
            raise ConsumerNotFound(f"Consumer '{self.group}' has no dispose action", consumer_name=self.group)
        return await _maybe_await(self._dispose())


class LocalEventBus:
    def __init__(self):
        self._consumers: Dict[str, List[Consumer]] = defaultdict(list)
        self._round_robin: Dict[str, int] = defaultdict(int)

    def register(self, consumer: Consumer) -> Consumer:
        self._consumers[consumer.group].append(consumer)
        logging.debug(f"Registered consumer instance for group '{consumer.group}'")
        return consumer

    def unregister(self, consumer: Consumer):
        instances = self._consumers.get(consumer.group)
        if instances and consumer in instances:
            instances.remove(consumer)
            if not instances:
                del self._consumers[consumer.group]

    @property
    def groups(self) -> List[str]:
        return list(self._consumers)

    def event_types_for(self, groups: Iterable[str]) -> Set[str]:
        event_types: Set[str] = set()
        for group in groups:
            for consumer in self._consumers.get(group, []):
                event_types.update(consumer.event_types)
        return event_types

    def _pick(self, group: str, instances: List[Consumer]) -> Consumer:
        index = self._round_robin[group] % len(instances)
        self._round_robin[group] += 1
        return instances[index]

    async def dispose(self, group: str) -> Any:
        instances = self._consumers.get(group)
        if not instances:
            raise ConsumerNotFound(f"Consumer '{group}' is not registered", consumer_name=group)
        return await self._pick(group, instances).dispose()

    async def emit(self, event_type: str, event: Event, groups: Iterable[str]) -> int:
        delivered = 0
        for group in groups:
            instances = [c for c in self._consumers.get(group, []) if event_type in c.event_types]
            if not instances:
                continue
            await self._pick(group, instances).receive(event_type, event)
            delivered += 1
        return delivered

    async def broadcast(self, event_type: str, event: Event, groups: Optional[Iterable[str]] = None) -> int:
        targets = list(self._consumers) if groups is None else list(groups)
        delivered = 0
        for group in targets:
            for consumer in list(self._consumers.get(group, [])):
                if event_type in consumer.event_types:
                    await consumer.receive(event_type, event)
                    delivered += 1
        return delivered

    async def publish(self, event: Event):
        await self.broadcast(event.type, event)
