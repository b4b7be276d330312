"""
The command path: executor -> log append -> publish.

The gateway does not lock writes. Two writers racing on the same aggregate are
told apart by the log, which refuses a second event with an aggregate version
that already exists; the loser surfaces as `CommandRejected`.

Publishing happens after the append and is not coupled to it: if the process
dies in between, the event is stored but never published. Consumers catch up
through a replay.
"""
import logging
from typing import Any, Dict, List, Optional

from .errors import CommandRejected, NotConfigured, StorageError
from .models import CommandResult, Event
from .protocols import AggregateExecutor, EventLog, Transport


class CommandGateway:
    def __init__(
        self,
        log: EventLog,
        transport: Transport,
        aggregate_name: str,
        executor: Optional[AggregateExecutor] = None,
    ):
        self.log = log
        self.transport = transport
        self.aggregate_name = aggregate_name
        self.executor = executor

    async def command(self, aggregate_id: str, type: str, payload: Dict[str, Any]) -> CommandResult:
        if self.executor is None:
            raise NotConfigured(
                f"Command action is disabled for '{self.aggregate_name}', no aggregate configured!",
                aggregate_name=self.aggregate_name,
                aggregate_id=aggregate_id,
                command_type=type,
            )
        logging.debug(f"AggregateName: {self.aggregate_name} -> {aggregate_id} -> {type}")

        try:
            events = await self.executor.execute(aggregate_id, self.aggregate_name, type, payload)
            stored = await self.log.append_all(events) if events else []
        except StorageError:
            raise
        except Exception as e:
            logging.error(f"Command '{self.aggregate_name}.{type}' for {aggregate_id} failed: {e}")
            raise CommandRejected(self.aggregate_name, type, aggregate_id, e) from e

        await self._publish(stored)
        return CommandResult(status=True, aggregate_name=self.aggregate_name, aggregate_id=aggregate_id)

    async def _publish(self, events: List[Event]):
        for event in events:
            try:
                await self.transport.publish(event)
            except Exception as e:
                # The event is committed; a failed publish must not fail the command.
                logging.error(f"Failed to publish '{event.type}' for {event.aggregate_id}: {e}")
