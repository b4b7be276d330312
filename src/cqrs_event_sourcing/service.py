"""
The action surface of the CQRS layer.

A `CQRSService` binds an event log, a transport and (optionally) an aggregate,
and exposes four transport-agnostic actions: `command`, `read-model`,
`history` and `replay`. A service without an aggregate can still replay
events to consumers; its command and read actions fail with a
`ConfigurationError`.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

import pydantic_core
from pydantic import BaseModel, ConfigDict, Field

from .aggregate import Aggregate
from .errors import ConfigurationError, ValidationError
from .executor import AggregateCommandExecutor
from .filters import normalize_filter
from .gateway import CommandGateway
from .history import HistoryReader
from .models import CommandResult, HistoryEntry, ReplayResult
from .projection import ProjectionEngine
from .protocols import AggregateExecutor, EventLog, Transport
from .replay import PacingPolicy, ReplayCoordinator


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CommandParams(_Params):
    aggregate_id: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ReadModelParams(_Params):
    aggregate_id: str
    finish_time: Optional[int] = None
    limit: Optional[int] = Field(default=None, ge=0)


class HistoryParams(_Params):
    aggregate_id: str
    payload: bool = False
    start_time: Optional[int] = None
    finish_time: Optional[int] = None
    limit: Optional[int] = Field(default=None, ge=0)


class ReplayParams(_Params):
    consumer_names: List[str]
    broadcast: bool = False
    start_time: Optional[int] = None
    finish_time: Optional[int] = None


class CQRSService:
    def __init__(
        self,
        name: str,
        log: EventLog,
        transport: Transport,
        aggregate: Union[Aggregate, Dict[str, Any], None] = None,
        *,
        aggregate_name: Optional[str] = None,
        executor: Optional[AggregateExecutor] = None,
        pacing: Optional[PacingPolicy] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        if isinstance(aggregate, dict):
            aggregate = Aggregate.define(**aggregate)
        self.name = name
        self.log = log
        self.transport = transport
        self.aggregate = aggregate
        self.aggregate_name = aggregate_name or name

        if aggregate is not None and executor is None:
            executor = AggregateCommandExecutor(log, clock=clock)
            executor.register(aggregate, self.aggregate_name)

        self.gateway = CommandGateway(log, transport, self.aggregate_name, executor)
        self.projection_engine = ProjectionEngine(
            log, aggregate.projection if aggregate else None, self.aggregate_name
        )
        self.history_reader = HistoryReader(log)
        self.replay_coordinator = ReplayCoordinator(log, transport, pacing)

        self._actions = {
            "command": (CommandParams, self.command),
            "read-model": (ReadModelParams, self.read_model),
            "history": (HistoryParams, self.history),
            "replay": (ReplayParams, self.replay),
        }

    @property
    def metadata(self) -> Dict[str, Any]:
        if self.aggregate is None:
            return {"aggregate": False, "commands": [], "projection": [], "events": []}
        return {
            "aggregate": True,
            "commands": list(self.aggregate.commands),
            "projection": self.aggregate.projection.event_types,
            "events": list(self.aggregate.events),
        }

    async def dispatch(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Validates `params` for `action` and runs it."""
        if action not in self._actions:
            raise ValidationError(f"Unknown action '{action}' on service '{self.name}'", action=action)
        params_model, handler = self._actions[action]
        try:
            validated = params_model.model_validate(params or {})
        except pydantic_core.ValidationError as e:
            raise ValidationError(
                f"Parameters validation error for '{self.name}.{action}': {e}",
                action=action,
                params=params,
            ) from e
        return await handler(**validated.model_dump())

    async def command(self, aggregate_id: str, type: str, payload: Optional[Dict[str, Any]] = None) -> CommandResult:
        return await self.gateway.command(aggregate_id, type, payload or {})

    def _require_aggregate(self, action: str, aggregate_id: str):
        if self.aggregate is None:
            raise ConfigurationError(
                f"Aggregate is not configured on '{self.name}', {action} action is disabled!",
                aggregate_name=self.aggregate_name,
                aggregate_id=aggregate_id,
            )

    async def read_model(
        self,
        aggregate_id: str,
        finish_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Any:
        self._require_aggregate("read-model", aggregate_id)
        logging.info(
            f"Load event history for aggregate '{self.aggregate_name}' with aggregate_id '{aggregate_id}', "
            f"finish_time {finish_time}, limit {limit}"
        )
        event_filter = normalize_filter(
            {"aggregate_ids": [aggregate_id], "finish_time": finish_time, "limit": limit}
        )
        return await self.projection_engine.materialize(event_filter)

    async def history(
        self,
        aggregate_id: str,
        payload: bool = False,
        start_time: Optional[int] = None,
        finish_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[HistoryEntry]:
        self._require_aggregate("history", aggregate_id)
        start = time.perf_counter()
        logging.info(f"Load event history for aggregate '{self.aggregate_name}' with aggregate_id '{aggregate_id}'")
        logging.info(f"Options: payload={payload}, start_time={start_time}, finish_time={finish_time}, limit={limit}")
        event_filter = normalize_filter(
            {
                "aggregate_ids": [aggregate_id],
                "start_time": start_time,
                "finish_time": finish_time,
                "limit": limit,
            }
        )
        result = await self.history_reader.load_history(event_filter, payload)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logging.info(f"History of {self.aggregate_name} with aggregate_id {aggregate_id} in {elapsed_ms:.2f}ms")
        return result

    async def replay(
        self,
        consumer_names: List[str],
        broadcast: bool = False,
        start_time: Optional[int] = None,
        finish_time: Optional[int] = None,
    ) -> ReplayResult:
        return await self.replay_coordinator.replay(consumer_names, broadcast, start_time, finish_time)
