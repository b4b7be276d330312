"""
Replay of historical events to consumers.

A replay first resets the named consumer groups (dispose, concurrently), then
streams every event they are interested in, in log order and strictly one at a
time. Two delivery modes exist:

* emit (default): each event goes to one instance per group, as a copy
  carrying a zero-based `sequence`; a pacing policy is awaited between
  deliveries to cap the burst rate downstream.
* broadcast: each event goes to every instance of every group, unpaced.

There is no cancellation: once streaming starts it runs until the last event
or the first failed delivery, and a failed replay is not resumed.
"""
import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Set

from .errors import ConsumerNotFound, DeliveryFailure, DisposeFailure
from .filters import normalize_filter
from .models import Event, EventFilter, ReplayResult
from .protocols import EventLog, Transport

DEFAULT_REPLAY_DELAY_MS = 10


class ReplayState(enum.Enum):
    IDLE = "idle"
    DISPOSING = "disposing"
    STREAMING = "streaming"
    DONE = "done"
    ABORTED = "aborted"


_TRANSITIONS = {
    ReplayState.IDLE: {ReplayState.DISPOSING},
    ReplayState.DISPOSING: {ReplayState.STREAMING, ReplayState.ABORTED},
    ReplayState.STREAMING: {ReplayState.DONE, ReplayState.ABORTED},
    ReplayState.DONE: set(),
    ReplayState.ABORTED: set(),
}


class PacingPolicy(Protocol):
    async def pause(self):
        ...


class NoPacing:
    async def pause(self):
        return None


class FixedDelayPacing:
    def __init__(self, delay_ms: float = DEFAULT_REPLAY_DELAY_MS):
        if delay_ms < 0:
            raise ValueError(f"Replay delay must not be negative, got {delay_ms}")
        self.delay_ms = delay_ms

    async def pause(self):
        await asyncio.sleep(self.delay_ms / 1000)


def pacing_for(delay_ms: float) -> PacingPolicy:
    return FixedDelayPacing(delay_ms) if delay_ms > 0 else NoPacing()


@dataclass
class ReplaySession:
    consumer_names: List[str]
    broadcast: bool = False
    event_types: Set[str] = field(default_factory=set)
    event_count: int = 0
    state: ReplayState = ReplayState.IDLE
    event_filter: Optional[EventFilter] = None

    def transition(self, new_state: ReplayState):
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid replay transition {self.state.value} -> {new_state.value}")
        logging.debug(f"Replay {self.consumer_names}: {self.state.value} -> {new_state.value}")
        self.state = new_state


class ReplayCoordinator:
    def __init__(self, log: EventLog, transport: Transport, pacing: Optional[PacingPolicy] = None):
        self.log = log
        self.transport = transport
        self.pacing = pacing if pacing is not None else FixedDelayPacing()
        # The most recent replay, kept after it finishes or aborts.
        self.session: Optional[ReplaySession] = None

    async def replay(
        self,
        consumer_names: Iterable[str],
        broadcast: bool = False,
        start_time: Optional[int] = None,
        finish_time: Optional[int] = None,
    ) -> ReplayResult:
        start = time.perf_counter()
        session = ReplaySession(consumer_names=list(consumer_names), broadcast=broadcast)
        self.session = session
        # Reject a malformed time range before any consumer is reset.
        normalize_filter({"start_time": start_time, "finish_time": finish_time})

        logging.info(f"Replay events to {session.consumer_names}")
        logging.info(f"Options: start_time={start_time}, finish_time={finish_time}, broadcast={broadcast}")

        session.transition(ReplayState.DISPOSING)
        try:
            await self._dispose_all(session.consumer_names)
        except BaseException:
            session.transition(ReplayState.ABORTED)
            raise

        session.event_types = self.transport.event_types_for(session.consumer_names)
        session.event_filter = normalize_filter(
            {
                "event_types": sorted(session.event_types),
                "start_time": start_time,
                "finish_time": finish_time,
            }
        )

        session.transition(ReplayState.STREAMING)
        try:
            await self._stream(session)
        except BaseException:
            session.transition(ReplayState.ABORTED)
            raise
        session.transition(ReplayState.DONE)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logging.info(
            f"Replayed event types ({', '.join(sorted(session.event_types))}), total events emitted "
            f"{session.event_count} (broadcast mode -> {broadcast}) in {elapsed_ms:.2f}ms"
        )
        return ReplayResult(event_filter=session.event_filter.as_query(), event_count=session.event_count)

    async def _dispose_all(self, consumer_names: List[str]):
        results = await asyncio.gather(
            *(self.transport.dispose(name) for name in consumer_names),
            return_exceptions=True,
        )
        for name, result in zip(consumer_names, results):
            if isinstance(result, ConsumerNotFound):
                logging.info(f"Consumer '{name}' has nothing to dispose, continuing replay")
            elif isinstance(result, BaseException):
                logging.error(f"Dispose of consumer '{name}' failed: {result}")
                raise DisposeFailure(name, result) from result

    async def _stream(self, session: ReplaySession):
        if not session.event_types:
            logging.info(f"Consumers {session.consumer_names} declare no event types, nothing to replay")
            return
        events = await self.log.query(session.event_filter)
        for event in events:
            if session.event_count and not session.broadcast:
                await self.pacing.pause()
            try:
                await self._deliver(session, event)
            except Exception as e:
                logging.error(f"Replay delivery of '{event.type}' failed after {session.event_count} events: {e}")
                raise DeliveryFailure(
                    event.type, session.event_count, e, session.event_filter.as_query()
                ) from e
            session.event_count += 1

    async def _deliver(self, session: ReplaySession, event: Event):
        logging.debug(f"Replaying {event.type} for {event.aggregate_id} to {session.consumer_names}")
        if session.broadcast:
            await self.transport.broadcast(event.type, event, session.consumer_names)
        else:
            sequenced = event.model_copy(update={"sequence": session.event_count})
            await self.transport.emit(event.type, sequenced, session.consumer_names)
