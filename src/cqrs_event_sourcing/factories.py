"""
Resource management for services backed by a SQLite event log.

`cqrs_service_factory` is used as an async context manager. It opens the log
and an in-process bus from a plain config dict and yields a `ServiceFactory`,
whose services all share that log and bus. Everything is closed on exit.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from .adaptors.sqlite import sqlite_event_log
from .bus import LocalEventBus
from .config import ServiceSettings, load_settings
from .protocols import EventLog
from .replay import pacing_for
from .service import CQRSService


class ServiceFactory:
    def __init__(self, settings: ServiceSettings, log: EventLog, bus: LocalEventBus):
        self.settings = settings
        self.log = log
        self.bus = bus

    def __call__(self, name: str, aggregate: Any = None, **kwargs: Any) -> CQRSService:
        kwargs.setdefault("pacing", pacing_for(self.settings.replay_delay_ms))
        return CQRSService(name, self.log, self.bus, aggregate, **kwargs)


@asynccontextmanager
async def cqrs_service_factory(config: Optional[Dict[str, Any]] = None) -> AsyncIterator[ServiceFactory]:
    settings = load_settings(config)
    async with sqlite_event_log(
        settings.db_path,
        cache_size_kib=settings.cache_size_kib,
        pool_size=settings.pool_size,
    ) as log:
        yield ServiceFactory(settings, log, LocalEventBus())
