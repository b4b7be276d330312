# cqrs_event_sourcing package

from .aggregate import Aggregate
from .bus import LocalEventBus, ViewModel
from .errors import (
    BusinessRuleError,
    ClientError,
    CommandRejected,
    CommandValidationError,
    ConcurrencyConflict,
    ConfigurationError,
    ConsumerNotFound,
    CQRSError,
    DeliveryFailure,
    DisposeFailure,
    InvalidTransitionError,
    NotConfigured,
    ServerError,
    StorageError,
    ValidationError,
)
from .factories import cqrs_service_factory
from .filters import clean_filter, normalize_filter
from .models import CommandResult, Event, EventFilter, HistoryEntry, ReplayResult
from .projection import Projection, ProjectionEngine, UnknownEventPolicy
from .replay import FixedDelayPacing, NoPacing, ReplayCoordinator, ReplayState
from .service import CQRSService
from .adaptors import InMemoryEventLog, SQLiteEventLog, sqlite_event_log

__all__ = [
    "Aggregate",
    "BusinessRuleError",
    "ClientError",
    "CommandRejected",
    "CommandResult",
    "CommandValidationError",
    "ConcurrencyConflict",
    "ConfigurationError",
    "ConsumerNotFound",
    "CQRSError",
    "CQRSService",
    "DeliveryFailure",
    "DisposeFailure",
    "Event",
    "EventFilter",
    "FixedDelayPacing",
    "HistoryEntry",
    "InvalidTransitionError",
    "InMemoryEventLog",
    "LocalEventBus",
    "NoPacing",
    "NotConfigured",
    "Projection",
    "ProjectionEngine",
    "ReplayCoordinator",
    "ReplayResult",
    "ReplayState",
    "SQLiteEventLog",
    "ServerError",
    "StorageError",
    "UnknownEventPolicy",
    "ValidationError",
    "ViewModel",
    "clean_filter",
    "cqrs_service_factory",
    "normalize_filter",
    "sqlite_event_log",
]
