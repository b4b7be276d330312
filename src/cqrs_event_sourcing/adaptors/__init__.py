from .memory import InMemoryEventLog
from .sqlite import SQLiteEventLog, sqlite_event_log

__all__ = ["InMemoryEventLog", "SQLiteEventLog", "sqlite_event_log"]
