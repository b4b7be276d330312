"""
This module defines the core data models of the CQRS layer using Pydantic.
These models are the data transfer objects passed between the action surface,
the event log and the consumers, and make sure every event, filter and result
is well-structured and validated.
"""
from pydantic import BaseModel, ConfigDict, Field, model_serializer
from typing import Dict, Any, List, Optional


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    aggregate_id: str
    aggregate_name: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int  # Milliseconds since the epoch
    aggregate_version: int
    # Position in the log, assigned on append. Used for cursors.
    sequence_id: Optional[int] = None
    # Only set on the copies a non-broadcast replay delivers.
    sequence: Optional[int] = None


class EventFilter(BaseModel):
    """
    A query against the event log. A field that was never given is absent,
    which always means "unbounded" to the log.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    aggregate_ids: Optional[List[str]] = None
    event_types: Optional[List[str]] = None
    start_time: Optional[int] = None
    finish_time: Optional[int] = None
    limit: Optional[int] = Field(default=None, ge=0)
    cursor: Optional[str] = None

    def as_query(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class HistoryEntry(BaseModel):
    version: int
    timestamp: int
    datetime: str
    event_type: str
    # None when payloads were not requested; the key is then left out when dumped.
    payload: Optional[Dict[str, Any]] = None

    @model_serializer(mode="wrap")
    def _omit_missing_payload(self, handler):
        data = handler(self)
        if self.payload is None:
            data.pop("payload", None)
        return data


class CommandResult(BaseModel):
    status: bool
    aggregate_name: str
    aggregate_id: str


class ReplayResult(BaseModel):
    event_filter: Dict[str, Any]
    event_count: int
