"""Filter evaluation and cursor encoding shared by the log adaptors."""
import base64
import binascii
from typing import Optional

from ..errors import ValidationError
from ..models import Event, EventFilter


def encode_cursor(sequence_id: int) -> str:
    return base64.urlsafe_b64encode(str(sequence_id).encode("ascii")).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> int:
    """Returns the log position a cursor points after (0 for no cursor)."""
    if not cursor:
        return 0
    try:
        return int(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("ascii"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ValidationError(f"Invalid cursor {cursor!r}", cursor=cursor) from e


def event_matches(event: Event, event_filter: EventFilter) -> bool:
    query = event_filter.as_query()
    if "aggregate_ids" in query and event.aggregate_id not in query["aggregate_ids"]:
        return False
    if "event_types" in query and event.type not in query["event_types"]:
        return False
    if "start_time" in query and event.timestamp < query["start_time"]:
        return False
    if "finish_time" in query and event.timestamp > query["finish_time"]:
        return False
    return True
