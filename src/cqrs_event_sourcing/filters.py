"""
Filter normalization: "unspecified" always means "unbounded", so a key with no
value is removed rather than handed to the log as an explicit `None`.
"""
from typing import Any, Dict, Mapping

import pydantic_core

from .errors import ValidationError
from .models import EventFilter


def clean_filter(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of `raw` without the keys whose value is None.

    Falsy but defined values such as `0`, `False` or `[]` are kept.
    """
    return {key: value for key, value in raw.items() if value is not None}


def normalize_filter(raw: Mapping[str, Any]) -> EventFilter:
    cleaned = clean_filter(raw)
    try:
        return EventFilter.model_validate(cleaned)
    except pydantic_core.ValidationError as e:
        raise ValidationError(f"Invalid event filter {cleaned}: {e}", event_filter=cleaned) from e
