"""
Aggregate definitions: the name, projection, command handlers and declared
event types of one aggregate kind. Definitions are validated when they are
built, so a broken aggregate fails at service construction instead of on the
first command.
"""
from typing import Any, Callable, Dict, List

import pydantic_core
from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError
from .projection import Projection

# (state, command payload, aggregate_id) -> event dict, list of event dicts, or None.
# An event dict has a "type" and an optional "payload".
CommandHandler = Callable[[Any, Dict[str, Any], str], Any]


class Aggregate(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(min_length=3)
    projection: Projection
    commands: Dict[str, CommandHandler]
    events: List[str] = Field(default_factory=list)

    @classmethod
    def define(cls, **definition: Any) -> "Aggregate":
        try:
            return cls(**definition)
        except pydantic_core.ValidationError as e:
            raise ConfigurationError(f"Invalid aggregate definition: {e}") from e
