"""
Service configuration. Configuration is a plain dict, as accepted by
`cqrs_service_factory`; missing keys take the defaults below.
"""
from typing import Any, Dict, Optional

import pydantic_core
from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError
from .replay import DEFAULT_REPLAY_DELAY_MS


class ServiceSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = ":memory:"
    pool_size: int = Field(default=10, ge=1)
    cache_size_kib: int = -16384  # Negative values are KiB, 16MB by default
    replay_delay_ms: float = Field(default=DEFAULT_REPLAY_DELAY_MS, ge=0)


def load_settings(config: Optional[Dict[str, Any]] = None) -> ServiceSettings:
    try:
        return ServiceSettings.model_validate(config or {})
    except pydantic_core.ValidationError as e:
        raise ConfigurationError(f"Invalid service configuration: {e}") from e
