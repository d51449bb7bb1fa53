# File: src/parking_ledger/config.py
"""
Application settings for the Parking Ledger

Validated with pydantic; every field can be overridden through a
``PARKING_LEDGER_<FIELD>`` environment variable.
"""

from functools import lru_cache
from typing import Mapping, Optional
import os

from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "PARKING_LEDGER_"


class LedgerSettings(BaseModel):
    """Runtime configuration"""

    model_config = ConfigDict(frozen=True)

    database_url: str = Field(default="sqlite://", description="SQLAlchemy database URL")
    max_slots: Optional[int] = Field(
        default=None, ge=1, description="Upper bound on slots per facility (unbounded if unset)"
    )
    peak_multiplier: int = Field(
        default=1, ge=1, description="Fee multiplier applied when is_peak is set"
    )
    redis_url: Optional[str] = Field(default=None, description="Redis URL for event fan-out")
    event_channel: str = Field(default="parking_ledger.events", min_length=1)
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'LedgerSettings':
        """Build settings from environment variables, falling back to defaults"""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw.upper() if name == "log_level" else raw
        return cls(**values)


@lru_cache
def get_settings() -> LedgerSettings:
    """Process-wide settings read once from the environment"""
    return LedgerSettings.from_env()
