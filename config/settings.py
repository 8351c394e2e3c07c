"""
Engine Configuration
====================

Settings are loaded in this order:
1. Defaults (below)
2. A `.env` file in the working directory
3. Environment variables prefixed with ACCESS_ (e.g. ACCESS_DATABASE_URL)

Business-hours windows, allowed context values and the combination
strategy are exposed here so that deployments can tune them without
code changes.
"""

import os
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'access_control.db')


class Settings(BaseSettings):
    """Access policy engine settings, validated by pydantic."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Persistence / logging
    database_url: str = Field(default=f"sqlite:///{DEFAULT_DB_PATH}")
    database_echo: bool = False
    log_level: str = "INFO"

    # Decision combination
    combination_strategy: str = "ALL"
    weighted_threshold: int = Field(default=2, ge=1, le=4)

    # Business hours (inclusive) and days (0=Monday .. 6=Sunday)
    business_hours_start: int = Field(default=9, ge=0, le=23)
    business_hours_end: int = Field(default=17, ge=0, le=23)
    business_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])

    # Contextual defaults used when the request context has no override
    allowed_locations: List[str] = Field(default_factory=lambda: ['office', 'home'])
    allowed_devices: List[str] = Field(default_factory=lambda: ['desktop', 'laptop', 'mobile'])
    allowed_networks: List[str] = Field(default_factory=lambda: ['wifi', 'ethernet'])

    # Behavioral analysis
    behavior_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    activity_window_hours: int = Field(default=24, gt=0)
    activity_limit: int = Field(default=10, gt=0)

    # Permission cache (seconds, 0 disables)
    permission_cache_ttl: int = Field(default=3600, ge=0)

    @field_validator('combination_strategy')
    @classmethod
    def _upper_strategy(cls, value: str) -> str:
        value = value.upper()
        if value not in ('ALL', 'ANY', 'MAJORITY', 'WEIGHTED'):
            raise ValueError(f"Unknown combination strategy: {value}")
        return value

    @field_validator('business_days')
    @classmethod
    def _check_days(cls, value: List[int]) -> List[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError(f"Invalid weekday: {day}")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
