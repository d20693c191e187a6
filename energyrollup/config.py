from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import canon


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ENERGYROLLUP_",
        env_file=".env",
        extra="ignore",
    )

    # Fallback when a tenant has no (or an invalid) timezone
    default_timezone: str = Field(default=canon.DEFAULT_TZ)

    # Fan-out
    max_concurrency: int = Field(default=16, ge=1)
    tenant_timeout_seconds: float = Field(default=20.0, gt=0)

    # Optimistic transactions
    merge_max_attempts: int = Field(default=5, ge=1)

    # Cron trigger, evaluated in UTC
    cron_minute: str = Field(default="*")
    max_overlapping_ticks: int = Field(default=2, ge=1)
    misfire_grace_seconds: int = Field(default=30, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
