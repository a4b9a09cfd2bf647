"""Application configuration."""

import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    origin_url: str
    public_origin: str = "http://localhost:8000"
    cache_generation: str = "diet-tracker-cache-v1"
    navigation_fallback_path: str = "/index.html"
    bypass_patterns: str = ".csv"
    skip_waiting_on_install: bool = True
    origin_timeout_seconds: float = 15.0
    cache_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    admin_token: str
    openai_api_key: str | None = None
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "low"
    openai_store: bool = False
    openfoodfacts_base_url: str = "https://world.openfoodfacts.org"
    metering_base_url: str | None = None
    metering_api_key: str | None = None
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_bypass_patterns(raw: str | None) -> tuple[str, ...]:
    """Parse the comma-separated list of network-only URL substrings."""
    if raw is None:
        return ()
    patterns: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if value and value not in patterns:
            patterns.append(value)
    return tuple(patterns)
