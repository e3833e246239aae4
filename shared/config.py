"""
Shared configuration management for the geolocation caching proxy.
"""

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration into a timedelta.

    Accepts timedeltas, plain numbers (seconds) and Go-style duration strings
    such as ``"90s"``, ``"30m"`` or ``"1h30m"``.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ConfigurationError(
            "Unsupported duration value",
            details={"value": repr(value)},
        )

    text = value.strip()
    if not text:
        raise ConfigurationError("Duration cannot be empty")

    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text) or position == 0:
        raise ConfigurationError(
            "Invalid duration",
            details={"value": value},
        )
    return timedelta(seconds=seconds)


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GEOPROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream lookup service
    api_key: Optional[str] = Field(default=None)
    upstream_url: str = Field(default="http://ip-api.com")
    upstream_pro_url: str = Field(default="https://pro.ip-api.com")
    upstream_timeout: timedelta = Field(default=timedelta(seconds=10))
    request_timeout: timedelta = Field(default=timedelta(seconds=30))
    batch_max_concurrency: int = Field(default=10, ge=1)
    reverse_lookup_timeout: timedelta = Field(default=timedelta(seconds=2))

    # Cache
    cache_success_age: timedelta = Field(default=timedelta(hours=24))
    cache_failed_age: timedelta = Field(default=timedelta(minutes=30))
    cache_clean_interval: timedelta = Field(default=timedelta(minutes=5))
    cache_persist: bool = Field(default=False)
    cache_write_interval: timedelta = Field(default=timedelta(minutes=30))
    cache_write_location: Optional[str] = Field(default=None)

    # Observability
    prometheus_enabled: bool = Field(default=True)

    @field_validator(
        "upstream_timeout",
        "request_timeout",
        "reverse_lookup_timeout",
        "cache_success_age",
        "cache_failed_age",
        "cache_clean_interval",
        "cache_write_interval",
        mode="before",
    )
    @classmethod
    def _coerce_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @property
    def snapshot_path(self) -> Path:
        """Location of the persisted cache snapshot."""
        directory = Path(self.cache_write_location or os.getcwd())
        return directory / "cache.json"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8080
    host: str = "0.0.0.0"

    @field_validator("port")
    @classmethod
    def _validate_port(cls, value: int) -> int:
        if value < 1024:
            raise ConfigurationError("Port cannot be below 1024", details={"port": value})
        if value > 65535:
            raise ConfigurationError("Port cannot be above 65535", details={"port": value})
        return value


def get_config(service_name: str, port: Optional[int] = None) -> ServiceConfig:
    """Get configuration for a specific service."""
    if port is None:
        return ServiceConfig(service_name=service_name)
    return ServiceConfig(service_name=service_name, port=port)
