"""
Central configuration. Reads the process environment (after load_dotenv()
has run in the entrypoint) into a typed, immutable Settings object.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.domain.exceptions import ConfigError

LOG_LEVELS = {
    "trace": "DEBUG",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
}

_ASYNC_SCHEMES = (
    ("postgres://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
)


def normalize_database_url(url: str) -> str:
    """Rewrites a libpq-style URL so SQLAlchemy picks the asyncpg driver."""
    for prefix, replacement in _ASYNC_SCHEMES:
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str
    github_token: str
    ca_bundle: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = Field(3000, ge=1, le=65535)
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    github_timeout_seconds: float = Field(30.0, gt=0)
    sync_weekday: int = Field(6, ge=0, le=6)
    sync_interval_days: int = Field(14, ge=1)
    sync_concurrency: int = Field(1, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Builds Settings from environment variables.

        Raises:
            ConfigError: A required variable is missing or a value is malformed.
        """
        env = os.environ if environ is None else environ

        def required(key: str) -> str:
            value = env.get(key)
            if not value:
                raise ConfigError(f"{key} is required")
            return value

        def number(key: str, default, cast):
            raw = env.get(key)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError as e:
                raise ConfigError(f"{key} must be a number, got '{raw}'") from e

        level = env.get("LOG_LEVEL", "info").lower()
        if level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got '{level}'")

        values = dict(
            database_url=normalize_database_url(required("DATABASE_URL")),
            github_token=required("GITHUB_TOKEN"),
            ca_bundle=env.get("CA_BUNDLE") or None,
            host=env.get("HOST") or "127.0.0.1",
            port=number("PORT", 3000, int),
            log_level=LOG_LEVELS[level],
            log_dir=env.get("LOG_DIR") or None,
            github_timeout_seconds=number("GITHUB_TIMEOUT_SECONDS", 30.0, float),
            sync_weekday=number("SYNC_WEEKDAY", 6, int),
            sync_interval_days=number("SYNC_INTERVAL_DAYS", 14, int),
            sync_concurrency=number("SYNC_CONCURRENCY", 1, int),
        )
        try:
            return cls(**values)
        except ValueError as e:
            # pydantic's ValidationError is a ValueError
            raise ConfigError(f"Invalid configuration: {e}") from e
