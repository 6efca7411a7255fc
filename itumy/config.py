"""Itumy configuration management.

Configuration sources (in priority order):
1. Config file (config.yaml), for the keys it sets
2. Environment variables (ITUMY_ prefix, ``__`` for nesting)
3. Defaults
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # Any SQLAlchemy async URL, e.g. mysql+asyncmy:// or postgresql+asyncpg://
    url: str = "sqlite+aiosqlite:///./itumy.db"
    echo: bool = False


class ApiKeyConfig(BaseModel):
    """API key format and lifetime."""

    prefix: str = "sk-itumy-v1-api_"

    # Unused for this many days -> out of date
    inactivity_days: int = 30


class SecurityConfig(BaseModel):
    """Admin session and password hashing configuration."""

    # Signs session cookies. Must be supplied in production; when unset an
    # ephemeral secret is generated at startup.
    session_secret: str | None = None
    session_cookie_name: str = "itumy_session"
    session_ttl_hours: int = 24
    cookie_secure: bool = False
    bcrypt_rounds: int = 10


class SweeperTaskConfig(BaseModel):
    """Sweeper task-specific configuration."""

    enabled: bool = True


class SweeperConfig(BaseModel):
    """Background sweeper configuration."""

    enabled: bool = True
    run_on_startup: bool = False
    interval_seconds: float = 3600  # 1 hour

    out_of_date_keys: SweeperTaskConfig = Field(default_factory=SweeperTaskConfig)
    expired_sessions: SweeperTaskConfig = Field(default_factory=SweeperTaskConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = True


class Settings(BaseSettings):
    """Itumy application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ITUMY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api_key: ApiKeyConfig = Field(default_factory=ApiKeyConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    sweeper: SweeperConfig = Field(default_factory=SweeperConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. ITUMY_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/itumy/config.yaml
    """
    import os

    config_paths = [
        os.environ.get("ITUMY_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/itumy/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    YAML values are passed as init arguments, so they win over environment
    variables for the keys they set. Everything else comes from the
    environment or the defaults.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
