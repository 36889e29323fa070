"""Service configuration management for the echo server."""

import json
import logging
import os
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode

logger = logging.getLogger(__name__)

DEFAULT_PROTECTED_PREFIX = "/api/v1"
UNPROTECTED_PATHS = ("/health", "/metrics")

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}
_LOG_LEVELS = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "WARN": "WARNING",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
}


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


def parse_list_value(raw_value: Any) -> List[str]:
    """Parse a list setting from a JSON array or a comma-separated string.

    Items are trimmed and blank items are dropped.
    """
    if raw_value is None:
        return []

    values: Optional[List[Any]] = None
    if isinstance(raw_value, (list, tuple, set, frozenset)):
        values = list(raw_value)
    else:
        text = str(raw_value).strip()
        try:
            parsed = json.loads(text)
            if isinstance(parsed, list):
                values = parsed
        except json.JSONDecodeError:
            values = None
        if values is None:
            values = text.split(",")

    return [str(item).strip() for item in values if str(item).strip()]


class Config(BaseSettings):
    """Echo server configuration, read from environment variables."""

    model_config = {"env_prefix": "", "case_sensitive": False, "extra": "ignore"}

    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=8080, ge=0, le=65535, description="Listen port, 0 for ephemeral")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Log output format")
    auth_enabled: bool = Field(default=False, description="Require API keys on protected paths")
    api_keys: Annotated[List[str], NoDecode] = Field(
        default_factory=list, description="Valid API keys"
    )
    protected_prefixes: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [DEFAULT_PROTECTED_PREFIX],
        description="Path prefixes that require an API key when auth is enabled",
    )
    shutdown_timeout: float = Field(default=10.0, gt=0, description="Graceful shutdown drain deadline")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        """Normalize log level to an uppercase logging name, defaulting to INFO."""
        level = _LOG_LEVELS.get(str(v).strip().upper())
        if level is None:
            logger.warning(f"Unknown log level: {v}, defaulting to INFO")
            return "INFO"
        return level

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("auth_enabled", mode="before")
    @classmethod
    def parse_auth_enabled(cls, v: Any) -> bool:
        """Accept the usual boolean spellings; anything else means disabled."""
        if isinstance(v, bool):
            return v
        value = str(v).strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        logger.warning(f"Unrecognized AUTH_ENABLED value {v!r}, keeping auth disabled")
        return False

    @field_validator("api_keys", "protected_prefixes", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> List[str]:
        return parse_list_value(v)

    @model_validator(mode="after")
    def check_unprotected_paths(self) -> "Config":
        """Health and metrics must stay reachable without a key."""
        for prefix in self.protected_prefixes:
            covered = [path for path in UNPROTECTED_PATHS if path.startswith(prefix)]
            if covered:
                raise ValueError(
                    f"protected prefix {prefix!r} would cover {', '.join(covered)}"
                )
        return self

    def effective_protected_prefixes(self) -> List[str]:
        """Prefixes the auth gate enforces; empty when auth is disabled."""
        return list(self.protected_prefixes) if self.auth_enabled else []


def load_config(**cli_overrides: Any) -> Config:
    """Load configuration from the environment, then apply command line values.

    Environment variables win: a command line value only applies when the
    matching environment variable is unset. ``None`` values are ignored.

    Args:
        **cli_overrides: Field values supplied on the command line

    Returns:
        Loaded configuration instance
    """
    config = Config()
    env_names = {name.upper() for name in os.environ}

    updates = {}
    for name, value in cli_overrides.items():
        if value is None:
            continue
        if name not in Config.model_fields:
            raise ValueError(f"Unknown configuration field: {name}")
        env_name = name.upper()
        if env_name in env_names:
            logger.debug(f"Ignoring command line {name}, {env_name} is set in the environment")
            continue
        updates[name] = value

    if not updates:
        return config

    values = config.model_dump()
    values.update(updates)
    return Config(**values)
