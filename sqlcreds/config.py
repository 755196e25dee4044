"""Connection configuration models and loading helpers."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError

_DURATION_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)(?P<unit>ms|s|m|h)?$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_HANDLER: logging.StreamHandler | None = None


class SQLConfig(BaseModel):
    """Settings for the SQL connection used to manage accounts."""

    model_config = ConfigDict(extra="ignore")

    connection_url: str = Field(min_length=1, strict=True)
    username: str = Field(default="", strict=True)
    password: str = Field(default="", strict=True)
    max_open_connections: int = Field(default=4, ge=1, strict=True)
    max_idle_connections: int | None = Field(default=None, ge=0, strict=True)
    max_connection_lifetime: float = Field(default=0.0, ge=0)
    verify_connection: bool = Field(default=True, strict=True)

    @field_validator("max_connection_lifetime", mode="before")
    @classmethod
    def _parse_lifetime(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("expected a duration, not a boolean")
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @model_validator(mode="after")
    def _cap_idle_connections(self) -> SQLConfig:
        if self.max_idle_connections is None or self.max_idle_connections > self.max_open_connections:
            self.max_idle_connections = self.max_open_connections
        return self

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> SQLConfig:
        """Validate a generic settings mapping; unknown keys are ignored."""

        try:
            return cls.model_validate(dict(settings))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid connection settings: {exc}") from exc

    def has_root_credentials(self) -> bool:
        """Whether a username and password are available to rotate."""

        return bool(self.username) and bool(self.password)

    def with_password(self, password: str) -> SQLConfig:
        """Return a copy with the password replaced."""

        return self.model_copy(update={"password": password})

    def to_settings(self) -> dict[str, Any]:
        """Return the settings mapping handed back to the orchestrator."""

        return self.model_dump()


def parse_duration(value: str) -> float:
    """Parse ``"90"``, ``"30s"``, ``"5m"``, ``"1h"`` or ``"250ms"`` into seconds."""

    match = _DURATION_RE.match(value.strip())
    if match is None:
        raise ValueError(f"invalid duration '{value}'")
    unit = match.group("unit") or "s"
    return float(match.group("value")) * _DURATION_UNITS[unit]


def load_settings(path: str | Path) -> SQLConfig:
    """Load connection settings from a TOML file.

    Settings are read from a ``[connection]`` table when present, otherwise from
    the top level of the document.
    """

    try:
        with Path(path).open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Settings file '{path}' not found") from exc
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigurationError(f"Failed to read settings file '{path}': {exc}") from exc
    section = raw.get("connection", raw)
    if not isinstance(section, dict):
        raise ConfigurationError(f"Settings file '{path}' has no connection table")
    return SQLConfig.from_settings(section)


def configure_logging(level: int | str = logging.INFO) -> logging.Handler:
    """Attach a stream handler to the package logger and return it.

    Repeated calls reuse the same handler and only adjust the level.
    """

    global _HANDLER
    logger = logging.getLogger("sqlcreds")
    if _HANDLER is None:
        _HANDLER = logging.StreamHandler()
        _HANDLER.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    if _HANDLER not in logger.handlers:
        logger.addHandler(_HANDLER)
    logger.setLevel(level)
    return _HANDLER


__all__ = [
    "SQLConfig",
    "configure_logging",
    "load_settings",
    "parse_duration",
]
