"""Process configuration.

Settings come from the environment (and an optional .env file). Any field can
also be overridden at process start with ``KEY=value`` arguments, e.g.::

    shortcut-mcp-server SHORTCUT_READONLY=false SHORTCUT_TOOLS=stories,epics PORT=8080
"""
import logging
from functools import lru_cache
from typing import Optional, Sequence

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("shortcut-mcp.config")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(9292, alias="PORT")

    # Session lifecycle
    session_timeout_seconds: float = Field(30 * 60, alias="SESSION_TIMEOUT_SECONDS")
    sweep_interval_seconds: float = Field(60, alias="SWEEP_INTERVAL_SECONDS")

    # Shortcut upstream
    shortcut_api_base_url: str = Field(
        "https://api.app.shortcut.com/api/v3", alias="SHORTCUT_API_BASE_URL"
    )
    validation_timeout_seconds: float = Field(10.0, alias="VALIDATION_TIMEOUT_SECONDS")
    shortcut_readonly: bool = Field(True, alias="SHORTCUT_READONLY")
    # Raw comma-separated lists; parsed views are exposed as properties below.
    shortcut_tools_raw: str = Field("", alias="SHORTCUT_TOOLS")

    # Answer POSTs with a single JSON body instead of an SSE stream
    json_response: bool = Field(False, alias="MCP_JSON_RESPONSE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins_raw: str = Field("*", alias="CORS_ORIGINS")

    @field_validator("shortcut_readonly", mode="before")
    @classmethod
    def _parse_readonly(cls, value):
        # Read-only unless explicitly switched off
        if isinstance(value, str):
            return value.strip().lower() != "false"
        return value

    @property
    def shortcut_tools(self) -> list[str]:
        return parse_tools_list(self.shortcut_tools_raw)

    @property
    def cors_origins(self) -> list[str]:
        return parse_tools_list(self.cors_origins_raw)


def parse_tools_list(value: str) -> list[str]:
    """Split a comma-separated list, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_overrides(argv: Sequence[str]) -> dict[str, str]:
    """
    Parse ``KEY=value`` command line arguments into settings overrides.

    Arguments without ``=`` are ignored with a warning.
    """
    overrides: dict[str, str] = {}
    for arg in argv:
        name, sep, value = arg.partition("=")
        if not sep or not name:
            logger.warning(f"Ignoring malformed argument: {arg!r} (expected KEY=value)")
            continue
        overrides[name.strip().upper()] = value
    return overrides


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """Build settings from the environment plus any argv overrides."""
    overrides = parse_overrides(argv or [])
    return Settings(**overrides)


@lru_cache
def get_settings() -> Settings:
    return Settings()
