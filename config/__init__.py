"""
Configuration loader module.

Provides centralized access to process settings. Credentials for the external
services are read from the environment (or a .env file) once and treated as
opaque capability tokens: the only check made is whether they are present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from constants import (
    D_ID_DEFAULT_SOURCE_URL,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    ELEVENLABS_DEFAULT_VOICE_ID,
)
from exceptions import ConfigurationError


@dataclass(frozen=True)
class Settings:
    """Process settings resolved from the environment."""

    google_api_key: str | None = None
    elevenlabs_api_key: str | None = None
    d_id_api_key: str | None = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_SERVER_PORT
    elevenlabs_voice_id: str = ELEVENLABS_DEFAULT_VOICE_ID
    d_id_source_url: str = D_ID_DEFAULT_SOURCE_URL


# Cache for loaded settings
_settings: Settings | None = None


def _env(name: str) -> str | None:
    """Read an environment variable, treating blank values as unset."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_settings() -> Settings:
    """
    Build a Settings object from the current environment.

    Raises:
        ConfigurationError: If PORT is not an integer
    """
    load_dotenv()

    port_value = _env("PORT")
    try:
        port = int(port_value) if port_value else DEFAULT_SERVER_PORT
    except ValueError as e:
        raise ConfigurationError(f"PORT must be an integer, got {port_value!r}") from e

    return Settings(
        google_api_key=_env("GOOGLE_API_KEY"),
        elevenlabs_api_key=_env("ELEVENLABS_API_KEY"),
        d_id_api_key=_env("D_ID_API_KEY"),
        gemini_model=_env("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        host=_env("HOST") or DEFAULT_SERVER_HOST,
        port=port,
        elevenlabs_voice_id=_env("ELEVENLABS_VOICE_DEFAULT") or ELEVENLABS_DEFAULT_VOICE_ID,
        d_id_source_url=_env("D_ID_SOURCE_URL_DEFAULT") or D_ID_DEFAULT_SOURCE_URL,
    )


def get_settings() -> Settings:
    """
    Return process settings.

    Returns cached version after first load.
    """
    global _settings

    if _settings is None:
        _settings = load_settings()

    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None


# Export commonly used items
__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
]
