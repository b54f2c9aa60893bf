"""Runtime configuration read from ``SQUARES_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_API_URL: Final[str] = "http://localhost:8080/api"
DEFAULT_RULESET: Final[str] = "standard"


def env_flag(name: str, *, default: bool = False) -> bool:
    """Return a boolean flag from environment variables.

    Common truthy values (``1``, ``true``, ``yes``, ``on``) map to ``True`` and
    common falsy ones (``0``, ``false``, ``no``, ``off``) to ``False``. Unset
    or unrecognised values fall back to ``default``.
    """
    value = os.getenv(name)
    if value is None:
        return default

    normalised = value.strip().lower()
    if normalised in {"1", "true", "yes", "on"}:
        return True
    if normalised in {"0", "false", "no", "off"}:
        return False
    return default


def env_float(name: str, *, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, value, default)
        return default


def env_int(name: str, *, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, value, default)
        return default


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    ruleset: str = DEFAULT_RULESET
    computer_delay: float = 0.5
    request_timeout: float = 10.0
    availability_retries: int = 3
    retry_delay: float = 1.0
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    reload: bool = False


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""
    return Settings(
        api_url=(os.getenv("SQUARES_API_URL") or DEFAULT_API_URL).rstrip("/"),
        ruleset=os.getenv("SQUARES_RULESET") or DEFAULT_RULESET,
        computer_delay=env_float("SQUARES_COMPUTER_DELAY", default=0.5),
        request_timeout=env_float("SQUARES_REQUEST_TIMEOUT", default=10.0),
        availability_retries=env_int("SQUARES_AVAILABILITY_RETRIES", default=3),
        retry_delay=env_float("SQUARES_RETRY_DELAY", default=1.0),
        host=os.getenv("SQUARES_HOST", "0.0.0.0"),
        port=env_int("SQUARES_PORT", default=8000),
        log_level=(os.getenv("SQUARES_LOG_LEVEL") or "INFO").upper(),
        reload=env_flag("SQUARES_RELOAD"),
    )


__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_RULESET",
    "Settings",
    "env_flag",
    "env_float",
    "env_int",
    "load_settings",
]
