"""Runtime configuration loaded from the environment.

Values come from process environment variables, with a `.env` file in the
repository root loaded first when present.

Usage:
    from core.config import load_settings

    settings = load_settings()
    registry = build_default_registry(settings)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from core.utils.retry import RetryOptions


ENV_PATH = Path(__file__).resolve().parent.parent / ".env"

FORTNOX_BASE_URL = "https://api.fortnox.se/3"
VISMA_BASE_URL = "https://eaccountingapi.vismaonline.com/v2"


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass
class Settings:
    """Settings shared by providers, storage and logging."""
    fortnox_base_url: str = FORTNOX_BASE_URL
    visma_base_url: str = VISMA_BASE_URL

    # Storage
    db_path: Optional[str] = None           # None = in-memory storage

    # Logging
    log_level: int = logging.INFO
    log_json: bool = False

    # HTTP behaviour
    http_timeout_seconds: int = 30
    retry: RetryOptions = field(default_factory=RetryOptions)
    page_size: int = 100


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    Args:
        env: Mapping to read from. Defaults to os.environ after loading .env.

    Returns:
        Settings instance

    Raises:
        ValueError: If a variable holds a value of the wrong type
    """
    if env is None:
        if ENV_PATH.exists():
            load_dotenv(ENV_PATH, override=False)
        env = os.environ

    level_name = env.get("SYNC_LOG_LEVEL", "INFO").upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        raise ValueError(f"SYNC_LOG_LEVEL must be a logging level name, got {level_name!r}")

    retry = RetryOptions(
        max_attempts=_get_int(env, "HTTP_MAX_ATTEMPTS", 3),
        initial_delay_ms=_get_int(env, "HTTP_INITIAL_DELAY_MS", 1000),
        max_delay_ms=_get_int(env, "HTTP_MAX_DELAY_MS", 30_000),
    )
    if retry.max_attempts < 1:
        raise ValueError("HTTP_MAX_ATTEMPTS must be at least 1")

    page_size = _get_int(env, "SYNC_PAGE_SIZE", 100)
    if page_size < 1:
        raise ValueError("SYNC_PAGE_SIZE must be at least 1")

    return Settings(
        fortnox_base_url=env.get("FORTNOX_BASE_URL") or FORTNOX_BASE_URL,
        visma_base_url=env.get("VISMA_BASE_URL") or VISMA_BASE_URL,
        db_path=env.get("SYNC_DB_PATH") or None,
        log_level=log_level,
        log_json=_get_bool(env, "SYNC_LOG_JSON", False),
        http_timeout_seconds=_get_int(env, "HTTP_TIMEOUT_SECONDS", 30),
        retry=retry,
        page_size=page_size,
    )
