from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import IO

from dotenv import load_dotenv

from .config import ClientConfig
from .constants import DEFAULT_HOST, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT, LOGGER

# Syslog-style names (notice, alert, emergency) map onto the stdlib levels.
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

REQUIRED_ENV = ("BOX_CLIENT_ID", "BOX_CLIENT_SECRET", "BOX_PORT")


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env(path: str | Path | None = None) -> None:
    env_path = Path(path) if path else Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


def config_from_env() -> ClientConfig:
    validate_env()
    return ClientConfig(
        client_id=os.getenv("BOX_CLIENT_ID", "").strip(),
        client_secret=os.getenv("BOX_CLIENT_SECRET", "").strip(),
        port=_get_env_int("BOX_PORT", 0),
        host=os.getenv("BOX_HOST", DEFAULT_HOST).strip() or DEFAULT_HOST,
        refresh_token=os.getenv("BOX_REFRESH_TOKEN", "").strip() or None,
        account_id=os.getenv("BOX_ACCOUNT_ID", "").strip() or None,
        log_level=os.getenv("BOX_LOG_LEVEL", "info").strip() or "info",
        timeout=_get_env_float("BOX_TIMEOUT", DEFAULT_TIMEOUT),
        max_retries=_get_env_int("BOX_MAX_RETRIES", DEFAULT_MAX_RETRIES),
    )


def resolve_log_level(level: str | int | None) -> int:
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    try:
        return LOG_LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None


def setup_logging(level: str | int | None = None, stream: IO[str] | None = None) -> int:
    resolved = resolve_log_level(level)
    if stream is None:
        logging.basicConfig(level=resolved)
    else:
        if not any(getattr(h, "stream", None) is stream for h in LOGGER.handlers):
            handler = logging.StreamHandler(stream)
            handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
            LOGGER.addHandler(handler)
    LOGGER.setLevel(resolved)
    return resolved
