"""Core configuration and infrastructure helpers."""

from .config import (
    ALLOWED_CORS_ORIGINS,
    BACKEND_URL,
    COOKIE_DOMAIN,
    COOKIE_SAMESITE,
    COOKIE_SECURE,
    DB_RESET,
    FRONTEND_ORIGIN,
    FRONTEND_ORIGINS,
    LOG_LEVEL,
    SANDBOX_TIMEOUT_SECONDS,
    SECRET_KEY,
    STATIC_DIR,
)
from .database import engine, get_session
from .logs import configure_logging
from .time import epoch_seconds, isoformat, utcnow

__all__ = [
    "ALLOWED_CORS_ORIGINS",
    "BACKEND_URL",
    "COOKIE_DOMAIN",
    "COOKIE_SAMESITE",
    "COOKIE_SECURE",
    "DB_RESET",
    "FRONTEND_ORIGIN",
    "FRONTEND_ORIGINS",
    "LOG_LEVEL",
    "SANDBOX_TIMEOUT_SECONDS",
    "SECRET_KEY",
    "STATIC_DIR",
    "configure_logging",
    "engine",
    "epoch_seconds",
    "get_session",
    "isoformat",
    "utcnow",
]
