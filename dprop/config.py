"""
dprop configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Client settings from environment variables."""

    # Paging
    PAGE_SIZE: int = int(os.environ.get("DPROP_PAGE_SIZE", "12"))

    # Record store gateway (HttpRecordStore)
    STORE_URL: str = os.environ.get("DPROP_STORE_URL", "http://localhost:8765")
    STORE_TOKEN: str = os.environ.get("DPROP_STORE_TOKEN", "")
    STORE_TIMEOUT: float = float(os.environ.get("DPROP_STORE_TIMEOUT", "30"))

    # Live subscription recovery
    RESUBSCRIBE: bool = _env_bool("DPROP_RESUBSCRIBE", "true")
    RESUBSCRIBE_MAX_ATTEMPTS: int = int(os.environ.get("DPROP_RESUBSCRIBE_MAX_ATTEMPTS", "3"))
    RESUBSCRIBE_DELAY: float = float(os.environ.get("DPROP_RESUBSCRIBE_DELAY", "1.0"))

    # Application
    ENVIRONMENT: str = os.environ.get("DPROP_ENVIRONMENT", "development")


# Singleton instance
settings = Settings()

if settings.PAGE_SIZE < 1:
    raise RuntimeError("DPROP_PAGE_SIZE must be a positive integer")
if settings.RESUBSCRIBE_MAX_ATTEMPTS < 0:
    raise RuntimeError("DPROP_RESUBSCRIBE_MAX_ATTEMPTS must not be negative")
