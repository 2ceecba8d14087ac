# fanconnect/config.py
"""
Central place for runtime settings.

Everything is read from the environment once at import time. main.py loads
.env (python-dotenv) before anything imports this module.
"""

from __future__ import annotations

import os


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in ("1", "true", "yes", "on")


def _int_env(name: str, default: int) -> int:
    try:
        return int((os.getenv(name) or "").strip() or default)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float((os.getenv(name) or "").strip() or default)
    except ValueError:
        return default


# -------------------------------------------------
# Entity store
# -------------------------------------------------
# Empty string => store not configured (reads fail closed, writes raise).
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./fanconnect.db").strip()
DB_CONNECT_TIMEOUT: int = _int_env("DB_CONNECT_TIMEOUT", 5)
DB_POOL_TIMEOUT: int = _int_env("DB_POOL_TIMEOUT", 10)
DB_ECHO: bool = _truthy(os.getenv("DB_ECHO"))

# -------------------------------------------------
# Identity provider (JWT issued by the external auth service)
# -------------------------------------------------
IDENTITY_JWT_SECRET: str = os.getenv("IDENTITY_JWT_SECRET", "CHANGE_ME_TO_THE_PROVIDER_JWT_SECRET")
IDENTITY_JWT_ALGORITHM: str = os.getenv("IDENTITY_JWT_ALGORITHM", "HS256")
IDENTITY_JWT_AUDIENCE: str | None = (os.getenv("IDENTITY_JWT_AUDIENCE") or "").strip() or None

# Session propagation after login/signup is eventually consistent.
SESSION_POLL_ATTEMPTS: int = _int_env("SESSION_POLL_ATTEMPTS", 15)
SESSION_POLL_DELAY_SECONDS: float = _float_env("SESSION_POLL_DELAY_SECONDS", 0.2)

# -------------------------------------------------
# Business rules
# -------------------------------------------------
TIER_LEVELS: tuple[int, ...] = (1, 2, 3)
TOP_TIER: int = max(TIER_LEVELS)
GATING_LEVELS: tuple[int, ...] = (0, *TIER_LEVELS)

SUBSCRIPTION_DAYS: int = _int_env("SUBSCRIPTION_DAYS", 30)
MESSAGE_MAX_LENGTH: int = _int_env("MESSAGE_MAX_LENGTH", 5000)
FEED_MESSAGE_MAX_LENGTH: int = _int_env("FEED_MESSAGE_MAX_LENGTH", 2000)
CONVERSATION_PAGE_SIZE: int = _int_env("CONVERSATION_PAGE_SIZE", 50)

# Tier pricing bounds (minor currency units)
TIER_PRICE_FLOOR: int = _int_env("TIER_PRICE_FLOOR", 50_000)
TIER_TOP_PRICE_CEILING: int = _int_env("TIER_TOP_PRICE_CEILING", 2_500_000)

# -------------------------------------------------
# Refresh intervals (seconds)
# -------------------------------------------------
POLL_MESSAGES_SECONDS: float = _float_env("POLL_MESSAGES_SECONDS", 5)
POLL_CONVERSATIONS_SECONDS: float = _float_env("POLL_CONVERSATIONS_SECONDS", 10)
POLL_UNREAD_SECONDS: float = _float_env("POLL_UNREAD_SECONDS", 30)
# Message polls re-read this far behind their cursor; must exceed the longest
# gap between stamping created_at and committing.
POLL_OVERLAP_SECONDS: float = _float_env("POLL_OVERLAP_SECONDS", 60)
POLL_WINDOW_LIMIT: int = _int_env("POLL_WINDOW_LIMIT", 500)

LOG_LEVEL: str = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
