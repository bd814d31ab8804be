# backend/storefront/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on waiting for a row lock before failing with LOCK_TIMEOUT
    LOCK_TIMEOUT_MS = _int_env("LOCK_TIMEOUT_MS", 3000)
    TRANSACTION_RETRY_ATTEMPTS = _int_env("TRANSACTION_RETRY_ATTEMPTS", 3)

    # Order policy (amounts are whole won)
    SHIPPING_FEE_BASE = _int_env("SHIPPING_FEE_BASE", 3000)
    RETURN_WINDOW_DAYS = _int_env("RETURN_WINDOW_DAYS", 14)

    TIER_RECALC_CHUNK_SIZE = _int_env("TIER_RECALC_CHUNK_SIZE", 1000)


def engine_options_for(uri: str, lock_timeout_ms: int) -> dict:
    """
    Driver options derived from the lock-wait budget.

    SQLite has no row locks; writers serialize on the database lock and the
    busy timeout is the closest equivalent of a lock-wait timeout.
    """
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": lock_timeout_ms / 1000.0}}
    return {}
