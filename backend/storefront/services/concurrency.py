# Overview: Service-layer transaction, locking and retry helpers shared by every write operation.

"""
Transaction boundary and lock discipline.

Every order-core write runs inside exactly one database transaction opened
by `run_in_transaction`. The body either returns and is committed, or raises
and is rolled back in full. No caller ever sees a partial order, refund, or
stock change.

LOCK HIERARCHY (acquire in this order, never the reverse):
1. Order row (cancellation, partial cancellation, returns, fulfillment)
2. Product rows, one at a time in ascending product id
3. User row
4. UserCoupon row

Two transactions that follow the same order can wait on each other but can
never form a cycle. Waiting is bounded by LOCK_TIMEOUT_MS; an expired wait
surfaces as LockTimeoutError, the only error `run_with_retry` retries.

SQLite has no row locks: `BEGIN IMMEDIATE` takes the database write lock up
front, which serializes writers and makes the row locks below no-ops.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import LockTimeoutError


_LOCK_ERROR_MARKERS = (
    "database is locked",
    "lock timeout",
    "could not obtain lock",
    "deadlock detected",
)
_LOCK_SQLSTATES = {"55P03", "40P01", "40001"}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() makes the locked read overwrite any copy already in
    the identity map, so callers always work on the row as of the lock.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update().populate_existing()


def is_lock_error(exc: Exception) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _LOCK_SQLSTATES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _LOCK_ERROR_MARKERS)


def _begin_write_transaction() -> None:
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        raw = db.session.connection().connection.driver_connection
        # Already writing (caller flushed before us): the write lock is held.
        if not getattr(raw, "in_transaction", False):
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config.get("LOCK_TIMEOUT_MS", 3000))
        db.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


def run_in_transaction(func):
    """
    Run `func` as one write transaction and commit it.

    Any exception rolls the whole transaction back before it propagates.
    Driver lock-wait failures are re-raised as LockTimeoutError.
    """
    try:
        _begin_write_transaction()
        result = func()
        db.session.commit()
        return result
    except OperationalError as exc:
        db.session.rollback()
        if is_lock_error(exc):
            raise LockTimeoutError(
                "Timed out waiting for a lock; retry the request",
                {"lock_timeout_ms": current_app.config.get("LOCK_TIMEOUT_MS")},
            ) from exc
        raise
    except StaleDataError as exc:
        db.session.rollback()
        raise LockTimeoutError("Concurrent update detected; retry the request") from exc
    except BaseException:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a transactional operation, retrying only on LockTimeoutError.

    Every other error is permanent for the given input and propagates at once.
    """
    if attempts is None:
        attempts = int(current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3))
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return run_in_transaction(func)
        except LockTimeoutError:
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Lock timeout on attempt %s/%s; retrying", attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
