# Overview: Transaction boundary for every state-changing engine operation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the whole write
    transaction is serialized by BEGIN IMMEDIATE instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """Open the write transaction up front so concurrent writers queue instead of interleaving."""
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, ConflictError):
        return exc.retryable
    return isinstance(exc, (OperationalError, StaleDataError))


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute func as one atomic unit: commit on success, roll back on any error.

    Retries on OperationalError (locks, deadlocks), StaleDataError
    (optimistic locking conflicts) and retryable ConflictError. Validation,
    not-found and invalid-state errors are raised immediately. Exhausting
    the attempts surfaces a ConflictError asking the caller to resubmit.

    func must re-read everything it needs; it may run more than once.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            begin_write()
            result = func()
            db.session.commit()
            return result
        except Exception as exc:
            db.session.rollback()
            if not _is_retryable(exc):
                raise
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Transaction gave up after %s attempts: %s", attempts, exc
                )
                if isinstance(exc, ConflictError):
                    raise
                raise ConflictError(
                    "Concurrent update collided; please resubmit",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.info("Retrying transaction (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
