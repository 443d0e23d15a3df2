# Overview: Row locking and bounded retry for the commit unit of work.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Use begin_write_transaction() to serialize writers on SQLite.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the database write lock up front on SQLite.

    BEGIN IMMEDIATE acquires the RESERVED lock before the stock re-read, so two
    committers can never both read the same stock and then write. Other
    engines rely on lock_for_update() row locks instead.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, timeouts) and StaleDataError
    (optimistic locking conflicts) by default. The session is rolled back
    before every retry and before the final error propagates.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
