# Overview: Retry helpers for database writes and flaky remote calls.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def retry_linear(func, *, attempts: int, delay: float, retry_on: tuple, on_failure=None, sleep=time.sleep):
    """
    Call func up to `attempts` times, sleeping delay * n after the n-th failure.

    on_failure(attempt_number, exc) is called for every failed attempt. The
    last exception is re-raised once attempts are exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            if on_failure is not None:
                on_failure(attempt, exc)
            if attempt >= attempts:
                raise
            sleep(delay * attempt)
