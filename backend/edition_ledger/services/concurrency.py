# Overview: Retry and row-locking helpers shared by the reconciliation services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking to the rows a reconciliation pass will rewrite.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; Postgres serializes concurrent
    passes over the same product on these row locks.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (a concurrent writer bumped version_id first). The session is rolled back
    before each retry, so func must redo all of its work from a fresh read.
    Defaults come from RECONCILE_RETRY_ATTEMPTS / RECONCILE_RETRY_BACKOFF.
    """
    if attempts is None:
        attempts = current_app.config.get("RECONCILE_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("RECONCILE_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(max(attempts, 1)):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent write conflict (attempt %d/%d): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
