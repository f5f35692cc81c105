# Overview: Service-layer operations for concurrency; transaction boundaries and optimistic-lock retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Product/InventoryItem version counters still catch lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on optimistic-locking conflicts.

    Only StaleDataError is retried: the operation is re-run from scratch
    against fresh rows. OperationalError (lock timeouts, busy database) is
    left to the caller, which answers 503.
    """
    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Concurrent update detected, retrying (attempt %s of %s)", attempt + 2, attempts)
            time.sleep(backoff_base * (2 ** attempt))


def run_atomic(func, *, actor: str | None = None):
    """
    Run func(uow) as one DB transaction.

    Commits on success and rolls back on any exception, so a failed ledger
    operation leaves no partial effects. Conflicting concurrent writers are
    re-run per LEDGER_RETRY_ATTEMPTS.
    """
    from .unit_of_work import UnitOfWork

    def _op():
        uow = UnitOfWork(db.session, actor=actor)
        try:
            result = func(uow)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(
        _op,
        attempts=current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3),
        backoff_base=current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05),
    )
