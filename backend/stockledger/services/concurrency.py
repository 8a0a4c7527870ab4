# Overview: Row locking, retry, and unit-of-work helpers shared by the reconcilers.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionFailure
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Products and variants also carry a version_id column, so a lost race still
    surfaces as StaleDataError on flush.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before each
    retry so the operation re-reads current quantities.
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


def run_in_transaction(op, *, attempts: int | None = None):
    """
    Run op() as one unit of work: stock, log, and ledger writes commit together.

    - Success: commit and return op()'s result.
    - Any exception: roll back everything op() staged, then propagate.
    - Store failures still present after retries surface as TransactionFailure.
    """
    if attempts is None:
        attempts = int(current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3))

    def _op():
        try:
            result = op()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_op, attempts=attempts)
    except SQLAlchemyError as exc:
        raise TransactionFailure(str(exc)) from exc
