# Overview: Row locking and retry helpers shared by every read-modify-write service.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for balance, stock and workflow mutations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Versioned rows (version_id_col) still raise StaleDataError on a lost update.
    """
    return query.with_for_update()


def lock_many_in_order(model, ids):
    """
    Lock several rows of one table in ascending id order.

    Two transfers touching the same pair of accounts always take the locks
    in the same order, so they cannot deadlock each other.
    """
    ordered = sorted(set(ids))
    rows = (
        lock_for_update(db.session.query(model).filter(model.id.in_(ordered)))
        .order_by(model.id.asc())
        .all()
    )
    return {row.id: row for row in rows}


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate immediately.
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
