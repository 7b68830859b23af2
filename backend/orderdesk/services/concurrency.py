# Overview: Retry and locking helpers for operations that race on shared rows.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Conflict, OrderDeskError, StorageError
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
    (optimistic locking conflicts). Once attempts are exhausted the failure
    surfaces as StorageError or Conflict respectively. Domain errors roll the
    session back and propagate unchanged, so nothing from a rejected
    operation is left pending.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OrderDeskError:
            db.session.rollback()
            raise
        except StaleDataError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise Conflict("Record was modified by another request; reload and retry") from exc
        except OperationalError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageError("Storage is unavailable", details={"reason": str(exc.orig)}) from exc
        time.sleep(backoff_base * (2 ** attempt))

