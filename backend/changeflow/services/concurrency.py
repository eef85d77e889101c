# Overview: Unit-of-work helpers: row locking and bounded retry with full rollback.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StoreError
from ..extensions import db


class SequenceContention(Exception):
    """Two writers tried to create the same counter row; retry the unit of work."""


RETRYABLE_ERRORS = (OperationalError, StaleDataError, SequenceContention)

MAX_BACKOFF_SECONDS = 2.0


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (its writers are serialized
    by the database lock instead), but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one unit of work (which commits itself) with retry on
    concurrency-related failures.

    Every failure rolls the session back before anything propagates, so a
    caller never observes a half-applied operation. Retryable failures
    (deadlocks, lock timeouts, optimistic locking conflicts, counter-row
    insert races) re-run the whole unit; once attempts are exhausted they
    surface as StoreError. Other database failures become StoreError
    immediately; domain errors propagate unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("CHANGEFLOW_RETRY_ATTEMPTS", 2)
    if backoff_base is None:
        backoff_base = current_app.config.get("CHANGEFLOW_RETRY_BACKOFF", 0.1)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "Unit of work failed after %d attempt(s): %s", attempts, exc
                )
                raise StoreError(
                    "The change store is busy; no changes were saved. Retry the request."
                ) from exc
            current_app.logger.warning(
                "Transient store failure (attempt %d/%d), retrying: %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(min(backoff_base * (2 ** attempt), MAX_BACKOFF_SECONDS))
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Unit of work failed in the store")
            raise StoreError("The change store rejected the transaction; no changes were saved.") from exc
        except Exception:
            db.session.rollback()
            raise
