# Overview: Unit-of-work boundary and row locking shared by the fulfillment services.

from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError, DependencyFailureError, OperationCancelledError
from ..extensions import db

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version columns and unique indexes cover SQLite.
    """
    return query.with_for_update()


def run_unit_of_work(
    func: Callable[[], T],
    *,
    is_cancelled: Callable[[], bool] | None = None,
) -> T:
    """
    Execute func and commit its writes as a single transaction.

    - Any error before commit rolls the session back; nothing is persisted.
    - Optimistic locking failures (StaleDataError) and unique-index races
      (IntegrityError) become ConcurrencyConflictError. No retry here; the
      caller decides whether to try again.
    - Driver/connection failures become DependencyFailureError.
    - is_cancelled is checked right before commit.
    """
    try:
        result = func()
        if is_cancelled is not None and is_cancelled():
            raise OperationCancelledError("Operation cancelled before commit; nothing was saved")
        db.session.commit()
        return result
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflictError(
            "The record was modified by another operation; reload and retry"
        ) from exc
    except IntegrityError as exc:
        db.session.rollback()
        raise ConcurrencyConflictError(
            "A concurrent change violated a uniqueness rule; reload and retry"
        ) from exc
    except DBAPIError as exc:
        db.session.rollback()
        raise DependencyFailureError("Database unavailable") from exc
    except Exception:
        db.session.rollback()
        raise
