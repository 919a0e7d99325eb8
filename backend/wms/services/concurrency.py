# Overview: Transaction boundary for stock mutations; maps database failures onto the error taxonomy.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, InventoryError, StorageError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_atomic(func, *, action: str):
    """
    Execute one business transaction and commit it as a single unit.

    Unit updates, log appends and cache recalculation all happen inside
    `func`; nothing is visible to other sessions until the commit succeeds.
    No retries: every failure is terminal for the operation.

    - InventoryError raised by `func` rolls back and propagates unchanged.
    - StaleDataError (version_id mismatch) becomes ConflictError.
    - Any other SQLAlchemy failure becomes StorageError.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except InventoryError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError(
            f"{action}: record was modified by another session, reload and retry",
        ) from exc
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"{action}: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(f"{action}: failed to persist changes") from exc
