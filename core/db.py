# core/db.py
"""
Transaction and error-mapping helpers for hand-written database writes.

Every multi-statement write goes through ``atomic_write`` so that all
statements commit or all roll back, and driver errors come out as the
tracker error taxonomy instead of backend-specific exceptions.
"""
from contextlib import contextmanager
import logging

from django.db import DatabaseError, IntegrityError, OperationalError, transaction

from .exceptions import BackendUnavailableError, DuplicateEntityError, TransactionError

logger = logging.getLogger("tracker.db")

# sqlite, Postgres and SQL Server (2627 / 2601) spellings of a unique-key violation
UNIQUE_VIOLATION_MARKERS = (
    "unique constraint",
    "duplicate key",
    "violation of unique key",
    "cannot insert duplicate key",
    "2627",
    "2601",
)


def is_unique_violation(exc) -> bool:
    """Tell a unique-key violation apart from every other integrity failure."""
    cause = getattr(exc, "__cause__", None)
    if getattr(cause, "pgcode", None) == "23505" or getattr(cause, "sqlstate", None) == "23505":
        return True
    message = str(exc).lower()
    return any(marker in message for marker in UNIQUE_VIOLATION_MARKERS)


@contextmanager
def atomic_write(using="default", entity=None, operation=None):
    """
    Run the enclosed statements in one transaction.

    Unique violations -> DuplicateEntityError (conflict), connectivity
    problems -> BackendUnavailableError, anything else the database
    rejects -> TransactionError. The transaction is rolled back in all cases.
    """
    try:
        with transaction.atomic(using=using):
            yield
    except IntegrityError as exc:
        if is_unique_violation(exc):
            logger.info(f"Unique violation on {entity or 'record'} during {operation}: {exc}")
            raise DuplicateEntityError(entity=entity, operation=operation) from exc
        logger.warning(f"Integrity failure on {entity or 'record'} during {operation}: {exc}")
        raise TransactionError(entity=entity, operation=operation) from exc
    except OperationalError as exc:
        logger.error(f"Database unavailable during {operation}: {exc}")
        raise BackendUnavailableError(entity=entity, operation=operation) from exc
    except DatabaseError as exc:
        logger.warning(f"Transaction aborted during {operation}: {exc}")
        raise TransactionError(entity=entity, operation=operation) from exc


@contextmanager
def database_errors(entity=None, operation=None):
    """Error mapping for single read statements (no transaction needed)."""
    try:
        yield
    except OperationalError as exc:
        logger.error(f"Database unavailable during {operation}: {exc}")
        raise BackendUnavailableError(entity=entity, operation=operation) from exc
    except DatabaseError as exc:
        logger.warning(f"Query failed during {operation}: {exc}")
        raise TransactionError(entity=entity, operation=operation) from exc


def dictfetchall(cursor):
    """Return all rows from a cursor as a list of dicts."""
    columns = [col[0] for col in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]
