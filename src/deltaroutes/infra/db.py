"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for a short READ COMMITTED transaction
- run_serializable(): Run a unit of work under SERIALIZABLE isolation,
  retrying on serialization failures
"""

import os
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extensions import (
    ISOLATION_LEVEL_SERIALIZABLE,
    connection as PgConnection,
    cursor as PgCursor,
)

from deltaroutes.observability.logging import get_logger
from deltaroutes.observability.redaction import safe_log_context

logger = get_logger(__name__)

T = TypeVar("T")

# Attempts for a serializable unit of work before surfacing a conflict.
SERIALIZABLE_MAX_ATTEMPTS = 3

# SQLSTATE codes that mean "retry the whole transaction".
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


class SerializationRetriesExhausted(Exception):
    """Raised when a serializable transaction kept conflicting."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"serializable transaction failed after {attempts} attempts")
        self.attempts = attempts


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        netloc = dsn.split("://", 1)[1].split("/", 1)[0]
        if "@" not in netloc:
            return False
        userinfo = netloc.rsplit("@", 1)[0]
        return ":" in userinfo and bool(userinfo.split(":", 1)[1])
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    DB_PASSWORD is passed separately when the DSN carries no password
    (secret-manager style deployments).

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=db_password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn() as cur:
            cur.execute("UPDATE reservations SET ... WHERE id = %s", (rid,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def is_serialization_failure(exc: BaseException) -> bool:
    """True if the error means the transaction lost a concurrency race."""
    if isinstance(exc, (pg_errors.SerializationFailure, pg_errors.DeadlockDetected)):
        return True
    return getattr(exc, "pgcode", None) in _RETRYABLE_SQLSTATES


def run_serializable(
    work: Callable[[PgCursor], T],
    *,
    max_attempts: int = SERIALIZABLE_MAX_ATTEMPTS,
    operation: str = "serializable",
) -> T:
    """Run ``work(cur)`` in a SERIALIZABLE transaction with bounded retries.

    The whole unit of work is re-executed on each attempt, so ``work`` must
    read everything it decides on through the cursor it receives.

    Raises:
        SerializationRetriesExhausted: If every attempt hit a serialization
            failure or deadlock.
    """
    for attempt in range(1, max_attempts + 1):
        conn = get_conn()
        try:
            conn.set_isolation_level(ISOLATION_LEVEL_SERIALIZABLE)
            with txn(conn) as cur:
                return work(cur)
        except psycopg2.Error as exc:
            if not is_serialization_failure(exc):
                raise
            logger.info(
                "serializable transaction conflict",
                extra={
                    "extra_fields": safe_log_context(
                        operation=operation,
                        attempt=attempt,
                        max_attempts=max_attempts,
                    )
                },
            )
        finally:
            conn.close()

    raise SerializationRetriesExhausted(max_attempts)
