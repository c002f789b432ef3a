"""
Optimistic read-modify-write envelope around a SQLAlchemy session.

``run_in_transaction`` hands a fresh session to ``work``, commits, and on a
write conflict rolls back and re-runs ``work`` from a fresh read. Conflicts
are detected by the database: versioned UPDATEs that match no row
(``StaleDataError``) and concurrent inserts of the same key
(``IntegrityError``).
"""
import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_random_exponential,
)

from mockexam.core.errors import DeadlineExceeded, Internal

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_PGCODES = {"40001", "40P01"}
# SQLite writer contention once the busy timeout runs out
_RETRYABLE_SQLITE_MESSAGES = ("database is locked",)


class TransactionConflict(Exception):
    """Another transaction committed a conflicting write first."""


def _is_conflict(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, (StaleDataError, IntegrityError)):
        return True
    if isinstance(exc, OperationalError):
        if getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES:
            return True
        return any(m in str(exc.orig) for m in _RETRYABLE_SQLITE_MESSAGES)
    return False


def _run_once(session_factory: sessionmaker, work: Callable[[Session], T], started: float, deadline: Optional[float]) -> T:
    db = session_factory()
    try:
        result = work(db)
        if deadline is not None and time.monotonic() - started >= deadline:
            raise DeadlineExceeded(f"transaction exceeded its {deadline:g}s deadline before commit")
        db.commit()
        return result
    except SQLAlchemyError as exc:
        db.rollback()
        if _is_conflict(exc):
            raise TransactionConflict(str(exc)) from exc
        logger.error("Storage failure inside transaction: %s", exc)
        raise Internal("storage failure") from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def run_in_transaction(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    *,
    max_attempts: int = 5,
    deadline: Optional[float] = None,
    backoff: float = 0.05,
    max_backoff: float = 1.0,
) -> T:
    """Run ``work(session)`` atomically, retrying on write conflicts.

    Domain errors raised by ``work`` propagate unchanged and end the call.
    Once ``max_attempts`` tries are used up ``Internal`` is raised; once the
    ``deadline`` budget (seconds) is spent ``DeadlineExceeded`` is raised.
    Nothing from a failed try is committed.
    """
    stop = stop_after_attempt(max_attempts)
    if deadline is not None:
        stop = stop | stop_after_delay(deadline)
    retrying = Retrying(
        stop=stop,
        wait=wait_random_exponential(multiplier=backoff, max=max_backoff),
        retry=retry_if_exception_type(TransactionConflict),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=False,
    )
    started = time.monotonic()
    try:
        return retrying(_run_once, session_factory, work, started, deadline)
    except RetryError as exc:
        attempts = exc.last_attempt.attempt_number
        if deadline is not None and time.monotonic() - started >= deadline:
            logger.error("Transaction ran out of its %gs deadline after %d conflicting attempts", deadline, attempts)
            raise DeadlineExceeded(f"transaction exceeded its {deadline:g}s deadline after {attempts} conflicting attempts") from exc.last_attempt.exception()
        logger.error("Transaction aborted after %d conflicting attempts", attempts)
        raise Internal(f"transaction aborted after {attempts} conflicting attempts") from exc.last_attempt.exception()


def run_read(session_factory: sessionmaker, work: Callable[[Session], T]) -> T:
    """Run a read-only ``work(session)``; storage failures surface as ``Internal``."""
    with session_factory() as db:
        try:
            return work(db)
        except SQLAlchemyError as exc:
            logger.error("Storage failure during read: %s", exc)
            raise Internal("storage failure") from exc
