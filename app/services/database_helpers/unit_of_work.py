# /app/services/database_helpers/unit_of_work.py

"""
The transaction boundary every multi-row state change runs through.

`run_in_transaction` executes a unit-of-work callback inside a single
database transaction. Either every write in the callback commits, or none
does. Store failures are mapped onto the closed `ErrorKind` enum by
`classify_store_error`; only TRANSIENT failures are retried, and each retry
runs the whole callback again from a fresh read of the data, after a short
jittered back-off.

Business errors raised on purpose inside the callback (`AppError`
subclasses) abort at once and reach the caller unchanged.
"""

from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, NoResultFound
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_random_exponential

from app.core.config import settings
from app.core.exceptions import AppError, ConflictError, ErrorKind, NotFoundError, TransientStoreError
from app.core.logging_config import get_logger

logger = get_logger("unit_of_work")

T = TypeVar("T")

# PostgreSQL: serialization_failure, deadlock_detected.
_PG_TRANSIENT_CODES = {"40001", "40P01"}
# SQLite primary result codes: SQLITE_BUSY, SQLITE_LOCKED.
_SQLITE_TRANSIENT_CODES = {5, 6}


def classify_store_error(exc: BaseException) -> ErrorKind:
    """Maps an exception from the store adapter (or the callback) to an ErrorKind."""
    if isinstance(exc, AppError):
        return exc.kind
    if isinstance(exc, StaleDataError):
        # Optimistic version check failed: another transaction won the race.
        return ErrorKind.TRANSIENT
    if isinstance(exc, NoResultFound):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            # The commit outcome is unknown; the callback is safe to re-run.
            return ErrorKind.TRANSIENT
        orig = exc.orig
        sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if sqlstate in _PG_TRANSIENT_CODES:
            return ErrorKind.TRANSIENT
        sqlite_code = getattr(orig, "sqlite_errorcode", None)
        if sqlite_code is not None and (sqlite_code & 0xFF) in _SQLITE_TRANSIENT_CODES:
            return ErrorKind.TRANSIENT
        if isinstance(exc, IntegrityError):
            return ErrorKind.CONFLICT
    return ErrorKind.UNKNOWN


def _is_retryable(exc: BaseException) -> bool:
    # Business errors abort at once even when their kind is TRANSIENT.
    return not isinstance(exc, AppError) and classify_store_error(exc) is ErrorKind.TRANSIENT


def _log_retry(name: str, attempts: int):
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            "Transient store failure in '%s' (attempt %d/%d): %s. Retrying.",
            name, retry_state.attempt_number, attempts, exc.__class__.__name__,
        )
    return before_sleep


def _attempt(session: Session, work: Callable[[Session], T]) -> T:
    if session.in_transaction():
        session.rollback()
    # Every attempt must re-read rows, never trust the identity map.
    session.expire_all()
    with session.begin():
        return work(session)


def run_in_transaction(
    session: Session,
    work: Callable[[Session], T],
    max_attempts: Optional[int] = None,
    label: Optional[str] = None,
) -> T:
    """
    Runs `work(session)` atomically and returns its result.

    The session must not carry uncommitted writes from outside the callback;
    any implicit read transaction is rolled back before the first attempt.
    """
    attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS
    name = label or getattr(work, "__name__", "unit_of_work")
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random_exponential(multiplier=settings.TRANSACTION_RETRY_WAIT_MS / 1000, max=1),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry(name, attempts),
    )

    try:
        return retrying(_attempt, session, work)
    except RetryError as exc:
        last = exc.last_attempt.exception()
        logger.error("'%s' gave up after %d attempts: %s", name, attempts, last)
        raise TransientStoreError(
            message="The operation conflicted with concurrent changes. Please retry.",
            details={"attempts": attempts},
        ) from last
    except IntegrityError as exc:
        raise ConflictError("DUPLICATE_KEY", "A record with the same unique key already exists.") from exc
    except NoResultFound as exc:
        raise NotFoundError(message="The requested record does not exist.") from exc
