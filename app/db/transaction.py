from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.errors import ServiceUnavailable

_LOG = logging.getLogger("app.db")

T = TypeVar("T")

# connection_exception, connection_failure, admin_shutdown, deadlock, serialization_failure
TRANSIENT_SQLSTATES = {"08000", "08001", "08003", "08004", "08006", "57P01", "40P01", "40001"}
UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    state = _sqlstate(exc)
    if state is not None:
        return state in TRANSIENT_SQLSTATES
    return isinstance(exc, OperationalError)


def is_unique_violation(exc: BaseException) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    state = _sqlstate(exc)
    if state is not None:
        return state == UNIQUE_VIOLATION
    return "unique" in str(getattr(exc, "orig", exc)).lower()


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    label: str,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
    retry_on_conflict: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``work`` and commit, retrying recognized transient failures.

    Each attempt is a fresh transaction on the same session; the session is
    rolled back before every retry and before any error leaves this function.
    Unique violations are retried only when ``retry_on_conflict`` is set, so
    an insert that lost a race can re-run through its update path.
    """
    max_attempts = int(max(attempts if attempts is not None else settings.DB_TRANSIENT_RETRIES, 1))
    step = float(backoff_seconds if backoff_seconds is not None else settings.DB_RETRY_BACKOFF_SECONDS)
    conflict_retried = False
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work(db)
            db.commit()
            return result
        except IntegrityError as exc:
            db.rollback()
            if retry_on_conflict and not conflict_retried and is_unique_violation(exc):
                conflict_retried = True
                attempt -= 1
                _LOG.info("%s: unique conflict, retrying through update path", label)
                continue
            raise
        except DBAPIError as exc:
            db.rollback()
            if not is_transient_error(exc):
                raise
            if attempt >= max_attempts:
                _LOG.error("%s: transient database error, giving up after %s attempts: %s", label, attempt, type(exc).__name__)
                raise ServiceUnavailable("Database temporarily unavailable") from exc
            _LOG.warning("%s: transient database error on attempt %s/%s: %s", label, attempt, max_attempts, type(exc).__name__)
            sleep(step * attempt)
        except BaseException:
            db.rollback()
            raise
