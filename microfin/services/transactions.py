from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from microfin.core.settings import settings
from microfin.services.errors import (
    ConflictError,
    DuplicateResourceError,
    LendingError,
    UnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}
UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _constraint_name(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "constraint_name", None) or getattr(
        getattr(orig, "__cause__", None), "constraint_name", None
    )


def _integrity_error(exc: IntegrityError) -> LendingError:
    constraint = _constraint_name(exc)
    sqlstate = _sqlstate(exc)
    if sqlstate == UNIQUE_VIOLATION:
        return DuplicateResourceError(
            code="duplicate_resource",
            message="The resource already exists",
            details={"constraint": constraint},
        )
    logger.warning("Integrity violation sqlstate=%s constraint=%s", sqlstate, constraint)
    return ValidationError(
        code="constraint_violation",
        message="The change violates a data integrity rule",
        details={"constraint": constraint, "sqlstate": sqlstate},
    )


def _concurrent_update(exc: Exception) -> ConflictError:
    return ConflictError(
        code="concurrent_update",
        message="The record was updated by another request. Please refresh and retry.",
        details={"reason": type(exc).__name__},
    )


async def run_in_transaction(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int | None = None,
) -> T:
    """Run ``operation`` and commit, rolling back on any failure.

    Serialization failures, deadlocks and stale versions are retried after a
    rollback; the operation re-reads and re-validates everything it touches.
    """
    attempts = 1 + (settings.transition_retry_attempts if retries is None else retries)
    for attempt in range(1, attempts + 1):
        try:
            result = await operation()
            await db.commit()
            return result
        except LendingError:
            await db.rollback()
            raise
        except StaleDataError as exc:
            await db.rollback()
            if attempt < attempts:
                logger.warning("Stale loan version, retrying (attempt %s of %s)", attempt, attempts)
                continue
            raise _concurrent_update(exc) from exc
        except IntegrityError as exc:
            await db.rollback()
            raise _integrity_error(exc) from exc
        except DBAPIError as exc:
            await db.rollback()
            if _sqlstate(exc) in RETRYABLE_SQLSTATES:
                if attempt < attempts:
                    logger.warning(
                        "Transaction aborted with sqlstate=%s, retrying (attempt %s of %s)",
                        _sqlstate(exc),
                        attempt,
                        attempts,
                    )
                    continue
                raise _concurrent_update(exc) from exc
            if exc.connection_invalidated:
                logger.error("Database connection lost during transaction")
                raise UnavailableError(
                    code="database_unavailable",
                    message="The database is temporarily unavailable",
                ) from exc
            raise
        except PoolTimeoutError as exc:
            raise UnavailableError(
                code="database_busy",
                message="No database connection became available in time",
            ) from exc
        except Exception:
            await db.rollback()
            raise
    raise RuntimeError("transaction retry loop exited without a result")  # pragma: no cover
