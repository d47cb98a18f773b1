"""
Unit of work with bounded retry on transient store failures.

One ``run`` call is one database transaction: the operation receives a fresh
``AsyncSession``, and the session is committed only after the operation has
returned.  That makes every multi-step booking operation all-or-nothing.

Retry rules
-----------
* Domain errors (``CarpoolError``) roll back and propagate; never retried.
* Timeouts, connection failures, deadlocks and serialization failures
  raised *before* commit leave nothing committed, so the whole operation is
  re-run with exponential backoff.
* A failure raised *by* the commit is ambiguous (the store may or may not
  have applied it) and surfaces as ``StoreUnavailable`` without retry.
* Exhausted retries surface as ``ServiceUnavailable``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.config import settings
from carpool.domain.errors import CarpoolError, ServiceUnavailable, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[AsyncSession], Awaitable[T]]

# serialization_failure, deadlock_detected: the store rolled the transaction back
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def sqlstate_of(error: sa_exc.DBAPIError) -> str | None:
    """SQLSTATE of the driver error, whether the dialect copies it or chains it."""
    for candidate in (error.orig, getattr(error.orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def is_transient(error: BaseException) -> bool:
    """True for failures that leave an uncommitted transaction safe to redo."""
    if isinstance(error, StoreUnavailable):
        return True
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(error, sa_exc.TimeoutError):  # pool checkout timeout
        return True
    if isinstance(error, sa_exc.DBAPIError):
        if sqlstate_of(error) in RETRYABLE_SQLSTATES:
            return True
        if error.connection_invalidated:
            return True
        return isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError))
    return False


class UnitOfWork:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        attempts: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.session_factory = session_factory
        self.attempts = max(1, attempts or settings.store_retry_attempts)
        self.backoff_seconds = (
            settings.store_retry_backoff_seconds
            if backoff_seconds is None
            else backoff_seconds
        )

    async def run(self, operation: Operation[T], *, name: str | None = None) -> T:
        label = name or getattr(operation, "__name__", "operation")
        last_error: BaseException | None = None

        for attempt in range(1, self.attempts + 1):
            async with self.session_factory() as session:
                try:
                    result = await operation(session)
                except CarpoolError as error:
                    await session.rollback()
                    if not is_transient(error):
                        raise
                    last_error = error
                except Exception as error:
                    await session.rollback()
                    if not is_transient(error):
                        raise
                    last_error = error
                else:
                    try:
                        await session.commit()
                    except Exception as error:
                        if is_transient(error):
                            logger.error(
                                "%s: commit outcome unknown (%s)", label, error
                            )
                            raise StoreUnavailable(str(error)) from error
                        raise
                    return result

            logger.warning(
                "%s: transient store failure on attempt %d/%d: %s",
                label,
                attempt,
                self.attempts,
                last_error,
            )
            if attempt < self.attempts:
                await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))

        raise ServiceUnavailable(label, self.attempts) from last_error
