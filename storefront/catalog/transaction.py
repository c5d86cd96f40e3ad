"""Explicit unit of work.

A ``UnitOfWork`` wraps one session and one database transaction. It is
passed by reference (``tx=``) into store operations; every operation given
the same unit of work sees the others' writes, and nothing is visible
outside until the scope commits.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

import structlog
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.domain.exceptions import (
    ConnectionFailureError,
    TransactionClosedError,
    TransactionTimeoutError,
)

logger = structlog.get_logger()

# Driver errors meaning the database could not be reached or the
# connection broke mid-flight.
CONNECTION_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError, OSError)


class IsolationLevel(str, Enum):
    """Transaction isolation levels."""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


@dataclass(frozen=True)
class TransactionOptions:
    """Limits and isolation for a unit of work.

    Attributes:
        isolation_level: Isolation level, or None for the database default.
        max_wait: Seconds allowed to acquire a connection and begin.
        timeout: Seconds the whole scope may run before it is rolled back.
    """

    isolation_level: IsolationLevel | None = None
    max_wait: float = 2.0
    timeout: float = 5.0


class UnitOfWork:
    """An open transaction shared by several store operations."""

    def __init__(self, session: AsyncSession, options: TransactionOptions) -> None:
        """Initialize unit of work.

        Args:
            session: Session holding the open transaction.
            options: Limits the scope was opened with.
        """
        self._session = session
        self.options = options
        self.started_at = time.monotonic()
        self.closed = False

    @property
    def session(self) -> AsyncSession:
        """Session of the open transaction.

        Raises:
            TransactionClosedError: After commit, rollback or timeout.
            TransactionTimeoutError: Once the timeout has elapsed.
        """
        if self.closed:
            raise TransactionClosedError()
        if time.monotonic() - self.started_at > self.options.timeout:
            raise TransactionTimeoutError("timeout", self.options.timeout)
        return self._session


def is_connection_error(exc: BaseException) -> bool:
    """Whether a driver error means the connection is unusable."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, CONNECTION_ERRORS)


@asynccontextmanager
async def open_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    options: TransactionOptions,
) -> AsyncIterator[UnitOfWork]:
    """Run the enclosed block as one transaction.

    Commits when the block exits normally and rolls back on any error or
    when ``options.timeout`` elapses.

    Raises:
        TransactionTimeoutError: When max_wait or timeout is exceeded.
        ConnectionFailureError: When the database cannot be reached.
    """
    session = session_factory()
    unit: UnitOfWork | None = None
    try:
        execution_options = {}
        if options.isolation_level is not None:
            execution_options["isolation_level"] = options.isolation_level.value
        try:
            async with asyncio.timeout(options.max_wait):
                await session.connection(execution_options=execution_options)
        except TimeoutError as exc:
            raise TransactionTimeoutError("max_wait", options.max_wait) from exc
        except CONNECTION_ERRORS as exc:
            raise ConnectionFailureError(
                "Could not open a transaction",
                details={"error": str(exc)},
            ) from exc

        unit = UnitOfWork(session, options)
        logger.debug("Transaction started", isolation_level=options.isolation_level)
        try:
            async with asyncio.timeout(options.timeout):
                yield unit
        except TimeoutError as exc:
            await session.rollback()
            logger.warning("Transaction timed out", timeout=options.timeout)
            raise TransactionTimeoutError("timeout", options.timeout) from exc
        except BaseException:
            await session.rollback()
            logger.debug("Transaction rolled back")
            raise

        if time.monotonic() - unit.started_at > options.timeout:
            await session.rollback()
            raise TransactionTimeoutError("timeout", options.timeout)
        await session.commit()
        logger.debug("Transaction committed")
    finally:
        if unit is not None:
            unit.closed = True
        await session.close()
