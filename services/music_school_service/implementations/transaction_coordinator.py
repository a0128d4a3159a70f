"""
All-or-nothing execution envelope for multi-step writes.

``TransactionCoordinator.transaction`` opens one transaction on the backing
store and yields the transaction-scoped repository. Any ``Exception`` raised
inside the block rolls back and re-raises the original error; any other
``BaseException`` (task cancellation, interpreter exit) rolls back first and
is re-raised unchanged. A clean exit commits; a failed begin, commit or
rollback surfaces as ``TRANSACTION_ERROR``. The handle is always closed and
nothing is ever retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.music_school_service.error_handling import (
    raise_timeout_error,
    raise_transaction_error,
)
from services.music_school_service.logging_utils import create_service_logger
from services.music_school_service.protocols import (
    E,
    RepositoryProtocol,
    TransactionHandleProtocol,
    TransactionProviderProtocol,
)

logger = create_service_logger("music_school_service.transaction")

R = TypeVar("R")


class SQLAlchemyTransactionProvider:
    """Begins ``AsyncSession`` transactions; the session itself is the handle."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.async_session_maker = session_maker

    async def begin(self) -> TransactionHandleProtocol:
        session = self.async_session_maker()
        try:
            await session.begin()
        except Exception:
            await session.close()
            raise
        return session


async def run_with_timeout(
    awaitable: Awaitable[R],
    timeout_seconds: float,
    service: str,
    operation: str,
    correlation_id: UUID,
) -> R:
    """Await ``awaitable`` and convert an elapsed deadline into ``TIMEOUT``."""
    deadline = asyncio.timeout(timeout_seconds)
    try:
        async with deadline:
            return await awaitable
    except TimeoutError as e:
        if not deadline.expired():
            raise
        logger.error(
            f"{operation} exceeded {timeout_seconds}s",
            extra={"operation": operation, "correlation_id": str(correlation_id)},
        )
        raise_timeout_error(service, operation, timeout_seconds, correlation_id, cause=e)


class TransactionCoordinator:
    def __init__(
        self,
        provider: TransactionProviderProtocol,
        timeout_seconds: float,
        service_name: str = "music_school_service",
    ) -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.service_name = service_name

    @asynccontextmanager
    async def transaction(
        self,
        repository: RepositoryProtocol[E],
        operation: str,
        correlation_id: UUID,
    ) -> AsyncIterator[RepositoryProtocol[E]]:
        """Yield ``repository`` bound to a fresh transaction."""
        try:
            handle = await self.provider.begin()
        except Exception as e:
            logger.error(
                f"Failed to begin transaction for {operation}: {e.__class__.__name__}: {e}",
                extra={"operation": operation, "correlation_id": str(correlation_id)},
            )
            raise_transaction_error(
                self.service_name,
                operation,
                "begin",
                f"Failed to begin transaction: {e}",
                correlation_id,
                cause=e,
            )

        try:
            try:
                yield repository.with_transaction(handle)
            except Exception as e:
                await self._rollback_after_error(handle, operation, correlation_id, e)
                raise
            except BaseException:
                await self._rollback_on_abort(handle, operation, correlation_id)
                raise

            try:
                await handle.commit()
            except Exception as e:
                logger.error(
                    f"Failed to commit transaction for {operation}: {e.__class__.__name__}: {e}",
                    extra={"operation": operation, "correlation_id": str(correlation_id)},
                )
                raise_transaction_error(
                    self.service_name,
                    operation,
                    "commit",
                    f"Failed to commit transaction: {e}",
                    correlation_id,
                    cause=e,
                )
        finally:
            await handle.close()

    async def execute(
        self,
        repository: RepositoryProtocol[E],
        ops: Callable[[RepositoryProtocol[E]], Awaitable[R]],
        operation: str,
        correlation_id: UUID,
    ) -> R:
        """Run ``ops`` against the transaction-scoped repository under the manager timeout."""

        async def run() -> R:
            async with self.transaction(repository, operation, correlation_id) as tx_repository:
                return await ops(tx_repository)

        return await run_with_timeout(
            run(), self.timeout_seconds, self.service_name, operation, correlation_id
        )

    async def _rollback_after_error(
        self,
        handle: TransactionHandleProtocol,
        operation: str,
        correlation_id: UUID,
        error: Exception,
    ) -> None:
        logger.warning(
            f"Rolling back {operation} after {error.__class__.__name__}: {error}",
            extra={"operation": operation, "correlation_id": str(correlation_id)},
        )
        try:
            await handle.rollback()
        except Exception as rollback_error:
            logger.error(
                f"Rollback failed for {operation}: "
                f"{rollback_error.__class__.__name__}: {rollback_error}",
                extra={"operation": operation, "correlation_id": str(correlation_id)},
            )
            raise_transaction_error(
                self.service_name,
                operation,
                "rollback",
                f"Rollback failed after {error.__class__.__name__}: {rollback_error}",
                correlation_id,
                cause=error,
                rollback_error=str(rollback_error),
            )

    async def _rollback_on_abort(
        self, handle: TransactionHandleProtocol, operation: str, correlation_id: UUID
    ) -> None:
        # The abort itself is re-raised by the caller; a failed rollback is only logged.
        try:
            await handle.rollback()
        except Exception as rollback_error:
            logger.error(
                f"Rollback failed while aborting {operation}: "
                f"{rollback_error.__class__.__name__}: {rollback_error}",
                extra={"operation": operation, "correlation_id": str(correlation_id)},
            )
