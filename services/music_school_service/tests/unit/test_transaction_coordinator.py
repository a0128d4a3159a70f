"""
Unit tests for the all-or-nothing transaction envelope.

The provider and handle are mocked so every failure stage (begin, body,
commit, rollback, cancellation) can be driven independently.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from services.music_school_service.error_handling import MusicSchoolError, raise_invalid_request
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
    run_with_timeout,
)
from services.music_school_service.protocols import (
    TransactionHandleProtocol,
    TransactionProviderProtocol,
)


@pytest.fixture
def handle() -> AsyncMock:
    return AsyncMock(spec=TransactionHandleProtocol)


@pytest.fixture
def provider(handle: AsyncMock) -> AsyncMock:
    provider = AsyncMock(spec=TransactionProviderProtocol)
    provider.begin.return_value = handle
    return provider


@pytest.fixture
def repository() -> MagicMock:
    repository = MagicMock()
    repository.with_transaction.side_effect = lambda handle: ("bound", handle)
    return repository


@pytest.fixture
def tx_coordinator(provider: AsyncMock) -> TransactionCoordinator:
    return TransactionCoordinator(provider, timeout_seconds=5.0)


class TestTransaction:
    """Commit, rollback and close ordering of ``transaction``."""

    @pytest.mark.asyncio
    async def test_clean_exit_commits_and_closes(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        async with tx_coordinator.transaction(repository, "op", uuid4()) as bound:
            assert bound == ("bound", handle)

        handle.commit.assert_awaited_once()
        handle.rollback.assert_not_called()
        handle.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_error_rolls_back_and_reraises_original(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        original = LookupError("boom")

        with pytest.raises(LookupError) as exc_info:
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                raise original

        assert exc_info.value is original
        handle.rollback.assert_awaited_once()
        handle.commit.assert_not_called()
        handle.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_music_school_error_passes_through(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        with pytest.raises(MusicSchoolError) as exc_info:
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                raise_invalid_request("svc", "op", "bad", uuid4())

        assert exc_info.value.error_code == "INVALID_REQUEST"
        handle.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rollback_failure_is_transaction_error_chained_to_original(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        # Arrange
        handle.rollback.side_effect = OSError("connection lost")
        original = ValueError("write failed")

        # Act
        with pytest.raises(MusicSchoolError) as exc_info:
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                raise original

        # Assert
        error = exc_info.value
        assert error.error_code == "TRANSACTION_ERROR"
        assert error.details["stage"] == "rollback"
        assert error.details["rollback_error"] == "connection lost"
        assert error.__cause__ is original
        handle.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_is_transaction_error(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        commit_error = RuntimeError("serialization failure")
        handle.commit.side_effect = commit_error

        with pytest.raises(MusicSchoolError) as exc_info:
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                pass

        assert exc_info.value.error_code == "TRANSACTION_ERROR"
        assert exc_info.value.details["stage"] == "commit"
        assert exc_info.value.__cause__ is commit_error
        handle.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_begin_failure_is_transaction_error(
        self,
        tx_coordinator: TransactionCoordinator,
        provider: AsyncMock,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        provider.begin.side_effect = ConnectionRefusedError("no database")

        with pytest.raises(MusicSchoolError) as exc_info:
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                pytest.fail("body must not run")

        assert exc_info.value.error_code == "TRANSACTION_ERROR"
        assert exc_info.value.details["stage"] == "begin"
        handle.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back_and_propagates(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        with pytest.raises(asyncio.CancelledError):
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                raise asyncio.CancelledError()

        handle.rollback.assert_awaited_once()
        handle.commit.assert_not_called()
        handle.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_survives_rollback_failure(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        handle.rollback.side_effect = OSError("connection lost")

        with pytest.raises(asyncio.CancelledError):
            async with tx_coordinator.transaction(repository, "op", uuid4()):
                raise asyncio.CancelledError()

        handle.close.assert_awaited_once()


class TestExecute:
    @pytest.mark.asyncio
    async def test_returns_ops_result(
        self,
        tx_coordinator: TransactionCoordinator,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        ops = AsyncMock(return_value=42)

        result = await tx_coordinator.execute(repository, ops, "op", uuid4())

        assert result == 42
        ops.assert_awaited_once_with(("bound", handle))
        handle.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_rolls_back_and_raises_timeout(
        self,
        provider: AsyncMock,
        handle: AsyncMock,
        repository: MagicMock,
    ) -> None:
        # Arrange
        coordinator = TransactionCoordinator(provider, timeout_seconds=0.05)

        async def slow(_: object) -> None:
            await asyncio.sleep(5)

        # Act
        with pytest.raises(MusicSchoolError) as exc_info:
            await coordinator.execute(repository, slow, "slow_op", uuid4())

        # Assert
        assert exc_info.value.error_code == "TIMEOUT"
        assert exc_info.value.details["timeout_seconds"] == 0.05
        handle.rollback.assert_awaited_once()
        handle.commit.assert_not_called()
        handle.close.assert_awaited_once()


class TestRunWithTimeout:
    @pytest.mark.asyncio
    async def test_inner_timeout_error_is_not_converted(self) -> None:
        async def raises_timeout() -> None:
            raise TimeoutError("upstream")

        with pytest.raises(TimeoutError, match="upstream"):
            await run_with_timeout(raises_timeout(), 5.0, "svc", "op", uuid4())
