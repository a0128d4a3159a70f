"""Unit tests for the in-memory backend used in tests and mock deployments."""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.exc import NoResultFound

from services.music_school_service.filters import QueryFilter
from services.music_school_service.implementations.repository_mock_impl import (
    InMemoryRepositoryImpl,
    InMemoryStore,
    InMemoryTransaction,
)
from services.music_school_service.models_db import Program


def program(name: str, **overrides: Any) -> Program:
    attrs: dict[str, Any] = {
        "programm_name": name,
        "programm_type": "general",
        "duration": 4,
        "instrument": None,
        "study_load": 4,
        "final_certification_form": "concert",
    }
    attrs.update(overrides)
    return Program(**attrs)


@pytest.fixture
def repository(store: InMemoryStore) -> InMemoryRepositoryImpl[Program]:
    return InMemoryRepositoryImpl(Program, store)


class TestInMemoryRepository:
    @pytest.mark.asyncio
    async def test_reads_return_detached_copies(
        self, repository: InMemoryRepositoryImpl[Program]
    ) -> None:
        created = await repository.create(program("Piano"))

        loaded = await repository.get_by_id(created.musprogramm_id)
        assert loaded is not None
        loaded.duration = 99

        reloaded = await repository.get_by_id(created.musprogramm_id)
        assert reloaded is not None and reloaded.duration == 4

    @pytest.mark.asyncio
    async def test_update_of_missing_row_raises(
        self, repository: InMemoryRepositoryImpl[Program]
    ) -> None:
        with pytest.raises(NoResultFound):
            await repository.update(program("Ghost", musprogramm_id=12))

    @pytest.mark.asyncio
    async def test_nulls_sort_last_in_both_directions(
        self, repository: InMemoryRepositoryImpl[Program]
    ) -> None:
        await repository.create(program("Choir"))
        await repository.create(program("Violin", instrument="violin"))
        await repository.create(program("Flute", instrument="flute"))

        ascending = await repository.list(QueryFilter(order_by="instrument"))
        descending = await repository.list(QueryFilter(order_by="instrument DESC"))

        assert [p.instrument for p in ascending] == ["flute", "violin", None]
        assert [p.instrument for p in descending] == ["violin", "flute", None]

    @pytest.mark.asyncio
    async def test_limit_and_offset(self, repository: InMemoryRepositoryImpl[Program]) -> None:
        for name in ["A", "B", "C", "D"]:
            await repository.create(program(name))

        page = await repository.list(QueryFilter(order_by="programm_name", limit=2, offset=1))

        assert [p.programm_name for p in page] == ["B", "C"]


class TestInMemoryTransaction:
    @pytest.mark.asyncio
    async def test_writes_visible_only_after_commit(
        self, store: InMemoryStore, repository: InMemoryRepositoryImpl[Program]
    ) -> None:
        # Arrange
        transaction = await store.begin()
        tx_repository = repository.with_transaction(transaction)

        # Act
        created = await tx_repository.create(program("Piano"))

        # Assert
        assert await tx_repository.get_by_id(created.musprogramm_id) is not None
        assert await repository.get_by_id(created.musprogramm_id) is None
        await transaction.commit()
        assert await repository.get_by_id(created.musprogramm_id) is not None

    @pytest.mark.asyncio
    async def test_rollback_discards_writes(
        self, store: InMemoryStore, repository: InMemoryRepositoryImpl[Program]
    ) -> None:
        transaction = await store.begin()
        await repository.with_transaction(transaction).create(program("Piano"))

        await transaction.rollback()

        assert store.table("musprogramms") == {}
        with pytest.raises(RuntimeError):
            await transaction.commit()

    def test_rejects_foreign_handles(self, repository: InMemoryRepositoryImpl[Program]) -> None:
        with pytest.raises(TypeError):
            repository.with_transaction(object())  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_snapshot_is_isolated_from_later_commits(self, store: InMemoryStore) -> None:
        transaction = await store.begin()
        assert isinstance(transaction, InMemoryTransaction)
        store.table("musprogramms")[1] = {"musprogramm_id": 1}

        assert transaction.table("musprogramms") == {}
