"""
In-memory backend for tests and ``USE_MOCK_REPOSITORY`` deployments.

``InMemoryStore`` holds committed rows as plain column dictionaries and acts
as the transaction provider. A transaction works on a private snapshot of the
store that replaces the committed state on commit and is discarded on
rollback. Concurrent transactions are not isolated from each other; the last
commit wins.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Generic, Type, TypeVar, cast

from sqlalchemy.exc import NoResultFound

from services.music_school_service.filters import QueryFilter, ensure_known_fields
from services.music_school_service.models_db import ManagedEntity
from services.music_school_service.protocols import RepositoryProtocol, TransactionHandleProtocol

M = TypeVar("M", bound=ManagedEntity)

Rows = dict[str, dict[int, dict[str, Any]]]


def _copy_rows(rows: Rows) -> Rows:
    return {
        table: {pk: dict(row) for pk, row in table_rows.items()}
        for table, table_rows in rows.items()
    }


class InMemoryStore:
    """Committed state shared by every ``InMemoryRepositoryImpl``."""

    def __init__(self) -> None:
        self.rows: Rows = defaultdict(dict)
        self.sequences: dict[str, int] = defaultdict(int)
        self.commits = 0
        self.rollbacks = 0

    async def begin(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)

    def table(self, name: str) -> dict[int, dict[str, Any]]:
        return self.rows[name]


class InMemoryTransaction:
    """Transaction handle staging writes on a snapshot of the store."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.rows: Rows = defaultdict(dict, _copy_rows(store.rows))
        self.sequences: dict[str, int] = defaultdict(int, store.sequences)
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def table(self, name: str) -> dict[int, dict[str, Any]]:
        return self.rows[name]

    async def commit(self) -> None:
        if self.closed or self.rolled_back:
            raise RuntimeError("Transaction is no longer active")
        self.store.rows = self.rows
        self.store.sequences = self.sequences
        self.store.commits += 1
        self.committed = True

    async def rollback(self) -> None:
        self.rows = defaultdict(dict)
        self.rolled_back = True
        self.store.rollbacks += 1

    async def close(self) -> None:
        self.closed = True


class InMemoryRepositoryImpl(Generic[M]):
    """Mock implementation of ``RepositoryProtocol`` backed by ``InMemoryStore``."""

    def __init__(
        self,
        model: Type[M],
        store: InMemoryStore,
        transaction: InMemoryTransaction | None = None,
    ) -> None:
        self.model = model
        self.store = store
        self.transaction = transaction
        self._table_name = model.__tablename__

    def with_transaction(self, handle: TransactionHandleProtocol) -> RepositoryProtocol[M]:
        if not isinstance(handle, InMemoryTransaction):
            raise TypeError(f"Expected InMemoryTransaction handle, got {type(handle).__name__}")
        return cast(RepositoryProtocol[M], InMemoryRepositoryImpl(self.model, self.store, handle))

    def _rows(self) -> dict[int, dict[str, Any]]:
        if self.transaction is not None:
            return self.transaction.table(self._table_name)
        return self.store.table(self._table_name)

    def _next_id(self) -> int:
        sequences = (
            self.transaction.sequences if self.transaction is not None else self.store.sequences
        )
        sequences[self._table_name] += 1
        return sequences[self._table_name]

    def _load(self, row: dict[str, Any]) -> M:
        return self.model(**row)

    async def create(self, entity: M) -> M:
        entity.assign_id(self._next_id())
        self._rows()[entity.entity_id] = entity.to_dict()
        return entity

    async def update(self, entity: M) -> M:
        rows = self._rows()
        if entity.entity_id not in rows:
            raise NoResultFound(f"No {self._table_name} row with id {entity.entity_id}")
        rows[entity.entity_id] = entity.to_dict()
        return entity

    async def delete(self, entity_id: int) -> bool:
        return self._rows().pop(entity_id, None) is not None

    async def get_by_id(self, entity_id: int) -> M | None:
        row = self._rows().get(entity_id)
        return self._load(row) if row is not None else None

    def _matching(self, query_filter: QueryFilter) -> list[dict[str, Any]]:
        ensure_known_fields(query_filter, self._table_name, self.model.column_names())
        return [
            row
            for _, row in sorted(self._rows().items())
            if all(condition.matches(row) for condition in query_filter.conditions)
        ]

    async def count(self, query_filter: QueryFilter) -> int:
        return len(self._matching(query_filter))

    async def exists(self, entity_id: int) -> bool:
        return entity_id in self._rows()

    async def list(self, query_filter: QueryFilter) -> list[M]:
        rows = self._matching(query_filter)
        # Stable sorts applied from the least significant key; NULLs sort last.
        for field, descending in reversed(query_filter.order_keys()):
            present = [row for row in rows if row.get(field) is not None]
            missing = [row for row in rows if row.get(field) is None]
            present.sort(key=lambda row: row[field], reverse=descending)
            rows = present + missing

        rows = rows[query_filter.offset :]
        if query_filter.limit is not None:
            rows = rows[: query_filter.limit]
        return [self._load(row) for row in rows]
