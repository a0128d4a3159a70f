from __future__ import annotations

from typing import Any, ClassVar, Protocol, TypeVar
from uuid import UUID

from services.music_school_service.filters import QueryFilter


class EntityProtocol(Protocol):
    """Contract every managed entity fulfils."""

    id_field: ClassVar[str]

    @property
    def entity_id(self) -> int:
        """Storage-assigned identity; 0 until the entity has been created."""
        ...

    def validate(self) -> None:
        """Raise ``ValueError`` on the first rule the entity violates."""
        ...

    def to_dict(self) -> dict[str, Any]: ...


E = TypeVar("E", bound=EntityProtocol)


class TransactionHandleProtocol(Protocol):
    """An open transaction on the backing store."""

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    async def close(self) -> None: ...


class TransactionProviderProtocol(Protocol):
    """Source of transaction handles for the backing store."""

    async def begin(self) -> TransactionHandleProtocol:
        """Open a new transaction."""
        ...


class RepositoryProtocol(Protocol[E]):
    """Per-entity persistence. The only path to durable storage."""

    async def create(self, entity: E) -> E:
        """Insert the entity and assign its identity."""
        ...

    async def update(self, entity: E) -> E: ...

    async def delete(self, entity_id: int) -> bool:
        """Delete by id. Returns True if a row was removed."""
        ...

    async def get_by_id(self, entity_id: int) -> E | None:
        """Return the entity or None when no row matches."""
        ...

    async def list(self, query_filter: QueryFilter) -> list[E]: ...

    async def count(self, query_filter: QueryFilter) -> int:
        """Number of rows matching the conditions; ordering and paging are ignored."""
        ...

    async def exists(self, entity_id: int) -> bool: ...

    def with_transaction(self, handle: TransactionHandleProtocol) -> RepositoryProtocol[E]:
        """Return a repository bound to ``handle``; discard it after commit/rollback."""
        ...


class EntityRuleProtocol(Protocol[E]):
    """A business rule checked against stored rows before every write."""

    async def check(
        self,
        repository: RepositoryProtocol[E],
        entity: E,
        exclude_id: int,
        correlation_id: UUID,
    ) -> None:
        """Raise a conflict error when ``entity`` collides with a stored row."""
        ...


class DatabaseMetricsProtocol(Protocol):
    """Protocol for database metrics recording."""

    def record_query_duration(
        self, operation: str, table: str, duration: float, success: bool
    ) -> None: ...

    def record_database_error(self, error_type: str, operation: str) -> None: ...
