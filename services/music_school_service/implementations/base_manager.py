"""
Generic manager: the rule pipeline shared by every entity.

``create`` and ``update`` run validate, then the entity rules (uniqueness or
schedule conflict), then persist. ``bulk_create`` runs the same pipeline for
every element inside one transaction. Not-found reads return ``None``.
Every operation is bounded by the shared manager timeout and every failure is
logged with its operation context before it is raised.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Optional, Type, TypeVar
from uuid import UUID, uuid4

from pydantic import ValidationError

from services.music_school_service.enums import ComparisonOperator
from services.music_school_service.error_handling import (
    MusicSchoolError,
    raise_invalid_filter,
    raise_invalid_request,
    raise_persistence_error,
    raise_timeout_error,
    raise_uniqueness_conflict,
    raise_validation_error,
)
from services.music_school_service.filters import Condition, QueryFilter, UnknownFieldError
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
)
from services.music_school_service.logging_utils import (
    bind_operation_context,
    create_service_logger,
)
from services.music_school_service.metrics import ManagerMetrics
from services.music_school_service.models_db import ManagedEntity
from services.music_school_service.protocols import (
    EntityRuleProtocol,
    RepositoryProtocol,
)

logger = create_service_logger("music_school_service.manager")

M = TypeVar("M", bound=ManagedEntity)
R = TypeVar("R")


class UniqueFieldsRule(Generic[M]):
    """
    Rejects an entity whose values for ``fields`` are already stored on another row.

    The check is one bounded read (limit 1) with an equality condition per
    field plus ``id != exclude_id``. When every field is ``None`` the check
    is skipped, which keeps optional unique values such as a student's phone
    number optional.
    """

    def __init__(
        self,
        *fields: str,
        label: Optional[str] = None,
        service_name: str = "music_school_service",
    ) -> None:
        if not fields:
            raise ValueError("UniqueFieldsRule needs at least one field")
        self.fields = fields
        self.label = label or "_".join(fields)
        self.service_name = service_name

    def build_filter(self, entity: M, exclude_id: int) -> QueryFilter | None:
        values = {field: getattr(entity, field) for field in self.fields}
        if all(value is None for value in values.values()):
            return None
        conditions = [
            Condition(field=field, operator=ComparisonOperator.IS_NULL)
            if value is None
            else Condition(field=field, operator=ComparisonOperator.EQ, value=value)
            for field, value in values.items()
        ]
        conditions.append(
            Condition(field=entity.id_field, operator=ComparisonOperator.NE, value=exclude_id)
        )
        return QueryFilter(conditions=conditions, limit=1)

    async def check(
        self,
        repository: RepositoryProtocol[M],
        entity: M,
        exclude_id: int,
        correlation_id: UUID,
    ) -> None:
        query_filter = self.build_filter(entity, exclude_id)
        if query_filter is None:
            return
        existing = await repository.list(query_filter)
        if existing:
            fields = {field: getattr(entity, field) for field in self.fields}
            logger.warning(
                f"Uniqueness rule {self.label} violated",
                extra={
                    "entity_type": type(entity).__name__,
                    "fields": fields,
                    "existing_id": existing[0].entity_id,
                    "exclude_id": exclude_id,
                },
            )
            raise_uniqueness_conflict(
                self.service_name,
                f"check_{self.label}_unique",
                type(entity).__name__,
                fields,
                correlation_id,
                existing_id=existing[0].entity_id,
            )


class BaseManager(Generic[M]):
    """Generic manager for one entity type, composed into the concrete managers."""

    def __init__(
        self,
        entity_type: Type[M],
        repository: RepositoryProtocol[M],
        coordinator: TransactionCoordinator,
        rules: Sequence[EntityRuleProtocol[M]] = (),
        metrics: Optional[ManagerMetrics] = None,
        service_name: str = "music_school_service",
    ) -> None:
        self.entity_type = entity_type
        self.entity_name = entity_type.__name__
        self.repository = repository
        self.coordinator = coordinator
        self.rules = tuple(rules)
        self.metrics = metrics
        self.service_name = service_name

    @property
    def timeout_seconds(self) -> float:
        return self.coordinator.timeout_seconds

    # ------------------------------------------------------------------
    # Operation envelope
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def operation(
        self, operation: str, correlation_id: UUID, **log_context: Any
    ) -> AsyncIterator[None]:
        """Bind log context, bound the block by the manager timeout, record metrics."""
        start_time = time.time()
        success = True
        deadline = asyncio.timeout(self.timeout_seconds)
        with bind_operation_context(operation, correlation_id, self.entity_name):
            try:
                async with deadline:
                    yield
            except MusicSchoolError as e:
                success = False
                self._log_failure(operation, e.error_code, e, log_context)
                raise
            except TimeoutError as e:
                success = False
                if not deadline.expired():
                    self._log_failure(operation, e.__class__.__name__, e, log_context)
                    raise
                self._log_failure(operation, "TIMEOUT", e, log_context)
                raise_timeout_error(
                    self.service_name,
                    operation,
                    self.timeout_seconds,
                    correlation_id,
                    cause=e,
                    entity=self.entity_name,
                )
            except Exception as e:
                success = False
                self._log_failure(operation, e.__class__.__name__, e, log_context)
                raise
            finally:
                if self.metrics:
                    self.metrics.record_operation(
                        self.entity_name, operation, time.time() - start_time, success
                    )

    def _log_failure(
        self, operation: str, error_code: str, error: BaseException, context: dict[str, Any]
    ) -> None:
        logger.error(
            f"{self.entity_name} {operation} failed: {error}",
            extra={"entity_type": self.entity_name, "error_code": error_code, **context},
        )
        if self.metrics:
            self.metrics.record_error(self.entity_name, operation, error_code)

    async def call_repository(
        self, awaitable: Awaitable[R], operation: str, correlation_id: UUID, **context: Any
    ) -> R:
        """Await a repository call, surfacing storage failures as ``PERSISTENCE_ERROR``."""
        try:
            return await awaitable
        except MusicSchoolError:
            raise
        except UnknownFieldError as e:
            raise_invalid_filter(
                self.service_name,
                operation,
                str(e),
                correlation_id,
                entity=self.entity_name,
                fields=e.fields,
            )
        except Exception as e:
            raise_persistence_error(
                self.service_name,
                operation,
                f"{self.entity_name} {operation} failed: {e.__class__.__name__}: {e}",
                correlation_id,
                cause=e,
                entity=self.entity_name,
                **context,
            )

    def validate_entity(
        self, entity: M, operation: str, correlation_id: UUID, **context: Any
    ) -> None:
        try:
            entity.validate()
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "__root__"
            raise_validation_error(
                self.service_name,
                operation,
                field,
                f"{self.entity_name} validation failed on {field}: {first['msg']}",
                correlation_id,
                cause=e,
                entity=self.entity_name,
                **context,
            )
        except ValueError as e:
            raise_validation_error(
                self.service_name,
                operation,
                "__root__",
                f"{self.entity_name} validation failed: {e}",
                correlation_id,
                cause=e,
                entity=self.entity_name,
                **context,
            )

    async def check_rules(
        self,
        repository: RepositoryProtocol[M],
        entity: M,
        exclude_id: int,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        for rule in self.rules:
            await self.call_repository(
                rule.check(repository, entity, exclude_id, correlation_id),
                operation,
                correlation_id,
                exclude_id=exclude_id,
            )

    def require_id(self, entity_id: int, operation: str, correlation_id: UUID) -> None:
        if not entity_id:
            raise_invalid_request(
                self.service_name,
                operation,
                f"{self.entity_name} id is required for {operation}",
                correlation_id,
                entity=self.entity_name,
            )

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    async def get_by_id(self, entity_id: int, correlation_id: UUID | None = None) -> M | None:
        correlation_id = correlation_id or uuid4()
        operation = "get_by_id"
        async with self.operation(operation, correlation_id, entity_id=entity_id):
            self.require_id(entity_id, operation, correlation_id)
            return await self.call_repository(
                self.repository.get_by_id(entity_id),
                operation,
                correlation_id,
                entity_id=entity_id,
            )

    async def get_by_ids(
        self, entity_ids: Sequence[int], correlation_id: UUID | None = None
    ) -> list[M]:
        """Fetch several entities; ids without a row are skipped."""
        correlation_id = correlation_id or uuid4()
        operation = "get_by_ids"
        async with self.operation(operation, correlation_id, entity_ids=list(entity_ids)):
            if not entity_ids:
                raise_invalid_request(
                    self.service_name,
                    operation,
                    "At least one id is required",
                    correlation_id,
                    entity=self.entity_name,
                )
            found: list[M] = []
            for entity_id in entity_ids:
                self.require_id(entity_id, operation, correlation_id)
                entity = await self.call_repository(
                    self.repository.get_by_id(entity_id),
                    operation,
                    correlation_id,
                    entity_id=entity_id,
                )
                if entity is not None:
                    found.append(entity)
            return found

    async def list(
        self,
        query_filter: QueryFilter | None = None,
        correlation_id: UUID | None = None,
        operation: str = "list",
    ) -> list[M]:
        correlation_id = correlation_id or uuid4()
        query_filter = query_filter or QueryFilter()
        async with self.operation(
            operation, correlation_id, query_filter=query_filter.model_dump(mode="json")
        ):
            return await self.call_repository(
                self.repository.list(query_filter), operation, correlation_id
            )

    async def count(
        self, query_filter: QueryFilter | None = None, correlation_id: UUID | None = None
    ) -> int:
        correlation_id = correlation_id or uuid4()
        operation = "count"
        query_filter = query_filter or QueryFilter()
        async with self.operation(
            operation, correlation_id, query_filter=query_filter.model_dump(mode="json")
        ):
            return await self.call_repository(
                self.repository.count(query_filter), operation, correlation_id
            )

    async def exists(self, entity_id: int, correlation_id: UUID | None = None) -> bool:
        correlation_id = correlation_id or uuid4()
        operation = "exists"
        async with self.operation(operation, correlation_id, entity_id=entity_id):
            self.require_id(entity_id, operation, correlation_id)
            return await self.call_repository(
                self.repository.exists(entity_id), operation, correlation_id, entity_id=entity_id
            )

    async def find(
        self,
        operation: str,
        *conditions: Condition,
        order_by: str | None = None,
        limit: int | None = None,
        correlation_id: UUID | None = None,
    ) -> list[M]:
        """Shorthand for ``list`` with ANDed conditions, used by the domain queries."""
        query_filter = QueryFilter(conditions=list(conditions), order_by=order_by, limit=limit)
        return await self.list(query_filter, correlation_id, operation=operation)

    async def find_one(
        self, operation: str, *conditions: Condition, correlation_id: UUID | None = None
    ) -> M | None:
        found = await self.find(operation, *conditions, limit=1, correlation_id=correlation_id)
        return found[0] if found else None

    async def create(self, entity: M, correlation_id: UUID | None = None) -> M:
        correlation_id = correlation_id or uuid4()
        operation = "create"
        async with self.operation(operation, correlation_id):
            self.validate_entity(entity, operation, correlation_id)
            await self.check_rules(self.repository, entity, 0, operation, correlation_id)
            return await self.call_repository(
                self.repository.create(entity), operation, correlation_id
            )

    async def update(self, entity: M, correlation_id: UUID | None = None) -> M:
        correlation_id = correlation_id or uuid4()
        operation = "update"
        entity_id = entity.entity_id
        async with self.operation(operation, correlation_id, entity_id=entity_id):
            self.require_id(entity_id, operation, correlation_id)
            self.validate_entity(entity, operation, correlation_id, entity_id=entity_id)
            await self.check_rules(self.repository, entity, entity_id, operation, correlation_id)
            return await self.call_repository(
                self.repository.update(entity), operation, correlation_id, entity_id=entity_id
            )

    async def delete(self, entity_id: int, correlation_id: UUID | None = None) -> bool:
        correlation_id = correlation_id or uuid4()
        operation = "delete"
        async with self.operation(operation, correlation_id, entity_id=entity_id):
            self.require_id(entity_id, operation, correlation_id)
            return await self.call_repository(
                self.repository.delete(entity_id),
                operation,
                correlation_id,
                entity_id=entity_id,
            )

    async def bulk_create(
        self, entities: Sequence[M], correlation_id: UUID | None = None
    ) -> list[M]:
        """
        Create every entity in one transaction.

        Elements are validated, rule-checked and inserted in order through the
        transaction-scoped repository, so a later element also collides with
        an earlier one of the same batch. The first failure rolls back the
        whole batch.
        """
        correlation_id = correlation_id or uuid4()
        operation = "bulk_create"
        async with self.operation(operation, correlation_id, count=len(entities)):
            if not entities:
                return []
            created: list[M] = []
            async with self.coordinator.transaction(
                self.repository, operation, correlation_id
            ) as tx_repository:
                for index, entity in enumerate(entities):
                    self.validate_entity(entity, operation, correlation_id, index=index)
                    await self.check_rules(tx_repository, entity, 0, operation, correlation_id)
                    created.append(
                        await self.call_repository(
                            tx_repository.create(entity), operation, correlation_id, index=index
                        )
                    )
            logger.info(
                f"Bulk created {len(created)} {self.entity_name} rows",
                extra={"count": len(created)},
            )
            return created

    async def bulk_upsert(
        self, entities: Sequence[M], correlation_id: UUID | None = None
    ) -> list[M]:
        """
        Update the entities whose id is stored and create the rest, in one transaction.

        Rules exclude the entity's own id on the update path. The first
        failure rolls back every write of the batch.
        """
        correlation_id = correlation_id or uuid4()
        operation = "bulk_upsert"
        async with self.operation(operation, correlation_id, count=len(entities)):
            if not entities:
                return []
            written: list[M] = []
            updated = 0
            async with self.coordinator.transaction(
                self.repository, operation, correlation_id
            ) as tx_repository:
                for index, entity in enumerate(entities):
                    self.validate_entity(entity, operation, correlation_id, index=index)
                    entity_id = entity.entity_id
                    stored = bool(entity_id) and await self.call_repository(
                        tx_repository.exists(entity_id), operation, correlation_id, index=index
                    )
                    exclude_id = entity_id if stored else 0
                    await self.check_rules(
                        tx_repository, entity, exclude_id, operation, correlation_id
                    )
                    write = tx_repository.update(entity) if stored else tx_repository.create(entity)
                    written.append(
                        await self.call_repository(write, operation, correlation_id, index=index)
                    )
                    updated += int(stored)
            logger.info(
                f"Bulk upserted {len(written)} {self.entity_name} rows",
                extra={"updated": updated, "created": len(written) - updated},
            )
            return written

    async def execute_in_transaction(
        self,
        ops: Callable[[RepositoryProtocol[M]], Awaitable[R]],
        operation: str = "execute_in_transaction",
        correlation_id: UUID | None = None,
    ) -> R:
        """Run ``ops`` against the transaction-scoped repository; commit once on success."""
        correlation_id = correlation_id or uuid4()
        async with self.operation(operation, correlation_id):
            return await self.coordinator.execute(
                self.repository, ops, operation, correlation_id
            )
