from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Generic, Optional, Type, TypeVar, cast

from sqlalchemy import ColumnElement, Select, delete, func, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.music_school_service.enums import ComparisonOperator
from services.music_school_service.filters import Condition, QueryFilter, ensure_known_fields
from services.music_school_service.logging_utils import create_service_logger
from services.music_school_service.models_db import ManagedEntity
from services.music_school_service.protocols import (
    DatabaseMetricsProtocol,
    RepositoryProtocol,
    TransactionHandleProtocol,
)

logger = create_service_logger("music_school_service.repository")

M = TypeVar("M", bound=ManagedEntity)


class PostgreSQLRepositoryImpl(Generic[M]):
    """
    SQLAlchemy implementation of ``RepositoryProtocol`` for one entity type.

    Unbound instances open a short-lived session per call and commit it.
    Instances returned by ``with_transaction`` reuse the caller's session and
    only flush; committing is left to the transaction owner.
    """

    def __init__(
        self,
        model: Type[M],
        session_maker: async_sessionmaker[AsyncSession],
        metrics: Optional[DatabaseMetricsProtocol] = None,
        bound_session: Optional[AsyncSession] = None,
    ) -> None:
        self.model = model
        self.async_session_maker = session_maker
        self.metrics = metrics
        self._bound_session = bound_session
        self._table = model.__tablename__

    @property
    def in_transaction(self) -> bool:
        return self._bound_session is not None

    def with_transaction(self, handle: TransactionHandleProtocol) -> RepositoryProtocol[M]:
        if not isinstance(handle, AsyncSession):
            raise TypeError(f"Expected AsyncSession handle, got {type(handle).__name__}")
        return cast(
            RepositoryProtocol[M],
            PostgreSQLRepositoryImpl(
                self.model, self.async_session_maker, self.metrics, bound_session=handle
            ),
        )

    def _record_operation_metrics(
        self,
        operation: str,
        duration: float,
        success: bool = True,
    ) -> None:
        """Record database operation metrics."""
        if self.metrics:
            self.metrics.record_query_duration(
                operation=operation,
                table=self._table,
                duration=duration,
                success=success,
            )

    def _record_error_metrics(self, error_type: str, operation: str) -> None:
        """Record database error metrics."""
        if self.metrics:
            self.metrics.record_database_error(error_type, operation)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a session: the bound transaction's, or a fresh transactional one."""
        if self._bound_session is not None:
            yield self._bound_session
            await self._bound_session.flush()
            return

        session = self.async_session_maker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def _timed(self, operation: str, **log_context: Any) -> AsyncGenerator[None, None]:
        start_time = time.time()
        success = True
        try:
            yield
        except Exception as e:
            success = False
            error_type = e.__class__.__name__
            self._record_error_metrics(error_type, operation)
            logger.error(
                f"Repository {operation} on {self._table} failed: {error_type}: {e}",
                extra={"table": self._table, "in_transaction": self.in_transaction, **log_context},
            )
            raise
        finally:
            self._record_operation_metrics(operation, time.time() - start_time, success)

    async def create(self, entity: M) -> M:
        async with self._timed("create"):
            async with self.session() as session:
                session.add(entity)
                await session.flush()
                return entity

    async def update(self, entity: M) -> M:
        entity_id = entity.entity_id
        async with self._timed("update", entity_id=entity_id):
            async with self.session() as session:
                existing = await session.get(self.model, entity_id)
                if existing is None:
                    raise NoResultFound(f"No {self._table} row with id {entity_id}")
                merged = await session.merge(entity)
                await session.flush()
                return merged

    async def delete(self, entity_id: int) -> bool:
        async with self._timed("delete", entity_id=entity_id):
            async with self.session() as session:
                pk = getattr(self.model, self.model.id_field)
                result = await session.execute(delete(self.model).where(pk == entity_id))
                return bool(getattr(result, "rowcount", 0))

    async def get_by_id(self, entity_id: int) -> M | None:
        async with self._timed("get_by_id", entity_id=entity_id):
            async with self.session() as session:
                return await session.get(self.model, entity_id)

    async def list(self, query_filter: QueryFilter) -> list[M]:
        async with self._timed("list", conditions=len(query_filter.conditions)):
            ensure_known_fields(query_filter, self._table, self.model.column_names())
            stmt = self.build_select(query_filter)
            async with self.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def count(self, query_filter: QueryFilter) -> int:
        async with self._timed("count", conditions=len(query_filter.conditions)):
            ensure_known_fields(query_filter, self._table, self.model.column_names())
            stmt = select(func.count()).select_from(self.model)
            for condition in query_filter.conditions:
                stmt = stmt.where(self._clause(condition))
            async with self.session() as session:
                return int((await session.execute(stmt)).scalar_one())

    async def exists(self, entity_id: int) -> bool:
        async with self._timed("exists", entity_id=entity_id):
            pk = getattr(self.model, self.model.id_field)
            stmt = select(pk).where(pk == entity_id).limit(1)
            async with self.session() as session:
                return (await session.execute(stmt)).scalar_one_or_none() is not None

    def build_select(self, query_filter: QueryFilter) -> Select[tuple[M]]:
        """Translate a ``QueryFilter`` into a SELECT on this repository's model."""
        stmt = select(self.model)
        for condition in query_filter.conditions:
            stmt = stmt.where(self._clause(condition))

        order_keys = query_filter.order_keys()
        if order_keys:
            for field, descending in order_keys:
                column = getattr(self.model, field)
                stmt = stmt.order_by(column.desc() if descending else column.asc())
        else:
            stmt = stmt.order_by(getattr(self.model, self.model.id_field))

        if query_filter.limit is not None:
            stmt = stmt.limit(query_filter.limit)
        if query_filter.offset:
            stmt = stmt.offset(query_filter.offset)
        return stmt

    def _clause(self, condition: Condition) -> ColumnElement[bool]:
        column = getattr(self.model, condition.field)
        value = condition.value
        op = condition.operator

        if op is ComparisonOperator.EQ:
            return cast(ColumnElement[bool], column == value)
        if op is ComparisonOperator.NE:
            return cast(ColumnElement[bool], column != value)
        if op is ComparisonOperator.LT:
            return cast(ColumnElement[bool], column < value)
        if op is ComparisonOperator.LE:
            return cast(ColumnElement[bool], column <= value)
        if op is ComparisonOperator.GT:
            return cast(ColumnElement[bool], column > value)
        if op is ComparisonOperator.GE:
            return cast(ColumnElement[bool], column >= value)
        if op is ComparisonOperator.LIKE:
            return cast(ColumnElement[bool], column.like(value))
        if op is ComparisonOperator.ILIKE:
            return cast(ColumnElement[bool], column.ilike(value))
        if op is ComparisonOperator.IS_NULL:
            return cast(ColumnElement[bool], column.is_(None))
        return cast(ColumnElement[bool], column.is_not(None))
