"""Shared test fixtures and configuration for Music School Service tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import date, time
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from prometheus_client import REGISTRY, CollectorRegistry
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from services.music_school_service.implementations.repository_mock_impl import (
    InMemoryRepositoryImpl,
    InMemoryStore,
)
from services.music_school_service.implementations.schedule_manager import ScheduleManager
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
)
from services.music_school_service.metrics import ManagerMetrics
from services.music_school_service.models_db import Base, Schedule


@pytest.fixture(autouse=True)
def _clear_prometheus_registry() -> Any:
    """
    Clear the default Prometheus registry before each test.

    Prevents "Duplicated timeseries in CollectorRegistry" errors when several
    tests build containers that register metrics.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)
    yield


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def manager_metrics(metrics_registry: CollectorRegistry) -> ManagerMetrics:
    return ManagerMetrics(registry=metrics_registry)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def coordinator(store: InMemoryStore) -> TransactionCoordinator:
    return TransactionCoordinator(store, timeout_seconds=5.0)


@pytest.fixture
def schedule_repository(store: InMemoryStore) -> InMemoryRepositoryImpl[Schedule]:
    return InMemoryRepositoryImpl(Schedule, store)


@pytest.fixture
def schedule_manager(
    schedule_repository: InMemoryRepositoryImpl[Schedule],
    coordinator: TransactionCoordinator,
    manager_metrics: ManagerMetrics,
) -> ScheduleManager:
    return ScheduleManager(
        schedule_repository, coordinator, manager_metrics  # type: ignore[arg-type]
    )


@pytest.fixture
def make_schedule() -> Callable[..., Schedule]:
    """Factory for unsaved schedules; keyword arguments override the defaults."""

    def _make(**overrides: Any) -> Schedule:
        attrs: dict[str, Any] = {
            "lesson_id": 1,
            "day_week": "monday",
            "time_begin": time(10, 0),
            "time_end": time(11, 0),
            "sched_date_start": date(2024, 9, 2),
            "sched_date_end": date(2024, 9, 2),
        }
        attrs.update(overrides)
        return Schedule(**attrs)

    return _make


# --- SQLite-backed fixtures for repository integration tests ---


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the full schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'music_school.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)
