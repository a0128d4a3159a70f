from __future__ import annotations

from typing import Any, Optional, Type, TypeVar, cast

from dishka import AsyncContainer, Provider, Scope, make_async_container, provide
from prometheus_client import REGISTRY, CollectorRegistry
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from services.music_school_service.config import Settings, settings
from services.music_school_service.enums import Environment
from services.music_school_service.implementations.entity_managers import (
    AudienceManager,
    EmployeeManager,
    EntityManager,
    InstrumentManager,
    LessonManager,
    ProgramDistributionManager,
    ProgramManager,
    StudentAssessmentManager,
    StudentAttendanceManager,
    StudentManager,
    StudyGroupManager,
    SubjectDistributionManager,
    SubjectManager,
)
from services.music_school_service.implementations.repository_mock_impl import (
    InMemoryRepositoryImpl,
    InMemoryStore,
)
from services.music_school_service.implementations.repository_postgres_impl import (
    PostgreSQLRepositoryImpl,
)
from services.music_school_service.implementations.schedule_manager import ScheduleManager
from services.music_school_service.implementations.transaction_coordinator import (
    SQLAlchemyTransactionProvider,
    TransactionCoordinator,
)
from services.music_school_service.metrics import DatabaseMetrics, ManagerMetrics
from services.music_school_service.models_db import Lesson, ManagedEntity, Schedule
from services.music_school_service.protocols import (
    RepositoryProtocol,
    TransactionProviderProtocol,
)

M = TypeVar("M", bound=ManagedEntity)


class RepositoryFactory:
    """Builds the repository of any entity type on the configured backend."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        store: Optional[InMemoryStore] = None,
        database_metrics: Optional[DatabaseMetrics] = None,
    ) -> None:
        if (session_maker is None) == (store is None):
            raise ValueError("Provide exactly one of session_maker or store")
        self.session_maker = session_maker
        self.store = store
        self.database_metrics = database_metrics

    def for_model(self, model: Type[M]) -> RepositoryProtocol[M]:
        if self.store is not None:
            return cast(RepositoryProtocol[M], InMemoryRepositoryImpl(model, self.store))
        assert self.session_maker is not None
        return cast(
            RepositoryProtocol[M],
            PostgreSQLRepositoryImpl(model, self.session_maker, self.database_metrics),
        )


def uses_mock_repository(app_settings: Settings) -> bool:
    return app_settings.USE_MOCK_REPOSITORY or app_settings.ENVIRONMENT == Environment.TESTING


class ServiceProvider(Provider):
    def __init__(self, app_settings: Settings = settings) -> None:
        super().__init__()
        self._settings = app_settings

    @provide(scope=Scope.APP)
    def provide_settings(self) -> Settings:
        return self._settings

    @provide(scope=Scope.APP)
    def provide_metrics_registry(self) -> CollectorRegistry:
        return REGISTRY


class DatabaseProvider(Provider):
    @provide(scope=Scope.APP)
    def provide_engine(self, settings: Settings) -> AsyncEngine:
        engine_options: dict[str, Any] = {}
        if not settings.uses_sqlite:
            engine_options = {
                "pool_size": settings.DATABASE_POOL_SIZE,
                "max_overflow": settings.DATABASE_MAX_OVERFLOW,
                "pool_pre_ping": settings.DATABASE_POOL_PRE_PING,
                "pool_recycle": settings.DATABASE_POOL_RECYCLE,
            }
        return create_async_engine(settings.DATABASE_URL, **engine_options)

    @provide(scope=Scope.APP)
    def provide_sessionmaker(self, engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(engine, expire_on_commit=False)

    @provide(scope=Scope.APP)
    def provide_database_metrics(
        self, settings: Settings, registry: CollectorRegistry
    ) -> DatabaseMetrics:
        return DatabaseMetrics(service_name=settings.SERVICE_NAME, registry=registry)


class RepositoryProvider(Provider):
    @provide(scope=Scope.APP)
    def provide_in_memory_store(self) -> InMemoryStore:
        return InMemoryStore()

    @provide(scope=Scope.APP)
    def provide_repository_factory(
        self,
        settings: Settings,
        store: InMemoryStore,
        session_maker: async_sessionmaker[AsyncSession],
        database_metrics: DatabaseMetrics,
    ) -> RepositoryFactory:
        if uses_mock_repository(settings):
            return RepositoryFactory(store=store)
        return RepositoryFactory(session_maker=session_maker, database_metrics=database_metrics)

    @provide(scope=Scope.APP)
    def provide_transaction_provider(
        self,
        settings: Settings,
        store: InMemoryStore,
        session_maker: async_sessionmaker[AsyncSession],
    ) -> TransactionProviderProtocol:
        if uses_mock_repository(settings):
            return store
        return SQLAlchemyTransactionProvider(session_maker)


class ManagerProvider(Provider):
    @provide(scope=Scope.APP)
    def provide_manager_metrics(
        self, registry: CollectorRegistry, database_metrics: DatabaseMetrics
    ) -> ManagerMetrics:
        return ManagerMetrics(registry=registry, database_metrics=database_metrics)

    @provide(scope=Scope.APP)
    def provide_transaction_coordinator(
        self, settings: Settings, provider: TransactionProviderProtocol
    ) -> TransactionCoordinator:
        return TransactionCoordinator(
            provider, settings.MANAGER_TIMEOUT_SECONDS, settings.SERVICE_NAME
        )

    @provide(scope=Scope.APP)
    def provide_schedule_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> ScheduleManager:
        return ScheduleManager(
            factory.for_model(Schedule), coordinator, metrics, settings.SERVICE_NAME
        )

    @provide(scope=Scope.APP)
    def provide_audience_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> AudienceManager:
        return _build(AudienceManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_instrument_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> InstrumentManager:
        return _build(InstrumentManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_program_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> ProgramManager:
        return _build(ProgramManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_subject_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> SubjectManager:
        return _build(SubjectManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_student_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> StudentManager:
        return _build(StudentManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_employee_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> EmployeeManager:
        return _build(EmployeeManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_study_group_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> StudyGroupManager:
        return _build(StudyGroupManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_lesson_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> LessonManager:
        return LessonManager(
            factory.for_model(Lesson),
            coordinator,
            metrics,
            settings.SERVICE_NAME,
            schedule_repository=factory.for_model(Schedule),
        )

    @provide(scope=Scope.APP)
    def provide_program_distribution_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> ProgramDistributionManager:
        return _build(ProgramDistributionManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_subject_distribution_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> SubjectDistributionManager:
        return _build(SubjectDistributionManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_student_assessment_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> StudentAssessmentManager:
        return _build(StudentAssessmentManager, factory, coordinator, metrics, settings)

    @provide(scope=Scope.APP)
    def provide_student_attendance_manager(
        self,
        factory: RepositoryFactory,
        coordinator: TransactionCoordinator,
        metrics: ManagerMetrics,
        settings: Settings,
    ) -> StudentAttendanceManager:
        return _build(StudentAttendanceManager, factory, coordinator, metrics, settings)


EntityManagerT = TypeVar("EntityManagerT", bound=EntityManager[Any])


def _build(
    manager_type: Type[EntityManagerT],
    factory: RepositoryFactory,
    coordinator: TransactionCoordinator,
    metrics: ManagerMetrics,
    settings: Settings,
) -> EntityManagerT:
    repository = factory.for_model(manager_type.entity_type)
    return manager_type(repository, coordinator, metrics, settings.SERVICE_NAME)


def create_container(app_settings: Settings = settings) -> AsyncContainer:
    """Create the application container for the given settings."""
    return make_async_container(
        ServiceProvider(app_settings),
        DatabaseProvider(),
        RepositoryProvider(),
        ManagerProvider(),
    )
