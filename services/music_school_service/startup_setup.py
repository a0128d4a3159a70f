from __future__ import annotations

from dishka import AsyncContainer
from sqlalchemy.ext.asyncio import AsyncEngine

from services.music_school_service.config import Settings
from services.music_school_service.di import uses_mock_repository
from services.music_school_service.logging_utils import (
    configure_service_logging,
    create_service_logger,
)
from services.music_school_service.models_db import Base

logger = create_service_logger("music_school_service.startup")


async def initialize_database_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    try:
        logger.info("Initializing database schema...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema initialized successfully")
    except Exception as e:
        logger.critical(f"Failed to initialize database schema: {e}", exc_info=True)
        raise


async def initialize_services(container: AsyncContainer) -> None:
    """Configure logging and, on a relational backend, the schema."""
    app_settings = await container.get(Settings)
    configure_service_logging(
        app_settings.SERVICE_NAME,
        environment=app_settings.ENVIRONMENT.value,
        log_level=app_settings.LOG_LEVEL,
    )
    if uses_mock_repository(app_settings):
        logger.info("Using in-memory repositories; skipping schema initialization")
        return
    await initialize_database_schema(await container.get(AsyncEngine))


async def shutdown_services(container: AsyncContainer) -> None:
    """Dispose the engine and close the container."""
    app_settings = await container.get(Settings)
    if not uses_mock_repository(app_settings):
        engine = await container.get(AsyncEngine)
        await engine.dispose()
    await container.close()
    logger.info("Music School Service shutdown completed")
