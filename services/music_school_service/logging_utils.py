"""
Structured logging for the Music School Service using structlog.

Managers and repositories obtain their loggers through
``create_service_logger`` and attach per-operation context with
``bind_operation_context`` so every line written while a manager
operation runs carries the same correlation id.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import AbstractContextManager
from typing import Any
from uuid import UUID

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars
from structlog.typing import Processor


def add_service_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add service name and deployment environment to every log line."""
    event_dict["service.name"] = os.getenv("SERVICE_NAME", "music_school_service")
    event_dict["deployment.environment"] = os.getenv("ENVIRONMENT", "development")
    return event_dict


def configure_service_logging(
    service_name: str,
    environment: str | None = None,
    log_level: str = "INFO",
) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        service_name: Name reported in the ``service.name`` field
        environment: Environment name (defaults to ENVIRONMENT env var)
        log_level: Logging level (defaults to "INFO")

    Environment Variables:
        LOG_FORMAT: "json" for JSON lines, "console" for human-readable output.
            Production defaults to JSON.
    """
    if environment is None:
        environment = os.getenv("ENVIRONMENT", "development")

    os.environ.setdefault("SERVICE_NAME", service_name)
    os.environ.setdefault("ENVIRONMENT", environment)

    log_format = os.getenv("LOG_FORMAT", "").lower()
    use_json = log_format == "json" or (not log_format and environment == "production")

    shared: list[Processor] = [
        merge_contextvars,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
    ]

    processors: list[Processor]
    if use_json:
        processors = [
            *shared,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared,
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    logging.basicConfig(
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_service_logger(name: str | None = None) -> Any:
    """
    Create a service logger with optional name binding.

    Args:
        name: Optional logger name (e.g., "manager", "repository")

    Returns:
        A structlog BoundLogger instance
    """
    logger = structlog.get_logger()

    if name:
        logger = logger.bind(logger_name=name)

    return logger


def bind_operation_context(
    operation: str, correlation_id: UUID, entity: str
) -> AbstractContextManager[None]:
    """
    Bind manager operation context for every log line written inside the block.

    Previously bound values are restored on exit, so a manager operation
    invoked from inside another keeps the outer context intact afterwards.
    """
    return bound_contextvars(
        operation=operation,
        correlation_id=str(correlation_id),
        entity=entity,
    )
