"""Metrics definitions for the Music School Service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from services.music_school_service.logging_utils import create_service_logger

logger = create_service_logger("music_school_service.metrics")


class DatabaseMetrics:
    """Prometheus implementation of ``DatabaseMetricsProtocol``."""

    def __init__(
        self,
        service_name: str = "music_school_service",
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        registry = registry if registry is not None else REGISTRY
        self.service_name = service_name
        self.query_duration_seconds = Histogram(
            "music_school_db_query_duration_seconds",
            "Duration of repository queries in seconds.",
            ["service", "operation", "table", "success"],
            registry=registry,
        )
        self.database_errors_total = Counter(
            "music_school_db_errors_total",
            "Total number of repository errors.",
            ["service", "error_type", "operation"],
            registry=registry,
        )

    def record_query_duration(
        self, operation: str, table: str, duration: float, success: bool
    ) -> None:
        self.query_duration_seconds.labels(
            service=self.service_name,
            operation=operation,
            table=table,
            success=str(success).lower(),
        ).observe(duration)

    def record_database_error(self, error_type: str, operation: str) -> None:
        self.database_errors_total.labels(
            service=self.service_name, error_type=error_type, operation=operation
        ).inc()

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "db_query_duration_seconds": self.query_duration_seconds,
            "db_errors_total": self.database_errors_total,
        }


class ManagerMetrics:
    """A container for the manager-layer Prometheus metrics."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        database_metrics: Optional[DatabaseMetrics] = None,
    ) -> None:
        registry = registry if registry is not None else REGISTRY

        self.operations_total = Counter(
            "music_school_manager_operations_total",
            "Total number of manager operations.",
            ["entity", "operation", "outcome"],
            registry=registry,
        )
        self.operation_duration_seconds = Histogram(
            "music_school_manager_operation_duration_seconds",
            "Manager operation duration in seconds.",
            ["entity", "operation"],
            registry=registry,
        )
        self.errors_total = Counter(
            "music_school_manager_errors_total",
            "Total number of manager errors by error code.",
            ["entity", "operation", "error_code"],
            registry=registry,
        )
        self.schedules_generated_total = Counter(
            "music_school_schedules_generated_total",
            "Total number of schedule rows materialised by recurrence runs.",
            registry=registry,
        )

        self.database_metrics = database_metrics
        if database_metrics:
            logger.info("Database metrics integrated into ManagerMetrics")

    def record_operation(
        self, entity: str, operation: str, duration: float, success: bool
    ) -> None:
        self.operations_total.labels(
            entity=entity, operation=operation, outcome="success" if success else "failure"
        ).inc()
        self.operation_duration_seconds.labels(entity=entity, operation=operation).observe(
            duration
        )

    def record_error(self, entity: str, operation: str, error_code: str) -> None:
        self.errors_total.labels(entity=entity, operation=operation, error_code=error_code).inc()

    def get_all_metrics(self) -> Dict[str, Any]:
        """Get all metrics including database metrics."""
        metrics = {
            "operations_total": self.operations_total,
            "operation_duration_seconds": self.operation_duration_seconds,
            "errors_total": self.errors_total,
            "schedules_generated_total": self.schedules_generated_total,
        }

        if self.database_metrics:
            metrics.update(self.database_metrics.get_metrics())

        return metrics
