"""
Materialises weekly schedule rows from a template.

A run resolves the template's weekday before any storage work, then writes
one row per matching date from the template's start date up to and including
``until``, all inside a single transaction. Any conflict aborts the whole run.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, timedelta
from typing import Optional
from uuid import UUID, uuid4

from pydantic import ValidationError

from services.music_school_service.enums import DayOfWeek
from services.music_school_service.error_handling import (
    MusicSchoolError,
    raise_invalid_template,
    raise_persistence_error,
    raise_schedule_conflict,
    raise_validation_error,
)
from services.music_school_service.implementations.conflict_checker import TimeConflictChecker
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
)
from services.music_school_service.logging_utils import create_service_logger
from services.music_school_service.metrics import ManagerMetrics
from services.music_school_service.models_db import Schedule
from services.music_school_service.protocols import RepositoryProtocol

logger = create_service_logger("music_school_service.recurrence")

WEEK = timedelta(days=7)


def first_occurrence(start: date, weekday: int) -> date:
    """First date on or after ``start`` falling on ``weekday`` (Monday == 0)."""
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def iter_occurrences(start: date, until: date, weekday: int) -> Iterator[date]:
    current = first_occurrence(start, weekday)
    while current <= until:
        yield current
        current += WEEK


class RecurrenceGenerator:
    def __init__(
        self,
        coordinator: TransactionCoordinator,
        repository: RepositoryProtocol[Schedule],
        checker: Optional[TimeConflictChecker] = None,
        metrics: Optional[ManagerMetrics] = None,
        service_name: str = "music_school_service",
    ) -> None:
        self.coordinator = coordinator
        self.repository = repository
        self.checker = checker or TimeConflictChecker(service_name)
        self.metrics = metrics
        self.service_name = service_name

    def resolve_weekday(self, template: Schedule, correlation_id: UUID) -> DayOfWeek:
        try:
            return DayOfWeek.parse(template.day_week)
        except ValueError as e:
            logger.error(
                f"Invalid day week in recurrence template: {template.day_week!r}",
                extra={"lesson_id": template.lesson_id, "correlation_id": str(correlation_id)},
            )
            raise_invalid_template(
                self.service_name,
                "generate_schedule",
                str(template.day_week),
                correlation_id,
                cause=e,
                lesson_id=template.lesson_id,
            )

    def check_template(self, template: Schedule, correlation_id: UUID) -> DayOfWeek:
        """Reject a template that cannot produce rows, before any storage work."""
        operation = "generate_schedule"
        day = self.resolve_weekday(template, correlation_id)
        for field in ("sched_date_start", "time_begin", "time_end"):
            if getattr(template, field) is None:
                raise_validation_error(
                    self.service_name,
                    operation,
                    field,
                    f"Recurrence template has no {field}",
                    correlation_id,
                    lesson_id=template.lesson_id,
                )
        if template.time_begin >= template.time_end:
            raise_validation_error(
                self.service_name,
                operation,
                "time_begin",
                f"time_begin {template.time_begin} must be earlier than time_end "
                f"{template.time_end}",
                correlation_id,
                lesson_id=template.lesson_id,
            )
        return day

    async def generate(
        self,
        template: Schedule,
        until: date,
        correlation_id: UUID | None = None,
    ) -> list[Schedule]:
        """
        Persist one schedule per matching weekday between the template start and ``until``.

        Every iteration re-checks the template's fixed weekday and interval
        against committed rows with no excluded id, so rows written earlier
        in the same run never conflict with each other while a pre-existing
        overlapping schedule aborts the run on its first iteration. A template
        starting after ``until`` commits with zero writes.

        Returns:
            The created schedules, in date order.

        Raises:
            MusicSchoolError: INVALID_TEMPLATE for an unknown weekday and
                VALIDATION_ERROR for a missing start date or an empty interval,
                both before any storage work. SCHEDULE_CONFLICT, VALIDATION_ERROR,
                PERSISTENCE_ERROR or TRANSACTION_ERROR with everything rolled back.
        """
        correlation_id = correlation_id or uuid4()
        operation = "generate_schedule"
        day = self.check_template(template, correlation_id)
        weekday = day.to_weekday()

        async def materialise(tx_repository: RepositoryProtocol[Schedule]) -> list[Schedule]:
            created: list[Schedule] = []
            for occurrence in iter_occurrences(template.sched_date_start, until, weekday):
                conflict = await self.checker.find_conflict(
                    self.repository,
                    day,
                    template.time_begin,
                    template.time_end,
                    0,
                    correlation_id,
                )
                if conflict is not None:
                    logger.warning(
                        f"Recurrence aborted by schedule {conflict.schedule_id}",
                        extra={"occurrence": occurrence.isoformat(), "generated": len(created)},
                    )
                    raise_schedule_conflict(
                        self.service_name,
                        operation,
                        day.value,
                        template.time_begin.isoformat(),
                        template.time_end.isoformat(),
                        correlation_id,
                        conflicting_schedule_id=conflict.schedule_id,
                        occurrence=occurrence.isoformat(),
                    )

                row = Schedule(
                    lesson_id=template.lesson_id,
                    day_week=day.value,
                    time_begin=template.time_begin,
                    time_end=template.time_end,
                    sched_date_start=occurrence,
                    sched_date_end=occurrence,
                )
                self._validate(row, operation, correlation_id)
                created.append(await self._persist(tx_repository, row, operation, correlation_id))
            return created

        created = await self.coordinator.execute(
            self.repository, materialise, operation, correlation_id
        )
        if self.metrics:
            self.metrics.schedules_generated_total.inc(len(created))
        logger.info(
            f"Generated {len(created)} schedules for lesson {template.lesson_id}",
            extra={"day_week": day.value, "until": until.isoformat()},
        )
        return created

    def _validate(self, row: Schedule, operation: str, correlation_id: UUID) -> None:
        try:
            row.validate()
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "__root__"
            raise_validation_error(
                self.service_name,
                operation,
                field,
                f"Generated schedule is invalid: {first['msg']}",
                correlation_id,
                cause=e,
                occurrence=row.sched_date_start.isoformat(),
            )

    async def _persist(
        self,
        tx_repository: RepositoryProtocol[Schedule],
        row: Schedule,
        operation: str,
        correlation_id: UUID,
    ) -> Schedule:
        try:
            return await tx_repository.create(row)
        except MusicSchoolError:
            raise
        except Exception as e:
            raise_persistence_error(
                self.service_name,
                operation,
                f"Failed to persist generated schedule: {e.__class__.__name__}: {e}",
                correlation_id,
                cause=e,
                occurrence=row.sched_date_start.isoformat(),
            )
