from __future__ import annotations

from collections.abc import Sequence
from datetime import date, time
from typing import Optional
from uuid import UUID, uuid4

from services.music_school_service.enums import ComparisonOperator, DayOfWeek
from services.music_school_service.error_handling import raise_validation_error
from services.music_school_service.filters import Condition, QueryFilter
from services.music_school_service.implementations.base_manager import BaseManager
from services.music_school_service.implementations.conflict_checker import (
    ScheduleConflictRule,
    TimeConflictChecker,
)
from services.music_school_service.implementations.recurrence_generator import (
    RecurrenceGenerator,
)
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
)
from services.music_school_service.logging_utils import create_service_logger
from services.music_school_service.metrics import ManagerMetrics
from services.music_school_service.models_db import Schedule
from services.music_school_service.protocols import RepositoryProtocol

logger = create_service_logger("music_school_service.schedule_manager")


class ScheduleManager:
    """
    Manager for schedules: the generic pipeline plus the overlap rule.

    Every create, update and bulk insert rejects a schedule overlapping a
    stored one on the same weekday. The check and the write are separate
    statements, so two concurrent writers can still both pass the check.
    """

    def __init__(
        self,
        repository: RepositoryProtocol[Schedule],
        coordinator: TransactionCoordinator,
        metrics: Optional[ManagerMetrics] = None,
        service_name: str = "music_school_service",
    ) -> None:
        self.checker = TimeConflictChecker(service_name)
        self.base = BaseManager(
            Schedule,
            repository,
            coordinator,
            rules=[ScheduleConflictRule(self.checker, service_name)],
            metrics=metrics,
            service_name=service_name,
        )
        self.generator = RecurrenceGenerator(
            coordinator, repository, self.checker, metrics, service_name
        )
        self.service_name = service_name

    @staticmethod
    def _normalise_day(schedule: Schedule) -> None:
        # Unknown symbols are left in place for validate() to reject.
        day = DayOfWeek.lookup(schedule.day_week)
        if day is not None:
            schedule.day_week = day.value

    async def get_by_id(
        self, schedule_id: int, correlation_id: UUID | None = None
    ) -> Schedule | None:
        return await self.base.get_by_id(schedule_id, correlation_id)

    async def get_by_ids(
        self, schedule_ids: Sequence[int], correlation_id: UUID | None = None
    ) -> list[Schedule]:
        return await self.base.get_by_ids(schedule_ids, correlation_id)

    async def list(
        self, query_filter: QueryFilter | None = None, correlation_id: UUID | None = None
    ) -> list[Schedule]:
        return await self.base.list(query_filter, correlation_id)

    async def count(
        self, query_filter: QueryFilter | None = None, correlation_id: UUID | None = None
    ) -> int:
        return await self.base.count(query_filter, correlation_id)

    async def exists(self, schedule_id: int, correlation_id: UUID | None = None) -> bool:
        return await self.base.exists(schedule_id, correlation_id)

    async def create(self, schedule: Schedule, correlation_id: UUID | None = None) -> Schedule:
        self._normalise_day(schedule)
        return await self.base.create(schedule, correlation_id)

    async def update(self, schedule: Schedule, correlation_id: UUID | None = None) -> Schedule:
        self._normalise_day(schedule)
        return await self.base.update(schedule, correlation_id)

    async def delete(self, schedule_id: int, correlation_id: UUID | None = None) -> bool:
        return await self.base.delete(schedule_id, correlation_id)

    async def bulk_create(
        self, schedules: Sequence[Schedule], correlation_id: UUID | None = None
    ) -> list[Schedule]:
        for schedule in schedules:
            self._normalise_day(schedule)
        return await self.base.bulk_create(schedules, correlation_id)

    async def check_time_conflict(
        self,
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        exclude_id: int = 0,
        correlation_id: UUID | None = None,
    ) -> bool:
        """True when a stored schedule on ``day_week`` overlaps [time_begin, time_end)."""
        correlation_id = correlation_id or uuid4()
        async with self.base.operation(
            "check_time_conflict", correlation_id, exclude_id=exclude_id
        ):
            return await self.checker.has_conflict(
                self.base.repository, day_week, time_begin, time_end, exclude_id, correlation_id
            )

    async def generate_schedule(
        self, template: Schedule, until: date, correlation_id: UUID | None = None
    ) -> list[Schedule]:
        correlation_id = correlation_id or uuid4()
        async with self.base.operation(
            "generate_schedule", correlation_id, lesson_id=template.lesson_id
        ):
            return await self.generator.generate(template, until, correlation_id)

    async def get_by_lesson(
        self, lesson_id: int, correlation_id: UUID | None = None
    ) -> list[Schedule]:
        return await self.base.find(
            "get_by_lesson",
            Condition(field="lesson_id", operator=ComparisonOperator.EQ, value=lesson_id),
            order_by="day_week, time_begin, sched_date_start",
            correlation_id=correlation_id,
        )

    async def get_by_day(
        self, day_week: DayOfWeek | str, correlation_id: UUID | None = None
    ) -> list[Schedule]:
        correlation_id = correlation_id or uuid4()
        day = DayOfWeek.lookup(day_week)
        if day is None:
            logger.error(
                f"get_by_day called with unknown day week {day_week!r}",
                extra={"correlation_id": str(correlation_id)},
            )
            raise_validation_error(
                self.service_name,
                "get_by_day",
                "day_week",
                f"Invalid day of week: {day_week!r}",
                correlation_id,
            )
        return await self.base.find(
            "get_by_day",
            Condition(field="day_week", operator=ComparisonOperator.EQ, value=day.value),
            order_by="time_begin",
            correlation_id=correlation_id,
        )

    async def get_current_schedule(
        self, today: date | None = None, correlation_id: UUID | None = None
    ) -> list[Schedule]:
        """Schedules whose period contains ``today`` (defaults to the current date)."""
        today = today or date.today()
        return await self.base.find(
            "get_current_schedule",
            Condition(field="sched_date_start", operator=ComparisonOperator.LE, value=today),
            Condition(field="sched_date_end", operator=ComparisonOperator.GE, value=today),
            order_by="day_week, time_begin",
            correlation_id=correlation_id,
        )

    async def get_by_date_range(
        self, start: date, end: date, correlation_id: UUID | None = None
    ) -> list[Schedule]:
        """Schedules whose period overlaps [start, end], both ends inclusive."""
        return await self.base.find(
            "get_by_date_range",
            Condition(field="sched_date_start", operator=ComparisonOperator.LE, value=end),
            Condition(field="sched_date_end", operator=ComparisonOperator.GE, value=start),
            order_by="sched_date_start, day_week, time_begin",
            correlation_id=correlation_id,
        )
