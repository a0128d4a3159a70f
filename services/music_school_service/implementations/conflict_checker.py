"""
Weekly time-slot conflict detection for schedules.

Two half-open intervals [b1, e1) and [b2, e2) overlap iff ``b1 < e2`` and
``e1 > b2``; touching intervals do not overlap. Conflicts are scoped to the
day of week only: the schedule's calendar period is not consulted.
"""

from __future__ import annotations

from datetime import time
from uuid import UUID

from services.music_school_service.enums import ComparisonOperator, DayOfWeek
from services.music_school_service.error_handling import (
    MusicSchoolError,
    raise_persistence_error,
    raise_schedule_conflict,
    raise_validation_error,
)
from services.music_school_service.filters import Condition, QueryFilter
from services.music_school_service.logging_utils import create_service_logger
from services.music_school_service.models_db import Schedule
from services.music_school_service.protocols import RepositoryProtocol

logger = create_service_logger("music_school_service.conflict_checker")


def intervals_overlap(begin_a: time, end_a: time, begin_b: time, end_b: time) -> bool:
    return begin_a < end_b and end_a > begin_b


def build_conflict_filter(
    day_week: DayOfWeek,
    time_begin: time,
    time_end: time,
    exclude_id: int,
    lesson_id: int | None = None,
) -> QueryFilter:
    """
    The single bounded read that finds one stored schedule overlapping the input.

    With ``lesson_id`` the read is restricted to that lesson's schedules.
    """
    conditions = [
        Condition(field="day_week", operator=ComparisonOperator.EQ, value=day_week.value),
        Condition(field="time_begin", operator=ComparisonOperator.LT, value=time_end),
        Condition(field="time_end", operator=ComparisonOperator.GT, value=time_begin),
        Condition(field="schedule_id", operator=ComparisonOperator.NE, value=exclude_id),
    ]
    if lesson_id is not None:
        conditions.append(
            Condition(field="lesson_id", operator=ComparisonOperator.EQ, value=lesson_id)
        )
    return QueryFilter(conditions=conditions, limit=1)


class TimeConflictChecker:
    def __init__(self, service_name: str = "music_school_service") -> None:
        self.service_name = service_name

    def validate_slot(
        self,
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        correlation_id: UUID,
        operation: str = "check_time_conflict",
    ) -> DayOfWeek:
        """Resolve the weekday and require a non-empty interval."""
        try:
            day = DayOfWeek.parse(day_week)
        except ValueError as e:
            raise_validation_error(
                self.service_name, operation, "day_week", str(e), correlation_id, cause=e
            )
        if time_begin >= time_end:
            raise_validation_error(
                self.service_name,
                operation,
                "time_begin",
                f"time_begin {time_begin} must be earlier than time_end {time_end}",
                correlation_id,
            )
        return day

    async def find_conflict(
        self,
        repository: RepositoryProtocol[Schedule],
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        exclude_id: int,
        correlation_id: UUID,
        lesson_id: int | None = None,
    ) -> Schedule | None:
        """
        Return one stored schedule overlapping the interval, or None.

        Raises:
            MusicSchoolError: VALIDATION_ERROR for an unknown weekday or an
                empty interval, PERSISTENCE_ERROR when the read itself fails.
        """
        operation = "check_time_conflict"
        day = self.validate_slot(day_week, time_begin, time_end, correlation_id)
        query_filter = build_conflict_filter(day, time_begin, time_end, exclude_id, lesson_id)
        try:
            found = await repository.list(query_filter)
        except MusicSchoolError:
            raise
        except Exception as e:
            logger.error(
                f"Conflict check query failed: {e.__class__.__name__}: {e}",
                extra={
                    "day_week": day.value,
                    "time_begin": time_begin.isoformat(),
                    "time_end": time_end.isoformat(),
                    "exclude_id": exclude_id,
                },
            )
            raise_persistence_error(
                self.service_name,
                operation,
                f"Conflict check failed: {e}",
                correlation_id,
                cause=e,
                day_week=day.value,
            )
        return found[0] if found else None

    async def has_conflict(
        self,
        repository: RepositoryProtocol[Schedule],
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        exclude_id: int,
        correlation_id: UUID,
    ) -> bool:
        conflict = await self.find_conflict(
            repository, day_week, time_begin, time_end, exclude_id, correlation_id
        )
        return conflict is not None


class ScheduleConflictRule:
    """Entity rule rejecting a schedule that overlaps a stored one on the same weekday."""

    def __init__(
        self,
        checker: TimeConflictChecker | None = None,
        service_name: str = "music_school_service",
    ) -> None:
        self.checker = checker or TimeConflictChecker(service_name)
        self.service_name = service_name

    async def check(
        self,
        repository: RepositoryProtocol[Schedule],
        entity: Schedule,
        exclude_id: int,
        correlation_id: UUID,
    ) -> None:
        conflict = await self.checker.find_conflict(
            repository,
            entity.day_week,
            entity.time_begin,
            entity.time_end,
            exclude_id,
            correlation_id,
        )
        if conflict is not None:
            day = DayOfWeek.parse(entity.day_week).value
            logger.warning(
                "Schedule conflict detected",
                extra={
                    "day_week": day,
                    "time_begin": entity.time_begin.isoformat(),
                    "time_end": entity.time_end.isoformat(),
                    "conflicting_schedule_id": conflict.schedule_id,
                    "exclude_id": exclude_id,
                },
            )
            raise_schedule_conflict(
                self.service_name,
                "check_time_conflict",
                day,
                entity.time_begin.isoformat(),
                entity.time_end.isoformat(),
                correlation_id,
                conflicting_schedule_id=conflict.schedule_id,
            )
