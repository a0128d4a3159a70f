"""
Unit tests for weekly time-slot conflict detection.

Intervals are half-open: a lesson ending at 11:00 does not collide with one
starting at 11:00. Only the day of week scopes a conflict.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, time
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from services.music_school_service.enums import ComparisonOperator, DayOfWeek
from services.music_school_service.error_handling import MusicSchoolError
from services.music_school_service.implementations.conflict_checker import (
    ScheduleConflictRule,
    TimeConflictChecker,
    build_conflict_filter,
    intervals_overlap,
)
from services.music_school_service.implementations.repository_mock_impl import (
    InMemoryRepositoryImpl,
)
from services.music_school_service.models_db import Schedule


class TestIntervalsOverlap:
    @pytest.mark.parametrize(
        "begin, end, expected",
        [
            (time(9), time(10), False),  # ends where the stored slot begins
            (time(11), time(12), False),  # begins where the stored slot ends
            (time(9), time(10, 1), True),
            (time(10, 59), time(12), True),
            (time(10, 15), time(10, 45), True),  # contained
            (time(9), time(12), True),  # containing
        ],
    )
    def test_against_ten_to_eleven(self, begin: time, end: time, expected: bool) -> None:
        assert intervals_overlap(begin, end, time(10), time(11)) is expected

    def test_is_symmetric(self) -> None:
        a = (time(9), time(10, 30))
        b = (time(10), time(11))

        assert intervals_overlap(*a, *b) == intervals_overlap(*b, *a)


class TestBuildConflictFilter:
    def test_single_bounded_read(self) -> None:
        query_filter = build_conflict_filter(DayOfWeek.MONDAY, time(10), time(11), exclude_id=4)

        assert query_filter.limit == 1
        assert [(c.field, c.operator, c.value) for c in query_filter.conditions] == [
            ("day_week", ComparisonOperator.EQ, "monday"),
            ("time_begin", ComparisonOperator.LT, time(11)),
            ("time_end", ComparisonOperator.GT, time(10)),
            ("schedule_id", ComparisonOperator.NE, 4),
        ]


class TestTimeConflictChecker:
    """Behaviour of ``find_conflict`` against the in-memory backend."""

    @pytest.mark.asyncio
    async def test_touching_intervals_do_not_conflict(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        # Arrange
        await schedule_repository.create(make_schedule())
        checker = TimeConflictChecker()

        # Act
        before = await checker.has_conflict(
            schedule_repository, "monday", time(9), time(10), 0, uuid4()
        )
        after = await checker.has_conflict(
            schedule_repository, "monday", time(11), time(12), 0, uuid4()
        )

        # Assert
        assert before is False
        assert after is False

    @pytest.mark.asyncio
    async def test_overlap_returns_stored_schedule(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        stored = await schedule_repository.create(make_schedule())

        conflict = await TimeConflictChecker().find_conflict(
            schedule_repository, DayOfWeek.MONDAY, time(10, 30), time(11, 30), 0, uuid4()
        )

        assert conflict is not None
        assert conflict.schedule_id == stored.schedule_id

    @pytest.mark.asyncio
    async def test_other_weekday_and_other_period_ignored(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        await schedule_repository.create(make_schedule(day_week="tuesday"))
        await schedule_repository.create(
            make_schedule(sched_date_start=date(2025, 1, 6), sched_date_end=date(2025, 1, 6))
        )
        checker = TimeConflictChecker()

        wednesday = await checker.has_conflict(
            schedule_repository, "wednesday", time(10), time(11), 0, uuid4()
        )
        monday = await checker.has_conflict(
            schedule_repository, "monday", time(10), time(11), 0, uuid4()
        )

        # Calendar periods are not consulted: the 2025 Monday row still collides.
        assert wednesday is False
        assert monday is True

    @pytest.mark.asyncio
    async def test_excluded_id_never_conflicts_with_itself(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        stored = await schedule_repository.create(make_schedule())

        result = await TimeConflictChecker().has_conflict(
            schedule_repository, "monday", time(10), time(11), stored.schedule_id, uuid4()
        )

        assert result is False

    @pytest.mark.asyncio
    async def test_unknown_weekday_is_validation_error(
        self, schedule_repository: InMemoryRepositoryImpl[Schedule]
    ) -> None:
        with pytest.raises(MusicSchoolError) as exc_info:
            await TimeConflictChecker().has_conflict(
                schedule_repository, "someday", time(10), time(11), 0, uuid4()
            )

        assert exc_info.value.error_code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "day_week"

    @pytest.mark.asyncio
    async def test_empty_interval_is_validation_error(self) -> None:
        repository = AsyncMock()

        with pytest.raises(MusicSchoolError) as exc_info:
            await TimeConflictChecker().has_conflict(
                repository, "monday", time(11), time(11), 0, uuid4()
            )

        assert exc_info.value.error_code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "time_begin"
        repository.list.assert_not_called()

    @pytest.mark.asyncio
    async def test_read_failure_is_persistence_error(self) -> None:
        # Arrange
        repository = AsyncMock()
        repository.list.side_effect = ConnectionError("database unavailable")
        correlation_id = uuid4()

        # Act
        with pytest.raises(MusicSchoolError) as exc_info:
            await TimeConflictChecker().find_conflict(
                repository, "monday", time(10), time(11), 0, correlation_id
            )

        # Assert
        error = exc_info.value
        assert error.error_code == "PERSISTENCE_ERROR"
        assert error.correlation_id == str(correlation_id)
        assert isinstance(error.__cause__, ConnectionError)


class TestScheduleConflictRule:
    @pytest.mark.asyncio
    async def test_conflict_raises_with_canonical_day(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        stored = await schedule_repository.create(make_schedule())
        candidate = make_schedule(day_week="Понедельник", time_begin=time(10, 30))
        candidate.time_end = time(12)

        with pytest.raises(MusicSchoolError) as exc_info:
            await ScheduleConflictRule().check(schedule_repository, candidate, 0, uuid4())

        error = exc_info.value
        assert error.error_code == "SCHEDULE_CONFLICT"
        assert error.details["day_week"] == "monday"
        assert error.details["conflicting_schedule_id"] == stored.schedule_id
        assert "Time conflict detected for monday at 10:30:00-12:00:00" in str(error)

    @pytest.mark.asyncio
    async def test_no_conflict_passes(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        await schedule_repository.create(make_schedule())

        await ScheduleConflictRule().check(
            schedule_repository, make_schedule(time_begin=time(11), time_end=time(12)), 0, uuid4()
        )
