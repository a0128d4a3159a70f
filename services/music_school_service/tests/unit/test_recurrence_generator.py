"""
Unit tests for weekly schedule materialisation.

A run writes one single-day schedule per matching weekday between the
template's start date and ``until`` (inclusive), all in one transaction.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, time, timedelta
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from services.music_school_service.error_handling import MusicSchoolError
from services.music_school_service.implementations.recurrence_generator import (
    RecurrenceGenerator,
    first_occurrence,
    iter_occurrences,
)
from services.music_school_service.implementations.repository_mock_impl import (
    InMemoryRepositoryImpl,
    InMemoryStore,
)
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
)
from services.music_school_service.metrics import ManagerMetrics
from services.music_school_service.models_db import Schedule
from services.music_school_service.protocols import TransactionProviderProtocol

# 2024-09-02 is a Monday.
MONDAY = date(2024, 9, 2)


class TestOccurrences:
    def test_first_occurrence_on_start_day(self) -> None:
        assert first_occurrence(MONDAY, 0) == MONDAY

    def test_first_occurrence_later_in_week(self) -> None:
        assert first_occurrence(MONDAY, 3) == date(2024, 9, 5)

    def test_first_occurrence_wraps_to_next_week(self) -> None:
        wednesday = date(2024, 9, 4)

        assert first_occurrence(wednesday, 0) == date(2024, 9, 9)

    def test_occurrences_step_by_seven_days(self) -> None:
        dates = list(iter_occurrences(MONDAY, date(2024, 9, 30), 2))

        assert dates == [date(2024, 9, 4) + timedelta(weeks=n) for n in range(4)]

    def test_until_is_inclusive(self) -> None:
        assert list(iter_occurrences(MONDAY, MONDAY, 0)) == [MONDAY]

    def test_start_after_until_yields_nothing(self) -> None:
        assert list(iter_occurrences(MONDAY, MONDAY - timedelta(days=1), 0)) == []


class TestRecurrenceGenerator:
    """End-to-end runs against the in-memory store."""

    @pytest.fixture
    def generator(
        self,
        coordinator: TransactionCoordinator,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        manager_metrics: ManagerMetrics,
    ) -> RecurrenceGenerator:
        return RecurrenceGenerator(
            coordinator, schedule_repository, metrics=manager_metrics  # type: ignore[arg-type]
        )

    @pytest.mark.asyncio
    async def test_generates_one_row_per_week(
        self,
        generator: RecurrenceGenerator,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        store: InMemoryStore,
        make_schedule: Callable[..., Schedule],
        metrics_registry: CollectorRegistry,
    ) -> None:
        # Arrange
        template = make_schedule(
            day_week="wednesday",
            sched_date_start=MONDAY,
            sched_date_end=date(2024, 12, 31),
        )

        # Act
        created = await generator.generate(template, date(2024, 9, 25))

        # Assert
        assert [s.sched_date_start for s in created] == [
            date(2024, 9, 4),
            date(2024, 9, 11),
            date(2024, 9, 18),
            date(2024, 9, 25),
        ]
        for schedule in created:
            assert schedule.sched_date_end == schedule.sched_date_start
            assert schedule.sched_date_start.weekday() == 2
            assert schedule.day_week == "wednesday"
            assert (schedule.time_begin, schedule.time_end) == (time(10), time(11))
            assert schedule.lesson_id == template.lesson_id
        assert len(store.table("schedules")) == 4
        assert store.commits == 1
        assert metrics_registry.get_sample_value("music_school_schedules_generated_total") == 4

    @pytest.mark.asyncio
    async def test_alias_weekday_is_stored_canonically(
        self,
        generator: RecurrenceGenerator,
        make_schedule: Callable[..., Schedule],
    ) -> None:
        template = make_schedule(day_week="Пятница", sched_date_start=MONDAY)

        created = await generator.generate(template, date(2024, 9, 13))

        assert [s.sched_date_start for s in created] == [date(2024, 9, 6), date(2024, 9, 13)]
        assert {s.day_week for s in created} == {"friday"}

    @pytest.mark.asyncio
    async def test_invalid_weekday_fails_before_any_transaction(
        self,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        # Arrange
        provider = AsyncMock(spec=TransactionProviderProtocol)
        generator = RecurrenceGenerator(
            TransactionCoordinator(provider, timeout_seconds=5.0),
            schedule_repository,  # type: ignore[arg-type]
        )

        # Act
        with pytest.raises(MusicSchoolError) as exc_info:
            await generator.generate(make_schedule(day_week="caturday"), date(2024, 12, 31))

        # Assert
        assert exc_info.value.error_code == "INVALID_TEMPLATE"
        assert "Invalid day week: caturday" in str(exc_info.value)
        provider.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_overlap_aborts_with_no_rows(
        self,
        generator: RecurrenceGenerator,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        store: InMemoryStore,
        make_schedule: Callable[..., Schedule],
    ) -> None:
        # Arrange
        blocker = await schedule_repository.create(
            make_schedule(time_begin=time(10, 30), time_end=time(11, 30))
        )
        template = make_schedule(sched_date_start=MONDAY)

        # Act
        with pytest.raises(MusicSchoolError) as exc_info:
            await generator.generate(template, date(2024, 10, 28))

        # Assert
        error = exc_info.value
        assert error.error_code == "SCHEDULE_CONFLICT"
        assert error.details["conflicting_schedule_id"] == blocker.schedule_id
        assert error.details["occurrence"] == "2024-09-02"
        assert list(store.table("schedules")) == [blocker.schedule_id]
        assert store.rollbacks == 1
        assert store.commits == 0

    @pytest.mark.asyncio
    async def test_rows_of_the_same_run_do_not_conflict(
        self,
        generator: RecurrenceGenerator,
        store: InMemoryStore,
        make_schedule: Callable[..., Schedule],
    ) -> None:
        created = await generator.generate(
            make_schedule(sched_date_start=MONDAY), date(2024, 9, 16)
        )

        assert len(created) == 3
        assert len(store.table("schedules")) == 3

    @pytest.mark.asyncio
    async def test_start_after_until_commits_nothing(
        self,
        generator: RecurrenceGenerator,
        store: InMemoryStore,
        make_schedule: Callable[..., Schedule],
    ) -> None:
        created = await generator.generate(
            make_schedule(sched_date_start=MONDAY), date(2024, 8, 1)
        )

        assert created == []
        assert store.table("schedules") == {}
        assert store.commits == 1

    @pytest.mark.asyncio
    async def test_inverted_interval_fails_before_any_transaction(
        self,
        generator: RecurrenceGenerator,
        store: InMemoryStore,
        make_schedule: Callable[..., Schedule],
    ) -> None:
        template = make_schedule(time_begin=time(12), time_end=time(11), sched_date_start=MONDAY)

        with pytest.raises(MusicSchoolError) as exc_info:
            await generator.generate(template, date(2024, 9, 30))

        assert exc_info.value.error_code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "time_begin"
        assert store.table("schedules") == {}
        assert (store.commits, store.rollbacks) == (0, 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["sched_date_start", "time_begin", "time_end"])
    async def test_template_without_start_or_times_is_rejected(
        self,
        missing: str,
        schedule_repository: InMemoryRepositoryImpl[Schedule],
        make_schedule: Callable[..., Schedule],
    ) -> None:
        # Arrange
        provider = AsyncMock(spec=TransactionProviderProtocol)
        generator = RecurrenceGenerator(
            TransactionCoordinator(provider, timeout_seconds=5.0),
            schedule_repository,  # type: ignore[arg-type]
        )

        # Act
        with pytest.raises(MusicSchoolError) as exc_info:
            await generator.generate(make_schedule(**{missing: None}), date(2024, 12, 31))

        # Assert
        assert exc_info.value.error_code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == missing
        provider.begin.assert_not_called()
