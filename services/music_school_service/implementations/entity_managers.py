"""
Per-entity managers.

Each manager composes a ``BaseManager`` configured with the entity's
uniqueness rules and adds the entity's domain queries on top. Updates that
target a missing row return ``None``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, time
from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID, uuid4

from services.music_school_service.enums import ComparisonOperator, DayOfWeek
from services.music_school_service.error_handling import raise_invalid_request
from services.music_school_service.filters import Condition, QueryFilter
from services.music_school_service.implementations.base_manager import (
    BaseManager,
    UniqueFieldsRule,
)
from services.music_school_service.implementations.conflict_checker import TimeConflictChecker
from services.music_school_service.implementations.transaction_coordinator import (
    TransactionCoordinator,
)
from services.music_school_service.logging_utils import create_service_logger
from services.music_school_service.metrics import ManagerMetrics
from services.music_school_service.models_db import (
    Audience,
    Employee,
    Instrument,
    Lesson,
    ManagedEntity,
    Program,
    ProgramDistribution,
    Schedule,
    Student,
    StudentAssessment,
    StudentAttendance,
    StudyGroup,
    Subject,
    SubjectDistribution,
)
from services.music_school_service.protocols import RepositoryProtocol

logger = create_service_logger("music_school_service.entity_managers")

M = TypeVar("M", bound=ManagedEntity)


def _cond(field: str, operator: ComparisonOperator, value: Any = None) -> Condition:
    return Condition(field=field, operator=operator, value=value)


def _eq(field: str, value: Any) -> Condition:
    return _cond(field, ComparisonOperator.EQ, value)


def _contains(field: str, text: str) -> Condition:
    return _cond(field, ComparisonOperator.ILIKE, f"%{text}%")


def _full_name(person: Student | Employee) -> str:
    return " ".join((person.surname, person.name, person.father_name or ""))


class EntityManager(Generic[M]):
    """Generic operations delegated to the composed ``BaseManager``."""

    entity_type: Type[M]

    def __init__(
        self,
        repository: RepositoryProtocol[M],
        coordinator: TransactionCoordinator,
        metrics: Optional[ManagerMetrics] = None,
        service_name: str = "music_school_service",
    ) -> None:
        self.base = BaseManager(
            self.entity_type,
            repository,
            coordinator,
            rules=self.build_rules(service_name),
            metrics=metrics,
            service_name=service_name,
        )

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[M]]:
        return []

    async def get_by_id(self, entity_id: int, correlation_id: UUID | None = None) -> M | None:
        return await self.base.get_by_id(entity_id, correlation_id)

    async def get_by_ids(
        self, entity_ids: Sequence[int], correlation_id: UUID | None = None
    ) -> list[M]:
        return await self.base.get_by_ids(entity_ids, correlation_id)

    async def list(
        self, query_filter: QueryFilter | None = None, correlation_id: UUID | None = None
    ) -> list[M]:
        return await self.base.list(query_filter, correlation_id)

    async def count(
        self, query_filter: QueryFilter | None = None, correlation_id: UUID | None = None
    ) -> int:
        return await self.base.count(query_filter, correlation_id)

    async def exists(self, entity_id: int, correlation_id: UUID | None = None) -> bool:
        return await self.base.exists(entity_id, correlation_id)

    async def create(self, entity: M, correlation_id: UUID | None = None) -> M:
        return await self.base.create(entity, correlation_id)

    async def update(self, entity: M, correlation_id: UUID | None = None) -> M:
        return await self.base.update(entity, correlation_id)

    async def delete(self, entity_id: int, correlation_id: UUID | None = None) -> bool:
        return await self.base.delete(entity_id, correlation_id)

    async def bulk_create(
        self, entities: Sequence[M], correlation_id: UUID | None = None
    ) -> list[M]:
        return await self.base.bulk_create(entities, correlation_id)

    async def _modify(
        self, entity_id: int, correlation_id: UUID | None, **changes: Any
    ) -> M | None:
        """Load, change and update one row; ``None`` when the row does not exist."""
        correlation_id = correlation_id or uuid4()
        entity = await self.base.get_by_id(entity_id, correlation_id)
        if entity is None:
            logger.warning(
                f"{self.base.entity_name} {entity_id} not found for update",
                extra={"changes": sorted(changes), "correlation_id": str(correlation_id)},
            )
            return None
        for field, value in changes.items():
            setattr(entity, field, value)
        return await self.base.update(entity, correlation_id)


# ====================================================================
# Facilities and catalogue
# ====================================================================


class AudienceManager(EntityManager[Audience]):
    entity_type = Audience

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[Audience]]:
        return [UniqueFieldsRule("audin_number", service_name=service_name)]

    async def get_by_number(
        self, number: str, correlation_id: UUID | None = None
    ) -> Audience | None:
        return await self.base.find_one(
            "get_by_number", _eq("audin_number", number), correlation_id=correlation_id
        )

    async def list_by_capacity(
        self, min_capacity: int, correlation_id: UUID | None = None
    ) -> list[Audience]:
        return await self.base.find(
            "list_by_capacity",
            _cond("capacity", ComparisonOperator.GE, min_capacity),
            order_by="capacity DESC",
            correlation_id=correlation_id,
        )


class InstrumentManager(EntityManager[Instrument]):
    entity_type = Instrument

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[Instrument]]:
        return [UniqueFieldsRule("name", service_name=service_name)]

    async def get_by_audience(
        self, audience_id: int, correlation_id: UUID | None = None
    ) -> list[Instrument]:
        return await self.base.find(
            "get_by_audience",
            _eq("audience_id", audience_id),
            order_by="name",
            correlation_id=correlation_id,
        )

    async def get_by_type(
        self, instr_type: str, correlation_id: UUID | None = None
    ) -> list[Instrument]:
        return await self.base.find(
            "get_by_type",
            _eq("instr_type", instr_type),
            order_by="name",
            correlation_id=correlation_id,
        )

    async def get_by_name(
        self, name: str, correlation_id: UUID | None = None
    ) -> Instrument | None:
        return await self.base.find_one(
            "get_by_name", _eq("name", name), correlation_id=correlation_id
        )

    async def update_condition(
        self, instrument_id: int, condition: str, correlation_id: UUID | None = None
    ) -> Instrument | None:
        return await self._modify(instrument_id, correlation_id, condition=condition)


class ProgramManager(EntityManager[Program]):
    entity_type = Program

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[Program]]:
        return [UniqueFieldsRule("programm_name", service_name=service_name)]

    async def get_by_type(
        self, programm_type: str, correlation_id: UUID | None = None
    ) -> list[Program]:
        return await self.base.find(
            "get_by_type",
            _eq("programm_type", programm_type),
            order_by="programm_name",
            correlation_id=correlation_id,
        )

    async def get_by_instrument(
        self, instrument: str, correlation_id: UUID | None = None
    ) -> list[Program]:
        return await self.base.find(
            "get_by_instrument",
            _eq("instrument", instrument),
            order_by="programm_name",
            correlation_id=correlation_id,
        )

    async def get_by_name(self, name: str, correlation_id: UUID | None = None) -> Program | None:
        return await self.base.find_one(
            "get_by_name", _eq("programm_name", name), correlation_id=correlation_id
        )

    async def get_by_duration_range(
        self, min_duration: int, max_duration: int, correlation_id: UUID | None = None
    ) -> list[Program]:
        return await self.base.find(
            "get_by_duration_range",
            _cond("duration", ComparisonOperator.GE, min_duration),
            _cond("duration", ComparisonOperator.LE, max_duration),
            order_by="duration",
            correlation_id=correlation_id,
        )

    async def get_by_study_load(
        self, study_load: int, correlation_id: UUID | None = None
    ) -> list[Program]:
        return await self.base.find(
            "get_by_study_load",
            _eq("study_load", study_load),
            order_by="programm_name",
            correlation_id=correlation_id,
        )

    async def search_by_description(
        self, text: str, correlation_id: UUID | None = None
    ) -> list[Program]:
        return await self.base.find(
            "search_by_description",
            _contains("description", text),
            order_by="programm_name",
            correlation_id=correlation_id,
        )


class SubjectManager(EntityManager[Subject]):
    entity_type = Subject

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[Subject]]:
        return [UniqueFieldsRule("subject_name", service_name=service_name)]

    async def get_by_type(
        self, subject_type: str, correlation_id: UUID | None = None
    ) -> list[Subject]:
        return await self.base.find(
            "get_by_type",
            _eq("subject_type", subject_type),
            order_by="subject_name",
            correlation_id=correlation_id,
        )

    async def get_by_name(self, name: str, correlation_id: UUID | None = None) -> Subject | None:
        return await self.base.find_one(
            "get_by_name", _eq("subject_name", name), correlation_id=correlation_id
        )

    async def search_by_name(self, text: str, correlation_id: UUID | None = None) -> list[Subject]:
        return await self.base.find(
            "search_by_name",
            _contains("subject_name", text),
            order_by="subject_name",
            correlation_id=correlation_id,
        )

    async def get_by_description(
        self, keyword: str, correlation_id: UUID | None = None
    ) -> list[Subject]:
        return await self.base.find(
            "get_by_description",
            _contains("short_desc", keyword),
            order_by="subject_name",
            correlation_id=correlation_id,
        )


# ====================================================================
# People and groups
# ====================================================================


class StudentManager(EntityManager[Student]):
    entity_type = Student

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[Student]]:
        # Students without a phone number skip the check.
        return [UniqueFieldsRule("phone_number", service_name=service_name)]

    async def get_by_group(
        self, group_id: int, correlation_id: UUID | None = None
    ) -> list[Student]:
        return await self.base.find(
            "get_by_group",
            _eq("group_id", group_id),
            order_by="surname, name",
            correlation_id=correlation_id,
        )

    async def get_by_program(
        self, musprogramm_id: int, correlation_id: UUID | None = None
    ) -> list[Student]:
        return await self.base.find(
            "get_by_program",
            _eq("musprogramm_id", musprogramm_id),
            order_by="surname, name",
            correlation_id=correlation_id,
        )

    async def get_by_birthday_range(
        self, born_from: date, born_to: date, correlation_id: UUID | None = None
    ) -> list[Student]:
        return await self.base.find(
            "get_by_birthday_range",
            _cond("birthday", ComparisonOperator.GE, born_from),
            _cond("birthday", ComparisonOperator.LE, born_to),
            order_by="birthday",
            correlation_id=correlation_id,
        )

    async def search_by_name(self, text: str, correlation_id: UUID | None = None) -> list[Student]:
        """Students whose "surname name father_name" contains ``text``, ignoring case."""
        needle = text.strip().casefold()
        students = await self.base.find(
            "search_by_name", order_by="surname, name", correlation_id=correlation_id
        )
        return [student for student in students if needle in _full_name(student).casefold()]

    async def get_with_user_account(self, correlation_id: UUID | None = None) -> list[Student]:
        return await self.base.find(
            "get_with_user_account",
            _cond("user_id", ComparisonOperator.IS_NOT_NULL),
            order_by="surname, name",
            correlation_id=correlation_id,
        )

    async def transfer_to_group(
        self, student_id: int, group_id: int, correlation_id: UUID | None = None
    ) -> Student | None:
        return await self._modify(student_id, correlation_id, group_id=group_id)

    async def change_program(
        self, student_id: int, musprogramm_id: int, correlation_id: UUID | None = None
    ) -> Student | None:
        return await self._modify(student_id, correlation_id, musprogramm_id=musprogramm_id)


class EmployeeManager(EntityManager[Employee]):
    entity_type = Employee

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[Employee]]:
        return [UniqueFieldsRule("phone_number", service_name=service_name)]

    async def get_by_phone(
        self, phone_number: str, correlation_id: UUID | None = None
    ) -> Employee | None:
        return await self.base.find_one(
            "get_by_phone", _eq("phone_number", phone_number), correlation_id=correlation_id
        )

    async def get_by_user_id(
        self, user_id: int, correlation_id: UUID | None = None
    ) -> Employee | None:
        return await self.base.find_one(
            "get_by_user_id", _eq("user_id", user_id), correlation_id=correlation_id
        )

    async def list_by_experience(
        self, min_experience: int, correlation_id: UUID | None = None
    ) -> list[Employee]:
        return await self.base.find(
            "list_by_experience",
            _cond("work_experience", ComparisonOperator.GE, min_experience),
            order_by="work_experience DESC",
            correlation_id=correlation_id,
        )

    async def list_by_birthday_range(
        self, born_from: date, born_to: date, correlation_id: UUID | None = None
    ) -> list[Employee]:
        return await self.base.find(
            "list_by_birthday_range",
            _cond("birthday", ComparisonOperator.GE, born_from),
            _cond("birthday", ComparisonOperator.LE, born_to),
            order_by="birthday",
            correlation_id=correlation_id,
        )


class StudyGroupManager(EntityManager[StudyGroup]):
    entity_type = StudyGroup

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[StudyGroup]]:
        return [UniqueFieldsRule("group_name", service_name=service_name)]

    async def get_by_program(
        self, musprogramm_id: int, correlation_id: UUID | None = None
    ) -> list[StudyGroup]:
        return await self.base.find(
            "get_by_program",
            _eq("musprogramm_id", musprogramm_id),
            order_by="study_year DESC, group_name",
            correlation_id=correlation_id,
        )

    async def get_by_name(
        self, group_name: str, correlation_id: UUID | None = None
    ) -> StudyGroup | None:
        return await self.base.find_one(
            "get_by_name", _eq("group_name", group_name), correlation_id=correlation_id
        )

    async def get_by_year(
        self, study_year: int, correlation_id: UUID | None = None
    ) -> list[StudyGroup]:
        return await self.base.find(
            "get_by_year",
            _eq("study_year", study_year),
            order_by="group_name",
            correlation_id=correlation_id,
        )

    async def update_student_count(
        self, group_id: int, number_of_students: int, correlation_id: UUID | None = None
    ) -> StudyGroup | None:
        return await self._modify(
            group_id, correlation_id, number_of_students=number_of_students
        )


# ====================================================================
# Teaching
# ====================================================================


class LessonManager(EntityManager[Lesson]):
    """
    Lessons plus the employee and audience availability checks.

    An employee (or audience) is busy in a weekly slot when one of its lessons,
    other than the excluded one, has a schedule on that weekday overlapping
    [time_begin, time_end). Touching slots are free.
    """

    entity_type = Lesson

    def __init__(
        self,
        repository: RepositoryProtocol[Lesson],
        coordinator: TransactionCoordinator,
        metrics: Optional[ManagerMetrics] = None,
        service_name: str = "music_school_service",
        schedule_repository: Optional[RepositoryProtocol[Schedule]] = None,
    ) -> None:
        super().__init__(repository, coordinator, metrics, service_name)
        self.schedule_repository = schedule_repository
        self.checker = TimeConflictChecker(service_name)
        self.service_name = service_name

    async def check_employee_availability(
        self,
        employee_id: int,
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        exclude_lesson_id: int = 0,
        correlation_id: UUID | None = None,
    ) -> bool:
        return await self._check_availability(
            "check_employee_availability",
            "employee_id",
            employee_id,
            day_week,
            time_begin,
            time_end,
            exclude_lesson_id,
            correlation_id,
        )

    async def check_audience_availability(
        self,
        audience_id: int,
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        exclude_lesson_id: int = 0,
        correlation_id: UUID | None = None,
    ) -> bool:
        return await self._check_availability(
            "check_audience_availability",
            "audience_id",
            audience_id,
            day_week,
            time_begin,
            time_end,
            exclude_lesson_id,
            correlation_id,
        )

    async def _check_availability(
        self,
        operation: str,
        owner_field: str,
        owner_id: int,
        day_week: DayOfWeek | str,
        time_begin: time,
        time_end: time,
        exclude_lesson_id: int,
        correlation_id: UUID | None,
    ) -> bool:
        correlation_id = correlation_id or uuid4()
        async with self.base.operation(
            operation, correlation_id, owner_id=owner_id, exclude_lesson_id=exclude_lesson_id
        ):
            if self.schedule_repository is None:
                raise_invalid_request(
                    self.service_name,
                    operation,
                    "Availability checks need a schedule repository",
                    correlation_id,
                )
            self.base.require_id(owner_id, operation, correlation_id)
            day = self.checker.validate_slot(
                day_week, time_begin, time_end, correlation_id, operation
            )
            lessons_filter = QueryFilter(
                conditions=[
                    _eq(owner_field, owner_id),
                    _cond("lesson_id", ComparisonOperator.NE, exclude_lesson_id),
                ]
            )
            lessons = await self.base.call_repository(
                self.base.repository.list(lessons_filter), operation, correlation_id
            )
            for lesson in lessons:
                busy = await self.checker.find_conflict(
                    self.schedule_repository,
                    day,
                    time_begin,
                    time_end,
                    0,
                    correlation_id,
                    lesson_id=lesson.lesson_id,
                )
                if busy is not None:
                    logger.info(
                        f"{owner_field} {owner_id} is busy on {day.value}",
                        extra={"lesson_id": lesson.lesson_id, "schedule_id": busy.schedule_id},
                    )
                    return False
            return True

    async def get_by_audience(
        self, audience_id: int, correlation_id: UUID | None = None
    ) -> list[Lesson]:
        return await self.base.find(
            "get_by_audience",
            _eq("audience_id", audience_id),
            order_by="lesson_id DESC",
            correlation_id=correlation_id,
        )

    async def get_by_student(
        self, student_id: int, correlation_id: UUID | None = None
    ) -> list[Lesson]:
        """Individual lessons of the student."""
        return await self.base.find(
            "get_by_student",
            _eq("student_id", student_id),
            order_by="lesson_id DESC",
            correlation_id=correlation_id,
        )

    async def get_by_employee(
        self, employee_id: int, correlation_id: UUID | None = None
    ) -> list[Lesson]:
        return await self.base.find(
            "get_by_employee",
            _eq("employee_id", employee_id),
            order_by="lesson_id DESC",
            correlation_id=correlation_id,
        )

    async def get_by_group(self, group_id: int, correlation_id: UUID | None = None) -> list[Lesson]:
        return await self.base.find(
            "get_by_group",
            _eq("group_id", group_id),
            order_by="lesson_id DESC",
            correlation_id=correlation_id,
        )

    async def get_by_subject(
        self, subject_id: int, correlation_id: UUID | None = None
    ) -> list[Lesson]:
        return await self.base.find(
            "get_by_subject",
            _eq("subject_id", subject_id),
            order_by="lesson_id DESC",
            correlation_id=correlation_id,
        )


class ProgramDistributionManager(EntityManager[ProgramDistribution]):
    """Which subjects belong to which program; each pair is stored once."""

    entity_type = ProgramDistribution

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[ProgramDistribution]]:
        return [
            UniqueFieldsRule(
                "musprogramm_id", "subject_id", label="program_subject", service_name=service_name
            )
        ]

    async def get_by_pair(
        self, musprogramm_id: int, subject_id: int, correlation_id: UUID | None = None
    ) -> ProgramDistribution | None:
        return await self.base.find_one(
            "get_by_pair",
            _eq("musprogramm_id", musprogramm_id),
            _eq("subject_id", subject_id),
            correlation_id=correlation_id,
        )

    async def check_exists(
        self, musprogramm_id: int, subject_id: int, correlation_id: UUID | None = None
    ) -> bool:
        return await self.get_by_pair(musprogramm_id, subject_id, correlation_id) is not None

    async def get_by_program(
        self, musprogramm_id: int, correlation_id: UUID | None = None
    ) -> list[ProgramDistribution]:
        return await self.base.find(
            "get_by_program",
            _eq("musprogramm_id", musprogramm_id),
            order_by="subject_id",
            correlation_id=correlation_id,
        )

    async def get_by_subject(
        self, subject_id: int, correlation_id: UUID | None = None
    ) -> list[ProgramDistribution]:
        return await self.base.find(
            "get_by_subject",
            _eq("subject_id", subject_id),
            order_by="musprogramm_id",
            correlation_id=correlation_id,
        )


class SubjectDistributionManager(EntityManager[SubjectDistribution]):
    """Which employees teach which subject; each pair is stored once."""

    entity_type = SubjectDistribution

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[SubjectDistribution]]:
        return [
            UniqueFieldsRule(
                "employee_id", "subject_id", label="employee_subject", service_name=service_name
            )
        ]

    async def get_by_pair(
        self, employee_id: int, subject_id: int, correlation_id: UUID | None = None
    ) -> SubjectDistribution | None:
        return await self.base.find_one(
            "get_by_pair",
            _eq("employee_id", employee_id),
            _eq("subject_id", subject_id),
            correlation_id=correlation_id,
        )

    async def check_exists(
        self, employee_id: int, subject_id: int, correlation_id: UUID | None = None
    ) -> bool:
        return await self.get_by_pair(employee_id, subject_id, correlation_id) is not None

    async def get_by_employee(
        self, employee_id: int, correlation_id: UUID | None = None
    ) -> list[SubjectDistribution]:
        return await self.base.find(
            "get_by_employee",
            _eq("employee_id", employee_id),
            order_by="subject_id",
            correlation_id=correlation_id,
        )

    async def get_by_subject(
        self, subject_id: int, correlation_id: UUID | None = None
    ) -> list[SubjectDistribution]:
        return await self.base.find(
            "get_by_subject",
            _eq("subject_id", subject_id),
            order_by="employee_id",
            correlation_id=correlation_id,
        )


class StudentAssessmentManager(EntityManager[StudentAssessment]):
    entity_type = StudentAssessment

    async def get_by_student(
        self, student_id: int, correlation_id: UUID | None = None
    ) -> list[StudentAssessment]:
        return await self.base.find(
            "get_by_student",
            _eq("student_id", student_id),
            order_by="assessment_date DESC",
            correlation_id=correlation_id,
        )

    async def get_by_lesson(
        self, lesson_id: int, correlation_id: UUID | None = None
    ) -> list[StudentAssessment]:
        return await self.base.find(
            "get_by_lesson",
            _eq("lesson_id", lesson_id),
            order_by="student_id",
            correlation_id=correlation_id,
        )

    async def get_by_task_type(
        self, task_type: str, correlation_id: UUID | None = None
    ) -> list[StudentAssessment]:
        return await self.base.find(
            "get_by_task_type",
            _eq("task_type", task_type),
            order_by="assessment_date DESC",
            correlation_id=correlation_id,
        )

    async def get_grades_by_date_range(
        self, start: date, end: date, correlation_id: UUID | None = None
    ) -> list[StudentAssessment]:
        return await self.base.find(
            "get_grades_by_date_range",
            _cond("assessment_date", ComparisonOperator.GE, start),
            _cond("assessment_date", ComparisonOperator.LE, end),
            order_by="assessment_date, student_id",
            correlation_id=correlation_id,
        )

    async def bulk_upsert(
        self, assessments: Sequence[StudentAssessment], correlation_id: UUID | None = None
    ) -> list[StudentAssessment]:
        return await self.base.bulk_upsert(assessments, correlation_id)

    async def get_student_average_grade(
        self, student_id: int, correlation_id: UUID | None = None
    ) -> float:
        """Mean grade of the student; 0.0 when nothing has been graded yet."""
        assessments = await self.get_by_student(student_id, correlation_id)
        if not assessments:
            return 0.0
        return sum(assessment.grade for assessment in assessments) / len(assessments)


class StudentAttendanceManager(EntityManager[StudentAttendance]):
    """Attendance marks; one mark per student and lesson."""

    entity_type = StudentAttendance

    def build_rules(self, service_name: str) -> list[UniqueFieldsRule[StudentAttendance]]:
        return [
            UniqueFieldsRule(
                "student_id", "lesson_id", label="student_lesson", service_name=service_name
            )
        ]

    async def get_by_student(
        self, student_id: int, correlation_id: UUID | None = None
    ) -> list[StudentAttendance]:
        return await self.base.find(
            "get_by_student",
            _eq("student_id", student_id),
            order_by="attendance_date DESC",
            correlation_id=correlation_id,
        )

    async def get_by_lesson(
        self, lesson_id: int, correlation_id: UUID | None = None
    ) -> list[StudentAttendance]:
        return await self.base.find(
            "get_by_lesson",
            _eq("lesson_id", lesson_id),
            order_by="student_id",
            correlation_id=correlation_id,
        )

    async def get_by_date_range(
        self, start: date, end: date, correlation_id: UUID | None = None
    ) -> list[StudentAttendance]:
        return await self.base.find(
            "get_by_date_range",
            _cond("attendance_date", ComparisonOperator.GE, start),
            _cond("attendance_date", ComparisonOperator.LE, end),
            order_by="attendance_date, student_id",
            correlation_id=correlation_id,
        )

    async def get_student_attendance_stats(
        self, student_id: int, correlation_id: UUID | None = None
    ) -> tuple[int, int]:
        """Return ``(present, absent)`` counts for the student."""
        records = await self.get_by_student(student_id, correlation_id)
        present = sum(1 for record in records if record.presence_mark)
        return present, len(records) - present
