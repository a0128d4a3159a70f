from __future__ import annotations

from datetime import date, time
from typing import Any, ClassVar

from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from services.music_school_service.api_models import (
    AudienceSchema,
    EmployeeSchema,
    InstrumentSchema,
    LessonSchema,
    ProgramDistributionSchema,
    ProgramSchema,
    ScheduleSchema,
    StudentAssessmentSchema,
    StudentAttendanceSchema,
    StudentSchema,
    StudyGroupSchema,
    SubjectDistributionSchema,
    SubjectSchema,
)


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class ManagedEntity(Base):
    """
    Common behaviour of every entity handled by the manager layer.

    Subclasses name their primary-key attribute in ``id_field`` and their
    validation schema in ``validation_schema``.
    """

    __abstract__ = True

    id_field: ClassVar[str]
    validation_schema: ClassVar[type[BaseModel]]

    @property
    def entity_id(self) -> int:
        return getattr(self, self.id_field) or 0

    def assign_id(self, entity_id: int) -> None:
        setattr(self, self.id_field, entity_id)

    def validate(self) -> None:
        """Raise ``pydantic.ValidationError`` if any attribute breaks the schema."""
        self.validation_schema.model_validate(self, from_attributes=True)

    def to_dict(self) -> dict[str, Any]:
        return {column.key: getattr(self, column.key) for column in self.__table__.columns}

    @classmethod
    def column_names(cls) -> frozenset[str]:
        return frozenset(column.key for column in cls.__table__.columns)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id_field}={self.entity_id})"


class Audience(ManagedEntity):
    __tablename__ = "audiences"
    id_field = "audience_id"
    validation_schema = AudienceSchema

    audience_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    audin_type: Mapped[str] = mapped_column(String(50), nullable=False)
    audin_number: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)


class Instrument(ManagedEntity):
    __tablename__ = "instruments"
    id_field = "instrument_id"
    validation_schema = InstrumentSchema

    instrument_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    audience_id: Mapped[int] = mapped_column(ForeignKey("audiences.audience_id"), nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    instr_type: Mapped[str] = mapped_column(String(70), nullable=False)
    condition: Mapped[str] = mapped_column(String(70), nullable=False)


class Program(ManagedEntity):
    __tablename__ = "musprogramms"
    id_field = "musprogramm_id"
    validation_schema = ProgramSchema

    musprogramm_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    programm_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    programm_type: Mapped[str] = mapped_column(String(70), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    instrument: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    study_load: Mapped[int] = mapped_column(Integer, nullable=False)
    final_certification_form: Mapped[str] = mapped_column(String(100), nullable=False)


class Subject(ManagedEntity):
    __tablename__ = "subjects"
    id_field = "subject_id"
    validation_schema = SubjectSchema

    subject_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_name: Mapped[str] = mapped_column(String(60), nullable=False, index=True)
    subject_type: Mapped[str] = mapped_column(String(30), nullable=False)
    short_desc: Mapped[str] = mapped_column(Text, nullable=False)


class StudyGroup(ManagedEntity):
    __tablename__ = "study_groups"
    id_field = "group_id"
    validation_schema = StudyGroupSchema

    group_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    musprogramm_id: Mapped[int] = mapped_column(
        ForeignKey("musprogramms.musprogramm_id"), nullable=False, index=True
    )
    group_name: Mapped[str] = mapped_column(String(100), nullable=False)
    study_year: Mapped[int] = mapped_column(Integer, nullable=False)
    number_of_students: Mapped[int] = mapped_column(Integer, nullable=False)


class Student(ManagedEntity):
    __tablename__ = "students"
    id_field = "student_id"
    validation_schema = StudentSchema

    student_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    surname: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(45), nullable=False)
    father_name: Mapped[str | None] = mapped_column(String(55), nullable=True)
    birthday: Mapped[date] = mapped_column(Date, nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(11), nullable=True, index=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("study_groups.group_id"), nullable=False, index=True
    )
    musprogramm_id: Mapped[int] = mapped_column(
        ForeignKey("musprogramms.musprogramm_id"), nullable=False
    )


class Employee(ManagedEntity):
    __tablename__ = "employees"
    id_field = "employee_id"
    validation_schema = EmployeeSchema

    employee_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    surname: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(45), nullable=False)
    father_name: Mapped[str | None] = mapped_column(String(55), nullable=True)
    birthday: Mapped[date] = mapped_column(Date, nullable=False)
    phone_number: Mapped[str] = mapped_column(String(11), nullable=False, index=True)
    job: Mapped[str] = mapped_column(String(60), nullable=False)
    work_experience: Mapped[int] = mapped_column(Integer, nullable=False)


class Lesson(ManagedEntity):
    __tablename__ = "lessons"
    id_field = "lesson_id"
    validation_schema = LessonSchema

    lesson_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    audience_id: Mapped[int | None] = mapped_column(
        ForeignKey("audiences.audience_id"), nullable=True
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.employee_id"), nullable=False, index=True
    )
    group_id: Mapped[int] = mapped_column(ForeignKey("study_groups.group_id"), nullable=False)
    student_id: Mapped[int | None] = mapped_column(
        ForeignKey("students.student_id"), nullable=True
    )
    lesson_name: Mapped[str] = mapped_column(String(70), nullable=False)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subjects.subject_id"), nullable=False)


class ProgramDistribution(ManagedEntity):
    __tablename__ = "programm_distributions"
    id_field = "programm_distr_id"
    validation_schema = ProgramDistributionSchema

    programm_distr_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    musprogramm_id: Mapped[int] = mapped_column(
        ForeignKey("musprogramms.musprogramm_id"), nullable=False
    )
    subject_id: Mapped[int] = mapped_column(ForeignKey("subjects.subject_id"), nullable=False)


class SubjectDistribution(ManagedEntity):
    __tablename__ = "subject_distributions"
    id_field = "subject_distr_id"
    validation_schema = SubjectDistributionSchema

    subject_distr_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.employee_id"), nullable=False
    )
    subject_id: Mapped[int] = mapped_column(ForeignKey("subjects.subject_id"), nullable=False)


class StudentAssessment(ManagedEntity):
    __tablename__ = "student_assessments"
    id_field = "assessment_note_id"
    validation_schema = StudentAssessmentSchema

    assessment_note_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.lesson_id"), nullable=False)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.student_id"), nullable=False, index=True
    )
    task_type: Mapped[str] = mapped_column(String(70), nullable=False)
    grade: Mapped[int] = mapped_column(Integer, nullable=False)
    assessment_date: Mapped[date] = mapped_column(Date, nullable=False)


class StudentAttendance(ManagedEntity):
    __tablename__ = "student_attendance"
    id_field = "attendance_note_id"
    validation_schema = StudentAttendanceSchema

    attendance_note_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.student_id"), nullable=False, index=True
    )
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.lesson_id"), nullable=False)
    presence_mark: Mapped[bool] = mapped_column(Boolean, nullable=False)
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)


class Schedule(ManagedEntity):
    """
    One occurrence (or template) of a weekly lesson slot.

    No storage-level constraint prevents overlapping rows; overlap is
    rejected by the schedule manager before every write.
    """

    __tablename__ = "schedules"
    id_field = "schedule_id"
    validation_schema = ScheduleSchema

    schedule_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.lesson_id"), nullable=False)
    day_week: Mapped[str] = mapped_column(String(20), nullable=False)
    time_begin: Mapped[time] = mapped_column(Time, nullable=False)
    time_end: Mapped[time] = mapped_column(Time, nullable=False)
    sched_date_start: Mapped[date] = mapped_column(Date, nullable=False)
    sched_date_end: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("ix_schedules_day_week_time", "day_week", "time_begin", "time_end"),
        Index("ix_schedules_lesson_id", "lesson_id"),
    )


ALL_MANAGED_ENTITIES: tuple[type[ManagedEntity], ...] = (
    Audience,
    Instrument,
    Program,
    Subject,
    StudyGroup,
    Student,
    Employee,
    Lesson,
    ProgramDistribution,
    SubjectDistribution,
    StudentAssessment,
    StudentAttendance,
    Schedule,
)
