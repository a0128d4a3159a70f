"""
Validation schemas for the managed entities.

Each ORM model in ``models_db`` names one of these schemas; its ``validate()``
runs the schema over the model's attributes (``from_attributes=True``) so a
violation surfaces as ``pydantic.ValidationError``.
"""

from __future__ import annotations

from datetime import date, time

from pydantic import BaseModel, ConfigDict, Field, PastDate, field_validator, model_validator

from services.music_school_service.enums import DayOfWeek

PHONE_PATTERN = r"^\d{11}$"


class _EntitySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)


# ====================================================================
# Facilities and catalogue
# ====================================================================


class AudienceSchema(_EntitySchema):
    name: str = Field(..., min_length=1, max_length=50)
    audin_type: str = Field(..., min_length=1, max_length=50)
    audin_number: str = Field(..., min_length=1, max_length=30)
    capacity: int = Field(..., ge=1)


class InstrumentSchema(_EntitySchema):
    audience_id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=150)
    instr_type: str = Field(..., min_length=1, max_length=70)
    condition: str = Field(..., min_length=1, max_length=70)


class ProgramSchema(_EntitySchema):
    programm_name: str = Field(..., min_length=1, max_length=100)
    programm_type: str = Field(..., min_length=1, max_length=70)
    duration: int = Field(..., ge=0)
    instrument: str | None = Field(None, max_length=100)
    description: str | None = None
    study_load: int = Field(..., ge=0)
    final_certification_form: str = Field(..., min_length=1, max_length=100)


class SubjectSchema(_EntitySchema):
    subject_name: str = Field(..., min_length=1, max_length=60)
    subject_type: str = Field(..., min_length=1, max_length=30)
    short_desc: str = Field(..., min_length=1)


# ====================================================================
# People and groups
# ====================================================================


class StudentSchema(_EntitySchema):
    user_id: int | None = None
    surname: str = Field(..., min_length=1, max_length=60)
    name: str = Field(..., min_length=1, max_length=45)
    father_name: str | None = Field(None, max_length=55)
    birthday: PastDate
    phone_number: str | None = Field(None, pattern=PHONE_PATTERN)
    group_id: int = Field(..., ge=1)
    musprogramm_id: int = Field(..., ge=1)


class EmployeeSchema(_EntitySchema):
    user_id: int | None = None
    surname: str = Field(..., min_length=1, max_length=60)
    name: str = Field(..., min_length=1, max_length=45)
    father_name: str | None = Field(None, max_length=55)
    birthday: PastDate
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    job: str = Field(..., min_length=1, max_length=60)
    work_experience: int = Field(..., ge=0)


class StudyGroupSchema(_EntitySchema):
    musprogramm_id: int = Field(..., ge=1)
    group_name: str = Field(..., min_length=1, max_length=100)
    study_year: int = Field(..., ge=1)
    number_of_students: int = Field(..., ge=0)


# ====================================================================
# Teaching
# ====================================================================


class LessonSchema(_EntitySchema):
    audience_id: int | None = None
    employee_id: int = Field(..., ge=1)
    group_id: int = Field(..., ge=1)
    student_id: int | None = None
    lesson_name: str = Field(..., min_length=1, max_length=70)
    subject_id: int = Field(..., ge=1)


class ProgramDistributionSchema(_EntitySchema):
    musprogramm_id: int = Field(..., ge=1)
    subject_id: int = Field(..., ge=1)


class SubjectDistributionSchema(_EntitySchema):
    employee_id: int = Field(..., ge=1)
    subject_id: int = Field(..., ge=1)


class StudentAssessmentSchema(_EntitySchema):
    lesson_id: int = Field(..., ge=1)
    student_id: int = Field(..., ge=1)
    task_type: str = Field(..., min_length=1, max_length=70)
    grade: int = Field(..., ge=1, le=5)
    assessment_date: date


class StudentAttendanceSchema(_EntitySchema):
    student_id: int = Field(..., ge=1)
    lesson_id: int = Field(..., ge=1)
    presence_mark: bool
    attendance_date: date


class ScheduleSchema(_EntitySchema):
    lesson_id: int = Field(..., ge=1)
    day_week: DayOfWeek
    time_begin: time
    time_end: time
    sched_date_start: date
    sched_date_end: date

    @field_validator("day_week", mode="before")
    @classmethod
    def parse_day_week(cls, value: str | DayOfWeek) -> DayOfWeek:
        return DayOfWeek.parse(value)

    @model_validator(mode="after")
    def check_ranges(self) -> ScheduleSchema:
        if self.time_begin >= self.time_end:
            raise ValueError("time_begin must be earlier than time_end")
        if self.sched_date_start > self.sched_date_end:
            raise ValueError("sched_date_start must not be after sched_date_end")
        return self
