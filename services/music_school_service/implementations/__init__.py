"""Implementations module for the Music School Service."""

from .transaction_coordinator import SQLAlchemyTransactionProvider, TransactionCoordinator
from .repository_mock_impl import InMemoryRepositoryImpl, InMemoryStore, InMemoryTransaction
from .repository_postgres_impl import PostgreSQLRepositoryImpl
from .base_manager import BaseManager, UniqueFieldsRule
from .conflict_checker import ScheduleConflictRule, TimeConflictChecker
from .recurrence_generator import RecurrenceGenerator
from .schedule_manager import ScheduleManager
from .entity_managers import (
    AudienceManager,
    EmployeeManager,
    EntityManager,
    InstrumentManager,
    LessonManager,
    ProgramDistributionManager,
    ProgramManager,
    StudentAssessmentManager,
    StudentAttendanceManager,
    StudentManager,
    StudyGroupManager,
    SubjectDistributionManager,
    SubjectManager,
)

__all__ = [
    "TransactionCoordinator",
    "SQLAlchemyTransactionProvider",
    "InMemoryStore",
    "InMemoryTransaction",
    "InMemoryRepositoryImpl",
    "PostgreSQLRepositoryImpl",
    "BaseManager",
    "UniqueFieldsRule",
    "TimeConflictChecker",
    "ScheduleConflictRule",
    "RecurrenceGenerator",
    "ScheduleManager",
    "EntityManager",
    "AudienceManager",
    "InstrumentManager",
    "ProgramManager",
    "SubjectManager",
    "StudentManager",
    "EmployeeManager",
    "StudyGroupManager",
    "LessonManager",
    "ProgramDistributionManager",
    "SubjectDistributionManager",
    "StudentAssessmentManager",
    "StudentAttendanceManager",
]
