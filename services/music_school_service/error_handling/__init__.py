"""Structured error handling for the Music School Service."""

from services.music_school_service.error_handling.error_models import ErrorDetail
from services.music_school_service.error_handling.factories import (
    raise_invalid_filter,
    raise_invalid_request,
    raise_invalid_template,
    raise_persistence_error,
    raise_schedule_conflict,
    raise_timeout_error,
    raise_transaction_error,
    raise_uniqueness_conflict,
    raise_validation_error,
)
from services.music_school_service.error_handling.music_school_error import MusicSchoolError

__all__ = [
    "ErrorDetail",
    "MusicSchoolError",
    "raise_invalid_filter",
    "raise_invalid_request",
    "raise_invalid_template",
    "raise_persistence_error",
    "raise_schedule_conflict",
    "raise_timeout_error",
    "raise_transaction_error",
    "raise_uniqueness_conflict",
    "raise_validation_error",
]
