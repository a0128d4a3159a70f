"""
Factory functions raising ``MusicSchoolError``.

Each factory builds the ``ErrorDetail`` for one error category and raises it.
Pass ``cause`` to chain the underlying exception (``raise ... from cause``);
any additional keyword arguments end up in ``ErrorDetail.details``.
"""

from __future__ import annotations

from typing import Any, NoReturn
from uuid import UUID

from services.music_school_service.enums import MusicSchoolErrorCode
from services.music_school_service.error_handling.error_models import ErrorDetail
from services.music_school_service.error_handling.music_school_error import MusicSchoolError


def _raise(
    error_code: MusicSchoolErrorCode,
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    cause: BaseException | None,
    details: dict[str, Any],
) -> NoReturn:
    error = MusicSchoolError(
        ErrorDetail(
            error_code=error_code,
            message=message,
            correlation_id=correlation_id,
            service=service,
            operation=operation,
            details=details,
        )
    )
    if cause is not None:
        raise error from cause
    raise error


def raise_validation_error(
    service: str,
    operation: str,
    field: str,
    message: str,
    correlation_id: UUID,
    cause: BaseException | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Entity failed its self-validation."""
    _raise(
        MusicSchoolErrorCode.VALIDATION_ERROR,
        service,
        operation,
        message,
        correlation_id,
        cause,
        {"field": field, **additional_context},
    )


def raise_uniqueness_conflict(
    service: str,
    operation: str,
    entity: str,
    fields: dict[str, Any],
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    """A uniquely constrained value is already taken by another row."""
    rendered = ", ".join(f"{name}={value!r}" for name, value in fields.items())
    _raise(
        MusicSchoolErrorCode.UNIQUENESS_CONFLICT,
        service,
        operation,
        f"{entity} with {rendered} already exists",
        correlation_id,
        None,
        {"entity": entity, "fields": fields, **additional_context},
    )


def raise_schedule_conflict(
    service: str,
    operation: str,
    day_week: str,
    time_begin: str,
    time_end: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    """The requested interval overlaps a stored schedule on the same weekday."""
    _raise(
        MusicSchoolErrorCode.SCHEDULE_CONFLICT,
        service,
        operation,
        f"Time conflict detected for {day_week} at {time_begin}-{time_end}",
        correlation_id,
        None,
        {
            "day_week": day_week,
            "time_begin": time_begin,
            "time_end": time_end,
            **additional_context,
        },
    )


def raise_persistence_error(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    cause: BaseException | None = None,
    **additional_context: Any,
) -> NoReturn:
    """The repository failed to read or write."""
    _raise(
        MusicSchoolErrorCode.PERSISTENCE_ERROR,
        service,
        operation,
        message,
        correlation_id,
        cause,
        additional_context,
    )


def raise_transaction_error(
    service: str,
    operation: str,
    stage: str,
    message: str,
    correlation_id: UUID,
    cause: BaseException | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Begin, commit or rollback failed."""
    _raise(
        MusicSchoolErrorCode.TRANSACTION_ERROR,
        service,
        operation,
        message,
        correlation_id,
        cause,
        {"stage": stage, **additional_context},
    )


def raise_invalid_template(
    service: str,
    operation: str,
    day_week: str,
    correlation_id: UUID,
    cause: BaseException | None = None,
    **additional_context: Any,
) -> NoReturn:
    """A recurrence template names a weekday that does not exist."""
    _raise(
        MusicSchoolErrorCode.INVALID_TEMPLATE,
        service,
        operation,
        f"Invalid day week: {day_week}",
        correlation_id,
        cause,
        {"day_week": day_week, **additional_context},
    )


def raise_invalid_request(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    _raise(
        MusicSchoolErrorCode.INVALID_REQUEST,
        service,
        operation,
        message,
        correlation_id,
        None,
        additional_context,
    )


def raise_invalid_filter(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID,
    **additional_context: Any,
) -> NoReturn:
    """A query filter references a field or operator the backend cannot express."""
    _raise(
        MusicSchoolErrorCode.INVALID_FILTER,
        service,
        operation,
        message,
        correlation_id,
        None,
        additional_context,
    )


def raise_timeout_error(
    service: str,
    operation: str,
    timeout_seconds: float,
    correlation_id: UUID,
    cause: BaseException | None = None,
    **additional_context: Any,
) -> NoReturn:
    _raise(
        MusicSchoolErrorCode.TIMEOUT,
        service,
        operation,
        f"Operation {operation} exceeded {timeout_seconds}s",
        correlation_id,
        cause,
        {"timeout_seconds": timeout_seconds, **additional_context},
    )
