"""Core exception type of the Music School Service."""

from __future__ import annotations

from typing import Any

from services.music_school_service.error_handling.error_models import ErrorDetail


class MusicSchoolError(Exception):
    """
    Exception wrapping an ``ErrorDetail``.

    Raised through the factory functions in
    ``services.music_school_service.error_handling.factories`` so that every
    error carries its code, the failing operation and the correlation id of
    the request that produced it.
    """

    def __init__(self, error_detail: ErrorDetail) -> None:
        super().__init__(error_detail.message)
        self.error_detail = error_detail

    def __str__(self) -> str:
        return f"[{self.error_detail.error_code.value}] {self.error_detail.message}"

    @property
    def error_code(self) -> str:
        return self.error_detail.error_code.value

    @property
    def correlation_id(self) -> str:
        return str(self.error_detail.correlation_id)

    @property
    def service(self) -> str:
        return self.error_detail.service

    @property
    def operation(self) -> str:
        return self.error_detail.operation

    @property
    def details(self) -> dict[str, Any]:
        return self.error_detail.details

    def to_dict(self) -> dict[str, Any]:
        return self.error_detail.model_dump(mode="json")
