"""Structured error payload carried by every manager-layer exception."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from services.music_school_service.enums import MusicSchoolErrorCode


class ErrorDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    error_code: MusicSchoolErrorCode
    message: str
    correlation_id: UUID
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    service: str
    operation: str
    details: dict[str, Any] = Field(default_factory=dict)
