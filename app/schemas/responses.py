"""Pydantic schemas for tutoring API responses."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class _ResponseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CsrfTokenResponse(_ResponseModel):
    token: str = Field(..., description="CSRF token bound to the caller's session.")
    header_name: str = Field(
        "x-csrf-token",
        alias="headerName",
        description="Header the client must echo the token in.",
    )


class ChatAcceptedResponse(_ResponseModel):
    """Sanitized chat message handed to the tutoring pipeline."""

    status: Literal["accepted"] = "accepted"
    session_id: UUID = Field(..., alias="sessionId")
    subject: str
    topic: str
    message: str
    is_initial: bool = Field(False, alias="isInitial")


class SessionCreatedResponse(_ResponseModel):
    status: Literal["created"] = "created"
    subject: str
    topic: str
    curriculum: Optional[str] = None
    grade_level: Optional[int] = Field(None, alias="gradeLevel")
