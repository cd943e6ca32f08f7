"""Pydantic schemas for tutoring API request bodies."""

from __future__ import annotations

import re
from typing import Annotated, Any, List, Literal, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, HttpUrl, field_validator

Curriculum = Literal["ib", "a-level", "ap", "igcse", "cbse", "other"]
Subject = Literal[
    "mathematics",
    "physics",
    "chemistry",
    "biology",
    "computer science",
    "english",
    "business",
    "economics",
    "history",
    "geography",
]
SubscriptionTier = Literal["basic", "pro", "school"]
BillingPeriod = Literal["monthly", "yearly"]

_NAME_RE = re.compile(r"^[a-zA-Z\s'-]+$")
_CHANNEL_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def validate_name(value: str) -> str:
    """Names: 1-100 chars of letters, spaces, apostrophes and hyphens."""
    if not value:
        raise ValueError("Name is required")
    if len(value) > 100:
        raise ValueError("Name too long")
    if not _NAME_RE.match(value):
        raise ValueError("Name contains invalid characters")
    return value


def validate_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(value) > 128:
        raise ValueError("Password too long")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one number")
    return value


Name = Annotated[str, AfterValidator(validate_name)]
Password = Annotated[str, AfterValidator(validate_password)]


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_RequestModel):
    """Student message sent to the tutor during a session."""

    session_id: UUID = Field(..., alias="sessionId")
    message: str = Field(..., min_length=1, max_length=5000)
    subject: Subject
    topic: str = Field(..., min_length=1, max_length=200)
    student_name: Name = Field(..., alias="studentName")
    is_initial: Optional[bool] = Field(None, alias="isInitial")


class AvatarGenerationRequest(_RequestModel):
    text: str = Field(..., min_length=1, max_length=1000)
    voice_id: Optional[str] = Field(None, alias="voiceId")
    avatar_url: Optional[HttpUrl] = Field(None, alias="avatarUrl")
    use_eleven_labs: Optional[bool] = Field(None, alias="useElevenLabs")


class SessionCreationRequest(_RequestModel):
    subject: Subject
    topic: str = Field(..., min_length=1, max_length=200)
    curriculum: Optional[Curriculum] = None
    grade_level: Optional[int] = Field(None, alias="gradeLevel", ge=1, le=20)


class ProfileUpdateRequest(_RequestModel):
    full_name: Name
    grade_level: int = Field(..., ge=1, le=20)
    curriculum: Curriculum
    subjects: List[Subject] = Field(..., min_length=1)
    learning_goals: Optional[str] = Field(None, max_length=500)
    timezone: Optional[str] = None


class PasswordUpdateRequest(_RequestModel):
    password: Password


class StripeCheckoutRequest(_RequestModel):
    tier: SubscriptionTier
    billing_period: BillingPeriod = Field(..., alias="billingPeriod")


class BillingPortalRequest(_RequestModel):
    return_url: HttpUrl = Field(..., alias="returnUrl")


class AgoraTokenRequest(_RequestModel):
    channel_name: str = Field(..., alias="channelName", min_length=1, max_length=64)
    uid: Optional[int] = Field(None, ge=0)

    @field_validator("channel_name")
    @classmethod
    def check_channel_name(cls, value: str) -> str:
        if not _CHANNEL_RE.match(value):
            raise ValueError("Invalid channel name")
        return value


class VoiceSettings(_RequestModel):
    stability: Optional[float] = Field(None, ge=0, le=1)
    similarity_boost: Optional[float] = Field(None, ge=0, le=1)
    style: Optional[float] = Field(None, ge=0, le=1)
    use_speaker_boost: Optional[bool] = None


class VoiceTTSRequest(_RequestModel):
    text: str = Field(..., min_length=1, max_length=5000)
    voice_id: Optional[str] = Field(None, alias="voiceId")
    settings: Optional[VoiceSettings] = None


class VoiceSTTRequest(_RequestModel):
    # Audio payload is validated separately (see validate_file_upload).
    audio: Any = None
    language: Optional[str] = Field(None, min_length=2, max_length=2, description="ISO 639-1 code")
