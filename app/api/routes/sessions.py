from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from app.core.csrf import require_csrf
from app.core.errors import ValidationAppError
from app.core.rate_limit import rate_limit
from app.core.request_validation import validate_request_body
from app.schemas.requests import SessionCreationRequest
from app.schemas.responses import SessionCreatedResponse
from app.utils.sanitization import sanitize_topic_name

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sessions"])


@router.post(
    "/sessions",
    response_model=SessionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("session")), Depends(require_csrf)],
)
async def create_session(request: Request) -> SessionCreatedResponse:
    """Start a tutoring session.

    Raises:
        ValidationAppError: 400 if the body is invalid or the topic is empty
            once markup is stripped.
    """
    payload = (await validate_request_body(request, SessionCreationRequest)).unwrap()

    topic = sanitize_topic_name(payload.topic)
    if not topic:
        raise ValidationAppError(
            code="invalid_topic",
            message="Topic must contain text",
        )

    logger.info(
        "session.created",
        extra={"subject": payload.subject, "curriculum": payload.curriculum},
    )
    return SessionCreatedResponse(
        subject=payload.subject,
        topic=topic,
        curriculum=payload.curriculum,
        grade_level=payload.grade_level,
    )
