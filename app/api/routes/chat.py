from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from app.core.csrf import require_csrf
from app.core.rate_limit import rate_limit
from app.core.request_validation import validate_request_body
from app.schemas.requests import ChatRequest
from app.schemas.responses import ChatAcceptedResponse
from app.utils.sanitization import sanitize_chat_message, sanitize_topic_name

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/chat",
    response_model=ChatAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(rate_limit("chat")), Depends(require_csrf)],
)
async def post_chat_message(request: Request) -> ChatAcceptedResponse:
    """Accept a student message for the tutor.

    Runs after the chat quota and CSRF checks. The body is validated and the
    free-text fields are sanitized before being handed on.

    Raises:
        ValidationAppError: 400 if the body is malformed or fails validation.
    """
    chat = (await validate_request_body(request, ChatRequest)).unwrap()

    message = sanitize_chat_message(chat.message)
    logger.info(
        "chat.message_accepted",
        extra={
            "session_id": str(chat.session_id),
            "subject": chat.subject,
            "char_count": len(message),
        },
    )
    return ChatAcceptedResponse(
        session_id=chat.session_id,
        subject=chat.subject,
        topic=sanitize_topic_name(chat.topic),
        message=message,
        is_initial=bool(chat.is_initial),
    )
