from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from app.core.csrf import get_csrf_guard
from app.core.errors import TokenIssuanceAppError
from app.core.rate_limit import rate_limit
from app.schemas.responses import CsrfTokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Security"])


@router.get(
    "/csrf",
    response_model=CsrfTokenResponse,
    dependencies=[Depends(rate_limit("api"))],
)
def issue_csrf_token(request: Request, response: Response) -> CsrfTokenResponse:
    """Issue a CSRF token for the current session.

    The token is returned in the body and set as the ``csrf-token`` cookie.
    Clients read ``headerName`` from the response and echo the token in that
    header on every state-changing request.

    Raises:
        TokenIssuanceAppError: 500 if no secure randomness is available.
    """
    guard = get_csrf_guard(request)
    try:
        issued = guard.issue_token(request)
    except (NotImplementedError, OSError) as exc:
        logger.error("csrf.token_generation_failed", extra={"error_type": type(exc).__name__})
        raise TokenIssuanceAppError(
            code="csrf_token_generation_failed",
            message="Failed to generate CSRF token",
        ) from exc

    response.headers.append("Set-Cookie", guard.cookie_header(issued.token))
    if issued.anonymous_id:
        response.headers.append("Set-Cookie", guard.anonymous_cookie_header(issued.anonymous_id))

    logger.info(
        "csrf.token_issued",
        extra={"new_anonymous_session": issued.anonymous_id is not None},
    )
    return CsrfTokenResponse(token=issued.token, header_name=guard.header_name)
