"""CSRF protection using the double-submit cookie pattern.

Tokens are self-contained: ``base64url("session:issued_at_ms:random:hmac")``
signed with HMAC-SHA256 under the configured secret. Verification needs no
server-side store, so any instance can validate any token. The trade-off is
that a single issued token cannot be revoked before it expires.

A state-changing request passes only when:
- the ``x-csrf-token`` header and the ``csrf-token`` cookie are both present
  and identical,
- the token is bound to the caller's session identifier,
- the token is younger than the validity window and its signature matches.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import CsrfSettings, settings
from app.core.errors import CsrfAppError
from app.core.exception_handlers import csrf_rejection_response

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
ANONYMOUS_SESSION = "anonymous"
STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

UserIdResolver = Callable[[Request], str | None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def generate_csrf_token(session_id: str, *, secret: str, now_ms: int | None = None) -> str:
    """Generate a signed CSRF token bound to ``session_id``.

    Errors from the system entropy source propagate; a token is never issued
    without its random component.

    Args:
        session_id: Session identifier the token is bound to.
        secret: HMAC key.
        now_ms: Issue time in epoch milliseconds (defaults to now).

    Returns:
        URL-safe base64 token string.
    """
    issued_at = _now_ms() if now_ms is None else now_ms
    random_part = secrets.token_hex(TOKEN_BYTES)
    payload = f"{session_id}:{issued_at}:{random_part}"
    raw = f"{payload}:{_sign(payload, secret)}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def validate_csrf_token(
    token: str,
    session_id: str,
    *,
    secret: str,
    max_age_seconds: int,
    now_ms: int | None = None,
) -> bool:
    """Check a token's session binding, age and signature.

    Malformed tokens are reported as invalid rather than raised.
    """
    try:
        decoded = base64.urlsafe_b64decode(token.encode()).decode()
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return False

    # Session ids may contain ":", so split the fixed fields from the right.
    parts = decoded.rsplit(":", 3)
    if len(parts) != 4:
        return False
    token_session, issued_at_raw, random_part, signature = parts

    if not hmac.compare_digest(token_session.encode(), session_id.encode()):
        return False

    try:
        issued_at = int(issued_at_raw)
    except ValueError:
        return False

    now = _now_ms() if now_ms is None else now_ms
    age_ms = now - issued_at
    if age_ms < 0 or age_ms > max_age_seconds * 1000:
        return False

    expected = _sign(f"{token_session}:{issued_at_raw}:{random_part}", secret)
    return hmac.compare_digest(signature.encode(), expected.encode())


def get_session_identifier(user_id: str | None = None, anonymous_id: str | None = None) -> str:
    """Resolve the identifier CSRF tokens are bound to.

    Authenticated callers are bound to their user id. Unauthenticated flows
    (e.g., signup) use the anonymous session id from their cookie, or the
    shared ``"anonymous"`` marker when they have none yet.
    """
    if user_id:
        return user_id
    if anonymous_id:
        return anonymous_id
    return ANONYMOUS_SESSION


def new_anonymous_session_id() -> str:
    return secrets.token_hex(16)


def requires_csrf_protection(method: str) -> bool:
    """Only state-changing methods are checked; GET/HEAD/OPTIONS are exempt."""
    return method.upper() in STATE_CHANGING_METHODS


def get_csrf_tokens_from_request(
    request: Request,
    *,
    header_name: str = "x-csrf-token",
    cookie_name: str = "csrf-token",
) -> tuple[str | None, str | None]:
    """Return ``(header_token, cookie_token)`` for the request."""
    return request.headers.get(header_name), request.cookies.get(cookie_name)


def create_csrf_cookie_header(
    token: str,
    secure: bool = True,
    *,
    cookie_name: str = "csrf-token",
    max_age_seconds: int = 3600,
) -> str:
    """Build the Set-Cookie value carrying the CSRF token.

    The cookie is deliberately not HttpOnly: client script has to read it to
    echo the token in the request header.
    """
    parts = [
        f"{cookie_name}={token}",
        "Path=/",
        "SameSite=Strict",
        f"Max-Age={max_age_seconds}",
    ]
    if secure:
        parts.append("Secure")
    return "; ".join(parts)


def create_anonymous_session_cookie_header(
    anonymous_id: str,
    secure: bool = True,
    *,
    cookie_name: str = "anon-session-id",
) -> str:
    parts = [f"{cookie_name}={anonymous_id}", "Path=/", "HttpOnly", "SameSite=Strict"]
    if secure:
        parts.append("Secure")
    return "; ".join(parts)


def _default_user_id_resolver(request: Request) -> str | None:
    # Populated by the upstream authentication layer when a user is signed in.
    return getattr(request.state, "user_id", None)


@dataclass(frozen=True)
class CsrfValidationResult:
    valid: bool
    error: str | None = None
    session_id: str | None = None


def _log_rejection(request: Request, result: CsrfValidationResult) -> None:
    logger.warning(
        "csrf.validation_failed",
        extra={
            "path": request.url.path,
            "method": request.method,
            "reason": result.error,
        },
    )


@dataclass(frozen=True)
class CsrfTokenIssue:
    """A freshly issued token and the session it is bound to.

    ``anonymous_id`` is set when a new anonymous session was started and has
    to be handed to the client as a cookie.
    """

    token: str
    session_id: str
    anonymous_id: str | None = None


class CsrfGuard:
    """Issues and verifies double-submit CSRF tokens."""

    def __init__(
        self,
        *,
        secret: str,
        max_age_seconds: int = 3600,
        cookie_name: str = "csrf-token",
        header_name: str = "x-csrf-token",
        anonymous_cookie_name: str = "anon-session-id",
        cookie_secure: bool = True,
        user_id_resolver: UserIdResolver = _default_user_id_resolver,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        if not secret:
            raise ValueError("CSRF secret must be a non-empty string")
        if max_age_seconds < 1:
            raise ValueError("max_age_seconds must be >= 1")
        self.secret = secret
        self.max_age_seconds = max_age_seconds
        self.cookie_name = cookie_name
        self.header_name = header_name
        self.anonymous_cookie_name = anonymous_cookie_name
        self.cookie_secure = cookie_secure
        self._resolve_user_id = user_id_resolver
        self._clock_ms = clock_ms

    @classmethod
    def from_settings(cls, csrf_settings: CsrfSettings | None = None, **kwargs) -> "CsrfGuard":
        cfg = csrf_settings or settings.csrf
        kwargs.setdefault("cookie_secure", settings.csrf_cookie_secure)
        return cls(
            secret=cfg.secret,
            max_age_seconds=cfg.max_age_seconds,
            cookie_name=cfg.cookie_name,
            header_name=cfg.header_name,
            anonymous_cookie_name=cfg.anonymous_cookie_name,
            **kwargs,
        )

    def generate(self, session_id: str) -> str:
        return generate_csrf_token(session_id, secret=self.secret, now_ms=self._clock_ms())

    def verify(self, request_token: str | None, cookie_token: str | None, session_id: str) -> bool:
        """Double-submit verification; any missing piece fails closed."""
        if not request_token or not cookie_token or not session_id:
            return False
        if not hmac.compare_digest(request_token.encode(), cookie_token.encode()):
            return False
        return validate_csrf_token(
            request_token,
            session_id,
            secret=self.secret,
            max_age_seconds=self.max_age_seconds,
            now_ms=self._clock_ms(),
        )

    def get_tokens_from_request(self, request: Request) -> tuple[str | None, str | None]:
        return get_csrf_tokens_from_request(
            request,
            header_name=self.header_name,
            cookie_name=self.cookie_name,
        )

    def session_identifier_for(self, request: Request) -> str:
        return get_session_identifier(
            self._resolve_user_id(request),
            request.cookies.get(self.anonymous_cookie_name),
        )

    def validate_request(self, request: Request) -> CsrfValidationResult:
        if not requires_csrf_protection(request.method):
            return CsrfValidationResult(valid=True)

        header_token, cookie_token = self.get_tokens_from_request(request)
        if not header_token:
            return CsrfValidationResult(
                valid=False,
                error=f"CSRF token missing. Please include {self.header_name} header.",
            )
        if not cookie_token:
            return CsrfValidationResult(valid=False, error="CSRF cookie missing.")

        session_id = self.session_identifier_for(request)
        if not self.verify(header_token, cookie_token, session_id):
            return CsrfValidationResult(valid=False, error="Invalid or expired CSRF token.")

        return CsrfValidationResult(valid=True, session_id=session_id)

    def with_csrf_protection(self, request: Request) -> JSONResponse | None:
        """Return a 403 response when the request fails CSRF validation.

        Returns ``None`` when the caller may proceed.
        """
        result = self.validate_request(request)
        if result.valid:
            return None

        _log_rejection(request, result)
        return csrf_rejection_response(result.error or "Invalid CSRF token")

    def issue_token(self, request: Request) -> CsrfTokenIssue:
        """Generate a token for the caller, starting an anonymous session if needed."""
        user_id = self._resolve_user_id(request)
        anonymous_id = request.cookies.get(self.anonymous_cookie_name)
        new_anonymous_id = None
        if not user_id and not anonymous_id:
            new_anonymous_id = anonymous_id = new_anonymous_session_id()

        session_id = get_session_identifier(user_id, anonymous_id)
        return CsrfTokenIssue(
            token=self.generate(session_id),
            session_id=session_id,
            anonymous_id=new_anonymous_id,
        )

    def cookie_header(self, token: str) -> str:
        return create_csrf_cookie_header(
            token,
            self.cookie_secure,
            cookie_name=self.cookie_name,
            max_age_seconds=self.max_age_seconds,
        )

    def anonymous_cookie_header(self, anonymous_id: str) -> str:
        return create_anonymous_session_cookie_header(
            anonymous_id,
            self.cookie_secure,
            cookie_name=self.anonymous_cookie_name,
        )


def get_csrf_guard(request: Request) -> CsrfGuard:
    """Return the guard installed on the application by its lifespan."""
    guard = getattr(request.app.state, "csrf_guard", None)
    if guard is None:
        raise RuntimeError("CSRF guard is not initialised on app.state")
    return guard


async def require_csrf(request: Request) -> None:
    """FastAPI dependency rejecting state-changing requests without a valid token.

    Usage:
        @router.post("/chat", dependencies=[Depends(require_csrf)])

    Raises:
        CsrfAppError: Rendered as HTTP 403 by the exception handlers.
    """
    result = get_csrf_guard(request).validate_request(request)
    if result.valid:
        return

    _log_rejection(request, result)
    raise CsrfAppError(
        code="csrf_validation_failed",
        message=result.error or "Invalid CSRF token",
    )
