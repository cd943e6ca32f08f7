"""Unit tests for CSRF token primitives and the double-submit guard."""

import base64
import json
import string

import pytest
from starlette.requests import Request

from app.core.csrf import (
    ANONYMOUS_SESSION,
    CsrfGuard,
    create_anonymous_session_cookie_header,
    create_csrf_cookie_header,
    generate_csrf_token,
    get_csrf_tokens_from_request,
    get_session_identifier,
    requires_csrf_protection,
    validate_csrf_token,
)

SECRET = "unit-test-secret"
ISSUED_AT = 1_700_000_000_000
MAX_AGE = 3600


def _request(method: str = "POST", headers: dict[str, str] | None = None, cookies: dict[str, str] | None = None) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        cookie_value = "; ".join(f"{k}={v}" for k, v in cookies.items())
        raw_headers.append((b"cookie", cookie_value.encode()))
    scope = {
        "type": "http",
        "method": method,
        "path": "/api/chat",
        "query_string": b"",
        "headers": raw_headers,
    }
    return Request(scope)


def _validate(token: str, session_id: str, now_ms: int, secret: str = SECRET) -> bool:
    return validate_csrf_token(token, session_id, secret=secret, max_age_seconds=MAX_AGE, now_ms=now_ms)


class TestTokenPrimitives:
    def test_fresh_token_validates_for_its_session(self):
        token = generate_csrf_token("user-123", secret=SECRET, now_ms=ISSUED_AT)
        assert _validate(token, "user-123", ISSUED_AT + 1000) is True

    def test_token_is_url_safe(self):
        token = generate_csrf_token("user-123", secret=SECRET, now_ms=ISSUED_AT)
        allowed = set(string.ascii_letters + string.digits + "-_=")
        assert set(token) <= allowed

    def test_tokens_are_unique(self):
        first = generate_csrf_token("s", secret=SECRET, now_ms=ISSUED_AT)
        second = generate_csrf_token("s", secret=SECRET, now_ms=ISSUED_AT)
        assert first != second

    def test_token_rejected_for_other_session(self):
        token = generate_csrf_token("user-123", secret=SECRET, now_ms=ISSUED_AT)
        assert _validate(token, "user-456", ISSUED_AT) is False

    def test_token_rejected_with_other_secret(self):
        token = generate_csrf_token("user-123", secret=SECRET, now_ms=ISSUED_AT)
        assert _validate(token, "user-123", ISSUED_AT, secret="another-secret") is False

    def test_token_valid_until_max_age(self):
        token = generate_csrf_token("s", secret=SECRET, now_ms=ISSUED_AT)

        assert _validate(token, "s", ISSUED_AT + MAX_AGE * 1000) is True
        assert _validate(token, "s", ISSUED_AT + MAX_AGE * 1000 + 1) is False

    def test_token_from_the_future_rejected(self):
        token = generate_csrf_token("s", secret=SECRET, now_ms=ISSUED_AT)
        assert _validate(token, "s", ISSUED_AT - 1) is False

    def test_tampered_signature_rejected(self):
        token = generate_csrf_token("s", secret=SECRET, now_ms=ISSUED_AT)
        raw = base64.urlsafe_b64decode(token).decode()
        head, signature = raw.rsplit(":", 1)
        flipped = ("0" if signature[0] != "0" else "1") + signature[1:]
        forged = base64.urlsafe_b64encode(f"{head}:{flipped}".encode()).decode()

        assert _validate(forged, "s", ISSUED_AT) is False

    def test_tampered_timestamp_rejected(self):
        token = generate_csrf_token("s", secret=SECRET, now_ms=ISSUED_AT)
        session, _, random_part, signature = base64.urlsafe_b64decode(token).decode().rsplit(":", 3)
        forged_raw = f"{session}:{ISSUED_AT + 10_000}:{random_part}:{signature}"
        forged = base64.urlsafe_b64encode(forged_raw.encode()).decode()

        assert _validate(forged, "s", ISSUED_AT + 10_000) is False

    def test_session_ids_with_colons_supported(self):
        token = generate_csrf_token("tenant:42:user", secret=SECRET, now_ms=ISSUED_AT)
        assert _validate(token, "tenant:42:user", ISSUED_AT) is True
        assert _validate(token, "tenant:42", ISSUED_AT) is False

    @pytest.mark.parametrize(
        "token",
        [
            "",
            "abc",
            "not base64 at all!",
            base64.urlsafe_b64encode(b"only:three:parts").decode(),
            base64.urlsafe_b64encode(b"s:not-a-number:rand:sig").decode(),
            base64.urlsafe_b64encode(b"\xff\xfe\xfd").decode(),
        ],
    )
    def test_malformed_tokens_are_invalid_not_errors(self, token):
        assert _validate(token, "s", ISSUED_AT) is False


class TestSessionAndCookies:
    def test_session_identifier_precedence(self):
        assert get_session_identifier("user-1", "anon-1") == "user-1"
        assert get_session_identifier(None, "anon-1") == "anon-1"
        assert get_session_identifier() == ANONYMOUS_SESSION
        assert get_session_identifier("", "") == ANONYMOUS_SESSION

    def test_tokens_read_from_header_and_cookie(self):
        request = _request("POST", headers={"X-CSRF-Token": "h"}, cookies={"csrf-token": "c"})

        assert get_csrf_tokens_from_request(request) == ("h", "c")
        assert get_csrf_tokens_from_request(_request("POST")) == (None, None)

    @pytest.mark.parametrize("method", ["POST", "put", "PATCH", "delete"])
    def test_state_changing_methods_protected(self, method):
        assert requires_csrf_protection(method) is True

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_safe_methods_exempt(self, method):
        assert requires_csrf_protection(method) is False

    def test_csrf_cookie_is_readable_by_script(self):
        header = create_csrf_cookie_header("tok")

        assert header == "csrf-token=tok; Path=/; SameSite=Strict; Max-Age=3600; Secure"
        assert "HttpOnly" not in header

    def test_csrf_cookie_secure_flag_optional(self):
        header = create_csrf_cookie_header("tok", secure=False, max_age_seconds=60)
        assert header == "csrf-token=tok; Path=/; SameSite=Strict; Max-Age=60"

    def test_anonymous_cookie_is_http_only(self):
        header = create_anonymous_session_cookie_header("abc", secure=False)
        assert header == "anon-session-id=abc; Path=/; HttpOnly; SameSite=Strict"


class TestCsrfGuard:
    @pytest.fixture
    def now(self) -> list[int]:
        return [ISSUED_AT]

    @pytest.fixture
    def guard(self, now: list[int]) -> CsrfGuard:
        return CsrfGuard(secret=SECRET, max_age_seconds=MAX_AGE, clock_ms=lambda: now[0])

    def test_rejects_empty_secret(self):
        with pytest.raises(ValueError):
            CsrfGuard(secret="")

    def test_rejects_non_positive_max_age(self):
        with pytest.raises(ValueError):
            CsrfGuard(secret=SECRET, max_age_seconds=0)

    def test_verify_matching_pair(self, guard: CsrfGuard):
        token = guard.generate("anon-1")
        assert guard.verify(token, token, "anon-1") is True

    def test_verify_mismatched_pair(self, guard: CsrfGuard):
        first = guard.generate("anon-1")
        second = guard.generate("anon-1")
        assert guard.verify(first, second, "anon-1") is False

    @pytest.mark.parametrize("header_token, cookie_token, session", [(None, "t", "s"), ("t", None, "s"), ("t", "t", "")])
    def test_verify_fails_closed(self, guard: CsrfGuard, header_token, cookie_token, session):
        assert guard.verify(header_token, cookie_token, session) is False

    def test_verify_expired(self, guard: CsrfGuard, now: list[int]):
        token = guard.generate("anon-1")
        now[0] += MAX_AGE * 1000 + 1
        assert guard.verify(token, token, "anon-1") is False

    def test_safe_method_skips_validation(self, guard: CsrfGuard):
        assert guard.validate_request(_request("GET")).valid is True
        assert guard.with_csrf_protection(_request("GET")) is None

    def test_missing_header_reported(self, guard: CsrfGuard):
        result = guard.validate_request(_request("POST", cookies={"csrf-token": "x"}))

        assert result.valid is False
        assert result.error == "CSRF token missing. Please include x-csrf-token header."

    def test_missing_cookie_reported(self, guard: CsrfGuard):
        result = guard.validate_request(_request("POST", headers={"x-csrf-token": "x"}))

        assert result.valid is False
        assert result.error == "CSRF cookie missing."

    def test_valid_request_for_anonymous_session(self, guard: CsrfGuard):
        token = guard.generate("anon-1")
        request = _request(
            "POST",
            headers={"x-csrf-token": token},
            cookies={"csrf-token": token, "anon-session-id": "anon-1"},
        )

        result = guard.validate_request(request)

        assert result.valid is True
        assert result.session_id == "anon-1"

    def test_token_for_other_session_rejected(self, guard: CsrfGuard):
        token = guard.generate("anon-1")
        request = _request(
            "POST",
            headers={"x-csrf-token": token},
            cookies={"csrf-token": token, "anon-session-id": "anon-2"},
        )

        assert guard.validate_request(request).error == "Invalid or expired CSRF token."

    def test_authenticated_user_binding(self, now: list[int]):
        guard = CsrfGuard(secret=SECRET, clock_ms=lambda: now[0], user_id_resolver=lambda r: "user-9")
        token = guard.generate("user-9")
        request = _request("DELETE", headers={"x-csrf-token": token}, cookies={"csrf-token": token})

        assert guard.validate_request(request).session_id == "user-9"

    def test_with_csrf_protection_returns_403(self, guard: CsrfGuard):
        response = guard.with_csrf_protection(_request("POST"))

        assert response is not None
        assert response.status_code == 403
        assert json.loads(bytes(response.body)) == {
            "error": "CSRF validation failed",
            "message": "CSRF token missing. Please include x-csrf-token header.",
        }

    def test_issue_token_starts_anonymous_session(self, guard: CsrfGuard):
        issued = guard.issue_token(_request("GET"))

        assert issued.anonymous_id
        assert issued.session_id == issued.anonymous_id
        assert guard.verify(issued.token, issued.token, issued.anonymous_id) is True

    def test_issue_token_reuses_existing_anonymous_session(self, guard: CsrfGuard):
        issued = guard.issue_token(_request("GET", cookies={"anon-session-id": "anon-1"}))

        assert issued.anonymous_id is None
        assert issued.session_id == "anon-1"

    def test_issue_token_for_user(self, now: list[int]):
        guard = CsrfGuard(secret=SECRET, clock_ms=lambda: now[0], user_id_resolver=lambda r: "user-9")
        issued = guard.issue_token(_request("GET"))

        assert issued.anonymous_id is None
        assert issued.session_id == "user-9"

    def test_custom_names_used_for_cookies(self):
        guard = CsrfGuard(
            secret=SECRET,
            cookie_name="xsrf",
            anonymous_cookie_name="anon",
            cookie_secure=False,
            max_age_seconds=120,
        )

        assert guard.cookie_header("t") == "xsrf=t; Path=/; SameSite=Strict; Max-Age=120"
        assert guard.anonymous_cookie_header("a").startswith("anon=a;")
