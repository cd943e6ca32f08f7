"""Request body / query validation helpers.

Routes that read raw payloads (rather than declaring a Pydantic body
parameter) validate them here so every endpoint reports errors in the same
``"field.path: message, ..."`` shape.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Sequence, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024


@dataclass(frozen=True)
class ValidationOutcome(Generic[ModelT]):
    """Result of validating a payload against a schema."""

    success: bool
    data: ModelT | None = None
    error: str | None = None

    def unwrap(self) -> ModelT:
        """Return the validated model or raise ValidationAppError (HTTP 400)."""
        if self.success and self.data is not None:
            return self.data
        raise ValidationAppError(
            code="invalid_request",
            message=self.error or "Invalid request",
            details={"field_errors": self.error or ""},
        )


def format_validation_errors(exc: ValidationError) -> str:
    """Flatten Pydantic errors into ``"path: message"`` pairs."""
    messages = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "Invalid value")
        messages.append(f"{path}: {msg}" if path else msg)
    return ", ".join(messages)


def validate_payload(payload: Any, schema: type[ModelT]) -> ValidationOutcome[ModelT]:
    try:
        return ValidationOutcome(success=True, data=schema.model_validate(payload))
    except ValidationError as exc:
        return ValidationOutcome(success=False, error=format_validation_errors(exc))


async def validate_request_body(request: Request, schema: type[ModelT]) -> ValidationOutcome[ModelT]:
    """Parse the JSON body and validate it against ``schema``."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.info("request_validation.invalid_body", extra={"path": request.url.path})
        return ValidationOutcome(success=False, error="Invalid request body")
    return validate_payload(body, schema)


def validate_query_params(params: Mapping[str, str], schema: type[ModelT]) -> ValidationOutcome[ModelT]:
    return validate_payload(dict(params), schema)


def validate_file_upload(
    size: int,
    content_type: str | None,
    *,
    max_size: int = DEFAULT_MAX_UPLOAD_BYTES,
    allowed_types: Sequence[str] = (),
) -> str | None:
    """Check an upload's size and MIME type.

    Returns:
        None when the upload is acceptable, else an error message.
    """
    if size > max_size:
        return f"File too large. Maximum size is {round(max_size / 1024 / 1024)}MB"
    if allowed_types and content_type not in allowed_types:
        return f"Invalid file type. Allowed types: {', '.join(allowed_types)}"
    return None
