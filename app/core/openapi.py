"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- A CSRF header security scheme required on state-changing operations

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_STATE_CHANGING = {"post", "put", "patch", "delete"}

_TAGS = [
    {"name": "Security", "description": "CSRF token issuance."},
    {"name": "Chat", "description": "Student messages to the tutor."},
    {"name": "Sessions", "description": "Tutoring session lifecycle."},
    {"name": "Health", "description": "Liveness checks."},
]


def apply_openapi_customizations(app: FastAPI, *, csrf_header: str = "x-csrf-token") -> None:
    """Patch FastAPI's OpenAPI generation to add tags and the CSRF scheme.

    - Injects ``components.securitySchemes.CsrfToken`` (header ``csrf_header``)
    - Marks every POST/PUT/PATCH/DELETE operation as requiring it
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "CsrfToken",
            {
                "type": "apiKey",
                "in": "header",
                "name": csrf_header,
                "description": "Token from GET /api/csrf, echoed back alongside the csrf-token cookie.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method, operation in methods.items():
                if method in _STATE_CHANGING and isinstance(operation, dict):
                    operation.setdefault("security", [{"CsrfToken": []}])

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
