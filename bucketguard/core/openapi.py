"""OpenAPI metadata and customization utilities.

Enriches the generated schema with tag descriptions and documents the 429
denial body on every rate-limited operation. Keeps documentation concerns
out of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

# Operations guarded by enforce_rate_limit, as (path suffix, method).
RATE_LIMITED_OPERATIONS = {("/zip", "post")}

_DENIAL_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "error": {"type": "string", "example": "Too Many Requests"},
        "message": {"type": "string"},
        "retryAfterSeconds": {"type": "integer"},
        "availableTokens": {"type": "number"},
        "requiredTokens": {"type": "number"},
        "request_id": {"type": "string"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and 429 responses."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Archive",
                "description": "Rate-limited photo archive jobs.",
            },
            {
                "name": "Rate Limit",
                "description": "Read-only view of a client's token bucket.",
            },
            {
                "name": "Health",
                "description": "Liveness and store connection state.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method, method_obj in methods.items():
                if not isinstance(method_obj, dict):
                    continue
                if any(path.endswith(suffix) and method == m for suffix, m in RATE_LIMITED_OPERATIONS):
                    method_obj.setdefault("responses", {})["429"] = {
                        "description": "Token bucket exhausted for this client",
                        "content": {"application/json": {"schema": _DENIAL_SCHEMA}},
                    }

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
