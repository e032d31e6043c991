"""OpenAPI schema tweaks.

Only the administration routes under ``/v1/rate-limit`` take an API key,
so the security requirement is attached per operation rather than globally.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

ADMIN_PATH_PREFIX = "/v1/rate-limit"
API_KEY_SCHEME = "ApiKeyAuth"

TAGS_METADATA = [
    {"name": "Rate Limit", "description": "Inspect or clear a caller's admission counter."},
    {"name": "Health", "description": "Liveness and backend reporting."},
]


def _mark_admin_operations(paths: Dict[str, Any]) -> None:
    for path, operations in paths.items():
        if not path.startswith(ADMIN_PATH_PREFIX):
            continue
        for operation in operations.values():
            if isinstance(operation, dict):
                operation["security"] = [{API_KEY_SCHEME: []}]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Wrap ``app.openapi`` to declare the ``X-API-Key`` scheme and tag docs."""

    build_schema = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = build_schema()
        schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        schemes[API_KEY_SCHEME] = {
            "type": "apiKey",
            "in": "header",
            "name": "X-API-Key",
            "description": "Operator key from APP_API_KEYS.",
        }
        _mark_admin_operations(schema.get("paths", {}))

        known = {tag.get("name") for tag in schema.get("tags", [])}
        schema.setdefault("tags", []).extend(
            tag for tag in TAGS_METADATA if tag["name"] not in known
        )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
