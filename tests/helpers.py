"""Shared constants and builders for the test suite."""

import json
from typing import Any

PANEL_URL = "https://panel.test"

USER_ATTRIBUTES: dict[str, Any] = {
    "id": 1,
    "external_id": None,
    "uuid": "c4022c6c-9bf1-4a23-bff9-519cceb38335",
    "username": "admin",
    "email": "admin@example.com",
    "first_name": "Panel",
    "last_name": "Admin",
    "language": "en",
    "root_admin": True,
    "2fa": False,
    "created_at": "2024-01-01T12:00:00+00:00",
    "updated_at": "2024-01-02T12:00:00+00:00",
}

NOT_FOUND_BODY: dict[str, Any] = {
    "errors": [
        {
            "code": "NotFoundHttpException",
            "status": "404",
            "detail": "The requested resource could not be found on the server.",
        }
    ]
}


def user_attributes(user_id: int, username: str) -> dict[str, Any]:
    """Build user attributes with a distinct id and username."""
    return {**USER_ATTRIBUTES, "id": user_id, "username": username}


def encode(value: Any, indent: bool = True) -> bytes:
    """Serialize a JSON value the way Soar prints it."""
    if indent:
        return json.dumps(value, indent=2).encode()
    return json.dumps(value, separators=(",", ":")).encode()
