"""Pydantic models for Soar.

This module contains the wire shapes exchanged with the panel: response
envelopes, the error envelope, and the request bodies commands send.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Surface(str, Enum):
    """API personalities exposed by the panel."""

    APPLICATION = "application"
    CLIENT = "client"


class HttpMethod(str, Enum):
    """HTTP methods used by panel commands."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class Shape(str, Enum):
    """Envelope structure a command expects back."""

    SINGLE = "single"
    COLLECTION = "collection"
    DATA = "data"


# =============================================================================
# Response Envelopes
# =============================================================================


class ResourceEnvelope(BaseModel):
    """Single resource: ``{"object": ..., "attributes": {...}}``.

    Attributes:
        object: Resource type name (``user``, ``server``...). Not validated.
        attributes: Resource payload.
    """

    model_config = ConfigDict(frozen=True)

    object: str
    attributes: dict[str, Any]


class CollectionEnvelope(BaseModel):
    """Collection: ``{"object": "list", "data": [<resource>, ...]}``.

    Item order is the server's order and is preserved.
    """

    model_config = ConfigDict(frozen=True)

    object: str
    data: list[ResourceEnvelope]


class DataEnvelope(BaseModel):
    """Bare data wrapper: ``{"data": {...}}``."""

    model_config = ConfigDict(frozen=True)

    data: dict[str, Any]


# =============================================================================
# Error Envelope
# =============================================================================


class PanelError(BaseModel):
    """One entry of the panel's ``errors`` list."""

    model_config = ConfigDict(frozen=True)

    code: str
    status: str
    detail: str = ""


class PanelErrorBody(BaseModel):
    """Error envelope returned on 4xx/5xx: ``{"errors": [...]}``."""

    errors: list[PanelError] = Field(min_length=1)


# =============================================================================
# Request Bodies
# =============================================================================


class UserPayload(BaseModel):
    """Body for creating or updating a panel user.

    Attributes:
        username: Account username.
        email: Account email address.
        first_name: Given name.
        last_name: Family name.
        password: Optional initial password.
        root_admin: Whether the account is a panel administrator.
        external_id: Optional identifier from an external system.
        language: Interface language code.
    """

    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+$")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    password: str | None = None
    root_admin: bool | None = None
    external_id: str | None = None
    language: str | None = None


class TwoFactorEnablePayload(BaseModel):
    """Body for enabling two-factor authentication."""

    code: str
    password: str


class PasswordPayload(BaseModel):
    """Body carrying only the account password."""

    password: str
