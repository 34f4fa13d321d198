"""Exception hierarchy for Soar.

Every failure a command can hit is raised as a subclass of ``SoarError``
and reported exactly once at the command boundary. Nothing below the CLI
prints or exits on its own.

Taxonomy:
    - ``ConfigError``: configuration source missing, malformed or unwritable.
    - ``BuildError``: credentials unusable for the requested surface.
    - ``TransportError``: DNS, connection, TLS or timeout failure.
    - ``APIError``: the panel answered with a non-2xx status.
    - ``NormalizeError``: the response did not have the declared shape or
      could not be post-processed / re-encoded.
    - ``CommandError``: local argument validation, detected before any
      request is built.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PanelError


class SoarError(Exception):
    """Base exception for all Soar failures."""


class ConfigErrorKind(str, Enum):
    """Reasons a configuration source cannot be used."""

    NOT_FOUND = "not_found"
    PARSE = "parse"
    WRITE = "write"


class ConfigError(SoarError):
    """Configuration source missing, malformed or unwritable.

    Args:
        kind: Failure classification.
        message: Human-readable description.
    """

    def __init__(self, kind: ConfigErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class BuildErrorKind(str, Enum):
    """Reasons an outbound request cannot be built."""

    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_URL = "invalid_url"
    UNSUPPORTED_METHOD = "unsupported_method"


class BuildError(SoarError):
    """Request could not be constructed from the resolved credentials."""

    def __init__(self, kind: BuildErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class TransportError(SoarError):
    """Network-level failure while talking to the panel.

    Args:
        message: Short description of what was attempted.
        cause: Underlying transport exception.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.args[0]}: {self.cause}"
        return self.args[0]


class APIError(SoarError):
    """The panel returned an error status.

    Either ``errors`` holds the parsed error envelope, or ``raw`` holds the
    body as opaque text when it could not be parsed.

    Attributes:
        status_code: HTTP status code of the response.
        errors: Structured errors from ``{"errors": [...]}``.
        raw: Raw response text when the body was not an error envelope.
    """

    def __init__(
        self,
        status_code: int,
        errors: list[PanelError] | None = None,
        raw: str = "",
    ) -> None:
        super().__init__(f"panel returned status {status_code}")
        self.status_code = status_code
        self.errors = errors or []
        self.raw = raw

    @property
    def details(self) -> list[str]:
        """One human-readable line per reported error."""
        if self.errors:
            return [f"{e.code} ({e.status}): {e.detail}" for e in self.errors]
        if self.raw:
            return [self.raw]
        return []

    def __str__(self) -> str:
        lines = self.details
        if not lines:
            return self.args[0]
        return f"{self.args[0]}: " + "; ".join(lines)


class NormalizeErrorKind(str, Enum):
    """Reasons a response body cannot be normalized."""

    PARSE = "parse"
    SHAPE_MISMATCH = "shape_mismatch"
    DECODE = "decode"
    ENCODE = "encode"


class NormalizeError(SoarError):
    """Response body could not be turned into printable JSON."""

    def __init__(self, kind: NormalizeErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class CommandError(SoarError):
    """Invalid command arguments, detected before any request is built."""
