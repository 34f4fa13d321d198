"""Panel API request construction and execution.

This module turns resolved credentials plus a command's method/path/body
into an outbound request, sends it with httpx, and classifies the outcome:

- 2xx with a body: the raw body bytes are returned.
- 2xx without a body (e.g. 204): ``None`` is returned, meaning nothing to
  normalize.
- any other status: ``APIError`` with the parsed error envelope, or the
  raw body text when it is not one.
- DNS, connection, TLS and timeout failures: ``TransportError``.

There is exactly one attempt per request; nothing is retried.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from . import __version__
from .config import EndpointCredentials
from .errors import APIError, BuildError, BuildErrorKind, TransportError
from .logging_config import Diagnostics
from .models import HttpMethod, PanelErrorBody

USER_AGENT = f"soar/{__version__}"


@dataclass(frozen=True)
class OutboundRequest:
    """Fully specified request, built fresh for every call.

    Attributes:
        method: HTTP method.
        url: Absolute URL including any query string.
        headers: Request headers.
        body: Optional JSON body bytes.
    """

    method: HttpMethod
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


def _method(method: HttpMethod | str) -> HttpMethod:
    if isinstance(method, HttpMethod):
        return method
    try:
        return HttpMethod(method.upper())
    except ValueError as e:
        raise BuildError(
            BuildErrorKind.UNSUPPORTED_METHOD, f"unsupported http method '{method}'"
        ) from e


def build_request(
    creds: EndpointCredentials,
    method: HttpMethod | str,
    path: str,
    body: bytes | None = None,
) -> OutboundRequest:
    """Build an authenticated request for one API surface.

    The path is appended to the base URL as given; any query string in it
    must already be percent-encoded by the caller.

    Args:
        creds: Resolved credentials for the target surface.
        method: HTTP method.
        path: Request path, optionally with query string.
        body: Optional JSON body. Its contents are not inspected.

    Returns:
        OutboundRequest ready to execute.

    Raises:
        BuildError: MISSING_CREDENTIALS if the URL or token is empty,
            INVALID_URL if the resulting URL cannot be parsed,
            UNSUPPORTED_METHOD for a method outside GET/POST/PUT/PATCH/DELETE.
    """
    missing = [
        name
        for name, value in (("url", creds.base_url), ("key", creds.token))
        if not value.strip()
    ]
    if missing:
        raise BuildError(
            BuildErrorKind.MISSING_CREDENTIALS,
            f"missing {' and '.join(missing)} for the {creds.surface.value} API; "
            f"set {creds.surface.value}.{missing[0]} in the config or pass it as a flag",
        )

    url = creds.base_url.rstrip("/") + path
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise BuildError(BuildErrorKind.INVALID_URL, f"invalid request url '{url}': {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise BuildError(
            BuildErrorKind.INVALID_URL,
            f"invalid request url '{url}': expected an http(s) panel url",
        )

    headers = {
        "Authorization": f"Bearer {creds.token}",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }
    if body:
        headers["Content-Type"] = "application/json"

    return OutboundRequest(
        method=_method(method),
        url=url,
        headers=headers,
        body=body or None,
    )


def parse_api_error(response: httpx.Response) -> APIError:
    """Classify an error response body.

    Args:
        response: Non-2xx response.

    Returns:
        APIError carrying structured errors when the body is the panel's
        error envelope, otherwise the raw body text.
    """
    try:
        body = PanelErrorBody.model_validate_json(response.content)
    except ValidationError:
        return APIError(response.status_code, raw=response.text.strip())
    return APIError(response.status_code, errors=body.errors)


class PanelClient:
    """Synchronous executor for panel requests.

    Owns one httpx connection lifecycle; use as a context manager so the
    connection is released on completion or on the first error.

    Attributes:
        diagnostics: Output handle for debug messages.
        timeout: HTTP request timeout in seconds.

    Example:
        >>> request = build_request(creds, "GET", "/api/client/account")
        >>> with PanelClient(diagnostics) as client:
        ...     body = client.execute(request)
    """

    def __init__(self, diagnostics: Diagnostics, timeout: float = 30.0) -> None:
        """Initialize the executor.

        Args:
            diagnostics: Output handle for debug messages.
            timeout: HTTP request timeout in seconds.
        """
        self.diagnostics = diagnostics
        self.timeout = timeout
        self._client: httpx.Client | None = None

    def __enter__(self) -> "PanelClient":
        """Context manager entry."""
        self._client = httpx.Client(timeout=self.timeout)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        if self._client:
            self._client.close()
            self._client = None

    def _ensure_connected(self) -> httpx.Client:
        """Ensure client is open.

        Returns:
            The HTTP client instance.

        Raises:
            RuntimeError: If not inside the context manager.
        """
        if not self._client:
            raise RuntimeError("Client not connected. Use context manager.")
        return self._client

    def execute(self, request: OutboundRequest) -> bytes | None:
        """Send a request once and classify the outcome.

        Args:
            request: Request produced by ``build_request``.

        Returns:
            Response body bytes, or None for an empty 2xx response.

        Raises:
            TransportError: If the panel could not be reached.
            APIError: If the panel answered with a non-2xx status.
        """
        client = self._ensure_connected()
        self.diagnostics.debug(f"sending {request.method.value} request to '{request.url}'")

        try:
            response = client.request(
                request.method.value,
                request.url,
                headers=request.headers,
                content=request.body,
            )
        except httpx.TransportError as e:
            raise TransportError(
                f"{request.method.value} {request.url} failed", cause=e
            ) from e

        self.diagnostics.debug(f"received status: {response.status_code}")

        if not response.is_success:
            raise parse_api_error(response)

        if not response.content:
            self.diagnostics.debug("request ended with no response body")
            return None
        return response.content
