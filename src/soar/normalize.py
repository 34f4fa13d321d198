"""Response envelope normalization.

The panel wraps resources in one of a few JSON shapes:

- single:     {"object": "user", "attributes": {...}}
- collection: {"object": "list", "data": [{"object": ..., "attributes": {...}}, ...]}
- data:       {"data": {...}}

Each command declares which shape it expects. ``normalize`` checks the
body against that shape, then either strips the envelope down to the inner
resource(s) (``http.parse_body``) or keeps it intact, and serializes the
result compact or with 2-space indentation (``http.parse_indent``).

Endpoint-specific fixes are passed in as a transform applied to every
inner resource, so they behave the same whether or not the envelope is
stripped.
"""

import json
import re
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote

from pydantic import BaseModel, ValidationError

from .config import SoarConfig
from .errors import NormalizeError, NormalizeErrorKind
from .models import CollectionEnvelope, DataEnvelope, ResourceEnvelope, Shape

ResourceTransform = Callable[[dict[str, Any]], dict[str, Any]]

_ENVELOPES: dict[Shape, type[BaseModel]] = {
    Shape.SINGLE: ResourceEnvelope,
    Shape.COLLECTION: CollectionEnvelope,
    Shape.DATA: DataEnvelope,
}

_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def serialize(value: Any, indent: bool) -> str:
    """Serialize a JSON value for output.

    Raises:
        NormalizeError: ENCODE if the value is not JSON serializable.
    """
    try:
        if indent:
            return json.dumps(value, indent=2, ensure_ascii=False)
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise NormalizeError(NormalizeErrorKind.ENCODE, f"failed to encode response: {e}") from e


def _check_shape(payload: Any, shape: Shape) -> None:
    try:
        _ENVELOPES[shape].model_validate(payload)
    except ValidationError as e:
        raise NormalizeError(
            NormalizeErrorKind.SHAPE_MISMATCH,
            f"response does not match the expected {shape.value} envelope: "
            f"{e.error_count()} validation error(s)",
        ) from e


def _unwrap(payload: dict[str, Any], shape: Shape, transform: ResourceTransform | None) -> Any:
    """Return the inner resource(s), transformed, in source order."""
    apply = transform or (lambda resource: resource)
    if shape is Shape.SINGLE:
        return apply(payload["attributes"])
    if shape is Shape.COLLECTION:
        return [apply(item["attributes"]) for item in payload["data"]]
    return apply(payload["data"])


def _rewrap(payload: dict[str, Any], shape: Shape, inner: Any) -> dict[str, Any]:
    """Put transformed inner resources back into a copy of the envelope."""
    envelope = dict(payload)
    if shape is Shape.SINGLE:
        envelope["attributes"] = inner
    elif shape is Shape.COLLECTION:
        envelope["data"] = [
            {**item, "attributes": attributes}
            for item, attributes in zip(payload["data"], inner, strict=True)
        ]
    else:
        envelope["data"] = inner
    return envelope


def normalize(
    body: bytes | None,
    config: SoarConfig,
    shape: Shape,
    transform: ResourceTransform | None = None,
) -> str | None:
    """Normalize a response body into printable JSON.

    Args:
        body: Raw response bytes, or None when the panel sent no content.
        config: Effective configuration (``http`` options are used).
        shape: Envelope shape the command expects.
        transform: Optional per-resource post-processing hook.

    Returns:
        Serialized JSON, or None when there is nothing to print.

    Raises:
        NormalizeError: PARSE for invalid JSON, SHAPE_MISMATCH when the body
            is not the declared envelope, DECODE/ENCODE from post-processing
            and serialization.
    """
    if not body:
        return None

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise NormalizeError(NormalizeErrorKind.PARSE, f"failed to parse json: {e}") from e

    _check_shape(payload, shape)

    inner = _unwrap(payload, shape, transform)
    if config.http.parse_body:
        result = inner
    elif transform is None:
        result = payload
    else:
        result = _rewrap(payload, shape, inner)

    return serialize(result, config.http.parse_indent)


# =============================================================================
# Endpoint Transforms
# =============================================================================


def percent_decode(value: str) -> str:
    """Strictly percent-decode a string.

    Unlike ``urllib.parse.unquote``, malformed escapes are rejected rather
    than passed through. ``+`` is left as-is.

    Raises:
        NormalizeError: DECODE on a malformed escape or invalid UTF-8.
    """
    bad = _INVALID_ESCAPE.search(value)
    if bad:
        raise NormalizeError(
            NormalizeErrorKind.DECODE,
            f"failed to parse url: invalid escape {value[bad.start():bad.start() + 3]!r}",
        )
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as e:
        raise NormalizeError(NormalizeErrorKind.DECODE, f"failed to parse url: {e}") from e


def decode_fields(*names: str) -> ResourceTransform:
    """Build a transform that percent-decodes the named string fields."""

    def transform(resource: dict[str, Any]) -> dict[str, Any]:
        decoded = dict(resource)
        for name in names:
            value = decoded.get(name)
            if isinstance(value, str):
                decoded[name] = percent_decode(value)
        return decoded

    return transform


# The two-factor enrollment endpoint returns its otpauth:// QR payload URL-encoded.
decode_two_factor = decode_fields("image_url_data")
