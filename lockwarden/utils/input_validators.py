"""The Checkpoint: validates identities, sources, and event fields before they reach a store.

Malformed input is rejected with InvalidInput. Nothing is trimmed,
lower-cased, or otherwise coerced into an acceptable shape.
"""

import ipaddress
import json
import re

from ..core.types import Severity
from ..exceptions import InvalidInput

# Identities: printable, no control characters, max 255 chars
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
MAX_IDENTITY_LENGTH = 255

# Event types: snake_case tags, max 100 chars
_EVENT_TYPE_RE = re.compile(r"^[a-z][a-z0-9_]{0,99}$")

MAX_DESCRIPTION_LENGTH = 2000


def validate_identity(value) -> str:
    """Validate an account identity (email, username, or similar)."""
    if not isinstance(value, str):
        raise InvalidInput("identity", f"must be a string, got {type(value).__name__}")
    if not value or not value.strip():
        raise InvalidInput("identity", "must not be empty")
    if value != value.strip():
        raise InvalidInput("identity", "must not have leading or trailing whitespace")
    if len(value) > MAX_IDENTITY_LENGTH:
        raise InvalidInput("identity", f"longer than {MAX_IDENTITY_LENGTH} characters")
    if _CONTROL_CHARS.search(value):
        raise InvalidInput("identity", "contains control characters")
    return value


def validate_source(value) -> str:
    """Validate a network source and return its canonical IP address form."""
    if not isinstance(value, str) or not value:
        raise InvalidInput("source", "must be a non-empty IP address string")
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise InvalidInput("source", f"not a valid IP address: {value!r}")


def validate_event_type(value) -> str:
    if not isinstance(value, str) or not _EVENT_TYPE_RE.match(value):
        raise InvalidInput("type", f"must be a snake_case tag of at most 100 chars, got {value!r}")
    return value


def validate_severity(value) -> Severity:
    if isinstance(value, Severity):
        return value
    try:
        return Severity(value)
    except ValueError:
        allowed = ", ".join(s.value for s in Severity)
        raise InvalidInput("severity", f"must be one of {allowed}, got {value!r}")


def validate_description(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("description", "must be a non-empty string")
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise InvalidInput("description", f"longer than {MAX_DESCRIPTION_LENGTH} characters")
    return value


def validate_metadata(value) -> dict:
    """Metadata must be a JSON-serializable mapping with string keys."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidInput("metadata", "must be a mapping")
    for key in value:
        if not isinstance(key, str):
            raise InvalidInput("metadata", f"keys must be strings, got {key!r}")
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput("metadata", f"not JSON-serializable: {e}")
    return dict(value)
