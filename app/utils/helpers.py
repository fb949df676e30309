"""Shared utility functions: identifiers and timestamps."""
import re
import uuid
from datetime import datetime, timezone

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]{1,64}$")


def generate_id(prefix: str) -> str:
    """Return a short random identifier such as ``ticket-1a2b3c4d``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def is_valid_id(value) -> bool:
    """True when *value* can be embedded in a store key.

    Ids are opaque, but ``#`` is the key separator so it (and whitespace)
    is never allowed.
    """
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with microseconds (sortable as text)."""
    return utc_now().isoformat(timespec="microseconds")


def utc_now_millis() -> int:
    return int(utc_now().timestamp() * 1000)
