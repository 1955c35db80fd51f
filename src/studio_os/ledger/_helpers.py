"""Common helper functions shared by the ledger stores."""

import json
import uuid
from datetime import UTC, datetime
from typing import Any

from studio_os.core.canonical import canonical_json


def generate_id() -> str:
    """Generate a unique ID (UUID4 hex)."""
    return uuid.uuid4().hex


def as_utc(value: datetime) -> datetime:
    """Reattach UTC to timestamps read back from SQLite, which drops tzinfo."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def dump_json(value: Any) -> str:
    """Serialize for storage using the same normalization as hashing."""
    return canonical_json(value)


def load_json(text: str) -> Any:
    return json.loads(text)
