"""Time and identifier helpers shared by models, stores and the engine."""

import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new opaque identifier (UUID v4 string)."""
    return str(uuid.uuid4())
