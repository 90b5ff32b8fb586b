"""Shared base fields for all models."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utcnow_iso() -> str:
    """ISO-8601 timestamp as stored on chat messages."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    """Locally generated placeholder id, e.g. ``bot_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


class TimestampMixin(SQLModel):
    """Created / updated timestamps injected into every table."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
