"""UserProfile model — one row per authenticated identity."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from botrelay.models.base import TimestampMixin


class UserProfile(TimestampMixin, SQLModel, table=True):
    __tablename__ = "user_profiles"

    id: str = Field(primary_key=True, max_length=255)
    username: str = Field(max_length=255, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class UserProfileRead(SQLModel):
    id: str
    username: str
    created_at: datetime
    updated_at: datetime
