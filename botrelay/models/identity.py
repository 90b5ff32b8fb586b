"""AuthIdentity model — credentials for the local identity provider."""

from sqlmodel import Field, SQLModel

from botrelay.models.base import TimestampMixin


class AuthIdentity(TimestampMixin, SQLModel, table=True):
    __tablename__ = "auth_identities"

    id: str = Field(primary_key=True, max_length=255)
    username: str = Field(max_length=255, nullable=False, unique=True, index=True)
    email: str = Field(max_length=320, nullable=False, unique=True)
    password_hash: str = Field(nullable=False)
    is_confirmed: bool = Field(default=True)
