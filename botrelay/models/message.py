"""ChatMessage model — a single append-only turn in a session."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from botrelay.models.base import utcnow


class MessageRole(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"

    id: str = Field(primary_key=True, max_length=255)
    session_id: str = Field(foreign_key="chat_sessions.id", nullable=False, index=True)

    role: MessageRole = Field(nullable=False)
    content: str = Field(sa_column=Column(Text, nullable=False))

    # ISO-8601, set by the client; ordering key within a session
    timestamp: str = Field(max_length=64, nullable=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
