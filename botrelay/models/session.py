"""ChatSession model — one conversation thread inside a chatbot."""

from sqlmodel import Field, SQLModel

from botrelay.models.base import TimestampMixin


class ChatSession(TimestampMixin, SQLModel, table=True):
    __tablename__ = "chat_sessions"

    id: str = Field(primary_key=True, max_length=255)
    chatbot_id: str = Field(foreign_key="chatbots.id", nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)

    # Correlates turns on the webhook side; never changes once assigned
    thread_id: str = Field(max_length=512, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class ChatSessionCreate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class ChatSessionUpdate(SQLModel):
    name: str = Field(min_length=1, max_length=255)
