"""Chatbot model — a user-owned container of chat sessions bound to one webhook."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from botrelay.models.base import TimestampMixin

DEFAULT_BOT_ID_KEY = "botId"
DEFAULT_THREAD_ID_KEY = "threadId"
DEFAULT_MESSAGE_KEY = "message"
DEFAULT_RESPONSE_KEY = "server_response_message"


class ChatbotSettings(BaseModel):
    """Webhook field mapping, persisted as camelCase JSON on the chatbot row.

    Every key name is optional; the relay falls back to the ``DEFAULT_*``
    names above and to the chatbot id for ``bot_id_value``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    webhook_url: str | None = None
    bot_id_key: str | None = None
    bot_id_value: str | None = None
    thread_id_key: str | None = None
    message_key: str | None = None
    response_key: str | None = None

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Chatbot(TimestampMixin, SQLModel, table=True):
    __tablename__ = "chatbots"

    id: str = Field(primary_key=True, max_length=255)
    user_id: str = Field(foreign_key="user_profiles.id", nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)

    # Webhook field mapping (ChatbotSettings.to_json)
    settings: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))


# ── Pydantic schemas ─────────────────────────────────────────

class ChatbotCreate(SQLModel):
    name: str = Field(min_length=1, max_length=255)


class ChatbotUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    settings: ChatbotSettings | None = None
