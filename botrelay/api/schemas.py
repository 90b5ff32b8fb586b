"""Read schemas for the in-memory workspace tree."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from botrelay.models.chatbot import ChatbotSettings
from botrelay.models.message import MessageRole
from botrelay.services.coordinator import Notification, NotificationLevel, SynchronizationCoordinator


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: MessageRole
    content: str
    timestamp: str


class SessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    thread_id: str
    messages: list[MessageRead]


class ChatbotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    settings: ChatbotSettings | None = None
    sessions: list[SessionRead]


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    level: NotificationLevel
    title: str
    description: str
    created_at: datetime


class WorkspaceRead(BaseModel):
    user_id: str
    initialized: bool
    active_chatbot_id: str
    active_session_id: str | None
    chatbots: list[ChatbotRead]
    notifications: list[NotificationRead]


def workspace_read(coordinator: SynchronizationCoordinator) -> WorkspaceRead:
    store = coordinator.store
    active_bot = store.active_chatbot
    active_session = store.active_session
    return WorkspaceRead(
        user_id=store.user_id,
        initialized=store.initialized,
        active_chatbot_id=active_bot.id if active_bot else "",
        active_session_id=active_session.id if active_session else None,
        chatbots=[ChatbotRead.model_validate(bot) for bot in store.chatbots],
        notifications=[notification_read(n) for n in coordinator.notifications],
    )


def notification_read(note: Notification) -> NotificationRead:
    return NotificationRead.model_validate(note)
