"""Import all models so SQLModel.metadata picks them up."""

from botrelay.models.chatbot import Chatbot, ChatbotCreate, ChatbotSettings, ChatbotUpdate
from botrelay.models.identity import AuthIdentity
from botrelay.models.message import ChatMessage, MessageRole
from botrelay.models.profile import UserProfile, UserProfileRead
from botrelay.models.session import ChatSession, ChatSessionCreate, ChatSessionUpdate

__all__ = [
    "AuthIdentity",
    "ChatMessage",
    "ChatSession",
    "ChatSessionCreate",
    "ChatSessionUpdate",
    "Chatbot",
    "ChatbotCreate",
    "ChatbotSettings",
    "ChatbotUpdate",
    "MessageRole",
    "UserProfile",
    "UserProfileRead",
]
