"""Chatbot create / rename / settings / delete on the caller's workspace."""

from fastapi import APIRouter, status

from botrelay.api.deps import Current
from botrelay.api.schemas import ChatbotRead, SessionRead
from botrelay.models.chatbot import ChatbotCreate, ChatbotUpdate
from botrelay.models.session import ChatSessionCreate

router = APIRouter(prefix="/chatbots", tags=["chatbots"])


@router.get("", response_model=list[ChatbotRead])
async def list_chatbots(current: Current) -> list[ChatbotRead]:
    return [ChatbotRead.model_validate(bot) for bot in current.coordinator.store.chatbots]


@router.post("", response_model=ChatbotRead, status_code=status.HTTP_201_CREATED)
async def create_chatbot(body: ChatbotCreate, current: Current) -> ChatbotRead:
    bot = current.coordinator.add_chatbot(body.name)
    return ChatbotRead.model_validate(bot)


@router.patch("/{chatbot_id}", response_model=ChatbotRead)
async def update_chatbot(chatbot_id: str, body: ChatbotUpdate, current: Current) -> ChatbotRead:
    """Rename and/or replace the webhook settings. Ids and sessions are untouched."""
    coordinator = current.coordinator
    bot = coordinator.get_chatbot(chatbot_id)
    if body.name is not None:
        bot = coordinator.rename_chatbot(chatbot_id, body.name)
    if body.settings is not None:
        bot = coordinator.update_chatbot_settings(chatbot_id, body.settings)
    return ChatbotRead.model_validate(bot)


@router.delete("/{chatbot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chatbot(chatbot_id: str, current: Current) -> None:
    current.coordinator.remove_chatbot(chatbot_id)


@router.post(
    "/{chatbot_id}/sessions",
    response_model=SessionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    chatbot_id: str,
    current: Current,
    body: ChatSessionCreate | None = None,
) -> SessionRead:
    node = current.coordinator.create_session(chatbot_id, body.name if body else None)
    return SessionRead.model_validate(node)
