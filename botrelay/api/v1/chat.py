"""Chat endpoint — record the user turn and relay it to the chatbot's webhook."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from botrelay.api.deps import Current
from botrelay.api.schemas import MessageRead

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    chatbot_id: str = Field(min_length=1)
    message: str = Field(min_length=1, max_length=32000)
    session_id: str | None = Field(
        default=None,
        description="Existing session ID. Omit to start a new conversation.",
    )


class ChatResponse(BaseModel):
    session_id: str
    user_message: MessageRead
    assistant_message: MessageRead


@router.post("", response_model=ChatResponse)
async def chat(body: ChatRequest, current: Current) -> ChatResponse:
    """Send a message and return the assistant's reply.

    Relay failures come back as an assistant message, never as an error status.
    """
    result = await current.coordinator.send_message(
        body.chatbot_id,
        body.message,
        session_id=body.session_id,
    )
    return ChatResponse(
        session_id=result.session_id,
        user_message=MessageRead.model_validate(result.user_message),
        assistant_message=MessageRead.model_validate(result.assistant_message),
    )
