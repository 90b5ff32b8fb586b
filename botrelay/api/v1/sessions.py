"""Session rename / delete."""

from fastapi import APIRouter, status

from botrelay.api.deps import Current
from botrelay.api.schemas import SessionRead
from botrelay.models.session import ChatSessionUpdate

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.patch("/{session_id}", response_model=SessionRead)
async def rename_session(session_id: str, body: ChatSessionUpdate, current: Current) -> SessionRead:
    return SessionRead.model_validate(current.coordinator.rename_session(session_id, body.name))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, current: Current) -> None:
    current.coordinator.delete_session(session_id)
