"""Workspace snapshot and notification endpoints."""

from fastapi import APIRouter, HTTPException, Query, status

from botrelay.api.deps import Current
from botrelay.api.schemas import WorkspaceRead, workspace_read

router = APIRouter(tags=["workspace"])


@router.get("/workspace", response_model=WorkspaceRead)
async def get_workspace(
    current: Current,
    bot: str | None = Query(default=None, description="Select this chatbot"),
    session: str | None = Query(default=None, description="Select this session"),
) -> WorkspaceRead:
    """Return the full chatbot tree plus the active selection.

    ``bot`` and ``session`` carry navigation state from the client URL.
    """
    current.coordinator.select(chatbot_id=bot, session_id=session)
    return workspace_read(current.coordinator)


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(notification_id: str, current: Current) -> None:
    if not current.coordinator.dismiss_notification(notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
