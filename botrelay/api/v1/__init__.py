"""V1 API router aggregation."""

from fastapi import APIRouter

from botrelay.api.v1.auth import router as auth_router
from botrelay.api.v1.chat import router as chat_router
from botrelay.api.v1.chatbots import router as chatbots_router
from botrelay.api.v1.sessions import router as sessions_router
from botrelay.api.v1.system import router as system_router
from botrelay.api.v1.workspace import router as workspace_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(auth_router)
v1_router.include_router(workspace_router)
v1_router.include_router(chatbots_router)
v1_router.include_router(sessions_router)
v1_router.include_router(chat_router)
v1_router.include_router(system_router)
