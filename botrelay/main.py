"""FastAPI application entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from botrelay.api.deps import get_registry
from botrelay.api.v1 import v1_router
from botrelay.core.config import get_settings
from botrelay.core.database import init_db
from botrelay.services.coordinator import MinimumChatbotsError, UnknownEntityError, ValidationError


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: ensure tables exist (use Alembic in production)
    await init_db()
    yield
    # Shutdown: let in-flight persistence writes finish
    await get_registry().close()


app = FastAPI(
    title="BotRelay",
    version="0.1.0",
    description="Multi-chatbot front-end relaying conversations to user-configured webhooks",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Coordinator errors ───────────────────────────────────────

@app.exception_handler(MinimumChatbotsError)
async def minimum_chatbots_handler(_request: Request, exc: MinimumChatbotsError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(_request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(UnknownEntityError)
async def unknown_entity_handler(_request: Request, exc: UnknownEntityError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
