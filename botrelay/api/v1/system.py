"""System health endpoint — per-table check of the persistence gateway."""

from fastapi import APIRouter
from pydantic import BaseModel

from botrelay.api.deps import Registry

router = APIRouter(prefix="/system", tags=["system"])


class TableHealthRead(BaseModel):
    exists: bool
    can_read: bool
    can_write: bool


class HealthResponse(BaseModel):
    status: str  # "ok" or "degraded"
    tables: dict[str, TableHealthRead]
    summary: dict[str, bool]
    detail: str | None = None


@router.get("/health", response_model=HealthResponse)
async def system_health(registry: Registry) -> HealthResponse:
    """Check that every table exists and is readable and writable."""
    report = await registry.gateway.check_health()
    return HealthResponse(
        status="ok" if report.success else "degraded",
        tables={
            name: TableHealthRead(exists=t.exists, can_read=t.can_read, can_write=t.can_write)
            for name, t in report.tables.items()
        },
        summary=report.summary,
        detail=report.error,
    )
