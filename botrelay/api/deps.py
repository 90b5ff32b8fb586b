"""FastAPI dependencies for authentication and workspace resolution."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from botrelay.core.database import async_session_factory
from botrelay.services.gateway import PersistenceGateway
from botrelay.services.identity import LocalIdentityProvider
from botrelay.services.workspace import Workspace, WorkspaceRegistry

bearer_scheme = HTTPBearer()


@lru_cache
def get_registry() -> WorkspaceRegistry:
    """Process-wide registry wired to the configured database."""
    return WorkspaceRegistry(
        gateway=PersistenceGateway(async_session_factory),
        provider=LocalIdentityProvider(async_session_factory),
    )


class WorkspaceContext:
    """Resolved identity + workspace carried through a request."""

    __slots__ = ("user_id", "access_token", "workspace")

    def __init__(self, user_id: str, access_token: str, workspace: Workspace) -> None:
        self.user_id = user_id
        self.access_token = access_token
        self.workspace = workspace

    @property
    def coordinator(self):
        return self.workspace.coordinator


Registry = Annotated[WorkspaceRegistry, Depends(get_registry)]


async def get_workspace_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    registry: Registry,
) -> WorkspaceContext:
    """Resolve a bearer JWT to the caller's workspace (rebuilt on demand)."""
    token = credentials.credentials
    workspace = await registry.restore(token)
    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
        )
    return WorkspaceContext(
        user_id=workspace.user_id,
        access_token=token,
        workspace=workspace,
    )


# Typed shorthand for use in route signatures
Current = Annotated[WorkspaceContext, Depends(get_workspace_context)]
