"""Authentication endpoints — sign-up, login, logout + current user."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from botrelay.api.deps import Current, Registry
from botrelay.models.profile import UserProfileRead
from botrelay.services.identity import AuthSession, IdentityError, IdentityErrorKind

router = APIRouter(prefix="/auth", tags=["auth"])

_STATUS_BY_KIND = {
    IdentityErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    IdentityErrorKind.UNCONFIRMED: status.HTTP_403_FORBIDDEN,
    IdentityErrorKind.DUPLICATE: status.HTTP_409_CONFLICT,
    IdentityErrorKind.MISSING_FIELDS: status.HTTP_400_BAD_REQUEST,
}


# ── Schemas ──────────────────────────────────────────────────

class Credentials(BaseModel):
    username: str = Field(min_length=1, max_length=255, pattern=r"^[A-Za-z0-9._\-]+$")
    password: str = Field(min_length=1, max_length=128)


class AuthResponse(BaseModel):
    access_token: str | None = None
    token_type: str = "bearer"
    user_id: str | None = None
    username: str
    confirmation_required: bool = False


class MeResponse(BaseModel):
    user_id: str
    username: str
    profile: UserProfileRead | None = None


# ── Routes ───────────────────────────────────────────────────

@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(body: Credentials, registry: Registry) -> AuthResponse:
    """Register, then sign straight in unless the account needs confirming."""
    try:
        auth, _ = await registry.sign_up(body.username, body.password)
    except IdentityError as exc:
        raise _identity_http_error(exc) from exc

    if auth is None:
        return AuthResponse(username=body.username, confirmation_required=True)
    return _to_response(auth)


@router.post("/login", response_model=AuthResponse)
async def login(body: Credentials, registry: Registry) -> AuthResponse:
    """Authenticate with username + password, receive a JWT."""
    try:
        auth, _ = await registry.sign_in(body.username, body.password)
    except IdentityError as exc:
        raise _identity_http_error(exc) from exc
    return _to_response(auth)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(current: Current, registry: Registry) -> None:
    await registry.sign_out(current.user_id, current.access_token)


@router.get("/me", response_model=MeResponse)
async def get_me(current: Current, registry: Registry) -> MeResponse:
    """Return the signed-in user and their stored profile, if any."""
    auth = current.workspace.watcher.current
    found = await registry.gateway.read_profile(current.user_id)
    return MeResponse(
        user_id=current.user_id,
        username=auth.username if auth else "",
        profile=UserProfileRead.model_validate(found.data) if found.success else None,
    )


# ── Internal helpers ──────────────────────────────────────────

def _to_response(auth: AuthSession) -> AuthResponse:
    return AuthResponse(
        access_token=auth.access_token,
        user_id=auth.user_id,
        username=auth.username,
    )


def _identity_http_error(exc: IdentityError) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_KIND[exc.kind], detail=exc.message)
