"""Identity provider and auth session watcher.

``IdentityProvider`` is the boundary to whatever authenticates users.
``LocalIdentityProvider`` is the bundled implementation: Argon2 password
hashes in the ``auth_identities`` table and JWT access tokens.

``AuthSessionWatcher`` tracks one client's sign-in state and delivers
SIGNED_IN / SIGNED_OUT transitions to its subscribers.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from botrelay.core.config import Settings, get_settings
from botrelay.core.security import create_jwt, decode_jwt, hash_password, verify_password
from botrelay.models.identity import AuthIdentity

logger = logging.getLogger(__name__)


class IdentityErrorKind(StrEnum):
    INVALID_CREDENTIALS = "invalid_credentials"
    UNCONFIRMED = "unconfirmed"
    DUPLICATE = "duplicate"
    MISSING_FIELDS = "missing_fields"


_MESSAGES = {
    IdentityErrorKind.INVALID_CREDENTIALS: "Invalid username or password",
    IdentityErrorKind.UNCONFIRMED: "Please confirm your account before signing in",
    IdentityErrorKind.DUPLICATE: "An account with this username already exists",
    IdentityErrorKind.MISSING_FIELDS: "Please enter username and password",
}


class IdentityError(Exception):
    def __init__(self, kind: IdentityErrorKind) -> None:
        super().__init__(_MESSAGES[kind])
        self.kind = kind
        self.message = _MESSAGES[kind]


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    username: str
    access_token: str
    # True right after sign-up, before the backend has caught up
    is_new: bool = False


class AuthEvent(StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


AuthCallback = Callable[[AuthEvent, AuthSession | None], Awaitable[None]]


class IdentityProvider(Protocol):
    async def sign_in(self, username: str, password: str) -> AuthSession: ...

    async def sign_up(self, username: str, password: str) -> AuthSession | None: ...

    async def sign_out(self, access_token: str) -> None: ...

    async def get_current_session(self, access_token: str) -> AuthSession | None: ...


class LocalIdentityProvider:
    """Username/password identities stored next to the chat tables."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._revoked: set[str] = set()

    def email_for(self, username: str) -> str:
        return f"{username}@{self._settings.identity_email_domain}"

    async def sign_in(self, username: str, password: str) -> AuthSession:
        username = username.strip()
        if not username or not password:
            raise IdentityError(IdentityErrorKind.MISSING_FIELDS)

        async with self._session_factory() as session:
            result = await session.execute(
                select(AuthIdentity).where(AuthIdentity.email == self.email_for(username))
            )
            identity = result.scalar_one_or_none()

        if identity is None or not verify_password(password, identity.password_hash):
            raise IdentityError(IdentityErrorKind.INVALID_CREDENTIALS)
        if not identity.is_confirmed:
            raise IdentityError(IdentityErrorKind.UNCONFIRMED)

        logger.info("User %s signed in", identity.id)
        return self._issue(identity)

    async def sign_up(self, username: str, password: str) -> AuthSession | None:
        """Register a new identity. Returns None while confirmation is pending."""
        username = username.strip()
        if not username or not password:
            raise IdentityError(IdentityErrorKind.MISSING_FIELDS)

        email = self.email_for(username)
        async with self._session_factory() as session:
            existing = await session.execute(
                select(AuthIdentity).where(AuthIdentity.email == email)
            )
            if existing.scalar_one_or_none() is not None:
                raise IdentityError(IdentityErrorKind.DUPLICATE)

            identity = AuthIdentity(
                id=str(uuid.uuid4()),
                username=username,
                email=email,
                password_hash=hash_password(password),
                is_confirmed=not self._settings.require_confirmation,
            )
            session.add(identity)
            await session.commit()
            await session.refresh(identity)

        logger.info("Registered user %s", identity.id)
        if not identity.is_confirmed:
            return None
        return self._issue(identity, is_new=True)

    async def sign_out(self, access_token: str) -> None:
        try:
            payload = decode_jwt(access_token)
        except JWTError:
            return
        jti = payload.get("jti")
        if jti:
            self._revoked.add(jti)

    async def get_current_session(self, access_token: str) -> AuthSession | None:
        try:
            payload = decode_jwt(access_token)
        except JWTError:
            return None
        if payload.get("jti") in self._revoked:
            return None
        try:
            return AuthSession(
                user_id=payload["sub"],
                username=payload["usr"],
                access_token=access_token,
            )
        except KeyError:
            return None

    def _issue(self, identity: AuthIdentity, is_new: bool = False) -> AuthSession:
        token = create_jwt(subject=identity.id, username=identity.username)
        return AuthSession(
            user_id=identity.id,
            username=identity.username,
            access_token=token,
            is_new=is_new,
        )


class Subscription:
    """Handle returned by ``AuthSessionWatcher.subscribe``."""

    def __init__(self, watcher: AuthSessionWatcher, callback: AuthCallback) -> None:
        self._watcher = watcher
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._watcher._remove(self._callback)
            self.active = False


class AuthSessionWatcher:
    """Current identity for one client plus sign-in/sign-out notifications."""

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider
        self._callbacks: list[AuthCallback] = []
        self.current: AuthSession | None = None

    def subscribe(self, callback: AuthCallback) -> Subscription:
        self._callbacks.append(callback)
        return Subscription(self, callback)

    async def sign_in(self, username: str, password: str) -> AuthSession:
        auth = await self._provider.sign_in(username, password)
        await self.set_session(auth)
        return auth

    async def sign_up(self, username: str, password: str) -> AuthSession | None:
        auth = await self._provider.sign_up(username, password)
        if auth is not None:
            await self.set_session(auth)
        return auth

    async def restore(self, access_token: str) -> AuthSession | None:
        """Adopt an existing access token, e.g. after a process restart."""
        auth = await self._provider.get_current_session(access_token)
        if auth is not None:
            await self.set_session(auth)
        return auth

    async def sign_out(self, access_token: str | None = None) -> None:
        """Revoke ``access_token`` (default: the current one) and emit SIGNED_OUT."""
        token = access_token or (self.current.access_token if self.current else None)
        if token is None:
            return
        await self._provider.sign_out(token)
        if self.current is None:
            return
        self.current = None
        await self._emit(AuthEvent.SIGNED_OUT, None)

    async def set_session(self, auth: AuthSession) -> None:
        self.current = auth
        await self._emit(AuthEvent.SIGNED_IN, auth)

    def _remove(self, callback: AuthCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def _emit(self, event: AuthEvent, auth: AuthSession | None) -> None:
        for callback in list(self._callbacks):
            try:
                await callback(event, auth)
            except Exception:
                logger.exception("Auth subscriber failed handling %s", event)
