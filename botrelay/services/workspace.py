"""Per-user workspaces: one auth watcher + coordinator for each signed-in user."""

import asyncio
import logging
from dataclasses import dataclass

from botrelay.core.config import Settings, get_settings
from botrelay.services.coordinator import SynchronizationCoordinator
from botrelay.services.gateway import PersistenceGateway
from botrelay.services.identity import AuthSession, AuthSessionWatcher, IdentityProvider
from botrelay.services.relay import WebhookRelay

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    user_id: str
    watcher: AuthSessionWatcher
    coordinator: SynchronizationCoordinator


class WorkspaceRegistry:
    def __init__(
        self,
        gateway: PersistenceGateway,
        provider: IdentityProvider,
        relay: WebhookRelay | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.relay = relay or WebhookRelay()
        self._settings = settings or get_settings()
        self._workspaces: dict[str, Workspace] = {}
        # Attach (and therefore initialize) runs at most once per user at a time
        self._attaching: dict[str, asyncio.Task] = {}

    def get(self, user_id: str) -> Workspace | None:
        return self._workspaces.get(user_id)

    async def sign_in(self, username: str, password: str) -> tuple[AuthSession, Workspace]:
        auth = await self.provider.sign_in(username, password)
        return auth, await self._attach_once(auth)

    async def sign_up(self, username: str, password: str) -> tuple[AuthSession | None, Workspace | None]:
        auth = await self.provider.sign_up(username, password)
        if auth is None:
            return None, None
        return auth, await self._attach_once(auth)

    async def restore(self, access_token: str) -> Workspace | None:
        """Resolve a bearer token to its workspace, rebuilding it if needed."""
        auth = await self.provider.get_current_session(access_token)
        if auth is None:
            return None
        existing = self._workspaces.get(auth.user_id)
        if existing is not None and existing.coordinator.store.initialized:
            return existing
        return await self._attach_once(auth)

    async def sign_out(self, user_id: str, access_token: str) -> None:
        workspace = self._workspaces.pop(user_id, None)
        if workspace is None:
            await self.provider.sign_out(access_token)
            return
        # Let queued writes read the tree before SIGNED_OUT resets it
        await workspace.coordinator.drain()
        await workspace.watcher.sign_out(access_token)
        await workspace.coordinator.stop()
        logger.info("Closed workspace for %s", user_id)

    async def close(self) -> None:
        for workspace in list(self._workspaces.values()):
            await workspace.coordinator.stop()
        self._workspaces.clear()

    async def _attach_once(self, auth: AuthSession) -> Workspace:
        pending = self._attaching.get(auth.user_id)
        if pending is None:
            pending = asyncio.ensure_future(self._attach(auth))
            self._attaching[auth.user_id] = pending

            def _done(task: asyncio.Task, user_id: str = auth.user_id) -> None:
                if self._attaching.get(user_id) is task:
                    del self._attaching[user_id]

            pending.add_done_callback(_done)
        return await asyncio.shield(pending)

    async def _attach(self, auth: AuthSession) -> Workspace:
        workspace = self._workspaces.get(auth.user_id)
        if workspace is None:
            watcher = AuthSessionWatcher(self.provider)
            coordinator = SynchronizationCoordinator(
                self.gateway,
                relay=self.relay,
                watcher=watcher,
                settings=self._settings,
            )
            coordinator.start()
            workspace = Workspace(user_id=auth.user_id, watcher=watcher, coordinator=coordinator)
            self._workspaces[auth.user_id] = workspace
            logger.info("Opened workspace for %s", auth.user_id)
        await workspace.watcher.set_session(auth)
        return workspace
