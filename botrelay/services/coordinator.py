"""Synchronization coordinator — the only writer of a user's StateStore.

Every mutation follows the same protocol:
  1. Validate locally (raise ValidationError before touching anything)
  2. Apply the change to the store immediately
  3. Dispatch the gateway write as a background task
  4. On failure, record a notification; the local change is kept
  5. On a successful create, adopt the stored id if it differs

Writes touching one chatbot (the chatbot row, its sessions and their
messages) are chained: each runs only after the previous one has finished,
so rows are created before they are renamed, deleted or referenced. Upserts
read the node from the store when they run, not when they are dispatched,
so the last write to land always matches the last local action.

Local state is authoritative for the lifetime of a login; the remote store
is best-effort. ``reload`` is the only way remote state flows back in.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from botrelay.core.config import Settings, get_settings
from botrelay.models.base import new_id, utcnow, utcnow_iso
from botrelay.models.chatbot import ChatbotSettings
from botrelay.models.message import MessageRole
from botrelay.services.gateway import NOT_FOUND, GatewayResult, PersistenceGateway
from botrelay.services.identity import AuthEvent, AuthSession, AuthSessionWatcher, Subscription
from botrelay.services.relay import WebhookRelay
from botrelay.services.state import ChatbotNode, MessageNode, SessionNode, StateStore

logger = logging.getLogger(__name__)

Write = Callable[[], Awaitable[GatewayResult[Any]]]


class ValidationError(ValueError):
    """A required field is missing or a policy forbids the action."""


class MinimumChatbotsError(ValidationError):
    """Deleting would leave the user without any chatbot."""


class UnknownEntityError(LookupError):
    """The referenced chatbot or session is not in the store."""


class NotificationLevel(StrEnum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    level: NotificationLevel = NotificationLevel.ERROR
    id: str = field(default_factory=lambda: new_id("note"))
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SendResult:
    session_id: str
    user_message: MessageNode
    assistant_message: MessageNode


class SynchronizationCoordinator:
    def __init__(
        self,
        gateway: PersistenceGateway,
        relay: WebhookRelay | None = None,
        watcher: AuthSessionWatcher | None = None,
        store: StateStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.gateway = gateway
        self.relay = relay or WebhookRelay()
        self.watcher = watcher
        self.store = store or StateStore()
        self.notifications: list[Notification] = []
        self._settings = settings or get_settings()
        self._pending: set[asyncio.Task] = set()
        # Last queued write per chatbot
        self._chains: dict[str, asyncio.Task] = {}
        # Placeholder id -> id adopted from the store
        self._rekeyed: dict[str, str] = {}
        # Bumped on reset; results of older writes are dropped
        self._generation = 0
        self._subscription: Subscription | None = None

    # ── Lifecycle ────────────────────────────────────────────

    def start(self) -> None:
        if self.watcher is not None and self._subscription is None:
            self._subscription = self.watcher.subscribe(self._on_auth_event)

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await self.drain()

    async def __aenter__(self) -> SynchronizationCoordinator:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def drain(self) -> None:
        """Wait until every dispatched persistence task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _on_auth_event(self, event: AuthEvent, auth: AuthSession | None) -> None:
        if event == AuthEvent.SIGNED_OUT:
            self.reset()
            return
        if auth is None:
            return
        if self.store.initialized and self.store.user_id == auth.user_id:
            return
        await self.initialize(auth.user_id, auth.username, is_new=auth.is_new)

    # ── Load / reset ─────────────────────────────────────────

    async def initialize(self, user_id: str, username: str, is_new: bool = False) -> bool:
        """Ensure the profile exists, then load (or seed) the chatbot tree."""
        if not user_id:
            raise ValidationError("Missing user ID")

        if is_new and self._settings.profile_initial_delay > 0:
            await asyncio.sleep(self._settings.profile_initial_delay)

        await self._ensure_profile(user_id, username)
        return await self.reload(user_id)

    async def reload(self, user_id: str | None = None) -> bool:
        """Replace the local tree with what the store holds once pending writes land."""
        user_id = user_id or self.store.user_id
        if not user_id:
            raise ValidationError("Missing user ID")

        await self.drain()
        result = await self.gateway.load_tree(user_id)
        if not result.success:
            logger.warning("Loading chatbots for %s failed: %s", user_id, result.error)
            self._notify("Error Loading Data", "Failed to load your chatbots. Please try again later.")
            return False

        tree = result.data or []
        seeded = not tree
        if seeded:
            tree = self._seed_chatbots(user_id)

        self.store.load(tree, user_id)
        if seeded:
            logger.info("Seeded %d default chatbots for %s", len(tree), user_id)
            for bot in tree:
                self._dispatch(
                    bot.id,
                    self._create_chatbot_write(user_id, bot),
                    failure=f"Failed to create default chatbot {bot.name}",
                )
        return True

    def reset(self) -> None:
        logger.info("Resetting workspace for %s", self.store.user_id or "<anonymous>")
        self.store.reset()
        self.notifications.clear()
        self._generation += 1

    async def _ensure_profile(self, user_id: str, username: str) -> None:
        retries = max(self._settings.profile_lookup_retries, 1)
        for attempt in range(retries):
            found = await self.gateway.read_profile(user_id)
            if found.success:
                return
            if found.error != NOT_FOUND:
                break
            if attempt < retries - 1:
                await asyncio.sleep(self._settings.profile_retry_delay)

        created = await self.gateway.create_profile(user_id, username)
        if not created.success:
            logger.warning("Creating profile for %s failed: %s", user_id, created.error)
            self._notify("Error", f"Failed to create user profile: {created.error}")

    def _seed_chatbots(self, user_id: str) -> list[ChatbotNode]:
        return [
            ChatbotNode(id=f"{user_id}_{name.lower().replace(' ', '_')}", name=name)
            for name in self._settings.default_chatbots
        ]

    # ── Navigation ───────────────────────────────────────────

    def select(self, chatbot_id: str | None = None, session_id: str | None = None) -> None:
        if chatbot_id and chatbot_id != self.store.active_chatbot_id:
            self.store.active_chatbot_id = chatbot_id
            self.store.active_session_id = None
        if session_id:
            self.store.active_session_id = session_id

    # ── Chatbots ─────────────────────────────────────────────

    def add_chatbot(self, name: str) -> ChatbotNode:
        name = _require(name, "Chatbot name")
        user_id = self._require_user()

        bot = ChatbotNode(id=new_id("bot"), name=name)
        self.store.append_chatbot(bot)
        self.store.active_chatbot_id = bot.id
        self.store.active_session_id = None

        def _adopt(row: Any) -> None:
            if row is not None and row.id != bot.id:
                self._rekeyed[bot.id] = row.id
                self.store.rekey_chatbot(bot.id, row.id)
                if bot.id in self._chains:
                    self._chains[row.id] = self._chains.pop(bot.id)

        self._dispatch(
            bot.id,
            self._create_chatbot_write(user_id, bot),
            failure="Failed to save chatbot",
            success="Chatbot created successfully!",
            on_success=_adopt,
        )
        return bot

    def rename_chatbot(self, chatbot_id: str, name: str) -> ChatbotNode:
        name = _require(name, "Chatbot name")
        bot = self.get_chatbot(chatbot_id)
        user_id = self._require_user()

        self.store.update_chatbot(bot.id, name=name)
        self._dispatch(
            bot.id,
            self._save_chatbot_write(user_id, bot.id),
            failure="Failed to rename chatbot",
        )
        return self.get_chatbot(bot.id)

    def update_chatbot_settings(self, chatbot_id: str, settings: ChatbotSettings) -> ChatbotNode:
        bot = self.get_chatbot(chatbot_id)
        user_id = self._require_user()

        self.store.update_chatbot(bot.id, settings=settings)
        self._dispatch(
            bot.id,
            self._save_chatbot_write(user_id, bot.id),
            failure="Failed to save settings",
            success="Settings saved successfully!",
        )
        return self.get_chatbot(bot.id)

    def remove_chatbot(self, chatbot_id: str) -> None:
        bot = self.get_chatbot(chatbot_id)
        if len(self.store.chatbots) <= 1:
            raise MinimumChatbotsError("At least one chatbot is required")

        was_active = self.store.active_chatbot is not None and self.store.active_chatbot.id == bot.id
        self.store.remove_chatbot(bot.id)
        if was_active:
            self.store.active_chatbot_id = self.store.chatbots[0].id
            self.store.active_session_id = None

        self._dispatch(
            bot.id,
            lambda: self.gateway.delete_chatbot(self._resolve(bot.id)),
            failure="Failed to delete chatbot",
            success="Chatbot deleted successfully!",
        )

    # ── Sessions ─────────────────────────────────────────────

    def create_session(self, chatbot_id: str, name: str | None = None) -> SessionNode:
        bot = self.get_chatbot(chatbot_id)
        user_id = self._require_user()

        session_id = new_id("session")
        node = SessionNode(
            id=session_id,
            name=(name or "").strip() or f"Chat {len(bot.sessions) + 1}",
            thread_id=f"{user_id}_{session_id}",
        )
        self.store.append_session(bot.id, node)
        self.store.active_chatbot_id = bot.id
        self.store.active_session_id = node.id

        def _adopt(row: Any) -> None:
            if row is not None and row.id != node.id:
                self._rekeyed[node.id] = row.id
                self.store.rekey_session(self._resolve(bot.id), node.id, row.id)

        self._dispatch(
            bot.id,
            lambda: self.gateway.create_session(self._resolve(bot.id), node),
            failure="Failed to save session",
            on_success=_adopt,
        )
        return node

    def rename_session(self, session_id: str, name: str) -> SessionNode:
        name = _require(name, "Session name")
        bot, sess = self._get_session(session_id)

        self.store.update_session(bot.id, sess.id, name=name)
        self._dispatch(
            bot.id,
            self._save_session_write(sess.id),
            failure="Failed to rename session",
        )
        return self._get_session(sess.id)[1]

    def delete_session(self, session_id: str) -> None:
        bot, sess = self._get_session(session_id)

        self.store.remove_session(bot.id, sess.id)
        if self.store.active_session_id == sess.id:
            self.store.active_session_id = None

        self._dispatch(
            bot.id,
            lambda: self.gateway.delete_session(self._resolve(sess.id)),
            failure="Failed to delete session",
        )

    # ── Messages ─────────────────────────────────────────────

    def add_message(
        self,
        chatbot_id: str,
        session_id: str,
        role: MessageRole,
        content: str,
    ) -> MessageNode:
        if not content:
            raise ValidationError("Message content is required")
        _require(session_id, "Session ID")
        self.get_chatbot(chatbot_id)

        msg = MessageNode(id=new_id("msg"), role=role, content=content, timestamp=utcnow_iso())
        self.store.append_message(chatbot_id, session_id, msg)
        self._dispatch(
            chatbot_id,
            lambda: self.gateway.save_message(self._resolve(session_id), msg),
            failure="Failed to save message",
        )
        return msg

    async def send_message(
        self,
        chatbot_id: str,
        text: str,
        session_id: str | None = None,
    ) -> SendResult:
        """Record the user turn, relay it, and record the assistant reply.

        With no session given a new one is created first. The reply is
        appended wherever the session lives once the webhook answers.
        """
        _require(text, "Message")
        bot = self.get_chatbot(chatbot_id)
        user_id = self._require_user()

        if session_id:
            sess = bot.find_session(session_id)
            if sess is None:
                raise UnknownEntityError(f"Session {session_id} not found")
        else:
            sess = self.create_session(bot.id)

        user_msg = self.add_message(bot.id, sess.id, MessageRole.USER, text)

        reply = await self.relay.send(bot, sess, user_id, text, session_id=sess.id)

        assistant_msg = MessageNode(
            id=new_id("msg"),
            role=MessageRole.ASSISTANT,
            content=reply,
            timestamp=utcnow_iso(),
        )
        sess_id = self._resolve(sess.id)
        located = self.store.locate_session(sess_id)
        if located is None:
            logger.warning("Session %s vanished before its reply arrived", sess.id)
        else:
            owner, _ = located
            self.store.append_message(owner.id, sess_id, assistant_msg)
            self._dispatch(
                owner.id,
                lambda: self.gateway.save_message(self._resolve(sess_id), assistant_msg),
                failure="Failed to save message",
            )

        return SendResult(session_id=sess_id, user_message=user_msg, assistant_message=assistant_msg)

    # ── Notifications ────────────────────────────────────────

    def dismiss_notification(self, notification_id: str) -> bool:
        before = len(self.notifications)
        self.notifications = [n for n in self.notifications if n.id != notification_id]
        return len(self.notifications) != before

    def _notify(
        self,
        title: str,
        description: str,
        level: NotificationLevel = NotificationLevel.ERROR,
    ) -> Notification:
        note = Notification(title=title, description=description, level=level)
        self.notifications.append(note)
        overflow = len(self.notifications) - self._settings.max_notifications
        if overflow > 0:
            del self.notifications[:overflow]
        return note

    # ── Remote writes ────────────────────────────────────────

    def _create_chatbot_write(self, user_id: str, bot: ChatbotNode) -> Write:
        return lambda: self.gateway.create_chatbot(user_id, bot.id, bot.name, bot.settings)

    def _save_chatbot_write(self, user_id: str, chatbot_id: str) -> Write:
        """Upsert the chatbot as it stands locally when the write runs."""

        async def _write() -> GatewayResult[Any]:
            bot = self.store.find_chatbot(self._resolve(chatbot_id))
            if bot is None:
                # Deleted locally since; the delete is queued behind this write
                return GatewayResult.ok(None)
            return await self.gateway.save_chatbot(user_id, bot.id, bot.name, bot.settings)

        return _write

    def _save_session_write(self, session_id: str) -> Write:
        async def _write() -> GatewayResult[Any]:
            located = self.store.locate_session(self._resolve(session_id))
            if located is None:
                return GatewayResult.ok(None)
            bot, sess = located
            # Messages are written on their own
            return await self.gateway.save_session(bot.id, replace(sess, messages=()))

        return _write

    def _dispatch(
        self,
        chain: str,
        write: Write,
        failure: str,
        success: str | None = None,
        on_success: Callable[[Any], None] | None = None,
    ) -> asyncio.Task:
        """Run ``write`` in the background after every earlier write on ``chain``."""
        previous = self._chains.get(chain)
        task = asyncio.create_task(
            self._persist(previous, write, failure, success, on_success, self._generation)
        )
        self._chains[chain] = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(self._release)
        return task

    def _release(self, task: asyncio.Task) -> None:
        for chain, last in list(self._chains.items()):
            if last is task:
                del self._chains[chain]

    async def _persist(
        self,
        previous: asyncio.Task | None,
        write: Write,
        failure: str,
        success: str | None,
        on_success: Callable[[Any], None] | None,
        generation: int,
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})

        try:
            result = await write()
        except Exception as exc:
            logger.exception("Persistence task crashed: %s", failure)
            result = GatewayResult.fail(str(exc) or "Unknown error")

        if generation != self._generation:
            logger.debug("Dropping result of a write dispatched before reset: %s", failure)
            return

        if not result.success:
            logger.warning("%s: %s", failure, result.error)
            self._notify("Error", f"{failure}: {result.error}")
            return

        if on_success is not None:
            on_success(result.data)
        if success:
            self._notify("Success", success, level=NotificationLevel.SUCCESS)

    # ── Internal helpers ─────────────────────────────────────

    def _resolve(self, entity_id: str) -> str:
        """Follow adopted ids from a local placeholder to the stored id."""
        while entity_id in self._rekeyed:
            entity_id = self._rekeyed[entity_id]
        return entity_id

    def _require_user(self) -> str:
        if not self.store.user_id:
            raise ValidationError("User not authenticated")
        return self.store.user_id

    def get_chatbot(self, chatbot_id: str) -> ChatbotNode:
        _require(chatbot_id, "Chatbot ID")
        bot = self.store.find_chatbot(chatbot_id)
        if bot is None:
            raise UnknownEntityError(f"Chatbot {chatbot_id} not found")
        return bot

    def _get_session(self, session_id: str) -> tuple[ChatbotNode, SessionNode]:
        _require(session_id, "Session ID")
        located = self.store.locate_session(session_id)
        if located is None:
            raise UnknownEntityError(f"Session {session_id} not found")
        return located


def _require(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} is required")
    return value
