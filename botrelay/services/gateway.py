"""Persistence gateway — every remote read/write for profiles, chatbots, sessions
and messages.

Operations never raise: each returns a ``GatewayResult`` that is either
``ok(data)`` or ``fail(reason)``. Chatbot, session and message writes are
upserts on the primary key, so the coordinator can fire the same write for a
freshly created node and for an edited one.

Built without a session factory the gateway runs unconfigured: reads return
mock seed data and writes succeed as no-ops.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from botrelay.models.base import utcnow, utcnow_iso
from botrelay.models.chatbot import Chatbot, ChatbotSettings
from botrelay.models.message import ChatMessage, MessageRole
from botrelay.models.profile import UserProfile
from botrelay.models.session import ChatSession
from botrelay.services.state import ChatbotNode, MessageNode, SessionNode

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_FOUND = "not_found"

TABLES = ("user_profiles", "chatbots", "chat_sessions", "chat_messages")

# Served when no database is configured
MOCK_CHATBOTS = (("1", "Assistant"), ("2", "Coder"), ("3", "Creative"))


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> GatewayResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> GatewayResult[T]:
        return cls(success=False, error=error)


@dataclass
class TableHealth:
    exists: bool = False
    can_read: bool = False
    can_write: bool = False


@dataclass
class HealthReport:
    success: bool
    tables: dict[str, TableHealth] = field(default_factory=dict)
    error: str | None = None

    @property
    def summary(self) -> dict[str, bool]:
        values = self.tables.values()
        return {
            "all_tables_exist": bool(self.tables) and all(t.exists for t in values),
            "all_can_read": bool(self.tables) and all(t.can_read for t in values),
            "all_can_write": bool(self.tables) and all(t.can_write for t in values),
        }


SessionFactory = Callable[[], AsyncSession]


class PersistenceGateway:
    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory

    @property
    def is_configured(self) -> bool:
        return self._session_factory is not None

    # ── User profiles ────────────────────────────────────────

    async def read_profile(self, user_id: str) -> GatewayResult[UserProfile]:
        """Look up a profile. A missing row is a failure with reason ``not_found``."""
        if not user_id:
            return GatewayResult.fail("User not authenticated")
        if not self.is_configured:
            return GatewayResult.fail("Database not configured")

        async def _op(session: AsyncSession) -> GatewayResult[UserProfile]:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                return GatewayResult.fail(NOT_FOUND)
            return GatewayResult.ok(profile)

        return await self._run("read_profile", _op)

    async def create_profile(self, user_id: str, username: str) -> GatewayResult[UserProfile]:
        if not user_id:
            return GatewayResult.fail("User not authenticated")
        if not username:
            return GatewayResult.fail("Missing username")
        if not self.is_configured:
            now = utcnow()
            return GatewayResult.ok(
                UserProfile(id=user_id, username=username, created_at=now, updated_at=now)
            )

        async def _op(session: AsyncSession) -> GatewayResult[UserProfile]:
            existing = await session.get(UserProfile, user_id)
            if existing is not None:
                return GatewayResult.ok(existing)
            profile = UserProfile(id=user_id, username=username)
            session.add(profile)
            await session.commit()
            await session.refresh(profile)
            return GatewayResult.ok(profile)

        return await self._run("create_profile", _op)

    async def get_or_create_profile(self, user_id: str, username: str) -> GatewayResult[UserProfile]:
        found = await self.read_profile(user_id)
        if found.success:
            return found
        if self.is_configured and found.error != NOT_FOUND:
            return found
        return await self.create_profile(user_id, username)

    # ── Chatbots ─────────────────────────────────────────────

    async def list_chatbots(self, user_id: str) -> GatewayResult[list[Chatbot]]:
        if not user_id:
            return GatewayResult.fail("User not authenticated")
        if not self.is_configured:
            return GatewayResult.ok(
                [Chatbot(id=bot_id, user_id=user_id, name=name, settings={}) for bot_id, name in MOCK_CHATBOTS]
            )

        async def _op(session: AsyncSession) -> GatewayResult[list[Chatbot]]:
            stmt = (
                select(Chatbot)
                .where(Chatbot.user_id == user_id)
                .order_by(Chatbot.created_at.asc())  # type: ignore[union-attr]
            )
            result = await session.execute(stmt)
            return GatewayResult.ok(list(result.scalars().all()))

        return await self._run("list_chatbots", _op)

    async def create_chatbot(
        self,
        user_id: str,
        chatbot_id: str,
        name: str,
        settings: ChatbotSettings | None = None,
    ) -> GatewayResult[Chatbot]:
        """Upsert a chatbot row; returns the stored row (its id may differ from the request)."""
        return await self.save_chatbot(user_id, chatbot_id, name, settings)

    async def save_chatbot(
        self,
        user_id: str,
        chatbot_id: str,
        name: str,
        settings: ChatbotSettings | None = None,
    ) -> GatewayResult[Chatbot]:
        if not user_id:
            return GatewayResult.fail("User not authenticated")
        if not chatbot_id:
            return GatewayResult.fail("Missing chatbot ID")
        if not name:
            return GatewayResult.fail("Missing chatbot name")
        settings_json = settings.to_json() if settings else {}
        if not self.is_configured:
            return GatewayResult.ok(Chatbot(id=chatbot_id, user_id=user_id, name=name, settings=settings_json))

        async def _op(session: AsyncSession) -> GatewayResult[Chatbot]:
            bot = await session.get(Chatbot, chatbot_id)
            if bot is None:
                bot = Chatbot(id=chatbot_id, user_id=user_id, name=name, settings=settings_json)
            elif bot.user_id != user_id:
                return GatewayResult.fail("Chatbot belongs to another user")
            else:
                bot.name = name
                bot.settings = settings_json
                bot.updated_at = utcnow()
            session.add(bot)
            await session.commit()
            await session.refresh(bot)
            return GatewayResult.ok(bot)

        return await self._run("save_chatbot", _op)

    async def update_chatbot(
        self,
        chatbot_id: str,
        name: str | None = None,
        settings: ChatbotSettings | None = None,
    ) -> GatewayResult[Chatbot]:
        """Partial update of an existing chatbot."""
        if not chatbot_id:
            return GatewayResult.fail("Missing chatbot ID")
        if not self.is_configured:
            return GatewayResult.ok(None)

        async def _op(session: AsyncSession) -> GatewayResult[Chatbot]:
            bot = await session.get(Chatbot, chatbot_id)
            if bot is None:
                return GatewayResult.fail(NOT_FOUND)
            if name is not None:
                bot.name = name
            if settings is not None:
                bot.settings = settings.to_json()
            bot.updated_at = utcnow()
            session.add(bot)
            await session.commit()
            await session.refresh(bot)
            return GatewayResult.ok(bot)

        return await self._run("update_chatbot", _op)

    async def delete_chatbot(self, chatbot_id: str) -> GatewayResult[None]:
        """Delete a chatbot with all of its sessions and messages."""
        if not chatbot_id:
            return GatewayResult.fail("Missing chatbot ID")
        if not self.is_configured:
            return GatewayResult.ok(None)

        async def _op(session: AsyncSession) -> GatewayResult[None]:
            session_ids = select(ChatSession.id).where(ChatSession.chatbot_id == chatbot_id)
            await session.execute(delete(ChatMessage).where(ChatMessage.session_id.in_(session_ids)))  # type: ignore[attr-defined]
            await session.execute(delete(ChatSession).where(ChatSession.chatbot_id == chatbot_id))
            await session.execute(delete(Chatbot).where(Chatbot.id == chatbot_id))
            await session.commit()
            return GatewayResult.ok(None)

        return await self._run("delete_chatbot", _op)

    # ── Sessions ─────────────────────────────────────────────

    async def list_sessions(self, chatbot_id: str) -> GatewayResult[list[ChatSession]]:
        if not chatbot_id:
            return GatewayResult.fail("Missing chatbot ID")
        if not self.is_configured:
            return GatewayResult.ok([])

        async def _op(session: AsyncSession) -> GatewayResult[list[ChatSession]]:
            stmt = (
                select(ChatSession)
                .where(ChatSession.chatbot_id == chatbot_id)
                .order_by(ChatSession.created_at.asc())  # type: ignore[union-attr]
            )
            result = await session.execute(stmt)
            return GatewayResult.ok(list(result.scalars().all()))

        return await self._run("list_sessions", _op)

    async def create_session(self, chatbot_id: str, node: SessionNode) -> GatewayResult[ChatSession]:
        return await self.save_session(chatbot_id, node)

    async def save_session(self, chatbot_id: str, node: SessionNode) -> GatewayResult[ChatSession]:
        """Upsert a session row, then upsert any messages the node carries."""
        if not chatbot_id:
            return GatewayResult.fail("Missing chatbot ID")
        if not node.id:
            return GatewayResult.fail("Missing session ID")
        if not self.is_configured:
            return GatewayResult.ok(
                ChatSession(id=node.id, chatbot_id=chatbot_id, name=node.name, thread_id=node.thread_id)
            )

        name = node.name or f"Chat {utcnow_iso()}"
        thread_id = node.thread_id or f"thread_{node.id}"

        async def _op(session: AsyncSession) -> GatewayResult[ChatSession]:
            row = await session.get(ChatSession, node.id)
            if row is None:
                row = ChatSession(id=node.id, chatbot_id=chatbot_id, name=name, thread_id=thread_id)
            else:
                # thread_id is fixed for the session's lifetime
                row.name = name
                row.updated_at = utcnow()
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return GatewayResult.ok(row)

        result = await self._run("save_session", _op)
        if result.success:
            for msg in node.messages:
                saved = await self.save_message(node.id, msg)
                if not saved.success:
                    return GatewayResult.fail(f"Session saved but message {msg.id} failed: {saved.error}")
        return result

    async def update_session(self, session_id: str, name: str) -> GatewayResult[ChatSession]:
        if not session_id:
            return GatewayResult.fail("Missing session ID")
        if not name:
            return GatewayResult.fail("Missing session name")
        if not self.is_configured:
            return GatewayResult.ok(None)

        async def _op(session: AsyncSession) -> GatewayResult[ChatSession]:
            row = await session.get(ChatSession, session_id)
            if row is None:
                return GatewayResult.fail(NOT_FOUND)
            row.name = name
            row.updated_at = utcnow()
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return GatewayResult.ok(row)

        return await self._run("update_session", _op)

    async def delete_session(self, session_id: str) -> GatewayResult[None]:
        if not session_id:
            return GatewayResult.fail("Missing session ID")
        if not self.is_configured:
            return GatewayResult.ok(None)

        async def _op(session: AsyncSession) -> GatewayResult[None]:
            await session.execute(delete(ChatMessage).where(ChatMessage.session_id == session_id))
            await session.execute(delete(ChatSession).where(ChatSession.id == session_id))
            await session.commit()
            return GatewayResult.ok(None)

        return await self._run("delete_session", _op)

    # ── Messages ─────────────────────────────────────────────

    async def list_messages(self, session_id: str) -> GatewayResult[list[ChatMessage]]:
        if not session_id:
            return GatewayResult.fail("Missing session ID")
        if not self.is_configured:
            return GatewayResult.ok([])

        async def _op(session: AsyncSession) -> GatewayResult[list[ChatMessage]]:
            stmt = (
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.timestamp.asc(), ChatMessage.created_at.asc())  # type: ignore[union-attr]
            )
            result = await session.execute(stmt)
            return GatewayResult.ok(list(result.scalars().all()))

        return await self._run("list_messages", _op)

    async def save_message(self, session_id: str, msg: MessageNode) -> GatewayResult[ChatMessage]:
        """Upsert a message; writing the same id twice leaves one row."""
        if not session_id:
            return GatewayResult.fail("Missing session ID")
        if not msg.id:
            return GatewayResult.fail("Missing message ID")
        if not msg.role:
            return GatewayResult.fail("Missing message role")
        if not msg.content:
            return GatewayResult.fail("Missing message content")
        timestamp = msg.timestamp or utcnow_iso()
        if not self.is_configured:
            return GatewayResult.ok(
                ChatMessage(id=msg.id, session_id=session_id, role=msg.role, content=msg.content, timestamp=timestamp)
            )

        async def _op(session: AsyncSession) -> GatewayResult[ChatMessage]:
            row = await session.get(ChatMessage, msg.id)
            if row is None:
                row = ChatMessage(
                    id=msg.id,
                    session_id=session_id,
                    role=msg.role,
                    content=msg.content,
                    timestamp=timestamp,
                )
            else:
                row.session_id = session_id
                row.role = msg.role
                row.content = msg.content
                row.timestamp = timestamp
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return GatewayResult.ok(row)

        return await self._run("save_message", _op)

    # ── Whole tree ───────────────────────────────────────────

    async def load_tree(self, user_id: str) -> GatewayResult[list[ChatbotNode]]:
        """Load every chatbot with its sessions and messages.

        A failure while loading one chatbot's sessions or one session's
        messages leaves that branch empty instead of failing the whole load.
        """
        bots = await self.list_chatbots(user_id)
        if not bots.success:
            return GatewayResult.fail(bots.error or "Failed to load chatbots")

        tree: list[ChatbotNode] = []
        for bot in bots.data or []:
            sessions = await self.list_sessions(bot.id)
            if not sessions.success:
                logger.warning("Loading sessions for chatbot %s failed: %s", bot.id, sessions.error)
            nodes: list[SessionNode] = []
            for row in sessions.data or []:
                messages = await self.list_messages(row.id)
                if not messages.success:
                    logger.warning("Loading messages for session %s failed: %s", row.id, messages.error)
                nodes.append(
                    SessionNode(
                        id=row.id,
                        name=row.name,
                        thread_id=row.thread_id,
                        messages=tuple(
                            MessageNode(id=m.id, role=MessageRole(m.role), content=m.content, timestamp=m.timestamp)
                            for m in messages.data or []
                        ),
                    )
                )
            tree.append(
                ChatbotNode(
                    id=bot.id,
                    name=bot.name,
                    settings=ChatbotSettings.model_validate(bot.settings) if bot.settings else None,
                    sessions=tuple(nodes),
                )
            )
        return GatewayResult.ok(tree)

    # ── Diagnostics ──────────────────────────────────────────

    async def check_health(self) -> HealthReport:
        """Check each table independently for existence, read and write access."""
        if not self.is_configured:
            return HealthReport(
                success=False,
                tables={name: TableHealth() for name in TABLES},
                error="Database not configured",
            )

        tables: dict[str, TableHealth] = {}
        for name in TABLES:
            health = TableHealth()
            try:
                async with self._session_factory() as session:  # type: ignore[misc]
                    await session.execute(text(f"SELECT COUNT(*) FROM {name}"))  # noqa: S608
                    health.exists = True
                    health.can_read = True
                    # Write check inside a transaction that is always rolled back
                    await session.execute(text(f"DELETE FROM {name} WHERE 1 = 0"))  # noqa: S608
                    health.can_write = True
                    await session.rollback()
            except Exception:
                logger.exception("Health check failed for table %s", name)
            tables[name] = health

        report = HealthReport(success=False, tables=tables)
        report.success = all(report.summary.values())
        return report

    # ── Internal helper ──────────────────────────────────────

    async def _run(
        self,
        op_name: str,
        op: Callable[[AsyncSession], Awaitable[GatewayResult[Any]]],
    ) -> GatewayResult[Any]:
        """Run ``op`` in a fresh session and turn any exception into a failure."""
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                return await op(session)
        except IntegrityError as exc:
            logger.warning("Constraint violation in %s: %s", op_name, exc.orig)
            return GatewayResult.fail(f"Constraint violation: {exc.orig}")
        except SQLAlchemyError as exc:
            logger.exception("Database error in %s", op_name)
            return GatewayResult.fail(str(exc))
        except Exception as exc:
            logger.exception("Unexpected error in %s", op_name)
            return GatewayResult.fail(str(exc) or "Unknown error")
