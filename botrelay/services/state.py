"""In-memory chatbot → session → message tree held for one signed-in user.

The tree is immutable: nodes are frozen dataclasses with tuple children, and
every mutation swaps ``StateStore.chatbots`` for a new tuple in which only the
nodes on the path to the change are rebuilt. Readers holding the previous
tuple keep seeing a consistent snapshot.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace

from botrelay.models.chatbot import ChatbotSettings
from botrelay.models.message import MessageRole


@dataclass(frozen=True)
class MessageNode:
    id: str
    role: MessageRole
    content: str
    timestamp: str


@dataclass(frozen=True)
class SessionNode:
    id: str
    name: str
    thread_id: str
    messages: tuple[MessageNode, ...] = ()


@dataclass(frozen=True)
class ChatbotNode:
    id: str
    name: str
    settings: ChatbotSettings | None = None
    sessions: tuple[SessionNode, ...] = ()

    def find_session(self, session_id: str | None) -> SessionNode | None:
        if not session_id:
            return None
        return next((s for s in self.sessions if s.id == session_id), None)


@dataclass
class StateStore:
    """Current tree plus the active selection.

    Only the synchronization coordinator writes to a store.
    """

    chatbots: tuple[ChatbotNode, ...] = ()
    active_chatbot_id: str = ""
    active_session_id: str | None = None
    initialized: bool = False
    user_id: str = ""
    _version: int = field(default=0, repr=False)

    # ── Derived values ───────────────────────────────────────

    @property
    def version(self) -> int:
        """Bumped on every structural change; handy for change detection."""
        return self._version

    @property
    def active_chatbot(self) -> ChatbotNode | None:
        if not self.chatbots:
            return None
        return self.find_chatbot(self.active_chatbot_id) or self.chatbots[0]

    @property
    def active_session(self) -> SessionNode | None:
        bot = self.active_chatbot
        if bot is None:
            return None
        return bot.find_session(self.active_session_id)

    def find_chatbot(self, chatbot_id: str | None) -> ChatbotNode | None:
        if not chatbot_id:
            return None
        return next((b for b in self.chatbots if b.id == chatbot_id), None)

    def locate_session(self, session_id: str) -> tuple[ChatbotNode, SessionNode] | None:
        """Find a session anywhere in the tree, returning it with its owner."""
        for bot in self.chatbots:
            sess = bot.find_session(session_id)
            if sess is not None:
                return bot, sess
        return None

    # ── Whole-tree operations ────────────────────────────────

    def load(self, chatbots: list[ChatbotNode] | tuple[ChatbotNode, ...], user_id: str) -> None:
        self._commit(tuple(chatbots))
        self.user_id = user_id
        self.active_chatbot_id = self.chatbots[0].id if self.chatbots else ""
        self.active_session_id = None
        self.initialized = True

    def reset(self) -> None:
        self._commit(())
        self.active_chatbot_id = ""
        self.active_session_id = None
        self.initialized = False
        self.user_id = ""

    # ── Chatbot mutations ────────────────────────────────────

    def append_chatbot(self, bot: ChatbotNode) -> None:
        self._commit(self.chatbots + (bot,))

    def remove_chatbot(self, chatbot_id: str) -> None:
        self._commit(tuple(b for b in self.chatbots if b.id != chatbot_id))

    def update_chatbot(self, chatbot_id: str, **changes) -> None:
        self._map_chatbot(chatbot_id, lambda b: replace(b, **changes))

    def rekey_chatbot(self, old_id: str, new_id: str) -> None:
        self._map_chatbot(old_id, lambda b: replace(b, id=new_id))
        if self.active_chatbot_id == old_id:
            self.active_chatbot_id = new_id

    # ── Session mutations ────────────────────────────────────

    def append_session(self, chatbot_id: str, sess: SessionNode) -> None:
        self._map_chatbot(chatbot_id, lambda b: replace(b, sessions=b.sessions + (sess,)))

    def remove_session(self, chatbot_id: str, session_id: str) -> None:
        self._map_chatbot(
            chatbot_id,
            lambda b: replace(b, sessions=tuple(s for s in b.sessions if s.id != session_id)),
        )

    def update_session(self, chatbot_id: str, session_id: str, **changes) -> None:
        self._map_session(chatbot_id, session_id, lambda s: replace(s, **changes))

    def rekey_session(self, chatbot_id: str, old_id: str, new_id: str) -> None:
        self._map_session(chatbot_id, old_id, lambda s: replace(s, id=new_id))
        if self.active_session_id == old_id:
            self.active_session_id = new_id

    # ── Message mutations ────────────────────────────────────

    def append_message(self, chatbot_id: str, session_id: str, msg: MessageNode) -> None:
        def _append(s: SessionNode) -> SessionNode:
            # Same id twice is a retried write, not a new turn
            if any(m.id == msg.id for m in s.messages):
                return s
            return replace(s, messages=s.messages + (msg,))

        self._map_session(chatbot_id, session_id, _append)

    # ── Internal helpers ─────────────────────────────────────

    def _map_chatbot(self, chatbot_id: str, fn: Callable[[ChatbotNode], ChatbotNode]) -> None:
        changed = False
        out = []
        for bot in self.chatbots:
            if bot.id == chatbot_id:
                new_bot = fn(bot)
                changed = changed or new_bot is not bot
                out.append(new_bot)
            else:
                out.append(bot)
        if changed:
            self._commit(tuple(out))

    def _map_session(
        self,
        chatbot_id: str,
        session_id: str,
        fn: Callable[[SessionNode], SessionNode],
    ) -> None:
        def _on_bot(bot: ChatbotNode) -> ChatbotNode:
            changed = False
            sessions = []
            for s in bot.sessions:
                if s.id == session_id:
                    new_s = fn(s)
                    changed = changed or new_s is not s
                    sessions.append(new_s)
                else:
                    sessions.append(s)
            return replace(bot, sessions=tuple(sessions)) if changed else bot

        self._map_chatbot(chatbot_id, _on_bot)

    def _commit(self, chatbots: tuple[ChatbotNode, ...]) -> None:
        self.chatbots = chatbots
        self._version += 1
