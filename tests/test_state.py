"""StateStore tests — copy-on-write tree and derived selection."""

from botrelay.models.chatbot import ChatbotSettings
from botrelay.models.message import MessageRole
from botrelay.services.state import ChatbotNode, MessageNode, SessionNode, StateStore


def _msg(msg_id: str, content: str = "hi") -> MessageNode:
    return MessageNode(id=msg_id, role=MessageRole.USER, content=content, timestamp="2026-01-01T00:00:00+00:00")


def _store() -> StateStore:
    store = StateStore()
    store.load(
        [
            ChatbotNode(id="a", name="A", sessions=(SessionNode(id="s1", name="Chat 1", thread_id="t1"),)),
            ChatbotNode(id="b", name="B"),
        ],
        user_id="u1",
    )
    return store


def test_load_selects_first_chatbot():
    store = _store()
    assert store.initialized is True
    assert store.active_chatbot_id == "a"
    assert store.active_session_id is None
    assert store.active_session is None


def test_active_chatbot_falls_back_to_first_when_stale():
    store = _store()
    store.active_chatbot_id = "gone"
    assert store.active_chatbot is not None
    assert store.active_chatbot.id == "a"

    store.active_chatbot_id = ""
    assert store.active_chatbot.id == "a"


def test_active_session_scoped_to_active_chatbot():
    store = _store()
    store.active_session_id = "s1"
    assert store.active_session is not None
    assert store.active_session.thread_id == "t1"

    # Same session id is not visible from another chatbot
    store.active_chatbot_id = "b"
    assert store.active_session is None


def test_append_message_rebuilds_only_the_changed_path():
    store = _store()
    before = store.chatbots
    untouched_bot = before[1]

    store.append_message("a", "s1", _msg("m1"))

    after = store.chatbots
    assert after is not before
    assert after[1] is untouched_bot
    assert after[0] is not before[0]
    # The old snapshot is unchanged
    assert before[0].sessions[0].messages == ()
    assert [m.id for m in after[0].sessions[0].messages] == ["m1"]


def test_append_message_same_id_is_noop():
    store = _store()
    store.append_message("a", "s1", _msg("m1", "first"))
    version = store.version
    snapshot = store.chatbots

    store.append_message("a", "s1", _msg("m1", "first"))

    assert store.chatbots is snapshot
    assert store.version == version
    assert len(store.chatbots[0].sessions[0].messages) == 1


def test_messages_keep_insertion_order():
    store = _store()
    for i in range(5):
        store.append_message("a", "s1", _msg(f"m{i}"))
    assert [m.id for m in store.chatbots[0].sessions[0].messages] == [f"m{i}" for i in range(5)]


def test_update_chatbot_keeps_id_order_and_children():
    store = _store()
    sessions = store.chatbots[0].sessions
    settings = ChatbotSettings(webhook_url="https://hook.test")

    store.update_chatbot("a", name="Renamed", settings=settings)

    bot = store.chatbots[0]
    assert bot.id == "a"
    assert bot.name == "Renamed"
    assert bot.settings == settings
    assert bot.sessions is sessions
    assert [b.id for b in store.chatbots] == ["a", "b"]


def test_unknown_ids_do_not_change_tree():
    store = _store()
    snapshot = store.chatbots
    store.update_chatbot("nope", name="X")
    store.append_message("a", "missing-session", _msg("m1"))
    assert store.chatbots is snapshot


def test_rekey_updates_active_ids():
    store = _store()
    store.active_session_id = "s1"
    store.rekey_chatbot("a", "a-remote")
    store.rekey_session("a-remote", "s1", "s1-remote")

    assert store.active_chatbot_id == "a-remote"
    assert store.active_session_id == "s1-remote"
    assert store.locate_session("s1-remote") is not None


def test_remove_session_and_chatbot():
    store = _store()
    store.remove_session("a", "s1")
    assert store.chatbots[0].sessions == ()

    store.remove_chatbot("a")
    assert [b.id for b in store.chatbots] == ["b"]


def test_reset_clears_everything():
    store = _store()
    store.active_session_id = "s1"
    store.reset()

    assert store.chatbots == ()
    assert store.active_chatbot_id == ""
    assert store.active_session_id is None
    assert store.initialized is False
    assert store.user_id == ""
    assert store.active_chatbot is None
