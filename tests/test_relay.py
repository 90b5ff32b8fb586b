"""Webhook relay tests — request mapping, reply extraction and failure replies."""

from unittest.mock import patch

import httpx
import pytest

from botrelay.models.chatbot import ChatbotSettings
from botrelay.models.message import MessageRole
from botrelay.services.relay import (
    FAILURE_REPLY,
    NO_RESPONSE_REPLY,
    NOT_CONFIGURED_REPLY,
    WebhookRelay,
    build_request_body,
    extract_reply,
)
from botrelay.services.state import ChatbotNode, MessageNode, SessionNode

RELAY_CLIENT = "botrelay.services.relay.httpx.AsyncClient"


def _bot(**settings) -> ChatbotNode:
    return ChatbotNode(id="bot_1", name="Helper", settings=ChatbotSettings(**settings) if settings else None)


SESSION = SessionNode(
    id="s1",
    name="Chat 1",
    thread_id="u1_s1",
    messages=(MessageNode(id="m1", role=MessageRole.USER, content="hi", timestamp="t"),),
)


def test_body_uses_default_keys():
    body = build_request_body(_bot(webhook_url="https://hook.test"), SESSION, "u1", "s1", "hello")
    assert body == {"botId": "bot_1", "threadId": "u1_s1", "message": "hello"}


def test_body_uses_configured_keys():
    bot = _bot(
        webhook_url="https://hook.test",
        bot_id_key="agent",
        bot_id_value="agent-42",
        thread_id_key="conversation",
        message_key="prompt",
    )
    body = build_request_body(bot, SESSION, "u1", "s1", "hello")
    assert body == {"agent": "agent-42", "conversation": "u1_s1", "prompt": "hello"}


def test_thread_id_defaults_to_user_and_session():
    body = build_request_body(_bot(webhook_url="https://hook.test"), None, "u1", "s9", "hello")
    assert body["threadId"] == "u1_s9"


def test_extract_reply():
    assert extract_reply({"answer": "yes"}, "answer") == "yes"
    assert extract_reply({"answer": 42}, "answer") == "42"
    assert extract_reply({}, "answer") == NO_RESPONSE_REPLY
    assert extract_reply({"answer": ""}, "answer") == NO_RESPONSE_REPLY
    with pytest.raises(ValueError):
        extract_reply(["not", "an", "object"], "answer")


@pytest.mark.asyncio
async def test_no_webhook_url_skips_network():
    with patch(RELAY_CLIENT) as client_cls:
        reply = await WebhookRelay().send(_bot(), SESSION, "u1", "hello")
        assert reply == NOT_CONFIGURED_REPLY
        client_cls.assert_not_called()

        reply = await WebhookRelay().send(_bot(webhook_url=""), SESSION, "u1", "hello")
        assert reply == NOT_CONFIGURED_REPLY
        client_cls.assert_not_called()


@pytest.mark.asyncio
async def test_custom_keys_round_trip(webhook_client):
    bot = _bot(webhook_url="https://hook.test/x", bot_id_key="b", message_key="m", response_key="r")
    mock_client = webhook_client(httpx.Response(200, json={"r": "hello"}))

    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(bot, SESSION, "u1", "hi there")

    assert reply == "hello"
    mock_client.post.assert_awaited_once()
    args, kwargs = mock_client.post.call_args
    assert args[0] == "https://hook.test/x"
    assert kwargs["json"] == {"b": "bot_1", "threadId": "u1_s1", "m": "hi there"}
    assert kwargs["headers"] == {"Content-Type": "application/json"}


@pytest.mark.asyncio
async def test_default_response_key(webhook_client):
    mock_client = webhook_client(httpx.Response(200, json={"server_response_message": "ok!"}))
    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(_bot(webhook_url="https://hook.test"), SESSION, "u1", "hi")
    assert reply == "ok!"


@pytest.mark.asyncio
async def test_missing_response_key(webhook_client):
    mock_client = webhook_client(httpx.Response(200, json={}))
    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(_bot(webhook_url="https://hook.test"), SESSION, "u1", "hi")
    assert reply == NO_RESPONSE_REPLY


@pytest.mark.asyncio
async def test_http_error_status(webhook_client):
    mock_client = webhook_client(httpx.Response(500, json={"server_response_message": "boom"}))
    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(_bot(webhook_url="https://hook.test"), SESSION, "u1", "hi")
    assert reply == FAILURE_REPLY


@pytest.mark.asyncio
async def test_transport_error(webhook_client):
    mock_client = webhook_client(error=httpx.ConnectError("refused"))
    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(_bot(webhook_url="https://hook.test"), SESSION, "u1", "hi")
    assert reply == FAILURE_REPLY


@pytest.mark.asyncio
async def test_non_object_json(webhook_client):
    mock_client = webhook_client(httpx.Response(200, json=["a", "b"]))
    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(_bot(webhook_url="https://hook.test"), SESSION, "u1", "hi")
    assert reply == FAILURE_REPLY


@pytest.mark.asyncio
async def test_invalid_json_body(webhook_client):
    mock_client = webhook_client(httpx.Response(200, content=b"<html>nope</html>"))
    with patch(RELAY_CLIENT, return_value=mock_client):
        reply = await WebhookRelay().send(_bot(webhook_url="https://hook.test"), SESSION, "u1", "hi")
    assert reply == FAILURE_REPLY
