"""Chat endpoint — user turn, webhook relay and assistant reply."""

from unittest.mock import patch

import httpx
import pytest
from httpx import AsyncClient

from botrelay.services.relay import FAILURE_REPLY, NOT_CONFIGURED_REPLY

RELAY_CLIENT = "botrelay.services.relay.httpx.AsyncClient"


async def _login(client: AsyncClient) -> tuple[dict, dict]:
    resp = await client.post("/v1/auth/signup", json={"username": "alice", "password": "pw123456"})
    data = resp.json()
    return data, {"Authorization": f"Bearer {data['access_token']}"}


async def _configure(client: AsyncClient, headers: dict, bot_id: str, **settings) -> None:
    resp = await client.patch(f"/v1/chatbots/{bot_id}", json={"settings": settings}, headers=headers)
    assert resp.status_code == 200, resp.text


@pytest.mark.asyncio
async def test_chat_without_webhook_returns_placeholder(client: AsyncClient):
    _, headers = await _login(client)
    bot_id = (await client.get("/v1/chatbots", headers=headers)).json()[0]["id"]

    with patch(RELAY_CLIENT) as client_cls:
        resp = await client.post("/v1/chat", json={"chatbot_id": bot_id, "message": "hello"}, headers=headers)
        client_cls.assert_not_called()

    assert resp.status_code == 200
    data = resp.json()
    assert data["user_message"]["content"] == "hello"
    assert data["user_message"]["role"] == "user"
    assert data["assistant_message"]["content"] == NOT_CONFIGURED_REPLY
    assert data["assistant_message"]["role"] == "assistant"


@pytest.mark.asyncio
async def test_chat_creates_session_and_relays(client: AsyncClient, webhook_client, registry, gateway):
    auth, headers = await _login(client)
    bot_id = (await client.get("/v1/chatbots", headers=headers)).json()[0]["id"]
    await _configure(
        client, headers, bot_id,
        webhookUrl="https://hook.test/chat", botIdKey="b", messageKey="m", responseKey="r",
    )

    mock_client = webhook_client(httpx.Response(200, json={"r": "hello back"}))
    with patch(RELAY_CLIENT, return_value=mock_client):
        resp = await client.post("/v1/chat", json={"chatbot_id": bot_id, "message": "hi"}, headers=headers)

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["assistant_message"]["content"] == "hello back"
    session_id = data["session_id"]

    sent = mock_client.post.call_args.kwargs["json"]
    assert sent == {"b": bot_id, "threadId": f"{auth['user_id']}_{session_id}", "m": "hi"}

    ws = (await client.get("/v1/workspace", headers=headers)).json()
    assert ws["active_session_id"] == session_id
    bot = next(b for b in ws["chatbots"] if b["id"] == bot_id)
    [sess] = bot["sessions"]
    assert [m["content"] for m in sess["messages"]] == ["hi", "hello back"]

    await registry.get(auth["user_id"]).coordinator.drain()
    stored = await gateway.list_messages(session_id)
    assert sorted(m.content for m in stored.data) == ["hello back", "hi"]


@pytest.mark.asyncio
async def test_chat_continues_existing_session(client: AsyncClient, webhook_client):
    _, headers = await _login(client)
    bot_id = (await client.get("/v1/chatbots", headers=headers)).json()[0]["id"]
    await _configure(client, headers, bot_id, webhookUrl="https://hook.test/chat")
    session_id = (await client.post(f"/v1/chatbots/{bot_id}/sessions", headers=headers)).json()["id"]

    mock_client = webhook_client(httpx.Response(200, json={"server_response_message": "again"}))
    with patch(RELAY_CLIENT, return_value=mock_client):
        resp = await client.post(
            "/v1/chat",
            json={"chatbot_id": bot_id, "message": "more", "session_id": session_id},
            headers=headers,
        )

    assert resp.json()["session_id"] == session_id
    assert resp.json()["assistant_message"]["content"] == "again"


@pytest.mark.asyncio
async def test_webhook_failure_is_a_reply_not_an_error(client: AsyncClient, webhook_client):
    _, headers = await _login(client)
    bot_id = (await client.get("/v1/chatbots", headers=headers)).json()[0]["id"]
    await _configure(client, headers, bot_id, webhookUrl="https://hook.test/chat")

    mock_client = webhook_client(httpx.Response(502))
    with patch(RELAY_CLIENT, return_value=mock_client):
        resp = await client.post("/v1/chat", json={"chatbot_id": bot_id, "message": "hi"}, headers=headers)

    assert resp.status_code == 200
    assert resp.json()["assistant_message"]["content"] == FAILURE_REPLY


@pytest.mark.asyncio
async def test_chat_validation(client: AsyncClient):
    _, headers = await _login(client)
    bot_id = (await client.get("/v1/chatbots", headers=headers)).json()[0]["id"]

    resp = await client.post("/v1/chat", json={"chatbot_id": bot_id, "message": "   "}, headers=headers)
    assert resp.status_code == 400

    resp = await client.post(
        "/v1/chat",
        json={"chatbot_id": bot_id, "message": "hi", "session_id": "missing"},
        headers=headers,
    )
    assert resp.status_code == 404

    resp = await client.post("/v1/chat", json={"chatbot_id": "nope", "message": "hi"}, headers=headers)
    assert resp.status_code == 404
