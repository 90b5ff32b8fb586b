"""Webhook relay — exchange one user message for one assistant reply.

The outbound JSON body is built from the chatbot's field mapping, so any
third-party endpoint can be wired up by renaming keys in the chatbot's
settings. Failures never raise; they come back as a fixed reply string
that ends up in the transcript.
"""

import logging

import httpx

from botrelay.models.chatbot import (
    DEFAULT_BOT_ID_KEY,
    DEFAULT_MESSAGE_KEY,
    DEFAULT_RESPONSE_KEY,
    DEFAULT_THREAD_ID_KEY,
)
from botrelay.services.state import ChatbotNode, SessionNode

logger = logging.getLogger(__name__)

NOT_CONFIGURED_REPLY = "Please configure a webhook URL in settings to receive responses."
FAILURE_REPLY = "Error: Failed to get a response. Please check your webhook configuration."
NO_RESPONSE_REPLY = "No response received"


def thread_id_for(session: SessionNode | None, user_id: str, session_id: str) -> str:
    if session is not None and session.thread_id:
        return session.thread_id
    return f"{user_id}_{session_id}"


def build_request_body(
    chatbot: ChatbotNode,
    session: SessionNode | None,
    user_id: str,
    session_id: str,
    message: str,
) -> dict[str, str]:
    """Map configured key names to bot id, thread id and message text."""
    settings = chatbot.settings
    bot_id_key = (settings and settings.bot_id_key) or DEFAULT_BOT_ID_KEY
    bot_id_value = (settings and settings.bot_id_value) or chatbot.id
    thread_id_key = (settings and settings.thread_id_key) or DEFAULT_THREAD_ID_KEY
    message_key = (settings and settings.message_key) or DEFAULT_MESSAGE_KEY

    return {
        bot_id_key: bot_id_value,
        thread_id_key: thread_id_for(session, user_id, session_id),
        message_key: message,
    }


def extract_reply(data: object, response_key: str) -> str:
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    value = data.get(response_key)
    if value is None or value == "":
        return NO_RESPONSE_REPLY
    return value if isinstance(value, str) else str(value)


class WebhookRelay:
    """Single request/response round trip per user message. No retries."""

    async def send(
        self,
        chatbot: ChatbotNode,
        session: SessionNode | None,
        user_id: str,
        message: str,
        session_id: str | None = None,
    ) -> str:
        settings = chatbot.settings
        if settings is None or not settings.webhook_url:
            return NOT_CONFIGURED_REPLY

        sid = session_id or (session.id if session else "")
        body = build_request_body(chatbot, session, user_id, sid, message)
        response_key = settings.response_key or DEFAULT_RESPONSE_KEY

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    settings.webhook_url,
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
            if not resp.is_success:
                logger.warning(
                    "Webhook for chatbot %s returned HTTP %s", chatbot.id, resp.status_code
                )
                return FAILURE_REPLY
            return extract_reply(resp.json(), response_key)
        except Exception:
            logger.exception("Webhook relay failed for chatbot %s", chatbot.id)
            return FAILURE_REPLY
