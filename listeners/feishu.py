"""
Feishu Listener - Receive replies from the owner via Feishu event webhooks.

Feishu POSTs im.message.receive_v1 events to the webhook app (see server.py).
This module holds the payload models, the filtering that decides which
events are human replies, and the runner that serves the app with uvicorn
on the current event loop. The long connection listener (feishu_ws.py)
reuses the same models and filtering.

Only text messages written by a user reach the coordinator. Everything else
(bot echoes, images, stickers, malformed payloads) is dropped here.
"""

import json
import logging
from collections import deque
from typing import Optional

import uvicorn
from pydantic import BaseModel, Field

from config import get_channel_config, is_channel_enabled
from rendezvous.errors import TransportUnavailable

logger = logging.getLogger(__name__)

MESSAGE_RECEIVE_EVENT = "im.message.receive_v1"


# =============================================================================
# Event Models
# =============================================================================

class FeishuSenderId(BaseModel):
    open_id: Optional[str] = None
    user_id: Optional[str] = None
    union_id: Optional[str] = None


class FeishuEventSender(BaseModel):
    sender_id: Optional[FeishuSenderId] = None
    sender_type: Optional[str] = None  # "user" for humans, "app" for bots


class FeishuMessage(BaseModel):
    message_id: Optional[str] = None
    root_id: Optional[str] = None
    parent_id: Optional[str] = None
    create_time: Optional[str] = None
    chat_id: Optional[str] = None
    chat_type: Optional[str] = None
    message_type: Optional[str] = None
    content: Optional[str] = None  # JSON string, {"text": "..."} for text messages


class FeishuMessageEvent(BaseModel):
    sender: Optional[FeishuEventSender] = None
    message: Optional[FeishuMessage] = None


class FeishuEventHeader(BaseModel):
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    create_time: Optional[str] = None
    token: Optional[str] = None
    app_id: Optional[str] = None
    tenant_key: Optional[str] = None


class FeishuEventEnvelope(BaseModel):
    """Feishu event callback body (schema 2.0), or a url_verification request.

    See: https://open.feishu.cn/document/server-docs/event-subscription-guide
    """
    schema_version: Optional[str] = Field(default=None, alias="schema")
    header: Optional[FeishuEventHeader] = None
    event: Optional[FeishuMessageEvent] = None
    # url_verification fields
    type: Optional[str] = None
    challenge: Optional[str] = None
    token: Optional[str] = None

    @property
    def is_url_verification(self) -> bool:
        return self.type == "url_verification"

    @property
    def verification_token(self) -> Optional[str]:
        if self.header and self.header.token:
            return self.header.token
        return self.token

    @property
    def event_id(self) -> Optional[str]:
        return self.header.event_id if self.header else None


# =============================================================================
# Filtering
# =============================================================================

def extract_text(envelope: FeishuEventEnvelope, owner_user_id: str = None) -> Optional[str]:
    """Pull the reply text out of a message event.

    Args:
        envelope: Parsed event body
        owner_user_id: If set, only messages from this user are accepted

    Returns:
        The message text, or None if the event is not a human text message.
    """
    header = envelope.header
    if not header or header.event_type != MESSAGE_RECEIVE_EVENT:
        return None

    event = envelope.event
    if not event or not event.message:
        return None

    sender = event.sender
    if sender and sender.sender_type and sender.sender_type != "user":
        return None

    if owner_user_id:
        sender_user_id = sender.sender_id.user_id if sender and sender.sender_id else None
        if sender_user_id != owner_user_id:
            logger.debug(f"Ignoring message from non-owner {sender_user_id}")
            return None

    message = event.message
    if message.message_type != "text" or not message.content:
        return None

    try:
        content = json.loads(message.content)
    except (TypeError, ValueError):
        logger.debug(f"Discarding message {message.message_id} with malformed content")
        return None

    text = content.get("text") if isinstance(content, dict) else None
    if not isinstance(text, str) or not text.strip():
        return None

    return text


class RecentEventIds:
    """Bounded memory of event IDs already handled.

    Feishu redelivers an event when it does not get a timely 200, so the
    same reply can arrive more than once.
    """

    def __init__(self, maxlen: int = 1000):
        self._order: deque[str] = deque(maxlen=maxlen)
        self._ids: set[str] = set()

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, event_id: str) -> bool:
        """Remember an ID. Returns False if it was already known."""
        if event_id in self._ids:
            return False
        if len(self._order) == self._order.maxlen:
            self._ids.discard(self._order[0])
        self._order.append(event_id)
        self._ids.add(event_id)
        return True


# =============================================================================
# Runner
# =============================================================================

async def run_webhook_listener(coordinator, config: dict = None):
    """Serve the Feishu webhook until cancelled.

    If the listener is disabled or cannot bind its port, logs a warning and
    returns: the server keeps running in send-only mode and ask_user calls
    simply time out.

    Args:
        coordinator: The ReplyCoordinator inbound messages are routed to
        config: Full configuration dict (uses channels.webhook and feishu)
    """
    config = config or {}
    if not is_channel_enabled(config, "webhook"):
        logger.warning("Webhook listener disabled, running in send-only mode")
        return

    webhook_config = get_channel_config(config, "webhook")

    from server import create_app

    app = create_app(coordinator, config)
    host = webhook_config.get("host", "127.0.0.1")
    port = int(webhook_config.get("port", 8787))

    # stdout belongs to the MCP stdio transport: no uvicorn log config, no access log
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        access_log=False,
        lifespan="off",
    ))

    try:
        await _serve(server, host, port)
    except TransportUnavailable as e:
        logger.warning(f"{e}; running in send-only mode")


async def _serve(server: uvicorn.Server, host: str, port: int):
    logger.info(f"Webhook listener starting on http://{host}:{port}")
    try:
        await server.serve()
    except (OSError, SystemExit) as e:
        # uvicorn calls sys.exit(1) when it cannot bind
        raise TransportUnavailable(f"Webhook listener could not start on {host}:{port}: {e!r}") from e
