"""
Feishu Long Connection - Receive replies over the Feishu WebSocket channel.

The lark-oapi SDK keeps an outbound long connection open to Feishu, so no
public URL or tunnel is needed. Its client blocks in start() and drives its
own event loop, so it runs on a daemon thread. Message events are filtered
on that thread with the same rules as the webhook, and each reply is handed
to coordinator.route() on the server's loop with call_soon_threadsafe.
"""

import asyncio
import logging
import threading
from typing import Callable, Optional

import lark_oapi as lark
import lark_oapi.ws.client as lark_ws_client
from pydantic import ValidationError

from config import get_channel_config, is_channel_enabled
from listeners.feishu import FeishuEventEnvelope, RecentEventIds, extract_text
from rendezvous.errors import TransportUnavailable

logger = logging.getLogger(__name__)


class MessageEventHandler:
    """Turns im.message.receive_v1 events into replies.

    Called on the SDK thread. deliver() is the only way out of that thread.
    """

    def __init__(self, deliver: Callable[[str], None], owner_user_id: str = None):
        self.deliver = deliver
        self.owner_user_id = owner_user_id
        self.seen_events = RecentEventIds()

    def __call__(self, data: "lark.im.v1.P2ImMessageReceiveV1") -> None:
        # Same JSON body the webhook receives, so both paths share one parser
        self.handle_payload(lark.JSON.marshal(data))

    def handle_payload(self, payload: str) -> Optional[str]:
        """Parse, dedupe and filter one event body. Returns the delivered text."""
        try:
            envelope = FeishuEventEnvelope.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Invalid Feishu event on long connection: {e}")
            return None

        event_id = envelope.event_id
        if event_id and not self.seen_events.add(event_id):
            logger.debug(f"Skipping duplicate Feishu event {event_id}")
            return None

        text = extract_text(envelope, self.owner_user_id)
        if text is None:
            return None

        self.deliver(text)
        return text


class FeishuWsClient:
    """lark_oapi.ws.Client for message events, started on the calling thread."""

    def __init__(self, feishu_config: dict, on_message: Callable, log_level: str = "WARNING"):
        event_handler = (
            lark.EventDispatcherHandler.builder("", "")
            .register_p2_im_message_receive_v1(on_message)
            .build()
        )
        self._client = lark.ws.Client(
            feishu_config.get("app_id", ""),
            feishu_config.get("app_secret", ""),
            event_handler=event_handler,
            log_level=getattr(lark.LogLevel, str(log_level).upper(), lark.LogLevel.WARNING),
            domain=feishu_config.get("domain") or lark.FEISHU_DOMAIN,
        )

    def start(self):
        """Connect and block until the connection ends."""
        # The SDK runs everything on its module-level loop, captured at import
        thread_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(thread_loop)
        lark_ws_client.loop = thread_loop
        self._client.start()


async def run_websocket_listener(coordinator, config: dict = None, client_factory: Callable = FeishuWsClient):
    """Hold the Feishu long connection until cancelled.

    If the listener is disabled, or the client cannot be created or stops,
    logs a warning and returns: the server keeps running in send-only mode
    and ask_user calls simply time out.

    Args:
        coordinator: The ReplyCoordinator inbound messages are routed to
        config: Full configuration dict (uses channels.websocket and feishu)
        client_factory: Called as client_factory(feishu_config, on_message, log_level),
            returns an object with a blocking start()
    """
    config = config or {}
    if not is_channel_enabled(config, "websocket"):
        logger.warning("Long connection listener disabled, running in send-only mode")
        return

    ws_config = get_channel_config(config, "websocket")
    feishu_config = config.get("feishu", {})
    owner = feishu_config.get("user_id") if ws_config.get("owner_only") else None

    loop = asyncio.get_running_loop()

    def deliver(text: str):
        loop.call_soon_threadsafe(coordinator.route, text)

    handler = MessageEventHandler(deliver, owner_user_id=owner)

    try:
        client = client_factory(feishu_config, handler, ws_config.get("log_level", "WARNING"))
    except Exception as e:
        logger.warning(f"Feishu long connection could not be set up: {e!r}; running in send-only mode")
        return

    try:
        await _run_client(client, loop)
    except TransportUnavailable as e:
        logger.warning(f"{e}; running in send-only mode")


async def _run_client(client, loop: asyncio.AbstractEventLoop):
    finished = loop.create_future()

    def target():
        try:
            client.start()
        except Exception as e:
            error = TransportUnavailable(f"Feishu long connection failed: {e!r}")
        else:
            error = TransportUnavailable("Feishu long connection closed")
        try:
            loop.call_soon_threadsafe(_finish, finished, error)
        except RuntimeError:
            logger.debug(f"Server loop closed before the long connection ended: {error}")

    logger.info("Feishu long connection starting")
    threading.Thread(target=target, name="feishu-ws", daemon=True).start()
    await finished


def _finish(finished: asyncio.Future, error: Exception):
    if not finished.done():
        finished.set_exception(error)
