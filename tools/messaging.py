"""
Messaging tools - what the MCP client can do with the owner's phone.

Each tool body is a plain coroutine taking its collaborators explicitly,
so it can be tested without an MCP transport. The wrappers registered in
tools/__init__.py turn MessagingToolError into MCP tool errors.
"""

import logging

from rendezvous import ConcurrentWaitConflict, RendezvousError, ReplyCoordinator
from senders import Sender

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("success", "warning", "info")

DEFAULT_ASK_TITLE = "🤖 Claude needs your input"
DEFAULT_ASK_FOOTER = "*Please reply to this message to continue.*"


class MessagingToolError(Exception):
    """A tool call failed; the message is shown to the MCP client."""
    pass


async def send_message_impl(sender: Sender, message: str) -> str:
    result = await sender.send("owner", message)
    if "error" in result:
        raise MessagingToolError(f"Failed to send message: {result['error']}")
    return f"Message sent successfully to user via {sender.name}."


async def send_rich_message_impl(sender: Sender, title: str, content: str, message_type: str) -> str:
    if message_type not in MESSAGE_TYPES:
        raise MessagingToolError(
            f"Failed to send rich message: type must be one of {', '.join(MESSAGE_TYPES)}"
        )
    result = await sender.send("owner", content, title=title, severity=message_type)
    if "error" in result:
        raise MessagingToolError(f"Failed to send rich message: {result['error']}")
    return f'Rich message "{title}" sent successfully via {sender.name}.'


async def ask_user_impl(
    coordinator: ReplyCoordinator,
    sender: Sender,
    message: str,
    timeout_seconds: float = None,
    title: str = DEFAULT_ASK_TITLE,
    footer: str = DEFAULT_ASK_FOOTER,
) -> str:
    """Send a question card, then wait for the owner's reply.

    The conflict check runs before sending so a rejected call never puts an
    orphan question on the owner's phone. wait_for_reply checks again in
    case another call registered while the card was in flight.
    """
    if coordinator.is_waiting:
        raise MessagingToolError(
            f"Failed to get user reply: {ConcurrentWaitConflict(coordinator.pending.id)}"
        )

    body = f"{message}\n\n{footer}" if footer else message
    result = await sender.send("owner", body, title=title, severity="info")
    if "error" in result:
        raise MessagingToolError(f"Failed to send question: {result['error']}")

    try:
        reply = await coordinator.wait_for_reply(timeout_seconds)
    except RendezvousError as e:
        logger.info(f"ask_user ended without reply: {e}")
        raise MessagingToolError(f"Failed to get user reply: {e}") from e

    return f"User replied: {reply}"


def get_messages_impl(coordinator: ReplyCoordinator) -> list[dict]:
    """Drain queued messages. An empty list means nothing is pending."""
    return [m.to_dict() for m in coordinator.drain_messages()]
