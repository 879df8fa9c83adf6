"""
Senders - Output channels for notifications.

Senders handle outbound communication. Each sender implements a simple protocol:
- name: str - Channel identifier
- capabilities: list[str] - What this sender supports (text, cards, etc.)
- send(to, content, **kwargs) - Send a message

Senders never raise for delivery problems; they report them in the result dict
so callers can decide what to tell the user.

Usage:
    from senders.feishu import FeishuSender
    sender = FeishuSender(config["feishu"])
    await sender.send("owner", "Build finished")
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Sender(Protocol):
    """Protocol for channel senders.

    Implement this to add a new output channel.
    """

    name: str
    capabilities: list[str]

    async def send(self, to: str, content: str, **kwargs) -> dict:
        """Send a message.

        Args:
            to: Recipient identifier (user ID, or "owner")
            content: Message content
            **kwargs: Channel-specific options (title, severity, etc.)

        Returns:
            {"sent": True, ...} on success
            {"error": "..."} on failure
        """
        ...
