"""
Listeners - Inbound channels for replies.

A listener receives messages from its channel, keeps only human-written
text and hands each one to coordinator.route(). Transport failures stay
inside the listener; the coordinator never sees them.

The Feishu long connection is the default channel. The event webhook is
the fallback for deployments that expose an HTTP endpoint instead.

Usage:
    from listeners import select_listener

    listener = select_listener(config)
    await asyncio.gather(
        listener(coordinator, config),
        mcp.run_async(transport="stdio"),
    )
"""

from config import is_channel_enabled
from listeners.feishu import run_webhook_listener
from listeners.feishu_ws import run_websocket_listener


def select_listener(config: dict):
    """Pick the inbound runner for the config, or None when every channel is off."""
    if is_channel_enabled(config, "websocket"):
        return run_websocket_listener
    if is_channel_enabled(config, "webhook"):
        return run_webhook_listener
    return None


__all__ = ["run_webhook_listener", "run_websocket_listener", "select_listener"]
