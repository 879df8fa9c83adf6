"""
Tools - The MCP surface exposed to the agent.

Usage:
    from tools import create_mcp_server

    mcp = create_mcp_server(coordinator, sender, config)
    await mcp.run_async(transport="stdio")

Tools:
- send_message: plain text notification
- send_rich_message: card with title, markdown body and color
- ask_user: send a question and block until the owner replies
- get_messages: messages the owner sent while nobody was waiting
"""

from typing import Literal, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from rendezvous import ReplyCoordinator
from senders import Sender
from tools.messaging import (
    DEFAULT_ASK_FOOTER,
    DEFAULT_ASK_TITLE,
    MessagingToolError,
    ask_user_impl,
    get_messages_impl,
    send_message_impl,
    send_rich_message_impl,
)

SERVER_NAME = "claude-text-me"

INSTRUCTIONS = (
    "Reach the user on their phone via Feishu/Lark. "
    "Use send_message or send_rich_message to notify them, ask_user when you "
    "need an answer before continuing, and get_messages to read anything the "
    "user sent while you were not waiting. Only one ask_user call can be "
    "pending at a time."
)


def create_mcp_server(coordinator: ReplyCoordinator, sender: Sender, config: dict = None) -> FastMCP:
    """Build the MCP server with the messaging tools bound to their collaborators.

    Args:
        coordinator: ReplyCoordinator shared with the webhook listener
        sender: Outbound Sender (FeishuSender)
        config: Full configuration dict (uses the tools section)
    """
    config = config or {}
    tools_config = config.get("tools", {})
    ask_title = tools_config.get("ask_title", DEFAULT_ASK_TITLE)
    ask_footer = tools_config.get("ask_footer", DEFAULT_ASK_FOOTER)
    default_timeout = int(coordinator.default_timeout)

    mcp = FastMCP(name=SERVER_NAME, instructions=INSTRUCTIONS)

    @mcp.tool()
    async def send_message(message: str) -> str:
        """Send a text message to the user's phone via Feishu/Lark. Use this when you need to notify the user about task completion, errors, or any important updates.

        Args:
            message: The message content to send to the user
        """
        try:
            return await send_message_impl(sender, message)
        except MessagingToolError as e:
            raise ToolError(str(e)) from e

    @mcp.tool()
    async def send_rich_message(
        title: str,
        content: str,
        type: Literal["success", "warning", "info"],
    ) -> str:
        """Send a rich card message with title, content and visual type indicator. Use this for structured notifications like task completion summaries, error reports, or status updates.

        Args:
            title: The title of the message card
            content: The markdown content of the message
            type: The type of message: 'success' (green), 'warning' (orange), or 'info' (blue)
        """
        try:
            return await send_rich_message_impl(sender, title, content, type)
        except MessagingToolError as e:
            raise ToolError(str(e)) from e

    @mcp.tool()
    async def ask_user(message: str, timeout_seconds: Optional[float] = default_timeout) -> str:
        """Send a message to the user and wait for their reply via Feishu. Use this when you need user input or confirmation to proceed with a task. The tool will wait for up to 3 minutes for a response by default.

        Args:
            message: The question or message to send to the user
            timeout_seconds: How long to wait for a reply in seconds (default: 180, max: 300)
        """
        try:
            return await ask_user_impl(
                coordinator,
                sender,
                message,
                timeout_seconds,
                title=ask_title,
                footer=ask_footer,
            )
        except MessagingToolError as e:
            raise ToolError(str(e)) from e

    @mcp.tool()
    def get_messages() -> list[dict]:
        """Get messages the user sent while no ask_user call was waiting. Messages are removed once read and expire after one hour. Returns an empty list when there are none."""
        return get_messages_impl(coordinator)

    return mcp
