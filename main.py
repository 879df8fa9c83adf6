"""
textme - Text the human behind an agent, and wait for the answer.

MCP server that sends notifications to the owner's phone through Feishu/Lark
and lets the agent block on a reply that comes back over the Feishu long
connection (or, as a fallback, a Feishu event webhook).

Usage:
    python main.py              # MCP over stdio + inbound listener (default)
    python main.py 9000         # Same, webhook listener on a custom port instead
    python main.py send-only    # MCP over stdio, no inbound listener

Configuration:
    Set options in config.yaml (see config.example.yaml) or via environment
    variables. Required:
    - TEXTME_FEISHU_APP_ID
    - TEXTME_FEISHU_APP_SECRET
    - TEXTME_FEISHU_USER_ID

Logging goes to stderr (stdout carries the MCP protocol), plus an optional
log file from config.
"""

import asyncio
import logging
import sys

from config import get_rendezvous_config, load_config, missing_required
from rendezvous import MessageQueue, ReplyCoordinator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(config: dict):
    """Configure root logging to stderr and, if configured, a file."""
    log_config = config.get("logging", {})
    level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.root.addHandler(handler)

    if log_config.get("file"):
        file_handler = logging.FileHandler(log_config["file"])
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.root.addHandler(file_handler)

    # Suppress noisy library loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.root.setLevel(level)


def build_coordinator(config: dict) -> ReplyCoordinator:
    """Create the process-wide coordinator from the rendezvous config."""
    settings = get_rendezvous_config(config)
    queue = MessageQueue(
        max_size=int(settings["max_queue_size"]),
        ttl_seconds=float(settings["message_ttl"]),
    )
    return ReplyCoordinator(
        queue=queue,
        default_timeout=settings["default_timeout"],
        queue_late_replies=bool(settings["queue_late_replies"]),
    )


async def run_server(config: dict, listen: bool = True):
    """Run the MCP stdio server and, optionally, the inbound listener."""
    from listeners import select_listener
    from senders.feishu import FeishuSender
    from tools import create_mcp_server

    coordinator = build_coordinator(config)
    sender = FeishuSender(config.get("feishu", {}))
    mcp = create_mcp_server(coordinator, sender, config)

    listener = select_listener(config) if listen else None
    listener_task = None
    if listener:
        listener_task = asyncio.create_task(listener(coordinator, config))
    else:
        logger.info("Inbound listener not started, running in send-only mode")

    try:
        await mcp.run_async(transport="stdio")
    finally:
        coordinator.cancel_wait("server shutting down")
        if listener_task:
            listener_task.cancel()
            try:
                await listener_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Listener failed during shutdown: {e}")
        await sender.aclose()


def main():
    """Main entry point."""
    config = load_config()
    setup_logging(config)

    missing = missing_required(config)
    if missing:
        logger.error("Missing required environment variables:")
        for name in missing:
            logger.error(f"  - {name}")
        sys.exit(1)

    listen = True
    if len(sys.argv) > 1:
        command = sys.argv[1]
        if command == "send-only":
            listen = False
        elif command.isdigit():
            channels = config["channels"]
            channels["webhook"]["port"] = int(command)
            channels["webhook"]["enabled"] = True
            channels.setdefault("websocket", {})["enabled"] = False
        else:
            logger.error(f"Unknown command: {command}")
            logger.error("Usage: python main.py [PORT|send-only]")
            sys.exit(1)

    try:
        asyncio.run(run_server(config, listen=listen))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
