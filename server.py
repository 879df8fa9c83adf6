"""
Webhook Server for inbound replies

Provides HTTP endpoints for:
- Receiving Feishu message events (replies from the owner)
- Answering Feishu's url_verification challenge
- Checking coordinator status

The app is built per coordinator by create_app(); it is served by
listeners.feishu.run_webhook_listener on the same event loop as the MCP
tools, so route() and the tools never run in parallel.
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError

from config import get_channel_config
from listeners.feishu import FeishuEventEnvelope, RecentEventIds, extract_text

logger = logging.getLogger(__name__)


def create_app(coordinator, config: dict = None) -> FastAPI:
    """Build the webhook app bound to one coordinator.

    Args:
        coordinator: ReplyCoordinator that receives inbound texts
        config: Full configuration dict (uses channels.webhook and feishu)
    """
    config = config or {}
    webhook_config = get_channel_config(config, "webhook")
    path = webhook_config.get("path", "/webhooks/feishu")
    verification_token = webhook_config.get("verification_token") or None
    owner_user_id = config.get("feishu", {}).get("user_id") if webhook_config.get("owner_only") else None

    app = FastAPI(
        title="textme webhook",
        description="Inbound Feishu events for the textme reply coordinator",
    )
    app.state.coordinator = coordinator
    app.state.seen_events = RecentEventIds()

    # =========================================================================
    # Endpoints
    # =========================================================================

    @app.post(path)
    async def feishu_webhook(request: Request):
        """
        Receive an event from Feishu.

        Always answers 200 for payloads we choose to ignore, so Feishu does
        not keep redelivering them.
        """
        try:
            raw = await request.json()
        except Exception as e:
            logger.debug(f"Feishu webhook: discarding invalid JSON: {e}")
            return {"status": "ok", "message": "invalid_json"}

        if not isinstance(raw, dict):
            return {"status": "ok", "message": "invalid_payload"}

        if "encrypt" in raw:
            logger.warning("Feishu webhook: encrypted events are not supported, disable the encrypt key")
            return {"status": "ok", "message": "encrypted_unsupported"}

        try:
            envelope = FeishuEventEnvelope.model_validate(raw)
        except ValidationError as e:
            logger.debug(f"Feishu webhook: discarding malformed payload: {e}")
            return {"status": "ok", "message": "invalid_payload"}

        if verification_token and envelope.verification_token != verification_token:
            logger.warning("Feishu webhook: verification token mismatch")
            raise HTTPException(status_code=403, detail="Invalid verification token")

        if envelope.is_url_verification:
            return {"challenge": envelope.challenge}

        event_id = envelope.event_id
        if event_id and not app.state.seen_events.add(event_id):
            logger.debug(f"Feishu webhook: skipping duplicate event {event_id}")
            return {"status": "ok", "message": "duplicate"}

        text = extract_text(envelope, owner_user_id=owner_user_id)
        if text is None:
            return {"status": "ok", "message": "ignored"}

        logger.info(f"Feishu webhook: inbound message {text[:50]!r}")
        app.state.coordinator.route(text)
        return {"status": "ok", "message": "routed"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", **app.state.coordinator.status()}

    return app
