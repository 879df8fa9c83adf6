"""
Shared fixtures for the textme test suite.

Provides common setup like a fake clock, fake senders, sample configs
and environment variable management.
"""

import json
import os
import sys
from pathlib import Path

import pytest

# Ensure the project root is on sys.path so tests can import project modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rendezvous import MessageQueue, ReplyCoordinator


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSender:
    """Sender that records calls instead of hitting Feishu."""

    name = "feishu"
    capabilities = ["text", "card"]

    def __init__(self, error: str = None):
        self.error = error
        self.calls = []

    async def send(self, to: str, content: str, **kwargs) -> dict:
        self.calls.append({"to": to, "content": content, **kwargs})
        if self.error:
            return {"error": self.error}
        return {"sent": True, "channel": "feishu", "message_id": f"om_{len(self.calls)}"}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return MessageQueue(clock=clock)


@pytest.fixture
def coordinator(queue):
    return ReplyCoordinator(queue=queue)


@pytest.fixture
def fake_sender():
    return FakeSender()


@pytest.fixture
def clean_env():
    """Temporarily clear textme env vars to avoid side effects."""
    keys = [
        "TEXTME_CONFIG",
        "TEXTME_FEISHU_APP_ID", "TEXTME_FEISHU_APP_SECRET", "TEXTME_FEISHU_USER_ID",
        "TEXTME_FEISHU_DOMAIN", "TEXTME_FEISHU_VERIFICATION_TOKEN",
        "TEXTME_WEBSOCKET_ENABLED",
        "TEXTME_WEBHOOK_ENABLED", "TEXTME_WEBHOOK_HOST", "TEXTME_WEBHOOK_PORT",
        "TEXTME_LOG_LEVEL", "TEXTME_LOG_FILE",
    ]
    saved = {}
    for key in keys:
        if key in os.environ:
            saved[key] = os.environ.pop(key)
    yield
    for key, val in saved.items():
        os.environ[key] = val
    for key in keys:
        if key not in saved and key in os.environ:
            del os.environ[key]


@pytest.fixture
def sample_config():
    """Return a minimal config dict for testing."""
    return {
        "feishu": {
            "app_id": "cli_test",
            "app_secret": "secret",
            "user_id": "ou_owner",
            "domain": "https://open.feishu.test",
        },
        "channels": {
            "websocket": {
                "enabled": True,
                "owner_only": False,
            },
            "webhook": {
                "enabled": True,
                "host": "127.0.0.1",
                "port": 8787,
                "path": "/webhooks/feishu",
                "verification_token": "",
                "owner_only": False,
            },
        },
        "rendezvous": {
            "default_timeout": 180,
            "max_queue_size": 50,
            "message_ttl": 3600,
            "queue_late_replies": False,
        },
    }


def make_message_event(
    text: str = "yes",
    event_id: str = "ev_1",
    sender_type: str = "user",
    user_id: str = "ou_owner",
    message_type: str = "text",
    content: str = None,
    token: str = None,
) -> dict:
    """Build a Feishu im.message.receive_v1 callback body."""
    if content is None:
        content = json.dumps({"text": text})
    return {
        "schema": "2.0",
        "header": {
            "event_id": event_id,
            "event_type": "im.message.receive_v1",
            "create_time": "1700000000000",
            "token": token,
            "app_id": "cli_test",
            "tenant_key": "tenant",
        },
        "event": {
            "sender": {
                "sender_id": {"open_id": "on_x", "user_id": user_id, "union_id": "un_x"},
                "sender_type": sender_type,
            },
            "message": {
                "message_id": f"om_{event_id}",
                "create_time": "1700000000000",
                "chat_id": "oc_chat",
                "chat_type": "p2p",
                "message_type": message_type,
                "content": content,
            },
        },
    }
