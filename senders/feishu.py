"""
Feishu Sender - Send text and card messages via the Feishu/Lark Open API.

Plain text goes out as msg_type "text". Passing a title turns the message
into an interactive card with a colored header and a markdown body.

Requires app_id, app_secret and user_id (TEXTME_FEISHU_* environment variables).
"""

import json
import logging
import time

import httpx

logger = logging.getLogger(__name__)

FEISHU_API_BASE = "https://open.feishu.cn"

# Card header template per severity
SEVERITY_COLORS = {
    "success": "green",
    "warning": "orange",
    "info": "blue",
}

# Refresh the tenant token this many seconds before Feishu says it expires
TOKEN_REFRESH_MARGIN = 60


def build_card(title: str, body: str, severity: str = "info") -> dict:
    """Build an interactive card with a colored header and markdown body."""
    return {
        "config": {"wide_screen_mode": True},
        "header": {
            "title": {"tag": "plain_text", "content": title},
            "template": SEVERITY_COLORS[severity],
        },
        "elements": [{"tag": "markdown", "content": body}],
    }


class FeishuSender:
    """Sender that delivers messages to a Feishu user."""

    name = "feishu"
    capabilities = ["text", "card", "markdown"]

    def __init__(self, config: dict = None, client: httpx.AsyncClient = None):
        """
        Args:
            config: Feishu config (app_id, app_secret, user_id, domain,
                receive_id_type, timeout)
            client: Optional shared httpx client (tests inject a mock transport)
        """
        self.config = config or {}
        self.app_id = self.config.get("app_id", "")
        self.app_secret = self.config.get("app_secret", "")
        self.user_id = self.config.get("user_id", "")
        self.base_url = (self.config.get("domain") or FEISHU_API_BASE).rstrip("/")
        self.receive_id_type = self.config.get("receive_id_type", "user_id")
        self.timeout = self.config.get("timeout", 30.0)
        self._client = client
        self._token: str | None = None
        self._token_expires_at = 0.0

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def _get_tenant_token(self) -> str:
        """Return a cached tenant_access_token, fetching a new one when stale.

        Raises:
            RuntimeError: Feishu rejected the credentials.
        """
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = await self._http().post(
            "/open-apis/auth/v3/tenant_access_token/internal",
            json={"app_id": self.app_id, "app_secret": self.app_secret},
        )
        response.raise_for_status()
        data = response.json()
        if data.get("code") != 0:
            raise RuntimeError(f"Failed to get tenant access token: {data.get('msg')}")

        self._token = data["tenant_access_token"]
        expire = int(data.get("expire", 0))
        self._token_expires_at = time.monotonic() + max(expire - TOKEN_REFRESH_MARGIN, 0)
        logger.debug(f"Fetched Feishu tenant token (expires in {expire}s)")
        return self._token

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send(self, to: str, content: str, **kwargs) -> dict:
        """Send a message to a Feishu user.

        Args:
            to: Recipient user ID, or "owner" for the configured user_id
            content: Message text (markdown when sent as a card)
            title: Optional card title; sends an interactive card when given
            severity: Card color, one of success, warning, info (default info)

        Returns:
            dict with sent status and message_id, or an error
        """
        if not self.app_id or not self.app_secret:
            return {"error": "Feishu not configured. Set TEXTME_FEISHU_APP_ID and TEXTME_FEISHU_APP_SECRET."}

        receive_id = self.user_id if to in (None, "", "owner") else to
        if not receive_id:
            return {"error": "Feishu recipient not configured. Set TEXTME_FEISHU_USER_ID."}

        title = kwargs.get("title")
        if title:
            severity = kwargs.get("severity") or "info"
            if severity not in SEVERITY_COLORS:
                return {"error": f"Unknown severity '{severity}'. Use one of: {', '.join(SEVERITY_COLORS)}"}
            msg_type = "interactive"
            body = build_card(title, content, severity)
        else:
            msg_type = "text"
            body = {"text": content}

        payload = {
            "receive_id": receive_id,
            "msg_type": msg_type,
            "content": json.dumps(body, ensure_ascii=False),
        }

        try:
            token = await self._get_tenant_token()
            response = await self._http().post(
                "/open-apis/im/v1/messages",
                params={"receive_id_type": self.receive_id_type},
                headers={"Authorization": f"Bearer {token}"},
                json=payload,
            )
            data = response.json() if response.headers.get("content-type", "").startswith("application/json") else {}

            if response.status_code == 200 and data.get("code") == 0:
                return {
                    "sent": True,
                    "channel": "feishu",
                    "to": receive_id,
                    "msg_type": msg_type,
                    "message_id": (data.get("data") or {}).get("message_id"),
                }

            error_msg = data.get("msg") or response.text
            logger.error(f"Feishu send failed: {response.status_code} - {error_msg}")
            return {"error": f"Feishu API error: {error_msg}"}

        except httpx.TimeoutException:
            return {"error": "Feishu API timeout"}
        except Exception as e:
            logger.error(f"Feishu send error: {e}")
            return {"error": str(e)}

    async def send_text(self, text: str) -> dict:
        """Send plain text to the owner."""
        return await self.send("owner", text)

    async def send_card(self, title: str, body: str, severity: str = "info") -> dict:
        """Send a card to the owner."""
        return await self.send("owner", body, title=title, severity=severity)
