"""Automation webhook client (n8n).

POSTs ``{"action": <action>, **payload}`` to a single configured webhook URL.
The call never raises: every outcome, including "not configured", comes back
as a WebhookResult so the action that triggered it is never affected.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class WebhookAction(str, Enum):
    QUALIFY_LEAD = "qualify_lead"
    GENERATE_MANDATE = "generate_mandate"
    SEND_SMS_REMINDER = "send_sms_reminder"
    SYNC_PROPERTY = "sync_property"
    NOTIFY_AGENT = "notify_agent"


class WebhookResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None


class WebhookClient:
    """Fire-and-report client for the automation webhook.

    Args:
        webhook_url: Target URL; empty disables every call.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        webhook_url: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def trigger(
        self, action: WebhookAction | str, payload: dict[str, Any] | None = None
    ) -> WebhookResult:
        action = WebhookAction(action)
        if not self.enabled:
            logger.warning("webhook.not_configured", action=action.value)
            return WebhookResult(success=False, error="Webhook not configured")

        body = {"action": action.value, **(payload or {})}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._webhook_url, json=body)
                response.raise_for_status()
                data = response.json() if response.content else None
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("webhook.failed", action=action.value, error=str(exc))
            return WebhookResult(success=False, error=str(exc) or type(exc).__name__)

        logger.info("webhook.sent", action=action.value)
        return WebhookResult(success=True, data=data)
