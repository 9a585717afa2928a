"""Alert sinks — where `send_alert` actions end up."""

from __future__ import annotations

from collections import deque
from typing import Any

import httpx
import structlog

from ..config import settings

logger = structlog.get_logger()


class LoggingAlertSink:
    """
    Writes alerts to the structured log. Default when no webhook is configured.
    Only the most recent `max_sent` alerts are kept in `sent`.
    """

    def __init__(self, max_sent: int | None = None):
        self.sent: deque[dict[str, Any]] = deque(maxlen=max_sent or settings.alert_log_size)

    async def send(self, alert: dict[str, Any]) -> None:
        self.sent.append(alert)
        logger.warning("automation_alert", **alert)


class WebhookAlertSink:
    """POSTs each alert as JSON to a webhook (Slack-compatible `text` field included)."""

    def __init__(self, url: str, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.client = httpx.AsyncClient(timeout=10.0, transport=transport)

    async def send(self, alert: dict[str, Any]) -> None:
        payload = {"text": f"{alert.get('title', 'Automation Alert')}: {alert.get('message', '')}", **alert}
        resp = await self.client.post(self.url, json=payload)
        resp.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()
