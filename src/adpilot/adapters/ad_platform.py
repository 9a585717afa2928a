"""
HTTP ad-platform client — campaign snapshot reads and status/budget mutations.
Implements AdPlatformClient. Reads are retried; writes are not.
"""
from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import settings
from ..models import CampaignSnapshot

logger = structlog.get_logger()


class HttpAdPlatformClient:
    """REST client for the ad platform's campaign endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ad_platform_base_url).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token or settings.ad_platform_token}",
                "Content-Type": "application/json",
                "LinkedIn-Version": settings.ad_platform_version,
                "X-Restli-Protocol-Version": "2.0.0",
            },
            timeout=settings.ad_platform_timeout_seconds,
            transport=transport,
        )
        logger.info("ad_platform_client_initialized", base_url=self.base_url)

    async def close(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=15),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def list_campaigns(self) -> list[CampaignSnapshot]:
        resp = await self.client.get("/campaigns")
        resp.raise_for_status()
        elements = resp.json().get("elements", [])
        return [CampaignSnapshot.model_validate(e) for e in elements]

    async def _update_campaign(self, campaign_id: str, updates: dict[str, Any]) -> None:
        resp = await self.client.post(f"/adCampaigns/{campaign_id}", json=updates)
        resp.raise_for_status()
        logger.debug("campaign_updated", campaign_id=campaign_id, fields=sorted(updates))

    async def pause_campaign(self, campaign_id: str) -> None:
        await self._update_campaign(campaign_id, {"status": "PAUSED"})

    async def resume_campaign(self, campaign_id: str) -> None:
        await self._update_campaign(campaign_id, {"status": "ACTIVE"})

    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None:
        await self._update_campaign(campaign_id, {"dailyBudget": new_budget})
