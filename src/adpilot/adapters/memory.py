"""
In-memory ad platform — the default when no remote platform is configured.
Mutations are applied to the stored snapshots so later cycles observe them.
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path

import structlog

from ..models import CampaignSnapshot

logger = structlog.get_logger()


class InMemoryAdPlatform:
    """Implements AdPlatformClient over a dict of campaign snapshots."""

    def __init__(self, campaigns: list[CampaignSnapshot] | None = None):
        self._campaigns: dict[str, CampaignSnapshot] = {c.id: c for c in campaigns or []}
        self._lock = asyncio.Lock()

    @classmethod
    def from_file(cls, path: str | Path) -> InMemoryAdPlatform:
        """Load a JSON array of campaign snapshots (camelCase or snake_case keys)."""
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        campaigns = [CampaignSnapshot.model_validate(item) for item in raw]
        logger.info("campaigns_loaded", path=str(path), count=len(campaigns))
        return cls(campaigns)

    def replace(self, campaigns: list[CampaignSnapshot]) -> None:
        self._campaigns = {c.id: c for c in campaigns}

    def get(self, campaign_id: str) -> CampaignSnapshot:
        try:
            return self._campaigns[campaign_id]
        except KeyError:
            raise LookupError(f"Campaign {campaign_id} not found") from None

    async def list_campaigns(self) -> list[CampaignSnapshot]:
        return [c.model_copy(deep=True) for c in self._campaigns.values()]

    async def _set_status(self, campaign_id: str, status: str) -> None:
        async with self._lock:
            campaign = self.get(campaign_id)
            self._campaigns[campaign_id] = campaign.model_copy(update={"status": status})

    async def pause_campaign(self, campaign_id: str) -> None:
        await self._set_status(campaign_id, "paused")

    async def resume_campaign(self, campaign_id: str) -> None:
        await self._set_status(campaign_id, "active")

    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None:
        if new_budget < 0:
            raise ValueError(f"Budget must be non-negative, got {new_budget}")
        async with self._lock:
            campaign = self.get(campaign_id)
            budget = campaign.budget.model_copy(
                update={
                    "total": new_budget,
                    "remaining": max(new_budget - campaign.budget.spent, 0.0),
                }
            )
            self._campaigns[campaign_id] = campaign.model_copy(update={"budget": budget})
