"""Protocol definitions — all adapters implement these interfaces."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .models import CampaignSnapshot


@runtime_checkable
class MetricsSource(Protocol):
    async def list_campaigns(self) -> list[CampaignSnapshot]: ...


@runtime_checkable
class AdPlatformClient(MetricsSource, Protocol):
    async def pause_campaign(self, campaign_id: str) -> None: ...
    async def resume_campaign(self, campaign_id: str) -> None: ...
    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None: ...


@runtime_checkable
class AlertSink(Protocol):
    async def send(self, alert: dict[str, Any]) -> None: ...
