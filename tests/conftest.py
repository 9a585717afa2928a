"""Shared test fixtures — in-memory ad platform and engine, no network needed."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from adpilot.adapters.alerts import LoggingAlertSink
from adpilot.adapters.memory import InMemoryAdPlatform
from adpilot.engine.automation import AutomationEngine
from adpilot.models import CampaignSnapshot


class FakeAdPlatform(InMemoryAdPlatform):
    """In-memory platform that records calls and can fail or stall on demand."""

    def __init__(self, campaigns: list[CampaignSnapshot] | None = None):
        super().__init__(campaigns)
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: set[str] = set()
        self.delay: float = 0.0
        self.list_error: Exception | None = None
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _maybe_fail(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if name in self.fail_on:
            raise ConnectionError(f"{name} failed: platform unavailable")

    async def list_campaigns(self) -> list[CampaignSnapshot]:
        if self.list_error is not None:
            raise self.list_error
        return await super().list_campaigns()

    async def pause_campaign(self, campaign_id: str) -> None:
        await self._maybe_fail("pause_campaign", campaign_id)
        await super().pause_campaign(campaign_id)

    async def resume_campaign(self, campaign_id: str) -> None:
        await self._maybe_fail("resume_campaign", campaign_id)
        await super().resume_campaign(campaign_id)

    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None:
        await self._maybe_fail("update_campaign_budget", campaign_id, new_budget)
        await super().update_campaign_budget(campaign_id, new_budget)


def build_campaign(
    campaign_id: str = "c1",
    *,
    name: str | None = None,
    status: str = "active",
    ctr: float = 2.7,
    ctr_7d: float | None = None,
    window: bool = True,
    total: float = 10000.0,
    spent: float = 5000.0,
    remaining: float | None = None,
    spend: float = 3000.0,
    spend_7d: float = 700.0,
    impressions: int = 100000,
    clicks: int = 2700,
    conversions: int = 67,
    cpc: float = 1.1,
) -> CampaignSnapshot:
    """A healthy campaign by default: no anomalies, no budget or CTR alarms."""
    payload: dict[str, Any] = {
        "id": campaign_id,
        "name": name or f"Campaign {campaign_id}",
        "status": status,
        "budget": {
            "total": total,
            "spent": spent,
            "remaining": total - spent if remaining is None else remaining,
        },
        "metrics": {
            "impressions": impressions,
            "clicks": clicks,
            "ctr": ctr,
            "cpc": cpc,
            "conversions": conversions,
            "spend": spend,
            "costPerConversion": spend / conversions if conversions else 0.0,
        },
    }
    if window:
        payload["last7Days"] = {
            "impressions": impressions // 4,
            "clicks": clicks // 4,
            "ctr": ctr if ctr_7d is None else ctr_7d,
            "spend": spend_7d,
        }
    return CampaignSnapshot.model_validate(payload)


def pause_rule(**overrides: Any) -> dict[str, Any]:
    rule = {
        "id": "pause_low_ctr",
        "name": "Pause low CTR",
        "type": "pause",
        "conditions": [{"metric": "ctr", "operator": "lt", "value": 1.0, "timeframeHours": 24}],
        "actions": [{"type": "pause_campaign", "parameters": {}}],
    }
    rule.update(overrides)
    return rule


@pytest.fixture
def make_campaign() -> Callable[..., CampaignSnapshot]:
    return build_campaign


@pytest.fixture
def platform() -> FakeAdPlatform:
    return FakeAdPlatform()


@pytest.fixture
def alert_sink() -> LoggingAlertSink:
    return LoggingAlertSink()


@pytest.fixture
def engine(platform, alert_sink) -> AutomationEngine:
    return AutomationEngine(
        platform=platform,
        alert_sink=alert_sink,
        interval_seconds=0.01,
        run_on_start=True,
        action_timeout=1.0,
        performance_optimization=False,
    )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
