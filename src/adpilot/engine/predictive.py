"""
PredictiveModel — deterministic heuristics for bid recommendations and
short-range performance forecasts.
"""
from __future__ import annotations

from ..models import CampaignSnapshot, ExpectedImpact, PerformanceForecast, PredictiveBidding

HIGH_CTR = 3.5
LOW_CTR = 2.0
FORECAST_CONFIDENCE = 0.75
FORECAST_FACTORS = ["historical_performance", "market_trends", "seasonal_patterns"]


def competitive_index(campaign: CampaignSnapshot) -> float:
    """Position of the CTR inside the moderate band [2.0, 3.5], clamped to [0, 1]."""
    idx = (campaign.metrics.ctr - LOW_CTR) / (HIGH_CTR - LOW_CTR)
    return min(max(idx, 0.0), 1.0)


class PredictiveModel:
    def predict_bid(self, campaign: CampaignSnapshot) -> PredictiveBidding:
        cpc = campaign.metrics.cpc
        ctr = campaign.metrics.ctr

        if ctr > HIGH_CTR:
            multiplier = 1.2
            reasoning = "High CTR indicates strong ad relevance - increase bid to capture more volume"
        elif ctr < LOW_CTR:
            multiplier = 0.8
            reasoning = "Low CTR suggests poor ad relevance - reduce bid and optimize creatives"
        else:
            multiplier = 0.9 + competitive_index(campaign) * 0.2
            reasoning = "Moderate performance - adjust bid based on competitive landscape"

        bid = round(cpc * multiplier, 2)
        ratio = bid / cpc if cpc > 0 else 1.0
        return PredictiveBidding(
            campaign_id=campaign.id,
            current_bid=cpc,
            bid=bid,
            confidence=min(0.75 + ctr / 10, 0.95),
            reasoning=reasoning,
            expected_impact=ExpectedImpact(
                impressions=round(campaign.metrics.impressions * ratio),
                clicks=round(campaign.metrics.clicks * ratio * 0.9),
                cost=round(campaign.metrics.spend * ratio, 2),
            ),
        )

    def predict_bids(self, campaigns: list[CampaignSnapshot]) -> list[PredictiveBidding]:
        return [self.predict_bid(c) for c in campaigns]

    def predict_performance(self, campaign: CampaignSnapshot, days: int = 7) -> PerformanceForecast:
        """Linear extrapolation of the weekly CTR trend over `days` days."""
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        trend = campaign.weekly_trend()
        return PerformanceForecast(
            campaign_id=campaign.id,
            days=days,
            predicted_ctr=campaign.metrics.ctr * (1 + trend / 100),
            predicted_spend=campaign.daily_spend * days,
            predicted_conversions=round(campaign.metrics.conversions / 7 * days),
            confidence=FORECAST_CONFIDENCE,
            factors=list(FORECAST_FACTORS),
        )
