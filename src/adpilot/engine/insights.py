"""
InsightGenerator — ranked, human-readable recommendations derived from the
current campaign set. Advisory only: a failing check is logged and skipped.
"""
from __future__ import annotations

import math
from collections.abc import Callable

import structlog

from ..adapters.metrics import advisory_errors_total, insights_generated_total
from ..models import AIInsight, CampaignSnapshot

logger = structlog.get_logger()

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}

BENCHMARK_CTR = 2.7
TOP_PERFORMER_CTR = 3.5
UNDERPERFORMER_CTR = 2.5

CREATIVE_SUGGESTIONS = [
    'Outcome-focused headlines (e.g., "40% cost reduction")',
    "Industry-specific messaging",
    "Social proof elements",
    "Urgency/scarcity elements",
]

AUDIENCE_EXPANSIONS = [
    "VP, Data Science",
    "Senior Product Manager",
    "Director of Engineering",
]


def analyze_performance(campaign: CampaignSnapshot) -> AIInsight | None:
    ctr = campaign.metrics.ctr
    trend = campaign.weekly_trend()

    if trend < -20:
        return AIInsight(
            type="performance",
            priority="high",
            title="Significant CTR Decline Detected",
            description=f"{campaign.name} CTR dropped {abs(trend):.1f}% in the last 7 days",
            recommendation=(
                "Consider refreshing ad creatives or adjusting targeting parameters. "
                "Review audience fatigue metrics."
            ),
            confidence=0.85,
            impact="high",
            data={
                "campaignId": campaign.id,
                "currentCTR": ctr,
                "weeklyTrend": trend,
                "possibleCauses": [
                    "creative_fatigue",
                    "audience_saturation",
                    "increased_competition",
                ],
            },
        )

    if ctr > TOP_PERFORMER_CTR and trend > 10:
        return AIInsight(
            type="performance",
            priority="medium",
            title="Strong Performance Opportunity",
            description=f"{campaign.name} shows exceptional performance with {ctr:.2f}% CTR",
            recommendation="Consider increasing budget allocation to capitalize on strong performance",
            confidence=0.92,
            impact="high",
            data={"campaignId": campaign.id, "currentCTR": ctr, "weeklyTrend": trend},
        )
    return None


def analyze_budget(campaign: CampaignSnapshot) -> AIInsight | None:
    budget = campaign.budget
    if budget.total <= 0:
        return None
    spent_pct = budget.spent / budget.total * 100
    daily = campaign.daily_spend
    days_remaining = math.floor(budget.remaining / daily) if daily > 0 else None

    if spent_pct > 90:
        return AIInsight(
            type="budget",
            priority="high",
            title="Budget Threshold Exceeded",
            description=f"{campaign.name} has spent {spent_pct:.1f}% of allocated budget",
            recommendation="Pause campaign or increase budget allocation to maintain delivery",
            confidence=0.99,
            impact="high",
            data={
                "campaignId": campaign.id,
                "spentPercentage": spent_pct,
                "remainingDays": days_remaining,
            },
        )

    if days_remaining is not None and days_remaining < 5 and spent_pct < 50:
        return AIInsight(
            type="budget",
            priority="medium",
            title="Budget Pacing Issue",
            description=(
                f"{campaign.name} will exhaust its budget in {days_remaining} days at current spend rate"
            ),
            recommendation="Adjust daily spend limits to maintain budget pacing",
            confidence=0.88,
            impact="medium",
            data={"campaignId": campaign.id, "forecastDays": days_remaining, "dailySpend": daily},
        )
    return None


def creative_score(campaign: CampaignSnapshot) -> float:
    return min(campaign.metrics.ctr / BENCHMARK_CTR, 1.0)


def analyze_creative(campaign: CampaignSnapshot) -> AIInsight | None:
    score = creative_score(campaign)
    if score >= 0.6:
        return None
    return AIInsight(
        type="creative",
        priority="medium",
        title="Creative Optimization Opportunity",
        description=f"Creative assets for {campaign.name} show signs of fatigue",
        recommendation=f"Test new creative variations: {', '.join(CREATIVE_SUGGESTIONS)}",
        confidence=0.75,
        impact="medium",
        data={
            "campaignId": campaign.id,
            "creativeScore": score,
            "suggestions": list(CREATIVE_SUGGESTIONS),
        },
    )


def audience_score(campaign: CampaignSnapshot) -> float:
    """0.7 baseline, up to 1.0 as the conversion rate approaches twice the 2.5% benchmark."""
    clicks = campaign.metrics.clicks
    rate = campaign.metrics.conversions / clicks * 100 if clicks > 0 else 0.0
    return 0.7 + 0.3 * min(rate / 5.0, 1.0)


def analyze_audience(campaign: CampaignSnapshot) -> AIInsight | None:
    score = audience_score(campaign)
    if score <= 0.85:
        return None
    return AIInsight(
        type="audience",
        priority="low",
        title="Audience Expansion Opportunity",
        description=f"Current audience segments for {campaign.name} show strong engagement",
        recommendation="Consider expanding to similar audience segments or lookalike audiences",
        confidence=0.78,
        impact="medium",
        data={
            "campaignId": campaign.id,
            "audienceScore": score,
            "suggestedExpansions": list(AUDIENCE_EXPANSIONS),
        },
    )


def analyze_cross_campaign(campaigns: list[CampaignSnapshot]) -> list[AIInsight]:
    if not campaigns:
        return []
    # max() keeps the first campaign on ties
    top = max(campaigns, key=lambda c: c.metrics.ctr)
    if top.metrics.ctr <= TOP_PERFORMER_CTR:
        return []
    under = [
        c
        for c in campaigns
        if c.id != top.id and c.status == "active" and c.metrics.ctr < UNDERPERFORMER_CTR
    ]
    if not under:
        return []

    daily_spend = sum(c.daily_spend for c in under)
    return [
        AIInsight(
            type="optimization",
            priority="high",
            title="Budget Reallocation Opportunity",
            description=f"Reallocate budget from underperforming campaigns to {top.name}",
            recommendation=f"Move ${daily_spend:.0f}/day to top performer",
            confidence=0.82,
            impact="high",
            data={
                "topPerformer": top.id,
                "underPerformers": [c.id for c in under],
                "dailySpend": daily_spend,
            },
        )
    ]


PER_CAMPAIGN_CHECKS: dict[str, Callable[[CampaignSnapshot], AIInsight | None]] = {
    "performance": analyze_performance,
    "budget": analyze_budget,
    "creative": analyze_creative,
    "audience": analyze_audience,
}


class InsightGenerator:
    def generate(self, campaigns: list[CampaignSnapshot]) -> list[AIInsight]:
        insights: list[AIInsight] = []
        for campaign in campaigns:
            for name, check in PER_CAMPAIGN_CHECKS.items():
                try:
                    insight = check(campaign)
                except Exception as e:
                    advisory_errors_total.labels(check=f"insight_{name}").inc()
                    logger.warning(
                        "insight_check_failed", check=name, campaign_id=campaign.id, error=str(e)
                    )
                    continue
                if insight is not None:
                    insights.append(insight)

        try:
            insights.extend(analyze_cross_campaign(campaigns))
        except Exception as e:
            advisory_errors_total.labels(check="insight_cross_campaign").inc()
            logger.warning("insight_check_failed", check="cross_campaign", error=str(e))

        for i in insights:
            insights_generated_total.labels(type=i.type).inc()

        # sorted() is stable, so equal priorities keep their input order
        return sorted(insights, key=lambda i: PRIORITY_RANK[i.priority], reverse=True)
