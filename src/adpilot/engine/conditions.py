"""
Condition evaluation — resolves a named metric from a campaign snapshot and
applies the comparison operator. Unknown or unresolvable metrics fail closed.
"""
from __future__ import annotations

import math
from collections.abc import Callable

import structlog

from ..config import settings
from ..models import CampaignSnapshot, Condition

logger = structlog.get_logger()


def _ctr(campaign: CampaignSnapshot) -> float | None:
    weekly = campaign.weekly_ctr
    return weekly if weekly is not None else campaign.metrics.ctr


def _ctr_decline(campaign: CampaignSnapshot) -> float | None:
    if campaign.weekly_ctr is None or not campaign.metrics.ctr:
        return None
    return abs(campaign.weekly_trend())


def _budget_remaining(campaign: CampaignSnapshot) -> float | None:
    return campaign.budget.remaining


def _cost_per_conversion(campaign: CampaignSnapshot) -> float | None:
    if campaign.metrics.conversions == 0:
        return math.inf
    return campaign.metrics.spend / campaign.metrics.conversions


METRIC_RESOLVERS: dict[str, Callable[[CampaignSnapshot], float | None]] = {
    "ctr": _ctr,
    "ctr_decline": _ctr_decline,
    "budget_remaining": _budget_remaining,
    "cost_per_conversion": _cost_per_conversion,
}


class ConditionEvaluator:
    def __init__(self, eq_tolerance: float | None = None):
        self.eq_tolerance = settings.eq_tolerance if eq_tolerance is None else eq_tolerance

    def resolve(self, metric: str, campaign: CampaignSnapshot) -> float | None:
        """Return the metric value, or None when it cannot be resolved."""
        resolver = METRIC_RESOLVERS.get(metric)
        if resolver is None:
            logger.warning("unknown_metric", metric=metric, campaign_id=campaign.id)
            return None
        value = resolver(campaign)
        if value is None or math.isnan(value):
            return None
        return value

    def compare(self, actual: float, operator: str, expected: float) -> bool:
        if operator == "gt":
            return actual > expected
        if operator == "lt":
            return actual < expected
        if operator == "eq":
            return math.isclose(actual, expected, rel_tol=1e-9, abs_tol=self.eq_tolerance)
        return False

    def evaluate(self, condition: Condition, campaign: CampaignSnapshot) -> bool:
        actual = self.resolve(condition.metric, campaign)
        if actual is None:
            return False
        return self.compare(actual, condition.operator, condition.value)
