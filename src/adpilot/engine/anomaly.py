"""
AnomalyDetector — per-campaign statistical checks against fixed baselines.

Each check is a pure function returning an AnomalyDetection or None. The
detector runs them independently; a check that fails internally is logged
and treated as "no anomaly". Detected anomalies are also kept in a bounded
history for trend queries.
"""
from __future__ import annotations

import threading
import uuid
from collections import deque
from collections.abc import Callable

import structlog

from ..adapters.metrics import advisory_errors_total, anomalies_detected_total
from ..config import settings
from ..models import AnomalyDetection, CampaignSnapshot

logger = structlog.get_logger()

SPEND_DEVIATION_THRESHOLD = 50.0
BENCHMARK_CTR = 2.7
CTR_FLOOR = 1.5
BENCHMARK_CONVERSION_RATE = 2.5
CONVERSION_DEVIATION_THRESHOLD = 40.0
CONVERSION_CRITICAL_THRESHOLD = 60.0
ENGAGEMENT_BASELINE = 50.0
ENGAGEMENT_SHIFT_THRESHOLD = 30.0


def _anomaly_id(campaign_id: str) -> str:
    return f"anomaly_{campaign_id}_{uuid.uuid4().hex[:8]}"


def _deviation(value: float, expected: float) -> float:
    return (value - expected) / expected * 100


def detect_spend_spike(campaign: CampaignSnapshot) -> AnomalyDetection | None:
    expected = campaign.metrics.spend / 30
    if expected <= 0 or campaign.last_7_days is None:
        return None
    recent = campaign.daily_spend
    deviation = _deviation(recent, expected)
    if abs(deviation) <= SPEND_DEVIATION_THRESHOLD:
        return None
    increased = deviation > 0
    return AnomalyDetection(
        id=_anomaly_id(campaign.id),
        type="spend_spike",
        severity="critical" if increased else "warning",
        metric="Daily Spend",
        value=recent,
        expected=expected,
        deviation_pct=deviation,
        campaign_id=campaign.id,
        description=f"Daily spend {'increased' if increased else 'decreased'} by {abs(deviation):.1f}%",
        recommendation=(
            "Review bidding strategy and budget caps" if increased else "Investigate delivery issues"
        ),
    )


def detect_ctr_drop(campaign: CampaignSnapshot) -> AnomalyDetection | None:
    ctr = campaign.metrics.ctr
    if ctr >= CTR_FLOOR:
        return None
    return AnomalyDetection(
        id=_anomaly_id(campaign.id),
        type="ctr_drop",
        severity="critical",
        metric="CTR",
        value=ctr,
        expected=BENCHMARK_CTR,
        deviation_pct=_deviation(ctr, BENCHMARK_CTR),
        campaign_id=campaign.id,
        description=(
            f"CTR significantly below industry benchmark ({ctr:.2f}% vs {BENCHMARK_CTR}%)"
        ),
        recommendation="Immediate creative refresh and audience review required",
    )


def detect_conversion_anomaly(campaign: CampaignSnapshot) -> AnomalyDetection | None:
    clicks = campaign.metrics.clicks
    if clicks <= 0:
        return None
    rate = campaign.metrics.conversions / clicks * 100
    deviation = _deviation(rate, BENCHMARK_CONVERSION_RATE)
    if abs(deviation) <= CONVERSION_DEVIATION_THRESHOLD:
        return None
    above = deviation > 0
    return AnomalyDetection(
        id=_anomaly_id(campaign.id),
        type="conversion_anomaly",
        severity="critical" if abs(deviation) > CONVERSION_CRITICAL_THRESHOLD else "warning",
        metric="Conversion Rate",
        value=rate,
        expected=BENCHMARK_CONVERSION_RATE,
        deviation_pct=deviation,
        campaign_id=campaign.id,
        description=f"Conversion rate {'above' if above else 'below'} expected range",
        recommendation="Scale successful elements" if above else "Review landing page and offer",
    )


def engagement_score(campaign: CampaignSnapshot) -> float | None:
    """Engagement index around a baseline of 50: 7-day CTR relative to lifetime CTR."""
    weekly = campaign.weekly_ctr
    if weekly is None or not campaign.metrics.ctr:
        return None
    return ENGAGEMENT_BASELINE * weekly / campaign.metrics.ctr


def detect_audience_shift(campaign: CampaignSnapshot) -> AnomalyDetection | None:
    score = engagement_score(campaign)
    if score is None:
        return None
    shift = score - ENGAGEMENT_BASELINE
    if abs(shift) <= ENGAGEMENT_SHIFT_THRESHOLD:
        return None
    return AnomalyDetection(
        id=_anomaly_id(campaign.id),
        type="audience_shift",
        severity="info",
        metric="Audience Engagement",
        value=score,
        expected=ENGAGEMENT_BASELINE,
        deviation_pct=_deviation(score, ENGAGEMENT_BASELINE),
        campaign_id=campaign.id,
        description="Significant shift in audience engagement patterns detected",
        recommendation="Review audience targeting and consider segment analysis",
    )


CHECKS: dict[str, Callable[[CampaignSnapshot], AnomalyDetection | None]] = {
    "spend_spike": detect_spend_spike,
    "ctr_drop": detect_ctr_drop,
    "conversion_anomaly": detect_conversion_anomaly,
    "audience_shift": detect_audience_shift,
}


class AnomalyDetector:
    def __init__(self, history_size: int | None = None):
        self._history: deque[AnomalyDetection] = deque(
            maxlen=history_size or settings.anomaly_history_size
        )
        self._lock = threading.Lock()

    def detect_campaign(self, campaign: CampaignSnapshot) -> list[AnomalyDetection]:
        found: list[AnomalyDetection] = []
        for name, check in CHECKS.items():
            try:
                anomaly = check(campaign)
            except Exception as e:
                advisory_errors_total.labels(check=name).inc()
                logger.warning("anomaly_check_failed", check=name, campaign_id=campaign.id, error=str(e))
                continue
            if anomaly is not None:
                found.append(anomaly)
        return found

    def detect(self, campaigns: list[CampaignSnapshot]) -> list[AnomalyDetection]:
        anomalies: list[AnomalyDetection] = []
        for campaign in campaigns:
            anomalies.extend(self.detect_campaign(campaign))

        for a in anomalies:
            anomalies_detected_total.labels(type=a.type, severity=a.severity).inc()
        with self._lock:
            self._history.extend(anomalies)

        if anomalies:
            logger.info("anomalies_detected", count=len(anomalies), campaigns=len(campaigns))
        return anomalies

    def history(
        self, campaign_id: str | None = None, anomaly_type: str | None = None
    ) -> list[AnomalyDetection]:
        """Retained anomalies, oldest first, optionally filtered."""
        with self._lock:
            items = list(self._history)
        return [
            a
            for a in items
            if (campaign_id is None or a.campaign_id == campaign_id)
            and (anomaly_type is None or a.type == anomaly_type)
        ]
