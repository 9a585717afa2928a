"""
AutomationEngine — owns the rule store, history, executor, scheduler and the
advisory components for one process (or one test).

Automation path: MetricsSource -> RuleEvaluator -> ActionExecutor -> HistoryLog.
Advisory path: MetricsSource -> AnomalyDetector / InsightGenerator / PredictiveModel.
The two paths share the snapshot type but no mutable state.
"""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from ..adapters.alerts import LoggingAlertSink, WebhookAlertSink
from ..adapters.memory import InMemoryAdPlatform
from ..adapters.metrics import cycle_duration_seconds, cycles_total, rules_fired_total, track_latency
from ..config import settings
from ..interfaces import AdPlatformClient, AlertSink, MetricsSource
from ..models import (
    AIInsight,
    AnomalyDetection,
    AutomationHistoryEntry,
    CampaignSnapshot,
    CycleReport,
    PerformanceForecast,
    PredictiveBidding,
    Rule,
    RuleUpdate,
    SchedulerStatus,
)
from .actions import ActionExecutor, scaled_budget
from .anomaly import AnomalyDetector
from .history import HistoryLog
from .insights import InsightGenerator
from .predictive import PredictiveModel
from .presets import DEFAULT_RULES
from .rules import RuleEvaluator, RuleStore
from .scheduler import AutomationScheduler

logger = structlog.get_logger()

REALLOCATION_RULE_ID = "budget_reallocation_insight"
PERFORMANCE_RULE_ID = "performance_optimization"


class AutomationEngine:
    """
    Explicit engine instance, no module-level state.
    - Rules: CRUD + enable/disable, validated on write
    - Cycles: periodic or manual, never overlapping
    - Advisory: anomalies, insights, bid and performance predictions
    """

    def __init__(
        self,
        platform: AdPlatformClient,
        alert_sink: AlertSink | None = None,
        metrics_source: MetricsSource | None = None,
        *,
        interval_seconds: float | None = None,
        run_on_start: bool | None = None,
        action_timeout: float | None = None,
        action_concurrency: int | None = None,
        performance_optimization: bool | None = None,
    ):
        self.platform = platform
        self.source: MetricsSource = metrics_source or platform
        self.alert_sink = alert_sink or LoggingAlertSink()

        self.store = RuleStore()
        self.history = HistoryLog()
        self.evaluator = RuleEvaluator()
        self.executor = ActionExecutor(
            platform, self.alert_sink, self.history, self.store, timeout=action_timeout
        )
        self.anomalies = AnomalyDetector()
        self.insights = InsightGenerator()
        self.model = PredictiveModel()
        self.scheduler = AutomationScheduler(
            self._cycle, interval_seconds=interval_seconds, run_on_start=run_on_start
        )
        self.action_sem = asyncio.Semaphore(action_concurrency or settings.action_concurrency)
        self.performance_optimization = (
            settings.performance_optimization_enabled
            if performance_optimization is None
            else performance_optimization
        )

    @classmethod
    def from_settings(cls) -> AutomationEngine:
        """Wire adapters from settings: remote or in-memory platform, webhook or log alerts."""
        platform: AdPlatformClient
        if settings.uses_remote_platform:
            from ..adapters.ad_platform import HttpAdPlatformClient

            platform = HttpAdPlatformClient()
        elif settings.campaigns_file:
            platform = InMemoryAdPlatform.from_file(settings.campaigns_file)
        else:
            platform = InMemoryAdPlatform()

        sink: AlertSink = (
            WebhookAlertSink(settings.alert_webhook_url)
            if settings.alert_webhook_url
            else LoggingAlertSink()
        )
        engine = cls(platform=platform, alert_sink=sink)
        if settings.load_default_rules:
            engine.load_default_rules()
        return engine

    async def aclose(self) -> None:
        await self.scheduler.shutdown()
        for resource in (self.platform, self.alert_sink):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()

    # ── Rules ──

    def load_default_rules(self) -> None:
        for rule in DEFAULT_RULES:
            self.store.add(rule)

    def get_rules(self) -> list[Rule]:
        return self.store.list()

    def get_rule(self, rule_id: str) -> Rule:
        return self.store.get(rule_id)

    def add_rule(self, rule: Rule | Mapping[str, Any]) -> Rule:
        return self.store.get(self.store.add(rule))

    def update_rule(self, rule_id: str, partial: RuleUpdate | Mapping[str, Any]) -> Rule:
        return self.store.update(rule_id, partial)

    def delete_rule(self, rule_id: str) -> None:
        self.store.remove(rule_id)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> Rule:
        return self.store.set_enabled(rule_id, enabled)

    def get_history(
        self,
        limit: int | None = None,
        rule_id: str | None = None,
        campaign_id: str | None = None,
    ) -> list[AutomationHistoryEntry]:
        return self.history.recent(limit=limit, rule_id=rule_id, campaign_id=campaign_id)

    # ── Scheduler ──

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self.scheduler.state,
            cycle_in_progress=self.scheduler.cycle_in_progress,
            interval_seconds=self.scheduler.interval,
            cycles_completed=self.scheduler.cycles_completed,
            last_report=self.scheduler.last_report,
        )

    async def run_cycle(self) -> CycleReport | None:
        """Run one cycle now; None when another cycle is still in progress."""
        return await self.scheduler.tick()

    async def snapshot(self) -> list[CampaignSnapshot]:
        return await self.source.list_campaigns()

    async def _run_pair(
        self, rule: Rule, campaign: CampaignSnapshot
    ) -> list[AutomationHistoryEntry]:
        async with self.action_sem:
            return await self.executor.execute_rule(rule, campaign)

    @track_latency(cycle_duration_seconds)
    async def _cycle(self) -> CycleReport:
        started = datetime.now(UTC)
        try:
            campaigns = await self.source.list_campaigns()
        except Exception as e:
            cycles_total.labels(status="source_error").inc()
            logger.error("campaign_fetch_failed", error=str(e))
            return CycleReport(started_at=started, finished_at=datetime.now(UTC), error=str(e))

        rules = [r for r in self.store.list() if r.enabled]
        pairs = self.evaluator.fired(rules, campaigns)
        for rule, campaign in pairs:
            rules_fired_total.labels(rule_type=rule.type).inc()
            logger.info("rule_fired", rule_id=rule.id, campaign_id=campaign.id)

        batches = await asyncio.gather(*(self._run_pair(r, c) for r, c in pairs))
        entries = [e for batch in batches for e in batch]
        if self.performance_optimization:
            entries.extend(await self.performance_based_optimization(campaigns))

        report = CycleReport(
            started_at=started,
            finished_at=datetime.now(UTC),
            campaigns=len(campaigns),
            rules_evaluated=len(rules),
            fired_pairs=len(pairs),
            actions_succeeded=sum(1 for e in entries if e.success),
            actions_failed=sum(1 for e in entries if not e.success),
        )
        cycles_total.labels(status="ok").inc()
        logger.info(
            "cycle_completed",
            campaigns=report.campaigns,
            fired_pairs=report.fired_pairs,
            succeeded=report.actions_succeeded,
            failed=report.actions_failed,
        )
        return report

    # ── Direct optimizations ──

    async def _set_budget(
        self,
        rule_id: str,
        campaign: CampaignSnapshot,
        new_budget: float,
        action_name: str,
        details: dict[str, Any],
    ) -> AutomationHistoryEntry:
        return await self.executor.attempt(
            rule_id,
            campaign.id,
            action_name,
            lambda: self.executor.run_guarded(
                action_name,
                campaign.id,
                self.platform.update_campaign_budget(campaign.id, new_budget),
            ),
            details={**details, "previousBudget": campaign.budget.total, "newBudget": new_budget},
        )

    async def reallocate_budget(
        self, campaigns: list[CampaignSnapshot] | None = None
    ) -> list[AutomationHistoryEntry]:
        """
        Act on the cross-campaign reallocation insight: each underperformer gives
        up half its daily spend, the top performer receives half the total.
        """
        if campaigns is None:
            campaigns = await self.snapshot()
        insight = next(
            (i for i in self.insights.generate(campaigns) if i.type == "optimization"), None
        )
        if insight is None:
            return []

        by_id = {c.id: c for c in campaigns}
        entries: list[AutomationHistoryEntry] = []
        total_daily = 0.0
        for campaign_id in insight.data["underPerformers"]:
            campaign = by_id[campaign_id]
            total_daily += campaign.daily_spend
            reduction = campaign.daily_spend * 0.5
            new_budget = round(max(campaign.budget.total - reduction, 0.0), 2)
            entries.append(
                await self._set_budget(
                    REALLOCATION_RULE_ID, campaign, new_budget, "reallocate_budget", {"role": "source"}
                )
            )

        top = by_id[insight.data["topPerformer"]]
        new_budget = round(top.budget.total + total_daily * 0.5, 2)
        entries.append(
            await self._set_budget(
                REALLOCATION_RULE_ID, top, new_budget, "reallocate_budget", {"role": "target"}
            )
        )
        logger.info("budget_reallocated", amount=round(total_daily, 2), top_performer=top.id)
        return entries

    async def performance_based_optimization(
        self, campaigns: list[CampaignSnapshot] | None = None
    ) -> list[AutomationHistoryEntry]:
        """Pause campaigns forecast to collapse; grow budgets of those forecast to excel."""
        if campaigns is None:
            campaigns = await self.snapshot()
        entries: list[AutomationHistoryEntry] = []
        for campaign in campaigns:
            forecast = self.model.predict_performance(campaign, 7)

            if forecast.predicted_ctr < 1.5 and campaign.status == "active":
                entries.append(
                    await self.executor.attempt(
                        PERFORMANCE_RULE_ID,
                        campaign.id,
                        "pause_campaign",
                        lambda campaign=campaign: self.executor.run_guarded(
                            "pause_campaign", campaign.id, self.platform.pause_campaign(campaign.id)
                        ),
                        details={"predictedCTR": forecast.predicted_ctr},
                    )
                )

            if forecast.predicted_ctr > 4.0 and campaign.budget.remaining > 1000:
                entries.append(
                    await self._set_budget(
                        PERFORMANCE_RULE_ID,
                        campaign,
                        scaled_budget(campaign.budget.total, 20),
                        "increase_budget",
                        {"predictedCTR": forecast.predicted_ctr, "percentage": 20},
                    )
                )
        return entries

    async def resume_campaign(self, campaign_id: str) -> None:
        await self.platform.resume_campaign(campaign_id)
        logger.info("campaign_resumed", campaign_id=campaign_id)

    # ── Advisory ──

    def generate_insights(self, campaigns: list[CampaignSnapshot]) -> list[AIInsight]:
        return self.insights.generate(campaigns)

    def detect_anomalies(self, campaigns: list[CampaignSnapshot]) -> list[AnomalyDetection]:
        return self.anomalies.detect(campaigns)

    def anomaly_history(
        self, campaign_id: str | None = None, anomaly_type: str | None = None
    ) -> list[AnomalyDetection]:
        return self.anomalies.history(campaign_id=campaign_id, anomaly_type=anomaly_type)

    def predict_bid(self, campaign: CampaignSnapshot) -> PredictiveBidding:
        return self.model.predict_bid(campaign)

    def predict_bids(self, campaigns: list[CampaignSnapshot]) -> list[PredictiveBidding]:
        return self.model.predict_bids(campaigns)

    def predict_performance(self, campaign: CampaignSnapshot, days: int = 7) -> PerformanceForecast:
        return self.model.predict_performance(campaign, days)
