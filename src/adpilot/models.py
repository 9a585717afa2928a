"""Pydantic models for campaign snapshots, rules, history, and advisory output."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(UTC)


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire; both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Campaign snapshot ──


class Budget(CamelModel):
    total: float = 0.0
    spent: float = 0.0
    remaining: float = 0.0


class CampaignMetrics(CamelModel):
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0.0
    cpc: float = 0.0
    conversions: int = 0
    spend: float = 0.0
    cost_per_conversion: float = 0.0


class WindowMetrics(CamelModel):
    impressions: int = 0
    clicks: int = 0
    ctr: float | None = None
    spend: float = 0.0


class CampaignSnapshot(CamelModel):
    """Point-in-time read of one campaign. CTR values are percentages."""

    id: str
    name: str = ""
    status: Literal["active", "paused", "completed"] = "active"
    budget: Budget = Field(default_factory=Budget)
    metrics: CampaignMetrics = Field(default_factory=CampaignMetrics)
    trend: str | None = None
    last_7_days: WindowMetrics | None = None

    @property
    def weekly_ctr(self) -> float | None:
        if self.last_7_days is None:
            return None
        return self.last_7_days.ctr

    @property
    def daily_spend(self) -> float:
        """Average daily spend over the trailing 7 days."""
        if self.last_7_days is None:
            return 0.0
        return self.last_7_days.spend / 7

    def weekly_trend(self) -> float:
        """Percentage change of the 7-day CTR against the lifetime CTR."""
        lifetime = self.metrics.ctr
        weekly = self.weekly_ctr
        if weekly is None or not lifetime:
            return 0.0
        return (weekly - lifetime) / lifetime * 100


# ── Rules ──

RuleType = Literal["budget", "pause", "bid", "creative"]
Operator = Literal["gt", "lt", "eq"]


class Condition(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid"
    )

    metric: str = Field(min_length=1)
    operator: Operator
    value: float = Field(allow_inf_nan=False)
    # Descriptive only; evaluation always reads the current snapshot.
    timeframe_hours: int = Field(default=24, ge=0)


class EmptyParameters(BaseModel):
    model_config = ConfigDict(frozen=True)


class BudgetIncreaseParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    percentage: float = Field(gt=0, allow_inf_nan=False)


class BudgetDecreaseParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    percentage: float = Field(gt=0, le=100, allow_inf_nan=False)


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PauseCampaignAction(_ActionBase):
    type: Literal["pause_campaign"] = "pause_campaign"
    parameters: EmptyParameters = Field(default_factory=EmptyParameters)


class IncreaseBudgetAction(_ActionBase):
    type: Literal["increase_budget"] = "increase_budget"
    parameters: BudgetIncreaseParameters


class DecreaseBudgetAction(_ActionBase):
    type: Literal["decrease_budget"] = "decrease_budget"
    parameters: BudgetDecreaseParameters


class EnableBackupCreativeAction(_ActionBase):
    type: Literal["enable_backup_creative"] = "enable_backup_creative"
    parameters: EmptyParameters = Field(default_factory=EmptyParameters)


class SendAlertAction(_ActionBase):
    type: Literal["send_alert"] = "send_alert"
    parameters: dict[str, Any] = Field(default_factory=dict)


Action = Annotated[
    PauseCampaignAction
    | IncreaseBudgetAction
    | DecreaseBudgetAction
    | EnableBackupCreativeAction
    | SendAlertAction,
    Field(discriminator="type"),
]


def new_rule_id() -> str:
    return f"rule_{uuid.uuid4().hex[:12]}"


class Rule(CamelModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_rule_id, min_length=1)
    name: str = Field(min_length=1)
    type: RuleType
    enabled: bool = True
    conditions: list[Condition] = Field(min_length=1)
    actions: list[Action] = Field(min_length=1)
    last_triggered: datetime | None = None
    trigger_count: int = Field(default=0, ge=0)


class RuleUpdate(CamelModel):
    """Partial rule; only the fields that were set are merged."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    name: str | None = None
    type: RuleType | None = None
    enabled: bool | None = None
    conditions: list[Condition] | None = None
    actions: list[Action] | None = None
    last_triggered: datetime | None = None
    trigger_count: int | None = None


class AutomationHistoryEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    rule_id: str
    campaign_id: str
    action: str
    timestamp: datetime = Field(default_factory=_now)
    success: bool
    details: dict[str, Any] = Field(default_factory=dict)


# ── Advisory output ──

AnomalyType = Literal["spend_spike", "ctr_drop", "conversion_anomaly", "audience_shift"]
Severity = Literal["critical", "warning", "info"]
Level = Literal["high", "medium", "low"]


class AnomalyDetection(CamelModel):
    id: str
    type: AnomalyType
    severity: Severity
    metric: str
    value: float
    expected: float
    deviation_pct: float
    timestamp: datetime = Field(default_factory=_now)
    campaign_id: str
    description: str
    recommendation: str


class AIInsight(CamelModel):
    type: Literal["performance", "budget", "creative", "audience", "optimization"]
    priority: Level
    title: str
    description: str
    recommendation: str
    confidence: float = Field(ge=0.0, le=1.0)
    impact: Level
    data: dict[str, Any] = Field(default_factory=dict)


class ExpectedImpact(CamelModel):
    impressions: int
    clicks: int
    cost: float


class PredictiveBidding(CamelModel):
    campaign_id: str
    current_bid: float
    bid: float
    confidence: float
    reasoning: str
    expected_impact: ExpectedImpact


class PerformanceForecast(CamelModel):
    campaign_id: str
    days: int
    predicted_ctr: float = Field(alias="predictedCTR")
    predicted_spend: float
    predicted_conversions: int
    confidence: float
    factors: list[str] = Field(default_factory=list)


class CycleReport(CamelModel):
    started_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None
    campaigns: int = 0
    rules_evaluated: int = 0
    fired_pairs: int = 0
    actions_succeeded: int = 0
    actions_failed: int = 0
    error: str | None = None


# ── API Request/Response Schemas ──


class CampaignsRequest(CamelModel):
    """Advisory requests; when `campaigns` is omitted the live snapshot is used."""

    campaigns: list[CampaignSnapshot] | None = None


class ForecastRequest(CamelModel):
    campaign: CampaignSnapshot
    days: int = Field(default=7, ge=1, le=365)


class EnabledRequest(BaseModel):
    enabled: bool


class SchedulerStatus(CamelModel):
    state: Literal["running", "stopped"]
    cycle_in_progress: bool
    interval_seconds: float
    cycles_completed: int
    last_report: CycleReport | None = None


class HealthResponse(BaseModel):
    status: str
    components: dict[str, str] = Field(default_factory=dict)
    version: str = "1.0.0"
