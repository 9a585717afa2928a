"""
ActionExecutor — maps rule actions to ad-platform mutations.

Best-effort, not transactional: every action of a fired rule is attempted
independently, in array order, and each attempt leaves exactly one history
entry. Failures never propagate out of `execute_rule`.
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from ..adapters.metrics import action_duration_seconds, actions_total
from ..config import settings
from ..errors import ExecutionError
from ..interfaces import AdPlatformClient, AlertSink
from ..models import (
    AutomationHistoryEntry,
    CampaignSnapshot,
    DecreaseBudgetAction,
    EnableBackupCreativeAction,
    IncreaseBudgetAction,
    PauseCampaignAction,
    Rule,
    SendAlertAction,
)
from .history import HistoryLog
from .rules import RuleStore

logger = structlog.get_logger()


def scaled_budget(total: float, percentage: float) -> float:
    """Budget after a relative change of `percentage` percent, rounded to cents."""
    return round(total * (1 + percentage / 100), 2)


class ActionExecutor:
    def __init__(
        self,
        client: AdPlatformClient,
        alert_sink: AlertSink,
        history: HistoryLog,
        store: RuleStore,
        timeout: float | None = None,
    ):
        self.client = client
        self.alert_sink = alert_sink
        self.history = history
        self.store = store
        self.timeout = settings.action_timeout_seconds if timeout is None else timeout

    async def run_guarded(self, action: str, campaign_id: str, call: Awaitable[Any]) -> None:
        """Await one external call under the per-action timeout, normalising failures."""
        start = time.perf_counter()
        try:
            await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError:
            raise ExecutionError(
                action, campaign_id, f"{action} timed out after {self.timeout}s"
            ) from None
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(action, campaign_id, str(e) or type(e).__name__) from e
        finally:
            action_duration_seconds.labels(action=action).observe(time.perf_counter() - start)

    async def execute(self, action: Any, campaign: CampaignSnapshot, rule: Rule) -> None:
        """Run one action. Raises ExecutionError on any failure."""
        match action:
            case PauseCampaignAction():
                await self.run_guarded(action.type, campaign.id, self.client.pause_campaign(campaign.id))
                logger.info("campaign_paused", campaign=campaign.name, rule=rule.name)
            case IncreaseBudgetAction(parameters=params):
                new_budget = scaled_budget(campaign.budget.total, params.percentage)
                await self.run_guarded(
                    action.type,
                    campaign.id,
                    self.client.update_campaign_budget(campaign.id, new_budget),
                )
                logger.info(
                    "budget_increased",
                    campaign=campaign.name,
                    percentage=params.percentage,
                    new_budget=new_budget,
                )
            case DecreaseBudgetAction(parameters=params):
                new_budget = scaled_budget(campaign.budget.total, -params.percentage)
                await self.run_guarded(
                    action.type,
                    campaign.id,
                    self.client.update_campaign_budget(campaign.id, new_budget),
                )
                logger.info(
                    "budget_decreased",
                    campaign=campaign.name,
                    percentage=params.percentage,
                    new_budget=new_budget,
                )
            case EnableBackupCreativeAction():
                # Creative management lives outside the engine.
                logger.info("backup_creative_enabled", campaign=campaign.name, rule=rule.name)
            case SendAlertAction(parameters=params):
                alert = {
                    "title": f"Automation Alert: {rule.name}",
                    "message": f'Rule "{rule.name}" was triggered for campaign "{campaign.name}"',
                    "timestamp": datetime.now(UTC).isoformat(),
                    "campaign": campaign.name,
                    "campaignId": campaign.id,
                    "ruleId": rule.id,
                    "details": dict(params),
                }
                await self.run_guarded(action.type, campaign.id, self.alert_sink.send(alert))
            case _:
                action_type = getattr(action, "type", type(action).__name__)
                raise ExecutionError(
                    str(action_type), campaign.id, f"Unknown action type: {action_type}"
                )

    async def attempt(
        self,
        rule_id: str,
        campaign_id: str,
        action_name: str,
        run: Callable[[], Awaitable[None]],
        details: dict[str, Any] | None = None,
    ) -> AutomationHistoryEntry:
        """Run `run` and record the outcome in history, whatever it is."""
        try:
            await run()
        except ExecutionError as e:
            actions_total.labels(action=action_name, status="failed").inc()
            logger.error(
                "action_failed",
                rule_id=rule_id,
                campaign_id=campaign_id,
                action=action_name,
                error=str(e),
            )
            return self.history.record(
                rule_id, campaign_id, action_name, success=False, details={"error": str(e)}
            )
        actions_total.labels(action=action_name, status="success").inc()
        return self.history.record(
            rule_id, campaign_id, action_name, success=True, details=details or {}
        )

    async def execute_rule(
        self, rule: Rule, campaign: CampaignSnapshot
    ) -> list[AutomationHistoryEntry]:
        logger.info("rule_executing", rule_id=rule.id, rule=rule.name, campaign_id=campaign.id)
        entries: list[AutomationHistoryEntry] = []
        for action in rule.actions:
            entry = await self.attempt(
                rule.id,
                campaign.id,
                action.type,
                lambda action=action: self.execute(action, campaign, rule),
                details=_parameters(action),
            )
            if entry.success:
                # One increment per successful action, not per rule.
                self.store.record_trigger(rule.id, entry.timestamp)
            entries.append(entry)
        return entries


def _parameters(action: Any) -> dict[str, Any]:
    params = getattr(action, "parameters", None) or {}
    if isinstance(params, dict):
        return dict(params)
    return params.model_dump()
