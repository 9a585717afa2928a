"""
Rule storage and evaluation.

RuleStore owns every rule and is the only place rules are mutated. Callers
(scheduler, API) always receive deep copies, so a cycle evaluates the rule
set as it was when the cycle started.
"""
from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError

from ..errors import RuleNotFoundError, RuleValidationError
from ..models import CampaignSnapshot, Rule, RuleUpdate
from .conditions import ConditionEvaluator

logger = structlog.get_logger()


def _validation_error(exc: ValidationError, message: str) -> RuleValidationError:
    errors = [
        {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()
    ]
    return RuleValidationError(message, errors)


class RuleStore:
    """In-memory, lock-guarded rule collection."""

    def __init__(self):
        self._rules: dict[str, Rule] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._rules)

    def add(self, rule: Rule | Mapping[str, Any]) -> str:
        """Validate and store a rule; returns its id."""
        try:
            if isinstance(rule, Rule):
                rule = Rule.model_validate(rule.model_dump(by_alias=True))
            else:
                rule = Rule.model_validate(rule)
        except ValidationError as exc:
            raise _validation_error(exc, "Invalid rule") from None

        with self._lock:
            if rule.id in self._rules:
                raise RuleValidationError(f"Rule id {rule.id} already exists")
            self._rules[rule.id] = rule
        logger.info("rule_added", rule_id=rule.id, rule_type=rule.type, enabled=rule.enabled)
        return rule.id

    def get(self, rule_id: str) -> Rule:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise RuleNotFoundError(rule_id)
            return rule.model_copy(deep=True)

    def list(self) -> list[Rule]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._rules.values()]

    def update(self, rule_id: str, partial: RuleUpdate | Mapping[str, Any]) -> Rule:
        """Shallow-merge `partial` into the rule and re-validate the result."""
        try:
            if not isinstance(partial, RuleUpdate):
                partial = RuleUpdate.model_validate(partial)
        except ValidationError as exc:
            raise _validation_error(exc, "Invalid rule update") from None
        changes = partial.model_dump(exclude_unset=True, by_alias=True)

        if changes.get("id", rule_id) != rule_id:
            raise RuleValidationError("Rule id cannot be changed")

        with self._lock:
            current = self._rules.get(rule_id)
            if current is None:
                raise RuleNotFoundError(rule_id)
            merged = {**current.model_dump(by_alias=True), **changes}
            try:
                updated = Rule.model_validate(merged)
            except ValidationError as exc:
                raise _validation_error(exc, "Invalid rule update") from None
            self._rules[rule_id] = updated

        logger.info("rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated.model_copy(deep=True)

    def remove(self, rule_id: str) -> None:
        with self._lock:
            if self._rules.pop(rule_id, None) is None:
                raise RuleNotFoundError(rule_id)
        logger.info("rule_deleted", rule_id=rule_id)

    def set_enabled(self, rule_id: str, enabled: bool) -> Rule:
        return self.update(rule_id, {"enabled": enabled})

    def record_trigger(self, rule_id: str, when: datetime | None = None) -> None:
        """Count one successful action for the rule. Rules deleted mid-cycle are ignored."""
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                logger.debug("trigger_for_deleted_rule", rule_id=rule_id)
                return
            self._rules[rule_id] = rule.model_copy(
                update={
                    "trigger_count": rule.trigger_count + 1,
                    "last_triggered": when or datetime.now(UTC),
                }
            )


class RuleEvaluator:
    """Side-effect free: decides which (rule, campaign) pairs fire this cycle."""

    def __init__(self, conditions: ConditionEvaluator | None = None):
        self.conditions = conditions or ConditionEvaluator()

    def matches(self, rule: Rule, campaign: CampaignSnapshot) -> bool:
        # all() short-circuits on the first false condition
        return bool(rule.conditions) and all(
            self.conditions.evaluate(c, campaign) for c in rule.conditions
        )

    def fired(
        self, rules: Iterable[Rule], campaigns: list[CampaignSnapshot]
    ) -> list[tuple[Rule, CampaignSnapshot]]:
        pairs: list[tuple[Rule, CampaignSnapshot]] = []
        for rule in rules:
            if not rule.enabled:
                continue
            for campaign in campaigns:
                if self.matches(rule, campaign):
                    pairs.append((rule, campaign))
        return pairs
