"""Error taxonomy shared by the engine and the API layer."""

from __future__ import annotations

from typing import Any


class AdPilotError(Exception):
    """Base class for engine errors."""


class RuleValidationError(AdPilotError):
    """A rule, condition or action was rejected at add/update time."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class RuleNotFoundError(AdPilotError):
    def __init__(self, rule_id: str):
        super().__init__(f"Rule {rule_id} not found")
        self.rule_id = rule_id


class ExecutionError(AdPilotError):
    """An action failed against the ad platform. Recorded in history, never raised out of a cycle."""

    def __init__(self, action: str, campaign_id: str, message: str):
        super().__init__(message)
        self.action = action
        self.campaign_id = campaign_id
