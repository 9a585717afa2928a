"""Rules installed on a fresh engine when `load_default_rules` is set."""

from __future__ import annotations

from typing import Any

DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "id": "auto_pause_low_ctr",
        "name": "Auto-pause low CTR campaigns",
        "type": "pause",
        "enabled": True,
        "conditions": [{"metric": "ctr", "operator": "lt", "value": 1.0, "timeframeHours": 24}],
        "actions": [{"type": "pause_campaign", "parameters": {}}],
    },
    {
        "id": "budget_reallocation",
        "name": "Reallocate budget to high performers",
        "type": "budget",
        "enabled": True,
        "conditions": [
            {"metric": "ctr", "operator": "gt", "value": 4.0, "timeframeHours": 24},
            {"metric": "budget_remaining", "operator": "gt", "value": 1000, "timeframeHours": 1},
        ],
        "actions": [{"type": "increase_budget", "parameters": {"percentage": 20}}],
    },
    {
        "id": "creative_rotation",
        "name": "Rotate creative when CTR declines",
        "type": "creative",
        # Off until an operator opts in
        "enabled": False,
        "conditions": [
            {"metric": "ctr_decline", "operator": "gt", "value": 25, "timeframeHours": 168}
        ],
        "actions": [{"type": "enable_backup_creative", "parameters": {}}],
    },
]
