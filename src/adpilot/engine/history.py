"""Append-only audit trail of action attempts."""

from __future__ import annotations

import threading
from typing import Any

from ..config import settings
from ..models import AutomationHistoryEntry


class HistoryLog:
    """
    Keeps every entry internally; reads are capped at `read_limit` and return
    the most recent entries, newest first.
    """

    def __init__(self, read_limit: int | None = None):
        self.read_limit = read_limit or settings.history_limit
        self._entries: list[AutomationHistoryEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: AutomationHistoryEntry) -> AutomationHistoryEntry:
        with self._lock:
            self._entries.append(entry)
        return entry

    def record(
        self,
        rule_id: str,
        campaign_id: str,
        action: str,
        success: bool,
        details: dict[str, Any] | None = None,
    ) -> AutomationHistoryEntry:
        return self.append(
            AutomationHistoryEntry(
                rule_id=rule_id,
                campaign_id=campaign_id,
                action=action,
                success=success,
                details=details or {},
            )
        )

    def recent(
        self,
        limit: int | None = None,
        rule_id: str | None = None,
        campaign_id: str | None = None,
    ) -> list[AutomationHistoryEntry]:
        cap = self.read_limit if limit is None else max(0, min(limit, self.read_limit))
        result: list[AutomationHistoryEntry] = []
        with self._lock:
            for entry in reversed(self._entries):
                if len(result) >= cap:
                    break
                if rule_id is not None and entry.rule_id != rule_id:
                    continue
                if campaign_id is not None and entry.campaign_id != campaign_id:
                    continue
                result.append(entry)
        return result
