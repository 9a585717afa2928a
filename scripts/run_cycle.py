#!/usr/bin/env python3
"""
One-shot automation run against a campaign snapshot file.
Usage: python scripts/run_cycle.py --file data/campaigns.json [--reallocate] [--insights]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from adpilot.adapters.memory import InMemoryAdPlatform
from adpilot.engine.automation import AutomationEngine
from adpilot.logging import setup_logging


async def run(filepath: str, reallocate: bool, insights: bool, log_level: str | None) -> None:
    setup_logging(level=log_level)
    platform = InMemoryAdPlatform.from_file(filepath)
    engine = AutomationEngine(platform=platform)
    engine.load_default_rules()

    report = await engine.run_cycle()
    print(json.dumps(report.model_dump(mode="json", by_alias=True), indent=2))

    if reallocate:
        await engine.reallocate_budget()

    for entry in reversed(engine.get_history()):
        status = "ok  " if entry.success else "FAIL"
        print(f"{status} {entry.rule_id:<28} {entry.campaign_id:<16} {entry.action}")

    if insights:
        campaigns = await engine.snapshot()
        for insight in engine.generate_insights(campaigns):
            print(f"[{insight.priority:>6}] {insight.title}: {insight.description}")
        for anomaly in engine.detect_anomalies(campaigns):
            print(f"<{anomaly.severity:>8}> {anomaly.campaign_id} {anomaly.type}: {anomaly.description}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one automation cycle")
    parser.add_argument("--file", required=True, help="JSON array of campaign snapshots")
    parser.add_argument("--reallocate", action="store_true", help="Apply budget reallocation")
    parser.add_argument("--insights", action="store_true", help="Print insights and anomalies")
    parser.add_argument("--log-level", help="Override ADPILOT_LOG_LEVEL for this run")
    args = parser.parse_args()
    asyncio.run(run(args.file, args.reallocate, args.insights, args.log_level))
