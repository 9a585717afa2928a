"""Automation path tests — cycles, action execution, history and the scheduler."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
import structlog

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from adpilot.engine.automation import AutomationEngine
from adpilot.engine.scheduler import AutomationScheduler
from adpilot.errors import ExecutionError
from adpilot.models import CycleReport, Rule
from conftest import FakeAdPlatform, build_campaign, pause_rule


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def alert_rule(**overrides):
    return pause_rule(
        id="alert_low_ctr",
        name="Alert on low CTR",
        actions=[{"type": "send_alert", "parameters": {"channel": "ops"}}],
        **overrides,
    )


# ── Cycle Tests ──


class TestCycle:
    @pytest.mark.anyio
    async def test_low_ctr_campaign_is_paused(self, engine, platform):
        platform.replace([build_campaign("c1", ctr=0.5), build_campaign("c2", ctr=3.0)])
        engine.add_rule(pause_rule())

        report = await engine.run_cycle()

        assert report.campaigns == 2
        assert report.fired_pairs == 1
        assert report.actions_succeeded == 1
        assert platform.get("c1").status == "paused"
        assert platform.get("c2").status == "active"

        [entry] = engine.get_history()
        assert (entry.rule_id, entry.campaign_id, entry.action, entry.success) == (
            "pause_low_ctr",
            "c1",
            "pause_campaign",
            True,
        )
        rule = engine.get_rule("pause_low_ctr")
        assert rule.trigger_count == 1
        assert rule.last_triggered is not None

    @pytest.mark.anyio
    async def test_trigger_count_counts_successful_actions(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5)])
        engine.add_rule(
            pause_rule(
                actions=[
                    {"type": "send_alert", "parameters": {}},
                    {"type": "decrease_budget", "parameters": {"percentage": 10}},
                    {"type": "enable_backup_creative", "parameters": {}},
                ]
            )
        )
        await engine.run_cycle()
        assert engine.get_rule("pause_low_ctr").trigger_count == 3
        assert len(engine.get_history()) == 3

    @pytest.mark.anyio
    async def test_repeated_cycles_accumulate(self, engine, platform, alert_sink):
        platform.replace([build_campaign(ctr=0.5)])
        engine.add_rule(alert_rule())
        for _ in range(4):
            await engine.run_cycle()
        assert engine.get_rule("alert_low_ctr").trigger_count == 4
        assert len(alert_sink.sent) == 4
        assert engine.status().cycles_completed == 4

    @pytest.mark.anyio
    async def test_failed_action_does_not_block_the_rest(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5, total=10000)])
        platform.fail_on.add("pause_campaign")
        engine.add_rule(
            pause_rule(
                actions=[
                    {"type": "send_alert", "parameters": {}},
                    {"type": "pause_campaign", "parameters": {}},
                    {"type": "decrease_budget", "parameters": {"percentage": 25}},
                ]
            )
        )

        report = await engine.run_cycle()

        entries = list(reversed(engine.get_history()))
        assert [e.action for e in entries] == ["send_alert", "pause_campaign", "decrease_budget"]
        assert [e.success for e in entries] == [True, False, True]
        assert "platform unavailable" in entries[1].details["error"]
        assert (report.actions_succeeded, report.actions_failed) == (2, 1)
        assert engine.get_rule("pause_low_ctr").trigger_count == 2
        assert platform.get("c1").budget.total == 7500

    @pytest.mark.anyio
    async def test_disabled_rule_never_fires(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5)])
        engine.add_rule(pause_rule(enabled=False))
        report = await engine.run_cycle()
        assert report.fired_pairs == 0
        assert engine.get_history() == []
        assert platform.get("c1").status == "active"

    @pytest.mark.anyio
    async def test_increase_budget(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5, total=10000, spent=5000)])
        engine.add_rule(
            pause_rule(actions=[{"type": "increase_budget", "parameters": {"percentage": 20}}])
        )
        await engine.run_cycle()
        budget = platform.get("c1").budget
        assert budget.total == 12000
        assert budget.remaining == 7000
        assert platform.calls == [("update_campaign_budget", "c1", 12000.0)]

    @pytest.mark.anyio
    async def test_send_alert_reaches_sink(self, engine, platform, alert_sink):
        platform.replace([build_campaign(ctr=0.5, name="Spring Launch")])
        engine.add_rule(alert_rule())
        await engine.run_cycle()
        [alert] = alert_sink.sent
        assert alert["title"] == "Automation Alert: Alert on low CTR"
        assert alert["campaign"] == "Spring Launch"
        assert alert["campaignId"] == "c1"
        assert alert["details"] == {"channel": "ops"}
        assert platform.calls == []

    @pytest.mark.anyio
    async def test_action_timeout_is_a_failure(self, alert_sink):
        platform = FakeAdPlatform([build_campaign(ctr=0.5)])
        platform.delay = 0.5
        engine = AutomationEngine(platform, alert_sink, action_timeout=0.05)
        engine.add_rule(pause_rule())

        report = await engine.run_cycle()

        [entry] = engine.get_history()
        assert entry.success is False
        assert "timed out" in entry.details["error"]
        assert report.actions_failed == 1
        assert engine.get_rule("pause_low_ctr").trigger_count == 0

    @pytest.mark.anyio
    async def test_source_error_yields_empty_report(self, engine, platform):
        platform.list_error = ConnectionError("metrics API down")
        engine.add_rule(pause_rule())
        report = await engine.run_cycle()
        assert report.error == "metrics API down"
        assert report.fired_pairs == 0
        assert engine.get_history() == []
        assert engine.status().last_report.error == "metrics API down"

    @pytest.mark.anyio
    async def test_rule_deleted_mid_cycle(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5)])
        platform.delay = 0.1
        engine.add_rule(pause_rule())

        task = asyncio.create_task(engine.run_cycle())
        await wait_until(lambda: platform.calls)
        engine.delete_rule("pause_low_ctr")
        report = await task

        assert report.actions_succeeded == 1
        assert engine.get_rules() == []
        assert engine.get_history()[0].success is True

    @pytest.mark.anyio
    async def test_action_concurrency_is_bounded(self, alert_sink):
        platform = FakeAdPlatform([build_campaign(f"c{i}", ctr=0.5) for i in range(6)])
        platform.delay = 0.05
        engine = AutomationEngine(platform, alert_sink, action_concurrency=2)
        engine.add_rule(pause_rule())

        report = await engine.run_cycle()

        assert report.actions_succeeded == 6
        assert platform.peak_in_flight == 2
        assert platform.in_flight == 0

    @pytest.mark.anyio
    async def test_unknown_action_type_raises(self, engine):
        rule = Rule.model_validate(pause_rule())
        with pytest.raises(ExecutionError):
            await engine.executor.execute(object(), build_campaign(), rule)


# ── Direct Optimization Tests ──


class TestOptimizations:
    @pytest.mark.anyio
    async def test_reallocate_budget(self, engine, platform):
        platform.replace(
            [
                build_campaign("top", ctr=4.2, total=10000),
                build_campaign("weak", ctr=2.2, total=5000, spent=1000, spend_7d=700),
            ]
        )
        entries = await engine.reallocate_budget()

        assert [e.campaign_id for e in entries] == ["weak", "top"]
        assert all(e.rule_id == "budget_reallocation_insight" for e in entries)
        assert all(e.success for e in entries)
        assert platform.get("weak").budget.total == 4950
        assert platform.get("top").budget.total == 10050

    @pytest.mark.anyio
    async def test_reallocate_without_opportunity(self, engine, platform):
        platform.replace([build_campaign("a"), build_campaign("b")])
        assert await engine.reallocate_budget() == []
        assert platform.calls == []

    @pytest.mark.anyio
    async def test_performance_optimization_in_cycle(self, alert_sink):
        platform = FakeAdPlatform(
            [
                build_campaign("falling", ctr=2.0, ctr_7d=1.0),
                build_campaign("rising", ctr=4.0, ctr_7d=4.4, total=10000, spent=5000),
                build_campaign("steady"),
            ]
        )
        engine = AutomationEngine(platform, alert_sink, performance_optimization=True)

        report = await engine.run_cycle()

        assert report.actions_succeeded == 2
        assert platform.get("falling").status == "paused"
        assert platform.get("rising").budget.total == 12000
        assert platform.get("steady").status == "active"
        assert {e.rule_id for e in engine.get_history()} == {"performance_optimization"}

    @pytest.mark.anyio
    async def test_resume_unknown_campaign(self, engine):
        with pytest.raises(LookupError):
            await engine.resume_campaign("missing")


# ── Scheduler Tests ──


class TestScheduler:
    @pytest.mark.anyio
    async def test_start_is_idempotent(self, engine, platform):
        platform.replace([build_campaign()])
        engine.start()
        task = engine.scheduler._task
        engine.start()
        assert engine.scheduler._task is task
        assert engine.status().state == "running"

        await wait_until(lambda: engine.scheduler.cycles_completed >= 2)
        await engine.aclose()
        assert engine.status().state == "stopped"

    @pytest.mark.anyio
    async def test_stop_when_stopped_is_noop(self, engine):
        engine.stop()
        assert engine.status().state == "stopped"

    @pytest.mark.anyio
    async def test_manual_cycle_skipped_while_one_runs(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5)])
        platform.delay = 0.2
        engine.add_rule(pause_rule())

        first = asyncio.create_task(engine.run_cycle())
        await wait_until(lambda: platform.calls)
        assert engine.status().cycle_in_progress is True
        assert await engine.run_cycle() is None

        report = await first
        assert report.actions_succeeded == 1
        assert engine.status().cycles_completed == 1
        assert len(engine.get_history()) == 1

    @pytest.mark.anyio
    async def test_stop_lets_inflight_cycle_finish(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5)])
        platform.delay = 0.2
        engine.add_rule(alert_rule())
        engine.add_rule(pause_rule())

        engine.start()
        await wait_until(lambda: engine.status().cycle_in_progress)
        engine.stop()
        assert engine.status().state == "stopped"

        await engine.scheduler.shutdown()
        assert engine.scheduler.cycles_completed == 1
        assert [e.success for e in engine.get_history()] == [True, True]

        await asyncio.sleep(0.05)
        assert engine.scheduler.cycles_completed == 1

    @pytest.mark.anyio
    async def test_restart_after_stop(self, engine, platform):
        platform.replace([build_campaign()])
        engine.start()
        await wait_until(lambda: engine.scheduler.cycles_completed >= 1)
        await engine.scheduler.shutdown()
        done = engine.scheduler.cycles_completed

        engine.start()
        await wait_until(lambda: engine.scheduler.cycles_completed > done)
        await engine.aclose()

    @pytest.mark.anyio
    async def test_loop_survives_source_errors(self, engine, platform):
        platform.list_error = ConnectionError("down")
        engine.start()
        await wait_until(lambda: engine.scheduler.cycles_completed >= 2)
        assert engine.status().state == "running"
        assert engine.status().last_report.error == "down"
        await engine.aclose()

    @pytest.mark.anyio
    async def test_shutdown_waits_for_loop_from_earlier_run(self, engine, platform):
        platform.replace([build_campaign(ctr=0.5)])
        platform.delay = 0.2
        engine.add_rule(pause_rule())

        engine.start()
        await wait_until(lambda: engine.status().cycle_in_progress)
        first_loop = engine.scheduler._task
        engine.stop()
        engine.start()
        assert engine.scheduler._task is not first_loop

        await engine.scheduler.shutdown()
        assert first_loop.done()
        assert engine.status().cycle_in_progress is False
        assert engine.get_history()[0].success is True

    @pytest.mark.anyio
    async def test_cycle_number_is_bound_to_log_context(self):
        seen = []

        async def cycle():
            seen.append(structlog.contextvars.get_contextvars().get("cycle"))
            return CycleReport()

        scheduler = AutomationScheduler(cycle, interval_seconds=60, run_on_start=False)
        await scheduler.tick()
        await scheduler.tick()
        assert seen == [1, 2]
        assert "cycle" not in structlog.contextvars.get_contextvars()
