"""
AutomationScheduler — periodic control loop with two states, stopped and running.

Cancellation is cooperative: `stop()` wakes the waiting loop, lets an
executing cycle finish, and prevents any follow-up cycle. A single-slot guard
keeps cycles from overlapping, whether triggered by the timer or manually.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Literal

import structlog

from ..adapters.metrics import scheduler_running
from ..config import settings
from ..models import CycleReport

logger = structlog.get_logger()

CycleFn = Callable[[], Awaitable[CycleReport]]


class AutomationScheduler:
    def __init__(
        self,
        run_cycle: CycleFn,
        interval_seconds: float | None = None,
        run_on_start: bool | None = None,
    ):
        self._run_cycle = run_cycle
        self.interval = settings.cycle_interval_seconds if interval_seconds is None else interval_seconds
        self.run_on_start = settings.run_on_start if run_on_start is None else run_on_start
        self._running = False
        self._stopped = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        # Unfinished loop tasks, including earlier runs still finishing a cycle
        self._tasks: set[asyncio.Task[None]] = set()
        self.cycles_completed = 0
        self.last_report: CycleReport | None = None

    @property
    def state(self) -> Literal["running", "stopped"]:
        return "running" if self._running else "stopped"

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def start(self) -> None:
        """Stopped -> Running. No-op when already running."""
        if self._running:
            return
        self._running = True
        self._stopped = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stopped), name="adpilot-scheduler")
        self._tasks.add(self._task)
        self._task.add_done_callback(self._tasks.discard)
        scheduler_running.set(1)
        logger.info("automation_started", interval_seconds=self.interval)

    def stop(self) -> None:
        """Running -> Stopped. An executing cycle completes; nothing further is scheduled."""
        if not self._running:
            return
        self._running = False
        self._stopped.set()
        scheduler_running.set(0)
        logger.info("automation_stopped", cycle_in_progress=self.cycle_in_progress)

    async def shutdown(self) -> None:
        """Stop and wait for every loop task (and any executing cycle) to finish."""
        self.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks)
        self._task = None

    async def tick(self) -> CycleReport | None:
        """Run one cycle now unless one is already in progress."""
        if self._cycle_lock.locked():
            logger.warning("cycle_skipped_overlap")
            return None
        cycle = self.cycles_completed + 1
        async with self._cycle_lock:
            with structlog.contextvars.bound_contextvars(cycle=cycle):
                report = await self._run_cycle()
            self.cycles_completed += 1
            self.last_report = report
            return report

    async def _sleep(self, stopped: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stopped.wait(), timeout=self.interval)
        except TimeoutError:
            pass

    async def _loop(self, stopped: asyncio.Event) -> None:
        # `stopped` belongs to this run only, so a restart never revives an old loop.
        if not self.run_on_start:
            await self._sleep(stopped)
        while not stopped.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("automation_cycle_error")
            if stopped.is_set():
                break
            await self._sleep(stopped)
