"""Interval scheduler for sweep tasks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from itumy.services.sweeper.base import SweepResult, SweepTask

if TYPE_CHECKING:
    from itumy.config import SweeperConfig

logger = structlog.get_logger()


class SweepScheduler:
    """Runs sweep tasks in order, once per ``interval_seconds``.

    The first cycle starts one interval after ``start()``. A task that raises
    is recorded as a failed ``SweepResult``; the remaining tasks still run and
    the loop keeps its schedule. Manual runs (``run_once``) and the loop share
    one lock, so cycles never overlap.
    """

    def __init__(
        self,
        tasks: list[SweepTask],
        config: "SweeperConfig",
    ) -> None:
        self._tasks = tasks
        self._config = config
        self._log = logger.bind(service="sweep_scheduler")

        self._running = False
        self._task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the background loop is active."""
        return self._running

    @property
    def is_sweeping(self) -> bool:
        """Whether a cycle holds the lock right now."""
        return self._run_lock.locked()

    async def run_once(self) -> list[SweepResult]:
        """Run one cycle now, waiting for an in-flight cycle to finish first."""
        async with self._run_lock:
            return await self._run_cycle()

    @asynccontextmanager
    async def _cycle_tasks(self) -> AsyncIterator[list[SweepTask]]:
        """Tasks for one cycle. Subclasses may build them per cycle."""
        yield self._tasks

    async def _run_cycle(self) -> list[SweepResult]:
        self._log.info("sweeper.cycle.start")

        async with self._cycle_tasks() as tasks:
            results = [await self._run_task(task) for task in tasks]

        self._log.info(
            "sweeper.cycle.complete",
            total_updated=sum(r.updated_count for r in results),
            total_errors=sum(len(r.errors) for r in results),
        )
        return results

    async def _run_task(self, task: SweepTask) -> SweepResult:
        try:
            result = await task.run()
        except Exception as e:
            self._log.exception("sweeper.task.failed", task=task.name, error=str(e))
            failed = SweepResult(task_name=task.name)
            failed.add_error(f"Task failed: {e}")
            return failed

        result.task_name = task.name
        self._log.info(
            "sweeper.task.complete",
            task=task.name,
            updated=result.updated_count,
            errors=len(result.errors),
        )
        return result

    async def start(self) -> None:
        """Start the background loop. A second call is ignored."""
        if self._running:
            self._log.warning("sweeper.scheduler.already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._background_loop())
        self._log.info(
            "sweeper.scheduler.started",
            interval_seconds=self._config.interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel the background loop and wait for it. No-op if not started."""
        if not self._running:
            return

        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._log.info("sweeper.scheduler.stopped")

    async def _background_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.interval_seconds)
            except asyncio.CancelledError:
                break

            try:
                await self.run_once()
            except Exception as e:
                self._log.exception("sweeper.scheduler.cycle_error", error=str(e))
