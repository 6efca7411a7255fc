"""Sweeper lifecycle management for FastAPI lifespan integration."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from itumy.config import Settings
from itumy.db.session import get_async_session
from itumy.services.sweeper.base import SweepResult, SweepTask
from itumy.services.sweeper.scheduler import SweepScheduler
from itumy.services.sweeper.tasks import ExpiredSessionSweep, OutOfDateKeySweep
from itumy.utils.datetime import Clock, utcnow

logger = structlog.get_logger()


class SessionPerCycleSweepScheduler(SweepScheduler):
    """Sweep scheduler that opens a fresh db session for each cycle.

    The tasks of one cycle share that session. A failed task leaves it rolled
    back, so the next task starts from a clean transaction.
    """

    def __init__(self, settings: Settings, clock: Clock = utcnow) -> None:
        # Tasks are built per cycle
        super().__init__(tasks=[], config=settings.sweeper)
        self._settings = settings
        self._clock = clock
        self._db_session: AsyncSession | None = None

    @asynccontextmanager
    async def _cycle_tasks(self) -> AsyncIterator[list[SweepTask]]:
        sweeper_config = self._settings.sweeper

        async with get_async_session() as db_session:
            self._db_session = db_session
            tasks: list[SweepTask] = []

            if sweeper_config.out_of_date_keys.enabled:
                tasks.append(
                    OutOfDateKeySweep(
                        db_session,
                        inactivity_days=self._settings.api_key.inactivity_days,
                        clock=self._clock,
                    )
                )

            if sweeper_config.expired_sessions.enabled:
                tasks.append(ExpiredSessionSweep(db_session, clock=self._clock))

            try:
                yield tasks
            finally:
                self._db_session = None

    async def _run_task(self, task: SweepTask) -> SweepResult:
        result = await super()._run_task(task)
        if not result.success and self._db_session is not None:
            await self._db_session.rollback()
            self._log.info("sweeper.task.rolled_back", task=task.name)
        return result


async def init_sweep_scheduler(settings: Settings) -> SweepScheduler:
    """Create the sweep scheduler and start it if enabled.

    Called during FastAPI lifespan startup, after database initialization.
    The scheduler is always created so the admin API can trigger a sweep
    manually; the background loop only runs when sweeper.enabled is true.
    """
    sweeper_config = settings.sweeper

    logger.info(
        "sweeper.init",
        enabled=sweeper_config.enabled,
        interval_seconds=sweeper_config.interval_seconds,
        run_on_startup=sweeper_config.run_on_startup,
        tasks={
            "out_of_date_keys": sweeper_config.out_of_date_keys.enabled,
            "expired_sessions": sweeper_config.expired_sessions.enabled,
        },
    )

    scheduler = SessionPerCycleSweepScheduler(settings)

    if not sweeper_config.enabled:
        logger.info("sweeper.background_disabled", reason="sweeper.enabled=false")
        return scheduler

    if sweeper_config.run_on_startup:
        try:
            results = await scheduler.run_once()
            logger.info(
                "sweeper.run_on_startup.complete",
                updated=sum(r.updated_count for r in results),
                errors=sum(len(r.errors) for r in results),
            )
        except Exception as e:
            # Startup must not fail because of a sweep
            logger.exception("sweeper.run_on_startup.failed", error=str(e))

    await scheduler.start()
    return scheduler


async def shutdown_sweep_scheduler(scheduler: SweepScheduler | None) -> None:
    """Stop the sweep scheduler. Called during FastAPI lifespan shutdown."""
    if scheduler is not None:
        await scheduler.stop()
