"""ExpiredSessionSweep - remove admin sessions past their fixed lifetime."""

from __future__ import annotations

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from itumy.models.admin import AdminSession
from itumy.services.sweeper.base import SweepResult, SweepTask
from itumy.utils.datetime import Clock, utcnow

logger = structlog.get_logger()


class ExpiredSessionSweep(SweepTask):
    """Delete admin_sessions rows with expires_at <= now.

    Expired sessions are already rejected on lookup; this only keeps the
    table from growing.
    """

    def __init__(self, db_session: AsyncSession, clock: Clock = utcnow) -> None:
        self._db = db_session
        self._clock = clock
        self._log = logger.bind(sweep_task="expired_sessions")

    @property
    def name(self) -> str:
        return "expired_sessions"

    async def run(self) -> SweepResult:
        result = SweepResult(task_name=self.name)

        db_result = await self._db.execute(
            delete(AdminSession).where(AdminSession.expires_at <= self._clock())
        )
        await self._db.commit()

        result.updated_count = db_result.rowcount or 0
        self._log.info("sweeper.expired_sessions.deleted", count=result.updated_count)
        return result
