"""OutOfDateKeySweep - flag API keys that have not been used for too long."""

from __future__ import annotations

from datetime import timedelta

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from itumy.models.api_key import ApiKey
from itumy.services.sweeper.base import SweepResult, SweepTask
from itumy.utils.datetime import Clock, utcnow

logger = structlog.get_logger()


class OutOfDateKeySweep(SweepTask):
    """Sweep task marking idle keys as out of date.

    Trigger condition:
        last_used_at IS NOT NULL
        AND out_of_date = FALSE
        AND now - last_used_at >= inactivity_days

    Action:
        One bulk UPDATE setting out_of_date = TRUE. Keys never used are
        left alone.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        inactivity_days: int = 30,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db_session
        self._inactivity_days = inactivity_days
        self._clock = clock
        self._log = logger.bind(sweep_task="out_of_date_keys")

    @property
    def name(self) -> str:
        return "out_of_date_keys"

    async def run(self) -> SweepResult:
        """Execute the out-of-date sweep."""
        result = SweepResult(task_name=self.name)
        cutoff = self._clock() - timedelta(days=self._inactivity_days)

        db_result = await self._db.execute(
            update(ApiKey)
            .where(
                ApiKey.last_used_at.is_not(None),
                ApiKey.out_of_date == False,  # noqa: E712
                ApiKey.last_used_at <= cutoff,
            )
            .values(out_of_date=True)
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()

        result.updated_count = db_result.rowcount or 0
        self._log.info(
            "sweeper.out_of_date_keys.flagged",
            count=result.updated_count,
            cutoff=cutoff.isoformat(),
        )
        return result
