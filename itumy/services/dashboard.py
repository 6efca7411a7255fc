"""Admin dashboard queries over users and their keys."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from itumy.errors import NotFoundError
from itumy.models.api_key import ApiKey
from itumy.models.user import User
from itumy.utils.datetime import Clock, days_between, utcnow

logger = structlog.get_logger()

STATUS_NEVER_USED = "Never Used"
STATUS_INACTIVE = "Inactive"
STATUS_ACTIVE = "Active"


def derive_status(last_used_at: datetime | None, now: datetime, inactivity_days: int) -> str:
    """Presentation status of a key at ``now``.

    Independent of the stored ``out_of_date`` flag, which only changes when
    the sweeper runs.
    """
    if last_used_at is None:
        return STATUS_NEVER_USED
    if days_between(last_used_at, now) >= inactivity_days:
        return STATUS_INACTIVE
    return STATUS_ACTIVE


@dataclass
class UserKeyRow:
    """One dashboard row: a user joined with its key (if any)."""

    user_id: int
    first_name: str
    last_name: str
    email: str
    api_key_id: int | None
    api_key: str | None
    is_active: bool | None
    out_of_date: bool | None
    usage_count: int | None
    created_at: datetime | None
    last_used_at: datetime | None
    status: str


class DashboardService:
    """Read and delete operations backing the admin dashboard."""

    def __init__(
        self,
        db_session: AsyncSession,
        inactivity_days: int = 30,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db_session
        self._inactivity_days = inactivity_days
        self._clock = clock
        self._log = logger.bind(service="dashboard")

    async def list_users_with_keys(self) -> list[UserKeyRow]:
        """All users with their key, newest user first."""
        result = await self._db.execute(
            select(User, ApiKey)
            .join(ApiKey, User.api_key_id == ApiKey.id, isouter=True)
            .order_by(User.id.desc())
            .execution_options(populate_existing=True)
        )
        now = self._clock()

        rows: list[UserKeyRow] = []
        for user, api_key in result.all():
            last_used_at = api_key.last_used_at if api_key else None
            rows.append(
                UserKeyRow(
                    user_id=user.id,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    api_key_id=api_key.id if api_key else None,
                    api_key=api_key.api_key if api_key else None,
                    is_active=api_key.is_active if api_key else None,
                    out_of_date=api_key.out_of_date if api_key else None,
                    usage_count=api_key.usage_count if api_key else None,
                    created_at=api_key.created_at if api_key else None,
                    last_used_at=last_used_at,
                    status=derive_status(last_used_at, now, self._inactivity_days),
                )
            )
        return rows

    async def delete_key(self, key_id: int) -> None:
        """Delete a key together with the user that owns it.

        The user rows go first to satisfy the foreign key. Both deletes
        share one transaction.

        Raises:
            NotFoundError: If no key has this id
        """
        try:
            users_result = await self._db.execute(
                delete(User).where(User.api_key_id == key_id)
            )
            keys_result = await self._db.execute(
                delete(ApiKey).where(ApiKey.id == key_id)
            )
            if keys_result.rowcount == 0:
                await self._db.rollback()
                raise NotFoundError("API key not found")
            await self._db.commit()
        except NotFoundError:
            raise
        except Exception:
            await self._db.rollback()
            raise

        self._log.info(
            "api_key.deleted",
            api_key_id=key_id,
            users_deleted=users_result.rowcount,
        )

    async def set_active(self, key_id: int, is_active: bool) -> ApiKey:
        """Enable or disable a key.

        Enabling is the explicit reactivation path, so it also clears
        ``out_of_date``.

        Raises:
            NotFoundError: If no key has this id
        """
        api_key = await self._db.get(ApiKey, key_id, populate_existing=True)
        if api_key is None:
            raise NotFoundError("API key not found")

        api_key.is_active = is_active
        if is_active:
            api_key.out_of_date = False
        await self._db.commit()
        await self._db.refresh(api_key)

        self._log.info(
            "api_key.status_changed",
            api_key_id=key_id,
            is_active=api_key.is_active,
            out_of_date=api_key.out_of_date,
        )
        return api_key
