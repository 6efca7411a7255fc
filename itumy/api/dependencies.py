"""FastAPI dependencies for the key service API.

Provides dependency injection for:
- Settings and clock
- Database sessions
- Services (ApiKey, Dashboard, AdminAuth)
- Admin session authentication
- The sweep scheduler
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from itumy.config import Settings, get_settings
from itumy.db.session import get_session_dependency
from itumy.errors import AuthError, InternalError, ServiceUnavailableError
from itumy.services.admin_auth import AdminAuthService, AdminIdentity, unsign_token
from itumy.services.api_key import ApiKeyService
from itumy.services.dashboard import DashboardService
from itumy.services.sweeper.scheduler import SweepScheduler
from itumy.utils.datetime import Clock, utcnow

logger = structlog.get_logger()


def get_clock() -> Clock:
    """Time source for services. Overridden in tests."""
    return utcnow


SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_session_dependency)]
ClockDep = Annotated[Clock, Depends(get_clock)]


async def get_api_key_service(
    session: SessionDep,
    settings: SettingsDep,
    clock: ClockDep,
) -> ApiKeyService:
    """Get ApiKeyService with injected dependencies."""
    return ApiKeyService(db_session=session, config=settings.api_key, clock=clock)


async def get_dashboard_service(
    session: SessionDep,
    settings: SettingsDep,
    clock: ClockDep,
) -> DashboardService:
    """Get DashboardService with injected dependencies."""
    return DashboardService(
        db_session=session,
        inactivity_days=settings.api_key.inactivity_days,
        clock=clock,
    )


async def get_admin_auth_service(
    session: SessionDep,
    settings: SettingsDep,
    clock: ClockDep,
) -> AdminAuthService:
    """Get AdminAuthService with injected dependencies."""
    return AdminAuthService(db_session=session, config=settings.security, clock=clock)


ApiKeyServiceDep = Annotated[ApiKeyService, Depends(get_api_key_service)]
DashboardServiceDep = Annotated[DashboardService, Depends(get_dashboard_service)]
AdminAuthServiceDep = Annotated[AdminAuthService, Depends(get_admin_auth_service)]


def session_token_from_request(request: Request, settings: Settings) -> str | None:
    """Extract and verify the session token from the cookie, or None."""
    cookie = request.cookies.get(settings.security.session_cookie_name)
    if not cookie:
        return None
    return unsign_token(cookie, request.app.state.session_secret)


async def get_optional_admin(
    request: Request,
    settings: SettingsDep,
    auth_service: AdminAuthServiceDep,
) -> AdminIdentity | None:
    """Resolve the admin session attached to the request, if any."""
    token = session_token_from_request(request, settings)
    if token is None:
        return None
    try:
        return await auth_service.resolve(token)
    except SQLAlchemyError as e:
        logger.error("auth.session_lookup_failed", error=str(e))
        raise InternalError("Failed to verify session", error=str(e)) from e


async def require_admin(
    admin: Annotated[AdminIdentity | None, Depends(get_optional_admin)],
) -> AdminIdentity:
    """Guard for dashboard routes.

    Raises:
        AuthError: If no valid session is attached to the request
    """
    if admin is None:
        raise AuthError()
    return admin


def get_sweep_scheduler(request: Request) -> SweepScheduler:
    """Get the scheduler created during application startup."""
    scheduler = getattr(request.app.state, "sweep_scheduler", None)
    if scheduler is None:
        raise ServiceUnavailableError("Sweep scheduler is not available")
    return scheduler


OptionalAdminDep = Annotated[AdminIdentity | None, Depends(get_optional_admin)]
AdminDep = Annotated[AdminIdentity, Depends(require_admin)]
SweepSchedulerDep = Annotated[SweepScheduler, Depends(get_sweep_scheduler)]
