"""Admin API endpoints.

Account registration, login/logout, and the dashboard data routes. All
dashboard routes require an admin session cookie.
"""

from __future__ import annotations

import time
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from itumy.api.dependencies import (
    AdminAuthServiceDep,
    AdminDep,
    DashboardServiceDep,
    OptionalAdminDep,
    SettingsDep,
    SweepSchedulerDep,
    session_token_from_request,
)
from itumy.api.pages import page_response
from itumy.errors import InternalError, LockedError, ValidationError
from itumy.services.admin_auth import sign_token

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])

DASHBOARD_PATH = "/admin/dashboard"
LOGIN_PATH = "/admin/login"


# ---- Request/Response Models ----


class AdminCredentials(BaseModel):
    """Request body for admin register and login."""

    email: str | None = None
    password: str | None = None


class KeyStatusRequest(BaseModel):
    """Request body for enabling or disabling a key."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: bool | None = Field(default=None, alias="isActive")


class SweepTaskResult(BaseModel):
    """Result of a single sweep task."""

    model_config = ConfigDict(populate_by_name=True)

    task_name: str = Field(alias="taskName")
    updated_count: int = Field(alias="updatedCount")
    errors: list[str]


class SweepRunResponse(BaseModel):
    """Response from a manual sweep run."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    results: list[SweepTaskResult]
    total_updated: int = Field(alias="totalUpdated")
    total_errors: int = Field(alias="totalErrors")
    duration_ms: int = Field(alias="durationMs")


# ---- Pages ----


@router.get("/register", include_in_schema=False, response_model=None)
async def register_page(admin: OptionalAdminDep) -> Response:
    """Admin registration page; signed-in admins go to the dashboard."""
    if admin is not None:
        return RedirectResponse(DASHBOARD_PATH, status_code=302)
    return page_response("register.html")


@router.get("/login", include_in_schema=False, response_model=None)
async def login_page(admin: OptionalAdminDep) -> Response:
    """Admin login page; signed-in admins go to the dashboard."""
    if admin is not None:
        return RedirectResponse(DASHBOARD_PATH, status_code=302)
    return page_response("login.html")


@router.get("/dashboard", include_in_schema=False)
async def dashboard_page(admin: AdminDep) -> FileResponse:
    """Dashboard page."""
    return page_response("dashboard.html")


# ---- Auth ----


@router.post("/register")
async def register(body: AdminCredentials, auth_service: AdminAuthServiceDep) -> dict:
    """Create an admin account. There is no approval step."""
    try:
        await auth_service.register(body.email, body.password)
    except SQLAlchemyError as e:
        logger.error("admin.register.failed", error=str(e))
        raise InternalError("Failed to register", error=str(e)) from e

    return {
        "success": True,
        "message": "Admin registered, please login",
        "redirectTo": LOGIN_PATH,
    }


@router.post("/login")
async def login(
    request: Request,
    body: AdminCredentials,
    auth_service: AdminAuthServiceDep,
    settings: SettingsDep,
) -> JSONResponse:
    """Verify credentials and set the session cookie."""
    try:
        session = await auth_service.login(body.email, body.password)
    except SQLAlchemyError as e:
        logger.error("admin.login.error", error=str(e))
        raise InternalError("Failed to login", error=str(e)) from e

    security = settings.security
    response = JSONResponse(
        {
            "success": True,
            "message": "Login successful",
            "redirectTo": DASHBOARD_PATH,
        }
    )
    response.set_cookie(
        key=security.session_cookie_name,
        value=sign_token(session.token, request.app.state.session_secret),
        max_age=security.session_ttl_hours * 3600,
        httponly=True,
        secure=security.cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/logout")
async def logout(
    request: Request,
    auth_service: AdminAuthServiceDep,
    settings: SettingsDep,
) -> JSONResponse:
    """Destroy the current session, if any, and clear the cookie."""
    token = session_token_from_request(request, settings)
    try:
        await auth_service.logout(token)
    except SQLAlchemyError as e:
        logger.error("admin.logout.failed", error=str(e))
        raise InternalError("Failed to logout", error=str(e)) from e

    response = JSONResponse(
        {
            "success": True,
            "message": "Logout successful",
            "redirectTo": LOGIN_PATH,
        }
    )
    response.delete_cookie(settings.security.session_cookie_name, httponly=True)
    return response


# ---- Dashboard data ----


@router.get("/users-apikeys")
async def list_users_with_keys(admin: AdminDep, dashboard: DashboardServiceDep) -> dict:
    """All users with their keys and a derived usage status."""
    try:
        rows = await dashboard.list_users_with_keys()
    except SQLAlchemyError as e:
        logger.error("dashboard.list.failed", error=str(e))
        raise InternalError("Failed to fetch data", error=str(e)) from e

    return {
        "success": True,
        "total": len(rows),
        "data": [asdict(row) for row in rows],
    }


@router.delete("/apikeys/{key_id}")
async def delete_api_key(key_id: int, admin: AdminDep, dashboard: DashboardServiceDep) -> dict:
    """Delete a key and the user that owns it."""
    try:
        await dashboard.delete_key(key_id)
    except SQLAlchemyError as e:
        logger.error("dashboard.delete.failed", api_key_id=key_id, error=str(e))
        raise InternalError("Failed to delete API key", error=str(e)) from e

    return {
        "success": True,
        "message": "API key and its user were deleted",
    }


@router.patch("/apikeys/{key_id}/status")
async def set_api_key_status(
    key_id: int,
    body: KeyStatusRequest,
    admin: AdminDep,
    dashboard: DashboardServiceDep,
) -> dict:
    """Enable or disable a key. Enabling also clears the out-of-date flag."""
    if body.is_active is None:
        raise ValidationError("isActive is required")

    try:
        api_key = await dashboard.set_active(key_id, body.is_active)
    except SQLAlchemyError as e:
        logger.error("dashboard.status.failed", api_key_id=key_id, error=str(e))
        raise InternalError("Failed to update API key", error=str(e)) from e

    return {
        "success": True,
        "message": "API key status updated",
        "data": {
            "id": api_key.id,
            "isActive": api_key.is_active,
            "outOfDate": api_key.out_of_date,
        },
    }


@router.post("/sweeper/run", response_model=SweepRunResponse)
async def run_sweeper(admin: AdminDep, scheduler: SweepSchedulerDep) -> SweepRunResponse:
    """Run one sweep cycle synchronously.

    Works even when the background loop is disabled.

    **Status Codes**:
    - 200: Sweep executed (individual tasks may report errors)
    - 423: A sweep cycle is already running
    - 503: Scheduler unavailable
    """
    if scheduler.is_sweeping:
        raise LockedError("Sweep is already running")

    start = time.monotonic()
    results = await scheduler.run_once()
    duration_ms = int((time.monotonic() - start) * 1000)

    logger.info("sweeper.manual_run", admin_id=admin.admin_id, duration_ms=duration_ms)

    return SweepRunResponse(
        results=[
            SweepTaskResult(
                task_name=r.task_name,
                updated_count=r.updated_count,
                errors=r.errors,
            )
            for r in results
        ],
        total_updated=sum(r.updated_count for r in results),
        total_errors=sum(len(r.errors) for r in results),
        duration_ms=duration_ms,
    )
