"""Public endpoints: landing page, key creation and key checks."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from itumy.api.dependencies import ApiKeyServiceDep
from itumy.api.pages import page_response
from itumy.errors import InternalError

logger = structlog.get_logger()

router = APIRouter(tags=["api-keys"])


# ---- Request Models ----


class CreateApiKeyRequest(BaseModel):
    """Request body for key creation. Presence is checked by the service."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None


class CheckApiKeyRequest(BaseModel):
    """Request body for key validation."""

    apikey: str | None = None


# ---- Endpoints ----


@router.get("/", include_in_schema=False)
async def index() -> FileResponse:
    """Key generation page."""
    return page_response("index.html")


@router.post("/create")
async def create_api_key(body: CreateApiKeyRequest, service: ApiKeyServiceDep) -> dict:
    """Register a user and issue their API key.

    The plaintext key appears in this response only.
    """
    try:
        created = await service.create(body.first_name, body.last_name, body.email)
    except SQLAlchemyError as e:
        logger.error("api_key.create.failed", error=str(e))
        raise InternalError("Failed to create API key", error=str(e)) from e

    return {
        "success": True,
        "apiKey": created.plaintext,
        "message": "API key created and user registered",
        "user": {
            "firstName": created.user.first_name,
            "lastName": created.user.last_name,
            "email": created.user.email,
        },
    }


@router.post("/checkapi")
async def check_api_key(body: CheckApiKeyRequest, service: ApiKeyServiceDep) -> dict:
    """Validate a key and count the use."""
    try:
        result = await service.validate(body.apikey)
    except SQLAlchemyError as e:
        logger.error("api_key.check.failed", error=str(e))
        raise InternalError(
            "Server error while checking API key", error=str(e)
        ) from e

    return {
        "success": True,
        "valid": True,
        "message": "API key is valid",
        "apikey": result.api_key,
        "prefix": result.prefix,
        "createdAt": result.created_at,
        "usageCount": result.usage_count,
        "lastUsedAt": result.last_used_at,
        "isActive": result.is_active,
    }
