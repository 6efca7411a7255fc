"""HTTP API router."""

from fastapi import APIRouter

from itumy.api.admin import router as admin_router
from itumy.api.public import router as public_router

router = APIRouter()

router.include_router(public_router)
router.include_router(admin_router)  # /admin prefix is in the router itself
