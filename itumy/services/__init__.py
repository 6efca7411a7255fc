"""Business logic services."""

from itumy.services.admin_auth import AdminAuthService
from itumy.services.api_key import ApiKeyService
from itumy.services.dashboard import DashboardService

__all__ = [
    "AdminAuthService",
    "ApiKeyService",
    "DashboardService",
]
