"""SQLModel data models."""

from itumy.models.admin import Admin, AdminSession
from itumy.models.api_key import ApiKey
from itumy.models.user import User

__all__ = [
    "Admin",
    "AdminSession",
    "ApiKey",
    "User",
]
