"""Admin identity and server-side session models."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from itumy.utils.datetime import UTCDateTime, utcnow


class Admin(SQLModel, table=True):
    """Dashboard administrator. Only the bcrypt hash of the password is kept."""

    __tablename__ = "admins"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class AdminSession(SQLModel, table=True):
    """Server-side admin session referenced by an opaque cookie token.

    The lifetime is fixed at issuance and is not extended by activity.
    """

    __tablename__ = "admin_sessions"

    token: str = Field(primary_key=True, max_length=64)
    admin_id: int = Field(foreign_key="admins.id", index=True)
    admin_email: str = Field(max_length=255)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)

    def is_expired(self, now: datetime) -> bool:
        """Check if this session has expired at ``now``."""
        return now >= self.expires_at
