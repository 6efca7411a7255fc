"""Registered user data model.

Each user owns exactly one API key, created together with the user.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from itumy.utils.datetime import UTCDateTime, utcnow


class User(SQLModel, table=True):
    """User registered through key creation."""

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    email: str = Field(max_length=255, unique=True, index=True)

    api_key_id: int = Field(foreign_key="api_keys.id", unique=True, index=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
