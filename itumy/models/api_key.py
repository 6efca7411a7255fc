"""API key data model.

The full key is stored as issued so that presented keys can be matched
exactly. A key is usable only while ``is_active`` is set and
``out_of_date`` is not.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from itumy.utils.datetime import UTCDateTime, utcnow


class ApiKey(SQLModel, table=True):
    """Issued API key with usage tracking."""

    __tablename__ = "api_keys"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_key: str = Field(max_length=128, unique=True, index=True)  # <prefix><64 hex>
    prefix: str = Field(max_length=32)

    # Administrative switch
    is_active: bool = Field(default=True)
    # Set by the sweeper after a long period without use; never cleared automatically
    out_of_date: bool = Field(default=False, index=True)

    usage_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    last_used_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    @property
    def is_usable(self) -> bool:
        """Whether the key may currently be used."""
        return self.is_active and not self.out_of_date
