"""API key lifecycle service.

Handles key generation, user registration together with key issuance,
and validation of presented keys with usage tracking.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from itumy.config import ApiKeyConfig
from itumy.errors import (
    ConflictError,
    InactiveKeyError,
    KeyNotFoundError,
    MalformedKeyError,
    ValidationError,
)
from itumy.models.api_key import ApiKey
from itumy.models.user import User
from itumy.utils.datetime import Clock, utcnow

logger = structlog.get_logger()

# local@domain.tld, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Key format: {prefix}{64 hex chars}
_RANDOM_BYTES = 32
_LOG_PREFIX_LEN = 24  # chars of a presented key that may appear in logs


@dataclass
class CreatedKey:
    """Result of a successful key creation.

    ``plaintext`` is only ever handed out here.
    """

    plaintext: str
    api_key: ApiKey
    user: User


@dataclass
class ValidationResult:
    """Metadata of a successfully validated key."""

    api_key: str
    prefix: str
    created_at: datetime
    usage_count: int
    last_used_at: datetime
    is_active: bool


class ApiKeyService:
    """Service for API key lifecycle management."""

    def __init__(
        self,
        db_session: AsyncSession,
        config: ApiKeyConfig,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db_session
        self._config = config
        self._clock = clock
        self._log = logger.bind(service="api_key")

    @staticmethod
    def generate_key(prefix: str) -> str:
        """Generate a new API key.

        Args:
            prefix: Fixed literal identifying the key format

        Returns:
            ``prefix`` followed by 64 hex chars from a CSPRNG
        """
        return f"{prefix}{secrets.token_hex(_RANDOM_BYTES)}"

    @staticmethod
    def validate_registration(first_name: str | None, last_name: str | None, email: str | None) -> None:
        """Check registration fields.

        Raises:
            ValidationError: If a field is blank or the email is malformed
        """
        if not all(value and value.strip() for value in (first_name, last_name, email)):
            raise ValidationError("All fields are required (First Name, Last Name, Email)")
        if not EMAIL_PATTERN.match(email.strip()):
            raise ValidationError("Invalid email format")

    async def create(
        self,
        first_name: str | None,
        last_name: str | None,
        email: str | None,
    ) -> CreatedKey:
        """Issue a new key and register its user.

        Both rows are written in one transaction. If the user insert fails
        the key insert is rolled back as well.

        Args:
            first_name: User first name
            last_name: User last name
            email: User email, unique across users

        Returns:
            CreatedKey with the plaintext key

        Raises:
            ValidationError: If input is missing or malformed
            ConflictError: If the email (or, improbably, the key) already exists
        """
        self.validate_registration(first_name, last_name, email)

        prefix = self._config.prefix
        plaintext = self.generate_key(prefix)

        api_key = ApiKey(
            api_key=plaintext,
            prefix=prefix,
            is_active=True,
            out_of_date=False,
            usage_count=0,
            created_at=self._clock(),
        )
        try:
            self._db.add(api_key)
            # Flush to obtain the key id for the user row
            await self._db.flush()

            user = User(
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                email=email.strip(),
                api_key_id=api_key.id,
                created_at=self._clock(),
            )
            self._db.add(user)
            await self._db.commit()
        except IntegrityError as e:
            await self._db.rollback()
            self._log.info("api_key.create.conflict", email=email, error=str(e.orig))
            raise ConflictError("API key or email is already registered") from e
        except Exception:
            await self._db.rollback()
            raise

        await self._db.refresh(api_key)
        await self._db.refresh(user)

        self._log.info(
            "api_key.created",
            api_key_id=api_key.id,
            user_id=user.id,
            email=user.email,
        )
        return CreatedKey(plaintext=plaintext, api_key=api_key, user=user)

    def check_format(self, presented: str | None) -> str:
        """Reject empty or wrongly prefixed keys without touching the store.

        Raises:
            MalformedKeyError: If the key is empty or has the wrong prefix
        """
        if not presented:
            raise MalformedKeyError("API key must not be empty", details={"valid": False})
        if not presented.startswith(self._config.prefix):
            raise MalformedKeyError("Invalid API key format", details={"valid": False})
        return presented

    async def get_by_key(self, presented: str) -> ApiKey | None:
        """Get API key by exact key value."""
        result = await self._db.execute(
            select(ApiKey)
            .where(ApiKey.api_key == presented)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def validate(self, presented: str | None) -> ValidationResult:
        """Validate a presented key and record its use.

        The usage counter is incremented by a single UPDATE so concurrent
        validations never lose increments. The reported count is computed
        from the row read before the update, so under concurrency it may lag
        the stored value.

        Raises:
            MalformedKeyError: Empty key or wrong prefix (no lookup performed)
            KeyNotFoundError: No such key
            InactiveKeyError: Key disabled or out of date
        """
        key = self.check_format(presented)

        api_key = await self.get_by_key(key)
        if api_key is None:
            self._log.info("api_key.validate.not_found", key_prefix=key[:_LOG_PREFIX_LEN])
            raise KeyNotFoundError(details={"valid": False, "apikey": key})

        if not api_key.is_usable:
            self._log.info(
                "api_key.validate.inactive",
                api_key_id=api_key.id,
                is_active=api_key.is_active,
                out_of_date=api_key.out_of_date,
            )
            raise InactiveKeyError(
                details={"valid": False, "apikey": key, "isActive": False}
            )

        # Snapshot before the UPDATE; ORM synchronization may refresh the instance
        api_key_id = api_key.id
        previous_count = api_key.usage_count
        prefix = api_key.prefix
        created_at = api_key.created_at
        is_active = api_key.is_active

        now = self._clock()
        await self._db.execute(
            update(ApiKey)
            .where(ApiKey.id == api_key_id)
            .values(usage_count=ApiKey.usage_count + 1, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()

        self._log.debug("api_key.validated", api_key_id=api_key_id, usage_count=previous_count + 1)

        return ValidationResult(
            api_key=key,
            prefix=prefix,
            created_at=created_at,
            usage_count=previous_count + 1,
            last_used_at=now,
            is_active=is_active,
        )
