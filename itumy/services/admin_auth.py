"""Admin registration, login and server-side sessions.

Sessions live in the ``admin_sessions`` table. The cookie carries the
session token plus an HMAC-SHA256 signature made with the session secret;
the signature is checked before the token is looked up.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import timedelta

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from itumy.config import SecurityConfig
from itumy.errors import AuthError, ConflictError, ValidationError
from itumy.models.admin import Admin, AdminSession
from itumy.services.api_key import EMAIL_PATTERN
from itumy.services.passwords import hash_password_async, verify_password_async
from itumy.utils.datetime import Clock, utcnow

logger = structlog.get_logger()

# Same message for unknown email and wrong password
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"

_TOKEN_BYTES = 32


@dataclass(frozen=True)
class AdminIdentity:
    """Authenticated admin attached to a request."""

    admin_id: int
    admin_email: str
    token: str


def sign_token(token: str, secret: str) -> str:
    """Cookie value for a session token."""
    sig = hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()
    return f"{token}.{sig}"


def unsign_token(cookie: str, secret: str) -> str | None:
    """Verify a signed cookie value and return the token, or None."""
    if "." not in cookie:
        return None
    token, sig = cookie.rsplit(".", 1)
    expected = hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()
    if hmac.compare_digest(sig, expected):
        return token
    return None


class AdminAuthService:
    """Admin identity and session management."""

    def __init__(
        self,
        db_session: AsyncSession,
        config: SecurityConfig,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db_session
        self._config = config
        self._clock = clock
        self._log = logger.bind(service="admin_auth")

    async def register(self, email: str | None, password: str | None) -> Admin:
        """Create an admin account.

        Raises:
            ValidationError: If email or password is missing, or the email is malformed
            ConflictError: If the email is already registered
        """
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")

        password_hash = await hash_password_async(password, self._config.bcrypt_rounds)
        admin = Admin(email=email, password_hash=password_hash, created_at=self._clock())

        try:
            self._db.add(admin)
            await self._db.commit()
        except IntegrityError as e:
            await self._db.rollback()
            raise ConflictError("Email is already registered") from e

        await self._db.refresh(admin)
        self._log.info("admin.registered", admin_id=admin.id, email=admin.email)
        return admin

    async def login(self, email: str | None, password: str | None) -> AdminSession:
        """Verify credentials and open a session.

        Raises:
            ValidationError: If email or password is missing
            AuthError: If the email is unknown or the password is wrong
        """
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")

        result = await self._db.execute(select(Admin).where(Admin.email == email).limit(1))
        admin = result.scalars().first()

        if admin is None:
            self._log.info("admin.login.failed", reason="unknown_email")
            raise AuthError(INVALID_CREDENTIALS_MESSAGE)

        if not await verify_password_async(password, admin.password_hash):
            self._log.info("admin.login.failed", reason="bad_password", admin_id=admin.id)
            raise AuthError(INVALID_CREDENTIALS_MESSAGE)

        now = self._clock()
        session = AdminSession(
            token=secrets.token_urlsafe(_TOKEN_BYTES),
            admin_id=admin.id,
            admin_email=admin.email,
            created_at=now,
            expires_at=now + timedelta(hours=self._config.session_ttl_hours),
        )
        self._db.add(session)
        await self._db.commit()

        self._log.info("admin.login.success", admin_id=admin.id)
        return session

    async def resolve(self, token: str) -> AdminIdentity | None:
        """Return the identity for a live session token, or None."""
        session = await self._db.get(AdminSession, token)
        if session is None or session.is_expired(self._clock()):
            return None
        return AdminIdentity(
            admin_id=session.admin_id,
            admin_email=session.admin_email,
            token=session.token,
        )

    async def logout(self, token: str | None) -> None:
        """Destroy a session. Unknown or missing tokens are a no-op.

        Store failures propagate to the caller.
        """
        if not token:
            return
        await self._db.execute(delete(AdminSession).where(AdminSession.token == token))
        await self._db.commit()
        self._log.info("admin.logout")
