"""HTTP tests for 500 responses: store failures and unexpected exceptions."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from itumy.api.dependencies import get_api_key_service, require_admin
from itumy.db.session import get_session_dependency
from itumy.errors import InternalError
from itumy.services.admin_auth import AdminIdentity, sign_token
from tests.conftest import TEST_SESSION_SECRET

COOKIE_NAME = "itumy_session"


def _store_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.fixture
def broken_session():
    """Session whose every round-trip to the store fails."""
    session = MagicMock()
    for name in ("execute", "flush", "commit", "get", "refresh"):
        setattr(session, name, AsyncMock(side_effect=_store_down()))
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def store_down(app, broken_session):
    async def override_session():
        yield broken_session

    app.dependency_overrides[get_session_dependency] = override_session
    return broken_session


@pytest.fixture
async def lenient_client(app):
    """Client that returns 500 responses instead of re-raising app errors."""
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def _assert_internal_error(response: httpx.Response) -> dict:
    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "internal_error"
    assert "database is locked" in body["error"]
    return body


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_create(self, client, store_down):
        response = await client.post(
            "/create",
            json={"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"},
        )

        body = _assert_internal_error(response)
        assert body["message"] == "Failed to create API key"
        store_down.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_checkapi(self, client, store_down):
        response = await client.post(
            "/checkapi", json={"apikey": "sk-itumy-v1-api_" + "a" * 64}
        )

        _assert_internal_error(response)

    @pytest.mark.asyncio
    async def test_logout(self, client, store_down):
        client.cookies.set(COOKIE_NAME, sign_token("some-token", TEST_SESSION_SECRET))

        response = await client.post("/admin/logout")

        body = _assert_internal_error(response)
        assert body["message"] == "Failed to logout"

    @pytest.mark.asyncio
    async def test_session_lookup(self, client, store_down):
        client.cookies.set(COOKIE_NAME, sign_token("some-token", TEST_SESSION_SECRET))

        response = await client.get("/admin/users-apikeys")

        body = _assert_internal_error(response)
        assert body["message"] == "Failed to verify session"

    @pytest.mark.asyncio
    async def test_users_apikeys(self, app, client, store_down):
        app.dependency_overrides[require_admin] = lambda: AdminIdentity(
            admin_id=1, admin_email="root@example.com", token="t"
        )

        response = await client.get("/admin/users-apikeys")

        body = _assert_internal_error(response)
        assert body["message"] == "Failed to fetch data"


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_unexpected_exception_is_rendered_as_envelope(self, app, lenient_client):
        class _ExplodingService:
            async def validate(self, presented):
                raise RuntimeError("boom")

        app.dependency_overrides[get_api_key_service] = lambda: _ExplodingService()

        response = await lenient_client.post(
            "/checkapi",
            json={"apikey": "sk-itumy-v1-api_" + "a" * 64},
            headers={"X-Request-Id": "req-500"},
        )

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.headers["X-Request-Id"] == "req-500"
        assert response.json() == {
            "success": False,
            "code": "internal_error",
            "message": "Unexpected server error",
            "error": "boom",
            "request_id": "req-500",
        }

    @pytest.mark.asyncio
    async def test_unencodable_password(self, lenient_client):
        response = await lenient_client.post(
            "/admin/register",
            content=b'{"email": "root@example.com", "password": "\\ud800"}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "internal_error"
        assert "\\ud800" in body["error"]


def test_internal_error_escapes_unencodable_text():
    error = InternalError("Failed", error="bad \ud800 input")

    assert error.to_dict()["error"] == "bad \\ud800 input"
    error.to_dict()["error"].encode("utf-8")
