"""Tests for backend session storage and renewal."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from zohobooks_mcp.exceptions import AuthenticationError
from zohobooks_mcp.models import BackendSession
from zohobooks_mcp.session import EncryptedFileStorage, SessionManager, SessionStorage
from zohobooks_mcp.supabase import SupabaseClient


class MemoryStorage(SessionStorage):
    """In-memory session storage for tests."""

    def __init__(self, session: BackendSession | None = None) -> None:
        self.session = session

    async def load(self) -> BackendSession | None:
        return self.session

    async def save(self, session: BackendSession) -> None:
        self.session = session

    async def delete(self) -> None:
        self.session = None


def make_session(age: timedelta = timedelta(0)) -> BackendSession:
    return BackendSession(
        access_token="old-jwt",
        refresh_token="old-refresh",
        user_id="user-1",
        obtained_at=datetime.now(timezone.utc) - age,
    )


class AuthServer:
    """Answers Supabase ``/auth/v1/token`` requests."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[tuple[str, dict]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/token"
        assert request.headers["apikey"] == "anon-key"
        self.requests.append((request.url.params["grant_type"], json.loads(request.content)))
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "invalid_grant"})
        return httpx.Response(200, json={
            "access_token": "new-jwt",
            "refresh_token": "new-refresh",
            "expires_in": 3600,
            "user": {"id": "user-1"},
        })


class TestEncryptedFileStorage:
    """Test cases for EncryptedFileStorage."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        storage = EncryptedFileStorage(tmp_path)
        session = make_session()

        await storage.save(session)

        assert b"old-jwt" not in storage.session_file.read_bytes()
        assert await storage.load() == session

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, tmp_path):
        assert await EncryptedFileStorage(tmp_path).load() is None

    @pytest.mark.asyncio
    async def test_corrupt_file_is_ignored(self, tmp_path):
        storage = EncryptedFileStorage(tmp_path)
        await storage.save(make_session())
        storage.session_file.write_bytes(b"garbage")

        assert await storage.load() is None

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        storage = EncryptedFileStorage(tmp_path)
        await storage.save(make_session())

        await storage.delete()
        await storage.delete()

        assert await storage.load() is None


class TestSessionManager:
    """Test cases for SessionManager."""

    @pytest.mark.asyncio
    async def test_no_session_raises(self, settings):
        manager = SessionManager(settings, storage=MemoryStorage())

        with pytest.raises(AuthenticationError):
            await manager.get_valid_session()

    @pytest.mark.asyncio
    async def test_fresh_session_not_refreshed(self, settings):
        server = AuthServer()
        manager = SessionManager(
            settings,
            storage=MemoryStorage(make_session()),
            transport=httpx.MockTransport(server.handler),
        )

        assert await manager.access_token() == "old-jwt"
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_expired_session_refreshed_and_stored(self, settings):
        server = AuthServer()
        storage = MemoryStorage(make_session(age=timedelta(hours=2)))
        manager = SessionManager(
            settings, storage=storage, transport=httpx.MockTransport(server.handler)
        )

        session = await manager.get_valid_session()

        assert session.access_token == "new-jwt"
        assert storage.session.access_token == "new-jwt"
        assert server.requests == [("refresh_token", {"refresh_token": "old-refresh"})]

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, settings):
        server = AuthServer(status=400)
        manager = SessionManager(
            settings,
            storage=MemoryStorage(make_session(age=timedelta(hours=2))),
            transport=httpx.MockTransport(server.handler),
        )

        with pytest.raises(AuthenticationError, match="sign in again"):
            await manager.get_valid_session()

    @pytest.mark.asyncio
    async def test_sign_in_and_out(self, settings):
        server = AuthServer()
        storage = MemoryStorage()
        manager = SessionManager(
            settings, storage=storage, transport=httpx.MockTransport(server.handler)
        )

        session = await manager.sign_in("me@example.com", "secret")

        assert session.user_id == "user-1"
        assert server.requests == [
            ("password", {"email": "me@example.com", "password": "secret"})
        ]

        await manager.sign_out()
        assert storage.session is None
        with pytest.raises(AuthenticationError):
            await manager.get_valid_session()


@pytest.mark.asyncio
async def test_supabase_calls_carry_session_jwt(settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    manager = SessionManager(settings, storage=MemoryStorage(make_session()))
    supabase = SupabaseClient(
        settings,
        token_provider=manager.access_token,
        transport=httpx.MockTransport(handler),
    )

    await supabase.invoke_function("zoho-get-organization", {"userId": "user-1"})

    [request] = seen
    assert request.headers["Authorization"] == "Bearer old-jwt"
    assert request.headers["apikey"] == "anon-key"
