"""Shared fixtures: an in-memory stand-in for the Supabase project."""

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from zohobooks_mcp.client import ZohoBooksClient
from zohobooks_mcp.config import Settings
from zohobooks_mcp.supabase import SupabaseClient

USER_ID = "user-1"
ORG_ID = "org-1"


class FakeSupabase:
    """Answers edge function and table requests like a Supabase project."""

    def __init__(self) -> None:
        self.integrations: dict[str, dict[str, Any]] = {}
        self.api_handler: Callable[[dict[str, Any]], dict[str, Any]] | None = None
        self.function_calls: list[tuple[str, dict[str, Any]]] = []
        self.refresh_result: dict[str, Any] = {"success": True, "accessToken": "fresh-token"}
        self.organization_result: dict[str, Any] = {"success": True, "organizationId": ORG_ID}
        self.exchange_result: dict[str, Any] = {"success": True, "organizationId": ORG_ID}
        self.patch_count = 0

    def add_integration(self, user_id: str = USER_ID, expires_in: timedelta = timedelta(hours=1)) -> None:
        now = datetime.now(timezone.utc)
        self.integrations[user_id] = {
            "user_id": user_id,
            "organization_id": ORG_ID,
            "access_token": "stored-token",
            "refresh_token": "refresh",
            "token_expires_at": (now + expires_in).isoformat(),
            "is_connected": True,
            "connected_at": now.isoformat(),
            "disconnected_at": None,
        }

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [body for fn, body in self.function_calls if fn == name]

    @property
    def api_calls(self) -> list[dict[str, Any]]:
        return self.calls_to("zoho-api-call")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path.startswith("/functions/v1/"):
            name = path.rsplit("/", 1)[-1]
            body = json.loads(request.content)
            self.function_calls.append((name, body))
            if name == "zoho-api-call":
                if self.api_handler is None:
                    return httpx.Response(200, json={"success": True, "data": {}})
                return httpx.Response(200, json=self.api_handler(body))
            if name == "zoho-token-refresh":
                return httpx.Response(200, json=self.refresh_result)
            if name == "zoho-get-organization":
                return httpx.Response(200, json=self.organization_result)
            if name == "zoho-oauth-exchange":
                return httpx.Response(200, json=self.exchange_result)
            return httpx.Response(404, text="Function not found")

        if path == "/rest/v1/zoho_books_integrations":
            user_id = request.url.params["user_id"].removeprefix("eq.")
            if request.method == "GET":
                row = self.integrations.get(user_id)
                return httpx.Response(200, json=[row] if row else [])
            if request.method == "PATCH":
                self.patch_count += 1
                if user_id in self.integrations:
                    self.integrations[user_id].update(json.loads(request.content))
                return httpx.Response(204)

        return httpx.Response(404, json={"message": "Not found"})


def api_routes(routes: dict[tuple[str, str], Any]) -> Callable[[dict[str, Any]], dict[str, Any]]:
    """Build an api_handler answering (method, endpoint) with success data.

    A route value that is a dict with a "success" key is sent as the raw
    envelope instead.
    """
    def handle(body: dict[str, Any]) -> dict[str, Any]:
        key = (body["method"], body["endpoint"].split("?")[0])
        if key not in routes:
            return {"success": False, "error": "Not found", "status": 404}
        value = routes[key]
        if isinstance(value, dict) and "success" in value:
            return value
        return {"success": True, "data": value}

    return handle


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://project.supabase.co",
        supabase_anon_key="anon-key",
        zoho_client_id="zoho-client",
    )


@pytest.fixture
def fake() -> FakeSupabase:
    fake = FakeSupabase()
    fake.add_integration()
    return fake


@pytest.fixture
def transport(fake: FakeSupabase) -> httpx.MockTransport:
    return httpx.MockTransport(fake.handler)


@pytest.fixture
def supabase(settings: Settings, transport: httpx.MockTransport) -> SupabaseClient:
    return SupabaseClient(settings, transport=transport)


@pytest.fixture
def client(settings: Settings, transport: httpx.MockTransport) -> ZohoBooksClient:
    return ZohoBooksClient(settings, user_id=USER_ID, transport=transport)
