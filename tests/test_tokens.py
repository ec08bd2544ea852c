"""Tests for the Integration Record accessor."""

from datetime import timedelta

import httpx
import pytest

from zohobooks_mcp.exceptions import (
    DispatchError,
    IntegrationNotFoundError,
    OrganizationUnavailableError,
    RefreshFailedError,
)
from zohobooks_mcp.supabase import SupabaseClient
from zohobooks_mcp.tokens import TokenStore

from conftest import ORG_ID, USER_ID


@pytest.fixture
def store(supabase) -> TokenStore:
    return TokenStore(supabase)


class TestGetValidAccessToken:
    """Test cases for TokenStore.get_valid_access_token."""

    @pytest.mark.asyncio
    async def test_fresh_token_returned_without_refresh(self, fake, store):
        token = await store.get_valid_access_token(USER_ID)

        assert token == "stored-token"
        assert fake.calls_to("zoho-token-refresh") == []

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_exactly_once(self, fake, store):
        fake.add_integration(expires_in=timedelta(minutes=-5))

        token = await store.get_valid_access_token(USER_ID)

        assert token == "fresh-token"
        assert token != "stored-token"
        assert fake.calls_to("zoho-token-refresh") == [{"userId": USER_ID}]

    @pytest.mark.asyncio
    async def test_missing_expiry_counts_as_expired(self, fake, store):
        fake.integrations[USER_ID]["token_expires_at"] = None

        assert await store.get_valid_access_token(USER_ID) == "fresh-token"
        assert len(fake.calls_to("zoho-token-refresh")) == 1

    @pytest.mark.asyncio
    async def test_no_record_raises(self, fake, store):
        fake.integrations.clear()

        with pytest.raises(IntegrationNotFoundError):
            await store.get_valid_access_token(USER_ID)

    @pytest.mark.asyncio
    async def test_record_without_token_raises(self, fake, store):
        fake.integrations[USER_ID]["access_token"] = None

        with pytest.raises(IntegrationNotFoundError):
            await store.get_valid_access_token(USER_ID)

    @pytest.mark.asyncio
    async def test_accessor_never_writes_the_record(self, fake, store):
        fake.add_integration(expires_in=timedelta(minutes=-5))

        await store.get_valid_access_token(USER_ID)

        assert fake.patch_count == 0


class TestRefreshToken:
    """Test cases for TokenStore.refresh_token."""

    @pytest.mark.asyncio
    async def test_reported_failure_raises_with_reason(self, fake, store):
        fake.refresh_result = {"success": False, "error": "invalid_grant"}

        with pytest.raises(RefreshFailedError, match="invalid_grant"):
            await store.refresh_token(USER_ID)

    @pytest.mark.asyncio
    async def test_success_without_token_raises(self, fake, store):
        fake.refresh_result = {"success": True}

        with pytest.raises(RefreshFailedError):
            await store.refresh_token(USER_ID)


class TestDisconnect:
    """Test cases for TokenStore.disconnect."""

    @pytest.mark.asyncio
    async def test_disconnect_twice_succeeds(self, fake, store):
        await store.disconnect(USER_ID)
        await store.disconnect(USER_ID)

        record = fake.integrations[USER_ID]
        assert record["is_connected"] is False
        assert record["access_token"] is None
        assert record["refresh_token"] is None
        assert record["disconnected_at"] is not None
        assert fake.patch_count == 2

    @pytest.mark.asyncio
    async def test_disconnect_unknown_user_succeeds(self, fake, store):
        await store.disconnect("nobody")

    @pytest.mark.asyncio
    async def test_disconnected_user_has_no_valid_token(self, store):
        await store.disconnect(USER_ID)

        with pytest.raises(IntegrationNotFoundError):
            await store.get_valid_access_token(USER_ID)


class TestStatusAndOrganization:
    """Test cases for get_status and get_organization_id."""

    @pytest.mark.asyncio
    async def test_status_of_connected_user(self, store):
        status = await store.get_status(USER_ID)

        assert status.is_connected is True
        assert status.organization_id == ORG_ID
        assert status.to_dict()["connected_at"] is not None

    @pytest.mark.asyncio
    async def test_status_without_record_is_disconnected(self, fake, store):
        fake.integrations.clear()

        status = await store.get_status(USER_ID)

        assert status.to_dict() == {
            "is_connected": False,
            "organization_id": None,
            "connected_at": None,
            "disconnected_at": None,
        }

    @pytest.mark.asyncio
    async def test_organization_id(self, fake, store):
        assert await store.get_organization_id(USER_ID) == ORG_ID
        assert fake.calls_to("zoho-get-organization") == [{"userId": USER_ID}]

    @pytest.mark.asyncio
    async def test_organization_failure(self, fake, store):
        fake.organization_result = {"success": False, "error": "No organization"}

        with pytest.raises(OrganizationUnavailableError, match="No organization"):
            await store.get_organization_id(USER_ID)


class TestCorruptRecord:
    """A damaged Integration Record never escapes as a raw ValueError."""

    @pytest.mark.asyncio
    async def test_unparseable_expiry_refreshes_once(self, fake, store):
        fake.integrations[USER_ID]["token_expires_at"] = "not-a-date"

        assert await store.get_valid_access_token(USER_ID) == "fresh-token"
        assert len(fake.calls_to("zoho-token-refresh")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["<html>oops</html>", '{"user_id": "x"}', "[1]"])
    async def test_unreadable_table_response_is_dispatch_error(self, settings, body):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=body)

        store = TokenStore(SupabaseClient(settings, transport=httpx.MockTransport(handler)))

        with pytest.raises(DispatchError, match="zoho_books_integrations"):
            await store.get_valid_access_token(USER_ID)
