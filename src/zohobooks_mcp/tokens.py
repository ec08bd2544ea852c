"""Access to the persisted Zoho Books Integration Record.

The Zoho access token itself lives server-side. This module only checks
its freshness, asks the ``zoho-token-refresh`` function to renew it, and
performs the one local write: disconnect.

The record is shared by every session of the same user and is updated
without a version check, so a refresh racing a disconnect from another
session is not guarded against.
"""

import logging
from datetime import datetime, timezone

from zohobooks_mcp.exceptions import (
    IntegrationNotFoundError,
    OrganizationUnavailableError,
    RefreshFailedError,
)
from zohobooks_mcp.models import ConnectionStatus, IntegrationRecord
from zohobooks_mcp.supabase import SupabaseClient

logger = logging.getLogger(__name__)

REFRESH_FUNCTION = "zoho-token-refresh"
ORGANIZATION_FUNCTION = "zoho-get-organization"


class TokenStore:
    """Reads the Integration Record and delegates token renewal."""

    def __init__(self, supabase: SupabaseClient, table: str | None = None) -> None:
        """Initialize the token store.

        Args:
            supabase: Transport used for the table and remote functions.
            table: Integration table name; defaults to the configured one.
        """
        self.supabase = supabase
        self.table = table or supabase.settings.integrations_table

    async def get_record(self, user_id: str) -> IntegrationRecord | None:
        """Fetch the user's Integration Record, or None if there is none."""
        row = await self.supabase.select_one(self.table, {"user_id": user_id})
        return IntegrationRecord.from_dict(row) if row else None

    async def get_valid_access_token(self, user_id: str) -> str:
        """Get a fresh Zoho access token, refreshing once if expired.

        Args:
            user_id: Supabase user id.

        Returns:
            The stored token, or the refreshed one if the stored token expired.

        Raises:
            IntegrationNotFoundError: If no record or no access token exists.
            RefreshFailedError: If the expired token cannot be refreshed.
        """
        record = await self.get_record(user_id)
        if record is None or not record.access_token:
            raise IntegrationNotFoundError(user_id)

        if record.is_expired():
            logger.debug("Zoho access token expired, refreshing...")
            return await self.refresh_token(user_id)

        return record.access_token

    async def refresh_token(self, user_id: str) -> str:
        """Ask the refresh function for a new access token.

        The function persists the new token and expiry itself.

        Raises:
            RefreshFailedError: If the function reports failure or no token.
            DispatchError: If the function cannot be reached.
        """
        logger.info("Refreshing Zoho Books token via edge function")
        result = await self.supabase.invoke_function(
            REFRESH_FUNCTION, {"userId": user_id}
        )

        access_token = result.get("accessToken")
        if not result.get("success") or not access_token:
            reason = result.get("error") or "Token refresh failed"
            logger.error(f"Token refresh failed: {reason}")
            raise RefreshFailedError(str(reason))

        logger.info("Token refreshed successfully")
        return access_token

    async def disconnect(self, user_id: str) -> None:
        """Clear the stored tokens and mark the integration disconnected.

        Idempotent: disconnecting an already disconnected (or unknown) user
        succeeds.
        """
        await self.supabase.update(
            self.table,
            {"user_id": user_id},
            {
                "is_connected": False,
                "access_token": None,
                "refresh_token": None,
                "disconnected_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("Zoho Books disconnected")

    async def get_status(self, user_id: str) -> ConnectionStatus:
        """Connection status for the user; no record means disconnected."""
        return ConnectionStatus.from_record(await self.get_record(user_id))

    async def get_organization_id(self, user_id: str) -> str:
        """Resolve the user's Zoho Books organization id.

        Raises:
            OrganizationUnavailableError: If the function reports failure.
        """
        result = await self.supabase.invoke_function(
            ORGANIZATION_FUNCTION, {"userId": user_id}
        )

        organization_id = result.get("organizationId")
        if not result.get("success") or not organization_id:
            reason = result.get("error") or "Failed to fetch organization"
            logger.error(f"Failed to fetch organization ID: {reason}")
            raise OrganizationUnavailableError(str(reason))

        logger.info(f"Organization ID fetched: {organization_id}")
        return str(organization_id)
