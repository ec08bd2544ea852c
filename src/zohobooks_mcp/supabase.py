"""Supabase transport: edge function invocation and table access.

Every network call of this package goes through SupabaseClient. Edge
functions are the trusted boundary that holds the Zoho credentials; the
table endpoints are used only for the Integration Record.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from zohobooks_mcp.config import Settings
from zohobooks_mcp.exceptions import DispatchError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class SupabaseClient:
    """Async HTTP client for a Supabase project.

    This client handles:
    - Edge function invocation (``/functions/v1/{name}``)
    - Single-row reads and updates through PostgREST (``/rest/v1/{table}``)
    - The ``apikey`` and bearer headers required by both
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Supabase client.

        Args:
            settings: Runtime configuration.
            token_provider: Coroutine returning the user's access JWT. When
                omitted, requests are authorized with the anon key only.
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings
        self.token_provider = token_provider
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.settings.supabase_url,
                timeout=self.settings.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _headers(self) -> dict[str, str]:
        bearer = self.settings.supabase_anon_key
        if self.token_provider is not None:
            bearer = await self.token_provider()
        return {
            "apikey": self.settings.supabase_anon_key,
            "Authorization": f"Bearer {bearer}",
        }

    async def _send(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, wrapping transport failures in DispatchError."""
        client = await self._get_client()
        headers = await self._headers()
        headers.update(kwargs.pop("headers", {}))
        try:
            return await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise DispatchError("Request to Supabase timed out", e) from e
        except httpx.RequestError as e:
            raise DispatchError("Could not reach Supabase", e) from e

    async def invoke_function(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        """Invoke an edge function and return its JSON object.

        A non-2xx answer is still returned when its body is a JSON object,
        since the functions report failures in their own envelope.

        Args:
            name: Edge function name (e.g., "zoho-api-call").
            body: JSON body to send.

        Returns:
            Parsed JSON object.

        Raises:
            DispatchError: On transport failure or a non-object response.
        """
        response = await self._send("POST", f"/functions/v1/{name}", json=body)

        try:
            payload = response.json()
        except ValueError as e:
            raise DispatchError(
                f"Edge function {name} returned a non-JSON response "
                f"(status {response.status_code})",
                e,
            ) from e

        if not isinstance(payload, dict):
            raise DispatchError(f"Edge function {name} returned an unexpected body")

        if response.is_error:
            logger.debug(f"Edge function {name} answered {response.status_code}")
        return payload

    async def select_one(
        self,
        table: str,
        filters: dict[str, str],
        columns: str = "*",
    ) -> dict[str, Any] | None:
        """Fetch the first row matching equality filters.

        Args:
            table: Table name.
            filters: Column to value equality filters.
            columns: PostgREST select expression.

        Returns:
            The row, or None if no row matches.

        Raises:
            DispatchError: On transport or PostgREST errors.
        """
        params = {column: f"eq.{value}" for column, value in filters.items()}
        params["select"] = columns
        params["limit"] = "1"

        response = await self._send("GET", f"/rest/v1/{table}", params=params)
        if response.is_error:
            raise DispatchError(
                f"Failed to read {table}: {response.status_code} {response.text[:200]}"
            )

        try:
            rows = response.json()
        except ValueError as e:
            raise DispatchError(
                f"Failed to read {table}: non-JSON response "
                f"(status {response.status_code})",
                e,
            ) from e

        if not isinstance(rows, list) or (rows and not isinstance(rows[0], dict)):
            raise DispatchError(f"Failed to read {table}: unexpected body")
        return rows[0] if rows else None

    async def update(
        self,
        table: str,
        filters: dict[str, str],
        values: dict[str, Any],
    ) -> None:
        """Update every row matching equality filters in one request.

        Matching no rows is not an error.

        Raises:
            DispatchError: On transport or PostgREST errors.
        """
        params = {column: f"eq.{value}" for column, value in filters.items()}
        response = await self._send(
            "PATCH",
            f"/rest/v1/{table}",
            params=params,
            json=values,
            headers={"Prefer": "return=minimal"},
        )
        if response.is_error:
            raise DispatchError(
                f"Failed to update {table}: {response.status_code} {response.text[:200]}"
            )
