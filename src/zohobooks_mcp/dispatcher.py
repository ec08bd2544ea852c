"""Single funnel for Zoho Books API calls.

The bearer-token-carrying HTTP request is made inside the ``zoho-api-call``
edge function; this module invokes it and interprets its envelope. It never
retries; expired tokens are handled by the caller before dispatch.
"""

import json
import logging
from typing import Any

from zohobooks_mcp.exceptions import (
    ApiError,
    AuthorizationFailedError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from zohobooks_mcp.models import ApiEnvelope
from zohobooks_mcp.supabase import SupabaseClient

logger = logging.getLogger(__name__)

API_CALL_FUNCTION = "zoho-api-call"

STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: InvalidRequestError,
    401: AuthorizationFailedError,
    403: PermissionDeniedError,
    404: NotFoundError,
}

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})


def parse_error_message(raw: str) -> tuple[str, int | None]:
    """Extract the message from a serialized Zoho error, if it is one.

    Args:
        raw: Raw error string from the envelope.

    Returns:
        Tuple of (message, zoho_code). The raw string is returned unchanged
        when it is not a JSON object with a ``message``.
    """
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return raw, None

    if isinstance(parsed, dict) and parsed.get("message"):
        code = parsed.get("code")
        return str(parsed["message"]), code if isinstance(code, int) else None
    return raw, None


def error_from_envelope(envelope: ApiEnvelope) -> ApiError:
    """Map a failed envelope to the matching ApiError.

    Statuses 400, 401, 403 and 404 get a fixed message; any other status
    carries the upstream message. A missing status counts as 500.
    """
    status = envelope.status or 500
    message, code = parse_error_message(envelope.error or "API call failed")

    error_class = STATUS_ERRORS.get(status)
    if error_class is not None:
        return error_class(status=status, details=envelope.details or message, code=code)
    return ApiError(message, status=status, details=envelope.details, code=code)


class Dispatcher:
    """Invokes the API-call edge function for one (user, organization) pair."""

    def __init__(self, supabase: SupabaseClient) -> None:
        self.supabase = supabase

    async def call(
        self,
        user_id: str,
        organization_id: str,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Make one Zoho Books API call through the edge function.

        Args:
            user_id: Supabase user id.
            organization_id: Zoho Books organization id.
            path: API path including any query string (e.g., "/invoices?limit=10").
            method: HTTP method (GET, POST, PUT or DELETE).
            body: Optional JSON body.

        Returns:
            The upstream response data, unmodified.

        Raises:
            DispatchError: If the edge function is unreachable or malformed.
            ApiError: If Zoho Books reports a failure.
        """
        method = method.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        logger.info(f"Calling Zoho API: {method} {path}")
        payload: dict[str, Any] = {
            "userId": user_id,
            "organizationId": organization_id,
            "endpoint": path,
            "method": method,
        }
        if body is not None:
            payload["body"] = body

        envelope = ApiEnvelope.from_dict(
            await self.supabase.invoke_function(API_CALL_FUNCTION, payload)
        )

        if not envelope.success:
            error = error_from_envelope(envelope)
            logger.error(
                f"API call not successful: {error.message} (status {error.status})"
            )
            if envelope.details:
                logger.debug(f"Details: {envelope.details}")
            raise error

        return envelope.data
