"""Custom exceptions for the Zoho Books MCP server.

This module defines the exception hierarchy for handling the error conditions
that can occur between the caller, the Supabase remote functions and the
Zoho Books API.
"""

from typing import Any


class ZohoBooksError(Exception):
    """Base exception for all Zoho Books integration errors.

    All custom exceptions in this module inherit from this class, allowing
    for broad exception handling when needed.
    """

    def __init__(self, message: str, action: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            action: Optional suggested action to resolve the error.
        """
        super().__init__(message)
        self.message = message
        self.action = action

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured error responses."""
        result: dict[str, Any] = {"error": self.message}
        if self.action:
            result["action"] = self.action
        return result


class AuthenticationError(ZohoBooksError):
    """Raised when the backend session is missing or cannot be renewed.

    This error indicates that the user needs to sign in again, either because:
    - No session is stored
    - The session expired and refreshing it failed
    - The OAuth callback was rejected (error, timeout or state mismatch)
    """

    def __init__(
        self,
        message: str = "Authentication required",
        action: str = "Run 'python -m zohobooks_mcp.auth login' to sign in",
    ) -> None:
        """Initialize authentication error with default action."""
        super().__init__(message, action)


class IntegrationNotFoundError(ZohoBooksError):
    """Raised when no stored Zoho Books credentials exist for a user."""

    def __init__(self, user_id: str, message: str | None = None) -> None:
        """Initialize integration lookup error.

        Args:
            user_id: The user whose Integration Record is missing.
            message: Optional custom message.
        """
        if message is None:
            message = "No Zoho Books integration found"
        action = "Run 'python -m zohobooks_mcp.auth connect' to connect Zoho Books"
        super().__init__(message, action)
        self.user_id = user_id


class RefreshFailedError(ZohoBooksError):
    """Raised when the remote refresh procedure cannot renew the access token."""

    def __init__(self, reason: str = "Token refresh failed") -> None:
        """Initialize refresh error.

        Args:
            reason: Failure reason reported by the refresh procedure.
        """
        super().__init__(reason, "Reconnect Zoho Books and try again")
        self.reason = reason


class OrganizationUnavailableError(ZohoBooksError):
    """Raised when the user's Zoho Books organization cannot be resolved."""

    def __init__(self, message: str = "Failed to fetch organization") -> None:
        """Initialize organization lookup error."""
        super().__init__(
            message,
            "Set ZOHO_ORGANIZATION_ID or reconnect Zoho Books",
        )


class DispatchError(ZohoBooksError):
    """Raised when a remote function is unreachable or answers malformed data.

    This is distinct from an API-level failure: the Zoho Books API was never
    heard from. It wraps underlying httpx errors where there is one.
    """

    def __init__(
        self,
        message: str = "Remote function call failed",
        original_error: Exception | None = None,
    ) -> None:
        """Initialize dispatch error.

        Args:
            message: Error message.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message, "Check your network connection and try again")
        self.original_error = original_error


class ApiError(ZohoBooksError):
    """Raised when the Zoho Books API reports a failed call.

    Subclasses cover the status codes with a dedicated message; this class is
    used as-is for every other status, carrying the upstream message.
    """

    default_message = "API call failed"
    default_action: str | None = None

    def __init__(
        self,
        message: str | None = None,
        status: int | None = None,
        details: Any = None,
        code: int | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message, defaults to the class message.
            status: HTTP status reported by the remote function.
            details: Optional upstream details payload.
            code: Optional Zoho Books error code.
        """
        super().__init__(message or self.default_message, self.default_action)
        self.status = status
        self.details = details
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary including the upstream status if known."""
        result = super().to_dict()
        if self.status is not None:
            result["status"] = self.status
        return result


class PermissionDeniedError(ApiError):
    """Raised on a 403 from Zoho Books, typically a delete of a linked record."""

    default_message = (
        "Permission denied. This item may be linked to active transactions "
        "and cannot be deleted."
    )


class NotFoundError(ApiError):
    """Raised on a 404 from Zoho Books."""

    default_message = (
        "Item not found in Zoho Books. It may have already been deleted."
    )


class InvalidRequestError(ApiError):
    """Raised on a 400 from Zoho Books."""

    default_message = "Invalid request. Please check the item details."


class AuthorizationFailedError(ApiError):
    """Raised on a 401 from Zoho Books."""

    default_message = "Authorization failed. Please reconnect to Zoho Books."
    default_action = "Run 'python -m zohobooks_mcp.auth connect' to reconnect"


class NoExpenseAccountError(ZohoBooksError):
    """Raised when an expense has no account and none can be auto-selected."""

    def __init__(self) -> None:
        """Initialize missing expense account error."""
        super().__init__(
            "No expense accounts found in your Zoho Books chart of accounts. "
            "Please create an expense account first.",
            "Create an expense account in Zoho Books or pass account_id",
        )
