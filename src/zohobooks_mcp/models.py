"""Data models for the Zoho Books MCP server.

This module contains dataclasses for the records this layer handles: the
backend session, the Integration Record, the remote function envelope,
normalized expenses and report summaries, plus the typed create and
partial-update payloads that are validated before dispatch.
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from typing import Any

from zohobooks_mcp.exceptions import DispatchError

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp into an aware datetime.

    Args:
        value: ISO string (``Z`` suffix accepted), datetime, or None.

    Returns:
        Timezone-aware datetime (naive values are taken as UTC), or None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_timestamp(row: dict[str, Any], column: str) -> datetime | None:
    try:
        return parse_timestamp(row.get(column))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable {column}: {row.get(column)!r}")
        return None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# =============================================================================
# Session and integration state
# =============================================================================


@dataclass
class BackendSession:
    """Supabase user session authorizing remote function and table calls.

    Args:
        access_token: Supabase JWT sent as the bearer token.
        refresh_token: Token for obtaining a new session.
        user_id: Supabase user id; the key of the Integration Record.
        obtained_at: Timestamp when the session was obtained.
        expires_in: Seconds until the access token expires (usually 3600).
    """

    access_token: str
    refresh_token: str
    user_id: str
    obtained_at: datetime
    expires_in: int = 3600

    def is_expired(self, buffer_seconds: int = 30) -> bool:
        """Check if the access token is expired or about to expire.

        Args:
            buffer_seconds: Number of seconds before actual expiry to consider
                as expired.

        Returns:
            True if the token is expired or will expire within buffer_seconds.
        """
        elapsed = (datetime.now(timezone.utc) - self.obtained_at).total_seconds()
        return elapsed >= (int(self.expires_in) - buffer_seconds)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user_id": self.user_id,
            "obtained_at": self.obtained_at.isoformat(),
            "expires_in": self.expires_in,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackendSession":
        """Create a session from a stored dictionary."""
        obtained_at = parse_timestamp(data.get("obtained_at"))
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user_id=data["user_id"],
            obtained_at=obtained_at or datetime.now(timezone.utc),
            expires_in=int(data.get("expires_in", 3600)),
        )

    @classmethod
    def from_auth_response(cls, data: dict[str, Any]) -> "BackendSession":
        """Create a session from a Supabase ``/auth/v1/token`` response."""
        user = data.get("user") or {}
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user_id=user["id"],
            obtained_at=datetime.now(timezone.utc),
            expires_in=int(data.get("expires_in", 3600)),
        )


@dataclass
class IntegrationRecord:
    """Persisted Zoho Books credential record for one user.

    The record is written by the remote OAuth exchange and refresh functions;
    locally it is only read, except for disconnect.
    """

    user_id: str
    organization_id: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    is_connected: bool = False
    connected_at: datetime | None = None
    disconnected_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the stored access token is past its expiry.

        A record without an expiry timestamp is treated as expired.
        """
        if self.token_expires_at is None:
            return True
        if now is None:
            now = datetime.now(timezone.utc)
        return self.token_expires_at < now

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IntegrationRecord":
        """Create a record from a table row.

        Unparseable timestamps are read as missing, so a corrupt expiry
        counts as expired.
        """
        return cls(
            user_id=str(data["user_id"]),
            organization_id=data.get("organization_id"),
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            token_expires_at=_row_timestamp(data, "token_expires_at"),
            is_connected=bool(data.get("is_connected", False)),
            connected_at=_row_timestamp(data, "connected_at"),
            disconnected_at=_row_timestamp(data, "disconnected_at"),
        )


@dataclass
class ConnectionStatus:
    """Connection state of a user's Zoho Books integration."""

    is_connected: bool = False
    organization_id: str | None = None
    connected_at: datetime | None = None
    disconnected_at: datetime | None = None

    @classmethod
    def from_record(cls, record: IntegrationRecord | None) -> "ConnectionStatus":
        """Derive the status from a record; no record means disconnected."""
        if record is None:
            return cls()
        return cls(
            is_connected=record.is_connected,
            organization_id=record.organization_id,
            connected_at=record.connected_at,
            disconnected_at=record.disconnected_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_connected": self.is_connected,
            "organization_id": self.organization_id,
            "connected_at": _isoformat(self.connected_at),
            "disconnected_at": _isoformat(self.disconnected_at),
        }


@dataclass
class ApiEnvelope:
    """Uniform result of the ``zoho-api-call`` remote function.

    Args:
        success: Whether the upstream call succeeded.
        data: Upstream JSON body on success.
        error: Raw error string on failure.
        status: Upstream HTTP status, if reported.
        details: Optional extra diagnostics.
    """

    success: bool
    data: Any = None
    error: str | None = None
    status: int | None = None
    details: Any = None

    @classmethod
    def from_dict(cls, payload: Any) -> "ApiEnvelope":
        """Validate and wrap a raw envelope.

        Raises:
            DispatchError: If the payload breaks the envelope invariants.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("success"), bool):
            raise DispatchError("Malformed response from remote function")

        if payload["success"]:
            if "data" not in payload or payload.get("error"):
                raise DispatchError("Successful envelope without data")
            return cls(success=True, data=payload["data"])

        error = payload.get("error") or "API call failed"
        status = payload.get("status")
        if status is not None:
            try:
                status = int(status)
            except (TypeError, ValueError) as e:
                raise DispatchError(
                    f"Malformed status in remote function response: {status!r}", e
                ) from e
        return cls(
            success=False,
            error=error if isinstance(error, str) else str(error),
            status=status,
            details=payload.get("details"),
        )


# =============================================================================
# Normalized records and report summaries
# =============================================================================


@dataclass
class NormalizedExpense:
    """Canonical expense record produced by the normalizer."""

    expense_id: str
    vendor_name: str
    amount: float
    status: str
    expense_date: str
    vendor_id: str = ""
    reference_number: str = ""
    customer_name: str = ""
    paid_through: str = ""
    account_name: str = ""
    account_id: str = ""
    currency: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "expense_id": self.expense_id,
            "vendor_name": self.vendor_name,
            "vendor_id": self.vendor_id,
            "amount": self.amount,
            "status": self.status,
            "expense_date": self.expense_date,
            "reference_number": self.reference_number,
            "customer_name": self.customer_name,
            "paid_through": self.paid_through,
            "account_name": self.account_name,
            "account_id": self.account_id,
            "currency": self.currency,
        }


@dataclass
class ExpenseAccount:
    """Chart-of-accounts entry classified as an expense account."""

    account_id: str
    account_name: str
    account_type: str = "expense"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "account_type": self.account_type,
        }


@dataclass
class OrganizationDetails:
    """Currency settings of the Zoho Books organization."""

    currency_code: str = "USD"
    currency_symbol: str = "$"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
        }


@dataclass
class ProfitAndLoss:
    """Profit and loss summary; all zeros when the report is unavailable."""

    total_income: float = 0.0
    total_expenses: float = 0.0
    net_profit: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "net_profit": self.net_profit,
        }


@dataclass
class BalanceSheet:
    """Balance sheet summary; all zeros when the report is unavailable."""

    total_assets: float = 0.0
    total_liabilities: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_assets": self.total_assets,
            "total_liabilities": self.total_liabilities,
        }


@dataclass
class Endpoint:
    """A Zoho Books API path used by this client.

    Args:
        path: API path (e.g., "/invoices").
        category: Grouping category (sales, contacts, purchases, accounting, reports).
        methods: HTTP methods used against the path.
        description: Human-readable description of the endpoint.
    """

    path: str
    category: str
    methods: tuple[str, ...]
    description: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "category": self.category,
            "methods": list(self.methods),
            "description": self.description,
        }


# =============================================================================
# Typed payloads
# =============================================================================


def _validate_date(name: str, value: str | None) -> None:
    if value is None:
        return
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}") from e


class Payload:
    """Mixin for dataclass payloads sent as request bodies.

    Fields left as None are omitted from the body; nested payloads and lists
    of payloads are converted recursively.
    """

    def validate(self) -> None:
        """Check field values; raise ValueError on invalid input."""

    def to_payload(self) -> dict[str, Any]:
        """Validate and convert to the outbound request body."""
        self.validate()
        body: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Payload):
                value = value.to_payload()
            elif isinstance(value, list):
                value = [v.to_payload() if isinstance(v, Payload) else v for v in value]
            body[f.name] = value
        return body


class PartialUpdate(Payload):
    """Payload whose fields are all optional but at least one must be set."""

    def to_payload(self) -> dict[str, Any]:
        body = super().to_payload()
        if not body:
            raise ValueError(f"{type(self).__name__} must set at least one field")
        return body


@dataclass
class Address(Payload):
    """Billing or shipping address of a contact."""

    address: str | None = None
    street2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None


@dataclass
class LineItem(Payload):
    """Invoice line item."""

    item_id: str | None = None
    quantity: float | None = None
    rate: float | None = None
    description: str | None = None

    def validate(self) -> None:
        if self.quantity is not None and self.quantity <= 0:
            raise ValueError("Line item quantity must be positive")
        if self.rate is not None and self.rate < 0:
            raise ValueError("Line item rate cannot be negative")


@dataclass
class Attachment(Payload):
    """Base64-encoded file attached to an expense."""

    file_name: str
    file_type: str
    file_content: str


def _validate_line_items(line_items: list[LineItem]) -> None:
    if not line_items:
        raise ValueError("An invoice needs at least one line item")
    for item in line_items:
        item.validate()


@dataclass
class InvoiceCreate(Payload):
    """Body of a new invoice."""

    customer_id: str
    line_items: list[LineItem] = field(default_factory=list)
    invoice_number: str | None = None
    reference_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    due_days: int | None = None
    notes: str | None = None
    terms: str | None = None
    is_emailed: bool | None = None

    def validate(self) -> None:
        if not self.customer_id:
            raise ValueError("customer_id is required")
        _validate_line_items(self.line_items)
        _validate_date("invoice_date", self.invoice_date)
        _validate_date("due_date", self.due_date)
        if self.due_days is not None and self.due_days < 0:
            raise ValueError("due_days cannot be negative")


@dataclass
class InvoiceUpdate(PartialUpdate):
    """Partial update of an invoice."""

    customer_id: str | None = None
    line_items: list[LineItem] | None = None
    invoice_number: str | None = None
    reference_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    notes: str | None = None
    terms: str | None = None

    def validate(self) -> None:
        if self.line_items is not None:
            _validate_line_items(self.line_items)
        _validate_date("invoice_date", self.invoice_date)
        _validate_date("due_date", self.due_date)


def _validate_email(email: str | None) -> None:
    if email is not None and "@" not in email:
        raise ValueError(f"Invalid email address: {email!r}")


@dataclass
class ContactCreate(Payload):
    """Body of a new customer or vendor contact."""

    contact_name: str
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    mobile: str | None = None
    fax: str | None = None
    website: str | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    notes: str | None = None

    def validate(self) -> None:
        if not self.contact_name or not self.contact_name.strip():
            raise ValueError("contact_name is required")
        _validate_email(self.email)


@dataclass
class ContactUpdate(PartialUpdate):
    """Partial update of a customer or vendor contact."""

    contact_name: str | None = None
    company_name: str | None = None
    email: str | None = None
    phone: str | None = None
    mobile: str | None = None
    fax: str | None = None
    website: str | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    notes: str | None = None

    def validate(self) -> None:
        if self.contact_name is not None and not self.contact_name.strip():
            raise ValueError("contact_name cannot be blank")
        _validate_email(self.email)


@dataclass
class ExpenseCreate:
    """Caller-side description of a new expense.

    The outbound body is assembled by the client, which resolves the account
    and renames ``total`` to Zoho's ``amount``.
    """

    expense_date: str
    total: float
    vendor_id: str | None = None
    vendor_name: str | None = None
    reference_number: str | None = None
    account_id: str | None = None
    notes: str | None = None
    attachments: list[Attachment] = field(default_factory=list)

    def validate(self) -> None:
        """Check field values; raise ValueError on invalid input."""
        _validate_date("expense_date", self.expense_date)
        if self.total is None or self.total <= 0:
            raise ValueError("Expense total must be positive")


@dataclass
class ExpenseUpdate(PartialUpdate):
    """Partial update of an expense."""

    account_id: str | None = None
    expense_date: str | None = None
    amount: float | None = None
    vendor_id: str | None = None
    vendor_name: str | None = None
    reference_number: str | None = None
    customer_id: str | None = None
    is_billable: bool | None = None
    notes: str | None = None

    def validate(self) -> None:
        _validate_date("expense_date", self.expense_date)
        if self.amount is not None and self.amount <= 0:
            raise ValueError("Expense amount must be positive")


@dataclass
class ListFilters:
    """Optional list filters; unset values never reach the query string."""

    limit: int | None = None
    offset: int | None = None
    status: str | None = None

    def to_params(self) -> dict[str, str]:
        """Convert the set filters to query parameters."""
        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be at least 1")
        if self.offset is not None and self.offset < 0:
            raise ValueError("offset cannot be negative")

        params: dict[str, str] = {}
        if self.limit is not None:
            params["limit"] = str(self.limit)
        if self.offset is not None:
            params["offset"] = str(self.offset)
        if self.status:
            params["status"] = self.status
        return params
