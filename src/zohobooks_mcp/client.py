"""Zoho Books API client.

This module provides the ZohoBooksClient class, whose resource accessors
build paths, query strings and bodies and pass them through the Dispatcher.
"""

import logging
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from zohobooks_mcp import endpoints
from zohobooks_mcp.config import Settings
from zohobooks_mcp.dispatcher import Dispatcher
from zohobooks_mcp.exceptions import (
    AuthenticationError,
    NoExpenseAccountError,
    ZohoBooksError,
)
from zohobooks_mcp.models import (
    BalanceSheet,
    ConnectionStatus,
    ContactCreate,
    ContactUpdate,
    ExpenseAccount,
    ExpenseCreate,
    ExpenseUpdate,
    InvoiceCreate,
    InvoiceUpdate,
    ListFilters,
    OrganizationDetails,
    ProfitAndLoss,
)
from zohobooks_mcp.normalizer import ExpenseNormalizer
from zohobooks_mcp.session import SessionManager
from zohobooks_mcp.supabase import SupabaseClient
from zohobooks_mcp.tokens import TokenStore

logger = logging.getLogger(__name__)

INVOICE_STATUSES = (
    "draft", "sent", "viewed", "partially_paid", "paid", "overdue", "cancelled",
)
CONTACT_STATUSES = ("active", "inactive")
EXPENSE_STATUSES = ("draft", "submitted", "approved", "paid", "reimbursed")

CUSTOMER = "customer"
VENDOR = "vendor"

_FORBIDDEN_ID_CHARS = set("/?#%\\ \t\r\n")


def sanitize_resource_id(value: str) -> str:
    """Validate a record id for use as a single path segment.

    Prevents path injection into the proxied API path.

    Args:
        value: The record id (e.g., "460000000012345").

    Returns:
        The id, safe to append to a path.

    Raises:
        ValueError: If the id is empty, not a string, or contains path syntax.
    """
    if not isinstance(value, str):
        raise ValueError("Resource id must be a string")
    if not value:
        raise ValueError("Resource id cannot be empty")
    if value in (".", "..") or _FORBIDDEN_ID_CHARS & set(value):
        raise ValueError(f"Invalid characters in resource id: {value!r}")
    return quote(value, safe="")


def with_query(path: str, params: dict[str, str]) -> str:
    """Append a query string to a path, omitting it when there are no params."""
    return f"{path}?{urlencode(params)}" if params else path


def _check_status(status: str | None, allowed: tuple[str, ...]) -> None:
    if status and status not in allowed:
        raise ValueError(
            f"Invalid status: {status}. Use one of: {', '.join(allowed)}"
        )


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class ZohoBooksClient:
    """Async client for Zoho Books, proxied through Supabase edge functions.

    This client handles:
    - Zoho token freshness (at most one refresh before each call)
    - Organization id resolution, cached for the client's lifetime
    - Per-resource path, filter and payload construction
    - Expense list normalization and report summaries
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session: SessionManager | None = None,
        user_id: str | None = None,
        organization_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Zoho Books client.

        Args:
            settings: Runtime configuration (defaults to Settings.from_env()).
            session: Backend session manager; provides the user JWT and id.
            user_id: Explicit user id, overriding the session's.
            organization_id: Explicit organization id, overriding settings.
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings or Settings.from_env()
        self.session = session
        self.supabase = SupabaseClient(
            self.settings,
            token_provider=session.access_token if session else None,
            transport=transport,
        )
        self.tokens = TokenStore(self.supabase)
        self.dispatcher = Dispatcher(self.supabase)
        self.normalizer = ExpenseNormalizer()
        self._user_id = user_id
        self._configured_organization_id = organization_id or self.settings.organization_id
        self._organization_id = self._configured_organization_id

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.supabase.close()

    async def get_user_id(self) -> str:
        """The user this client acts for.

        Raises:
            AuthenticationError: If neither a user id nor a session is available.
        """
        if self._user_id:
            return self._user_id
        if self.session is None:
            raise AuthenticationError()
        return (await self.session.get_valid_session()).user_id

    async def get_organization_id(self) -> str:
        """The Zoho Books organization id, resolved once and cached."""
        if self._organization_id is None:
            user_id = await self.get_user_id()
            self._organization_id = await self.tokens.get_organization_id(user_id)
        return self._organization_id

    async def _call(
        self,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Ensure a fresh Zoho token, then dispatch one API call."""
        user_id = await self.get_user_id()
        await self.tokens.get_valid_access_token(user_id)
        organization_id = await self.get_organization_id()
        return await self.dispatcher.call(user_id, organization_id, path, method, body)

    # =========================================================================
    # Connection
    # =========================================================================

    async def get_status(self) -> ConnectionStatus:
        """Connection status of the current user's integration."""
        return await self.tokens.get_status(await self.get_user_id())

    async def disconnect(self) -> None:
        """Disconnect Zoho Books for the current user (idempotent)."""
        await self.tokens.disconnect(await self.get_user_id())
        self._organization_id = self._configured_organization_id

    async def get_organization_details(self) -> OrganizationDetails:
        """Organization currency, defaulting to USD when unavailable."""
        try:
            data = await self._call(endpoints.ORGANIZATION)
        except ZohoBooksError as e:
            logger.warning(f"Error fetching organization details: {e.message}")
            return OrganizationDetails()

        organization = data.get("organization") if isinstance(data, dict) else None
        organization = organization if isinstance(organization, dict) else {}
        return OrganizationDetails(
            currency_code=organization.get("currency_code") or "USD",
            currency_symbol=organization.get("currency_symbol") or "$",
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    async def get_invoices(self, filters: ListFilters | None = None) -> dict[str, Any]:
        """List invoices, optionally filtered by status, limit and offset."""
        filters = filters or ListFilters()
        _check_status(filters.status, INVOICE_STATUSES)
        return await self._call(with_query(endpoints.INVOICES, filters.to_params()))

    async def get_invoice(self, invoice_id: str) -> dict[str, Any]:
        """Get one invoice."""
        return await self._call(
            f"{endpoints.INVOICES}/{sanitize_resource_id(invoice_id)}"
        )

    async def create_invoice(self, invoice: InvoiceCreate) -> dict[str, Any]:
        """Create an invoice."""
        return await self._call(endpoints.INVOICES, "POST", invoice.to_payload())

    async def update_invoice(
        self,
        invoice_id: str,
        update: InvoiceUpdate,
    ) -> dict[str, Any]:
        """Apply a partial update to an invoice."""
        path = f"{endpoints.INVOICES}/{sanitize_resource_id(invoice_id)}"
        return await self._call(path, "PUT", update.to_payload())

    async def delete_invoice(self, invoice_id: str) -> dict[str, Any]:
        """Delete an invoice."""
        return await self._call(
            f"{endpoints.INVOICES}/{sanitize_resource_id(invoice_id)}", "DELETE"
        )

    # =========================================================================
    # Contacts (customers and vendors)
    # =========================================================================

    async def _list_contacts(
        self,
        contact_type: str,
        filters: ListFilters | None,
    ) -> dict[str, Any]:
        filters = filters or ListFilters()
        _check_status(filters.status, CONTACT_STATUSES)
        params = filters.to_params()
        params["contact_type"] = contact_type

        data = await self._call(with_query(endpoints.CONTACTS, params))
        data = data if isinstance(data, dict) else {}

        contacts = data.get("contacts", [])
        if not isinstance(contacts, list):
            logger.warning(f"Contacts is not a list: {type(contacts).__name__}")
            contacts = []
        return {**data, "contacts": contacts}

    async def _create_contact(
        self,
        contact_type: str,
        contact: ContactCreate,
    ) -> dict[str, Any]:
        body = contact.to_payload()
        body["contact_type"] = contact_type
        return await self._call(endpoints.CONTACTS, "POST", body)

    async def _get_contact(self, contact_id: str) -> dict[str, Any]:
        return await self._call(
            f"{endpoints.CONTACTS}/{sanitize_resource_id(contact_id)}"
        )

    async def _update_contact(
        self,
        contact_id: str,
        update: ContactUpdate,
    ) -> dict[str, Any]:
        path = f"{endpoints.CONTACTS}/{sanitize_resource_id(contact_id)}"
        return await self._call(path, "PUT", update.to_payload())

    async def _delete_contact(self, contact_id: str) -> dict[str, Any]:
        return await self._call(
            f"{endpoints.CONTACTS}/{sanitize_resource_id(contact_id)}", "DELETE"
        )

    async def get_customers(self, filters: ListFilters | None = None) -> dict[str, Any]:
        """List customer contacts."""
        return await self._list_contacts(CUSTOMER, filters)

    async def get_customer(self, customer_id: str) -> dict[str, Any]:
        """Get one customer."""
        return await self._get_contact(customer_id)

    async def create_customer(self, customer: ContactCreate) -> dict[str, Any]:
        """Create a customer; contact_type is always stamped."""
        return await self._create_contact(CUSTOMER, customer)

    async def update_customer(
        self,
        customer_id: str,
        update: ContactUpdate,
    ) -> dict[str, Any]:
        """Apply a partial update to a customer."""
        return await self._update_contact(customer_id, update)

    async def delete_customer(self, customer_id: str) -> dict[str, Any]:
        """Delete a customer."""
        return await self._delete_contact(customer_id)

    async def get_vendors(self, filters: ListFilters | None = None) -> dict[str, Any]:
        """List vendor contacts."""
        return await self._list_contacts(VENDOR, filters)

    async def get_vendor(self, vendor_id: str) -> dict[str, Any]:
        """Get one vendor."""
        return await self._get_contact(vendor_id)

    async def create_vendor(self, vendor: ContactCreate) -> dict[str, Any]:
        """Create a vendor; contact_type is always stamped."""
        return await self._create_contact(VENDOR, vendor)

    async def update_vendor(
        self,
        vendor_id: str,
        update: ContactUpdate,
    ) -> dict[str, Any]:
        """Apply a partial update to a vendor."""
        return await self._update_contact(vendor_id, update)

    async def delete_vendor(self, vendor_id: str) -> dict[str, Any]:
        """Delete a vendor."""
        return await self._delete_contact(vendor_id)

    # =========================================================================
    # Chart of accounts
    # =========================================================================

    async def get_chart_of_accounts(self) -> dict[str, Any]:
        """Get the full chart of accounts."""
        return await self._call(endpoints.CHART_OF_ACCOUNTS)

    async def get_expense_accounts(self) -> list[ExpenseAccount]:
        """Get the expense-type accounts, in chart-of-accounts order.

        Accounts without an id are skipped.
        """
        data = await self.get_chart_of_accounts()

        accounts = data.get("chartofaccounts") if isinstance(data, dict) else None
        if not isinstance(accounts, list):
            return []

        return [
            ExpenseAccount(
                account_id=str(account["account_id"]),
                account_name=account.get("account_name") or "",
                account_type=account["account_type"],
            )
            for account in accounts
            if isinstance(account, dict)
            and account.get("account_type") == "expense"
            and account.get("account_id") not in (None, "")
        ]

    # =========================================================================
    # Expenses
    # =========================================================================

    async def get_expenses(self, filters: ListFilters | None = None) -> dict[str, Any]:
        """List expenses, normalized to one record shape."""
        filters = filters or ListFilters()
        _check_status(filters.status, EXPENSE_STATUSES)

        data = await self._call(with_query(endpoints.EXPENSES, filters.to_params()))
        data = data if isinstance(data, dict) else {}

        expenses = self.normalizer.normalize_all(data.get("expenses", []))
        logger.info(f"Normalized {len(expenses)} expenses")
        return {**data, "expenses": [e.to_dict() for e in expenses]}

    async def get_expense(self, expense_id: str) -> dict[str, Any]:
        """Get one expense."""
        return await self._call(
            f"{endpoints.EXPENSES}/{sanitize_resource_id(expense_id)}"
        )

    async def create_expense(self, expense: ExpenseCreate) -> dict[str, Any]:
        """Create an expense.

        Without an account_id, the first expense account of the chart of
        accounts is used.

        Raises:
            NoExpenseAccountError: If no account is given and none exists.
        """
        expense.validate()

        account_id = expense.account_id
        if not account_id:
            logger.info("No account specified, selecting an expense account")
            accounts = await self.get_expense_accounts()
            if not accounts:
                raise NoExpenseAccountError()
            selected = accounts[0]
            account_id = selected.account_id
            logger.info(
                f"Auto-selected expense account: {selected.account_name} "
                f"(ID: {selected.account_id})"
            )

        body: dict[str, Any] = {
            "vendor_name": expense.vendor_name or "Expense",
            "account_id": account_id,
            "expense_date": expense.expense_date,
            "amount": expense.total,
        }
        if expense.vendor_id:
            body["vendor_id"] = expense.vendor_id
        if expense.reference_number:
            body["reference_number"] = expense.reference_number
        if expense.notes:
            body["notes"] = expense.notes
        if expense.attachments:
            body["attachments"] = [a.to_payload() for a in expense.attachments]

        return await self._call(endpoints.EXPENSES, "POST", body)

    async def update_expense(
        self,
        expense_id: str,
        update: ExpenseUpdate,
    ) -> dict[str, Any]:
        """Apply a partial update to an expense."""
        path = f"{endpoints.EXPENSES}/{sanitize_resource_id(expense_id)}"
        return await self._call(path, "PUT", update.to_payload())

    async def delete_expense(self, expense_id: str) -> dict[str, Any]:
        """Delete an expense."""
        return await self._call(
            f"{endpoints.EXPENSES}/{sanitize_resource_id(expense_id)}", "DELETE"
        )

    # =========================================================================
    # Reports
    # =========================================================================

    async def get_profit_and_loss(self) -> ProfitAndLoss:
        """Profit and loss totals; zeros if the report cannot be fetched."""
        try:
            data = await self._call(endpoints.PROFIT_AND_LOSS)
        except ZohoBooksError as e:
            logger.warning(f"Error fetching P&L report: {e.message}")
            return ProfitAndLoss()

        report = data.get("profit_and_loss") if isinstance(data, dict) else None
        if not isinstance(report, dict):
            logger.warning("Unexpected P&L report structure")
            return ProfitAndLoss()

        total_income = _number(report.get("total_income"))
        total_expenses = _number(report.get("total_expenses"))
        return ProfitAndLoss(
            total_income=total_income,
            total_expenses=total_expenses,
            net_profit=_number(report.get("net_profit")) or (total_income - total_expenses),
        )

    async def get_balance_sheet(self) -> BalanceSheet:
        """Balance sheet totals; zeros if the report cannot be fetched."""
        try:
            data = await self._call(endpoints.BALANCE_SHEET)
        except ZohoBooksError as e:
            logger.warning(f"Error fetching Balance Sheet report: {e.message}")
            return BalanceSheet()

        report = data.get("balance_sheet") if isinstance(data, dict) else None
        if not isinstance(report, dict):
            logger.warning("Unexpected Balance Sheet structure")
            return BalanceSheet()

        return BalanceSheet(
            total_assets=_number(report.get("total_assets")),
            total_liabilities=_number(report.get("total_liabilities")),
        )

    async def get_cash_flow(self) -> dict[str, Any]:
        """Cash flow report, unmodified."""
        return await self._call(endpoints.CASH_FLOW)

    async def get_expense_report(self) -> dict[str, Any]:
        """Expense report, unmodified."""
        return await self._call(endpoints.EXPENSE_REPORT)
