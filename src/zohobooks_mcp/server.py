"""MCP server for managing Zoho Books invoices, contacts, expenses and reports.

This module defines the FastMCP server instance and its tools:
- get_connection_status / disconnect_zoho_books: Integration state
- get_organization_details: Organization currency
- list_endpoints: Browse the Zoho Books paths used by the client
- list/get/create/update/delete tools for invoices, customers, vendors
  and expenses
- list_expense_accounts / get_chart_of_accounts: Account lookup
- get_profit_and_loss, get_balance_sheet, get_cash_flow, get_expense_report
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from mcp.server.fastmcp import FastMCP

from zohobooks_mcp.client import ZohoBooksClient
from zohobooks_mcp.config import Settings
from zohobooks_mcp.endpoints import (
    KNOWN_ENDPOINTS,
    get_all_categories,
    get_endpoints_by_category,
)
from zohobooks_mcp.exceptions import ZohoBooksError
from zohobooks_mcp.models import (
    Address,
    Attachment,
    ContactCreate,
    ContactUpdate,
    ExpenseCreate,
    ExpenseUpdate,
    InvoiceCreate,
    InvoiceUpdate,
    LineItem,
    ListFilters,
)
from zohobooks_mcp.session import SessionManager

# Configure logging to stderr (not stdout - would corrupt MCP protocol)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="zohobooks-mcp",
    instructions="Manage Zoho Books invoices, customers, vendors and expenses",
)

# Lazy-initialized client (created on first tool call)
_client: ZohoBooksClient | None = None


def get_client() -> ZohoBooksClient:
    """Get or create the ZohoBooksClient instance."""
    global _client
    if _client is None:
        settings = Settings.from_env()
        _client = ZohoBooksClient(settings, session=SessionManager(settings))
    return _client


async def _run_tool(
    label: str,
    operation: Callable[[ZohoBooksClient], Awaitable[Any]],
) -> Any:
    """Run a client operation, turning failures into error dictionaries."""
    try:
        return await operation(get_client())
    except ZohoBooksError as e:
        logger.error(f"Error {label}: {e.message}")
        return e.to_dict()
    except ValueError as e:
        logger.warning(f"Invalid input {label}: {e}")
        return {"error": str(e), "action": "Check the tool arguments"}
    except Exception as e:
        logger.error(f"Unexpected error {label}: {e}")
        return {"error": str(e), "action": "Check server logs for details"}


def _line_items(items: list[dict[str, Any]] | None) -> list[LineItem] | None:
    if items is None:
        return None
    return [
        LineItem(
            item_id=item.get("item_id"),
            quantity=item.get("quantity"),
            rate=item.get("rate"),
            description=item.get("description"),
        )
        for item in items
    ]


def _address(data: dict[str, Any] | None) -> Address | None:
    if data is None:
        return None
    return Address(
        address=data.get("address"),
        street2=data.get("street2"),
        city=data.get("city"),
        state=data.get("state"),
        zip=data.get("zip"),
        country=data.get("country"),
    )


# =============================================================================
# Connection
# =============================================================================


@mcp.tool()
async def get_connection_status() -> dict[str, Any]:
    """Show whether Zoho Books is connected for the signed-in user.

    Returns:
        Dictionary with 'is_connected', 'organization_id', 'connected_at'
        and 'disconnected_at'.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        return (await client.get_status()).to_dict()

    return await _run_tool("getting connection status", operation)


@mcp.tool()
async def disconnect_zoho_books() -> dict[str, Any]:
    """Disconnect Zoho Books, clearing the stored tokens.

    Safe to call when already disconnected.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        await client.disconnect()
        return {"success": True}

    return await _run_tool("disconnecting", operation)


@mcp.tool()
async def get_organization_details() -> dict[str, Any]:
    """Get the organization's currency code and symbol (USD if unavailable)."""
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        return (await client.get_organization_details()).to_dict()

    return await _run_tool("getting organization details", operation)


@mcp.tool()
def list_endpoints(category: str | None = None) -> dict[str, Any]:
    """List the Zoho Books API paths this server uses, grouped by category.

    Args:
        category: Filter by category (accounting, contacts, purchases,
            reports, sales). If not specified, returns all categories.

    Returns:
        Dictionary with 'categories' containing endpoint lists grouped by category.
    """
    if category:
        valid_categories = get_all_categories()
        if category.lower() not in valid_categories:
            return {
                "error": f"Invalid category: {category}",
                "action": f"Valid categories: {', '.join(valid_categories)}",
            }
        endpoints = get_endpoints_by_category(category.lower())
        return {"categories": {category.lower(): [e.to_dict() for e in endpoints]}}

    categories: dict[str, list[dict[str, Any]]] = {}
    for ep in KNOWN_ENDPOINTS:
        categories.setdefault(ep.category, []).append(ep.to_dict())
    return {"categories": categories}


# =============================================================================
# Invoices
# =============================================================================


@mcp.tool()
async def list_invoices(
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict[str, Any]:
    """List invoices.

    Args:
        status: draft, sent, viewed, partially_paid, paid, overdue or cancelled.
        limit: Maximum number of invoices.
        offset: Number of invoices to skip.
    """
    filters = ListFilters(limit=limit, offset=offset, status=status)
    return await _run_tool(
        "listing invoices", lambda client: client.get_invoices(filters)
    )


@mcp.tool()
async def get_invoice(invoice_id: str) -> dict[str, Any]:
    """Get one invoice by id."""
    return await _run_tool(
        "getting invoice", lambda client: client.get_invoice(invoice_id)
    )


@mcp.tool()
async def create_invoice(
    customer_id: str,
    line_items: list[dict[str, Any]],
    invoice_number: str | None = None,
    reference_number: str | None = None,
    invoice_date: str | None = None,
    due_date: str | None = None,
    notes: str | None = None,
    terms: str | None = None,
) -> dict[str, Any]:
    """Create an invoice.

    Args:
        customer_id: Zoho Books customer id.
        line_items: Items with 'item_id', 'quantity', 'rate' and/or 'description'.
        invoice_number: Optional invoice number (auto-numbered otherwise).
        reference_number: Optional reference.
        invoice_date: Invoice date (YYYY-MM-DD).
        due_date: Due date (YYYY-MM-DD).
        notes: Notes printed on the invoice.
        terms: Terms and conditions.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        invoice = InvoiceCreate(
            customer_id=customer_id,
            line_items=_line_items(line_items) or [],
            invoice_number=invoice_number,
            reference_number=reference_number,
            invoice_date=invoice_date,
            due_date=due_date,
            notes=notes,
            terms=terms,
        )
        return await client.create_invoice(invoice)

    return await _run_tool("creating invoice", operation)


@mcp.tool()
async def update_invoice(
    invoice_id: str,
    customer_id: str | None = None,
    line_items: list[dict[str, Any]] | None = None,
    reference_number: str | None = None,
    invoice_date: str | None = None,
    due_date: str | None = None,
    notes: str | None = None,
    terms: str | None = None,
) -> dict[str, Any]:
    """Update the given fields of an invoice; omitted fields are unchanged."""
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        update = InvoiceUpdate(
            customer_id=customer_id,
            line_items=_line_items(line_items),
            reference_number=reference_number,
            invoice_date=invoice_date,
            due_date=due_date,
            notes=notes,
            terms=terms,
        )
        return await client.update_invoice(invoice_id, update)

    return await _run_tool("updating invoice", operation)


@mcp.tool()
async def delete_invoice(invoice_id: str) -> dict[str, Any]:
    """Delete an invoice."""
    return await _run_tool(
        "deleting invoice", lambda client: client.delete_invoice(invoice_id)
    )


# =============================================================================
# Customers and vendors
# =============================================================================


@mcp.tool()
async def list_customers(
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict[str, Any]:
    """List customers.

    Args:
        status: active or inactive.
        limit: Maximum number of customers.
        offset: Number of customers to skip.
    """
    filters = ListFilters(limit=limit, offset=offset, status=status)
    return await _run_tool(
        "listing customers", lambda client: client.get_customers(filters)
    )


@mcp.tool()
async def get_customer(customer_id: str) -> dict[str, Any]:
    """Get one customer by id."""
    return await _run_tool(
        "getting customer", lambda client: client.get_customer(customer_id)
    )


@mcp.tool()
async def create_customer(
    contact_name: str,
    company_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    website: str | None = None,
    billing_address: dict[str, Any] | None = None,
    shipping_address: dict[str, Any] | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Create a customer.

    Addresses take 'address', 'street2', 'city', 'state', 'zip' and 'country'.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        customer = ContactCreate(
            contact_name=contact_name,
            company_name=company_name,
            email=email,
            phone=phone,
            website=website,
            billing_address=_address(billing_address),
            shipping_address=_address(shipping_address),
            notes=notes,
        )
        return await client.create_customer(customer)

    return await _run_tool("creating customer", operation)


@mcp.tool()
async def update_customer(
    customer_id: str,
    contact_name: str | None = None,
    company_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    website: str | None = None,
    billing_address: dict[str, Any] | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Update the given fields of a customer; omitted fields are unchanged."""
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        update = ContactUpdate(
            contact_name=contact_name,
            company_name=company_name,
            email=email,
            phone=phone,
            website=website,
            billing_address=_address(billing_address),
            notes=notes,
        )
        return await client.update_customer(customer_id, update)

    return await _run_tool("updating customer", operation)


@mcp.tool()
async def delete_customer(customer_id: str) -> dict[str, Any]:
    """Delete a customer. Fails if the customer has active transactions."""
    return await _run_tool(
        "deleting customer", lambda client: client.delete_customer(customer_id)
    )


@mcp.tool()
async def list_vendors(
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict[str, Any]:
    """List vendors.

    Args:
        status: active or inactive.
        limit: Maximum number of vendors.
        offset: Number of vendors to skip.
    """
    filters = ListFilters(limit=limit, offset=offset, status=status)
    return await _run_tool(
        "listing vendors", lambda client: client.get_vendors(filters)
    )


@mcp.tool()
async def get_vendor(vendor_id: str) -> dict[str, Any]:
    """Get one vendor by id."""
    return await _run_tool(
        "getting vendor", lambda client: client.get_vendor(vendor_id)
    )


@mcp.tool()
async def create_vendor(
    contact_name: str,
    company_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    website: str | None = None,
    billing_address: dict[str, Any] | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Create a vendor."""
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        vendor = ContactCreate(
            contact_name=contact_name,
            company_name=company_name,
            email=email,
            phone=phone,
            website=website,
            billing_address=_address(billing_address),
            notes=notes,
        )
        return await client.create_vendor(vendor)

    return await _run_tool("creating vendor", operation)


@mcp.tool()
async def update_vendor(
    vendor_id: str,
    contact_name: str | None = None,
    company_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    website: str | None = None,
    billing_address: dict[str, Any] | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Update the given fields of a vendor; omitted fields are unchanged."""
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        update = ContactUpdate(
            contact_name=contact_name,
            company_name=company_name,
            email=email,
            phone=phone,
            website=website,
            billing_address=_address(billing_address),
            notes=notes,
        )
        return await client.update_vendor(vendor_id, update)

    return await _run_tool("updating vendor", operation)


@mcp.tool()
async def delete_vendor(vendor_id: str) -> dict[str, Any]:
    """Delete a vendor. Fails if the vendor has active transactions."""
    return await _run_tool(
        "deleting vendor", lambda client: client.delete_vendor(vendor_id)
    )


# =============================================================================
# Accounts and expenses
# =============================================================================


@mcp.tool()
async def get_chart_of_accounts() -> dict[str, Any]:
    """Get the full chart of accounts."""
    return await _run_tool(
        "getting chart of accounts", lambda client: client.get_chart_of_accounts()
    )


@mcp.tool()
async def list_expense_accounts() -> list[dict[str, Any]] | dict[str, Any]:
    """List the accounts usable for expenses, in chart-of-accounts order."""
    async def operation(client: ZohoBooksClient) -> list[dict[str, Any]]:
        return [a.to_dict() for a in await client.get_expense_accounts()]

    return await _run_tool("listing expense accounts", operation)


@mcp.tool()
async def list_expenses(
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict[str, Any]:
    """List expenses, normalized to one record shape.

    Each expense has 'expense_id', 'vendor_name', 'amount', 'status',
    'expense_date', 'reference_number', 'customer_name', 'paid_through',
    'account_name', 'account_id' and 'currency'.

    Args:
        status: draft, submitted, approved, paid or reimbursed.
        limit: Maximum number of expenses.
        offset: Number of expenses to skip.
    """
    filters = ListFilters(limit=limit, offset=offset, status=status)
    return await _run_tool(
        "listing expenses", lambda client: client.get_expenses(filters)
    )


@mcp.tool()
async def get_expense(expense_id: str) -> dict[str, Any]:
    """Get one expense by id."""
    return await _run_tool(
        "getting expense", lambda client: client.get_expense(expense_id)
    )


@mcp.tool()
async def create_expense(
    expense_date: str,
    total: float,
    vendor_id: str | None = None,
    vendor_name: str | None = None,
    reference_number: str | None = None,
    account_id: str | None = None,
    notes: str | None = None,
    attachments: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    """Create an expense.

    Without account_id, the first expense account of the chart of accounts
    is used.

    Args:
        expense_date: Expense date (YYYY-MM-DD).
        total: Expense amount.
        vendor_id: Optional vendor id.
        vendor_name: Optional vendor name.
        reference_number: Optional reference.
        account_id: Optional expense account id.
        notes: Optional notes.
        attachments: Files with 'file_name', 'file_type' and base64 'file_content'.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        expense = ExpenseCreate(
            expense_date=expense_date,
            total=total,
            vendor_id=vendor_id,
            vendor_name=vendor_name,
            reference_number=reference_number,
            account_id=account_id,
            notes=notes,
            attachments=[
                Attachment(
                    file_name=a["file_name"],
                    file_type=a["file_type"],
                    file_content=a["file_content"],
                )
                for a in attachments or []
            ],
        )
        return await client.create_expense(expense)

    return await _run_tool("creating expense", operation)


@mcp.tool()
async def update_expense(
    expense_id: str,
    account_id: str | None = None,
    expense_date: str | None = None,
    amount: float | None = None,
    vendor_id: str | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Update the given fields of an expense; omitted fields are unchanged."""
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        update = ExpenseUpdate(
            account_id=account_id,
            expense_date=expense_date,
            amount=amount,
            vendor_id=vendor_id,
            reference_number=reference_number,
            notes=notes,
        )
        return await client.update_expense(expense_id, update)

    return await _run_tool("updating expense", operation)


@mcp.tool()
async def delete_expense(expense_id: str) -> dict[str, Any]:
    """Delete an expense."""
    return await _run_tool(
        "deleting expense", lambda client: client.delete_expense(expense_id)
    )


# =============================================================================
# Reports
# =============================================================================


@mcp.tool()
async def get_profit_and_loss() -> dict[str, Any]:
    """Get total income, total expenses and net profit.

    Returns zeros when the report is unavailable.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        return (await client.get_profit_and_loss()).to_dict()

    return await _run_tool("getting P&L report", operation)


@mcp.tool()
async def get_balance_sheet() -> dict[str, Any]:
    """Get total assets and total liabilities.

    Returns zeros when the report is unavailable.
    """
    async def operation(client: ZohoBooksClient) -> dict[str, Any]:
        return (await client.get_balance_sheet()).to_dict()

    return await _run_tool("getting balance sheet", operation)


@mcp.tool()
async def get_cash_flow() -> dict[str, Any]:
    """Get the cash flow report as returned by Zoho Books."""
    return await _run_tool(
        "getting cash flow report", lambda client: client.get_cash_flow()
    )


@mcp.tool()
async def get_expense_report() -> dict[str, Any]:
    """Get the expense report as returned by Zoho Books."""
    return await _run_tool(
        "getting expense report", lambda client: client.get_expense_report()
    )
