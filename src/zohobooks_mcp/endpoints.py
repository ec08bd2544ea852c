"""Catalog of the Zoho Books API paths used by this client.

Use list_endpoints() on the server to browse them by category.
"""

from zohobooks_mcp.models import Endpoint

INVOICES = "/invoices"
CONTACTS = "/contacts"
EXPENSES = "/expenses"
CHART_OF_ACCOUNTS = "/chartofaccounts"
ORGANIZATION = "/organization"
PROFIT_AND_LOSS = "/reports/profitandloss"
BALANCE_SHEET = "/reports/balancesheet"
CASH_FLOW = "/reports/cashflow"
EXPENSE_REPORT = "/reports/expenses"

KNOWN_ENDPOINTS: list[Endpoint] = [
    # Sales
    Endpoint(
        path=INVOICES,
        category="sales",
        methods=("GET", "POST", "PUT", "DELETE"),
        description="Invoices, filterable by status",
    ),
    # Contacts
    Endpoint(
        path=CONTACTS,
        category="contacts",
        methods=("GET", "POST", "PUT", "DELETE"),
        description="Customers and vendors, discriminated by contact_type",
    ),
    # Purchases
    Endpoint(
        path=EXPENSES,
        category="purchases",
        methods=("GET", "POST", "PUT", "DELETE"),
        description="Expenses, normalized to one record shape on list",
    ),
    # Accounting
    Endpoint(
        path=CHART_OF_ACCOUNTS,
        category="accounting",
        methods=("GET",),
        description="Chart of accounts, source of expense accounts",
    ),
    Endpoint(
        path=ORGANIZATION,
        category="accounting",
        methods=("GET",),
        description="Organization profile including base currency",
    ),
    # Reports
    Endpoint(
        path=PROFIT_AND_LOSS,
        category="reports",
        methods=("GET",),
        description="Profit and loss totals",
    ),
    Endpoint(
        path=BALANCE_SHEET,
        category="reports",
        methods=("GET",),
        description="Balance sheet totals",
    ),
    Endpoint(
        path=CASH_FLOW,
        category="reports",
        methods=("GET",),
        description="Cash flow statement",
    ),
    Endpoint(
        path=EXPENSE_REPORT,
        category="reports",
        methods=("GET",),
        description="Expenses by category report",
    ),
]


def get_endpoints_by_category(category: str) -> list[Endpoint]:
    """Get endpoints filtered by category."""
    return [ep for ep in KNOWN_ENDPOINTS if ep.category == category]


def get_all_categories() -> list[str]:
    """Get the sorted list of unique category names."""
    return sorted({ep.category for ep in KNOWN_ENDPOINTS})
