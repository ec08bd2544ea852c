"""Normalization of expense records whose upstream shape varies.

Each canonical field is derived from an ordered tuple of candidate source
fields, first match wins. The tuples are module constants and can be
overridden per ExpenseNormalizer instance.
"""

import logging
import math
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from zohobooks_mcp.models import NormalizedExpense

logger = logging.getLogger(__name__)

ID_FIELDS = ("expense_id", "id")
VENDOR_NAME_FIELDS = ("vendor_name", "vendor")
AMOUNT_FIELDS = ("amount", "total")
DATE_FIELDS = ("expense_date", "date")
STATUS_FIELDS = ("status", "payment_status")
CURRENCY_FIELDS = ("currency_code", "currency")

DEFAULT_VENDOR_NAME = "Unknown Vendor"
DEFAULT_STATUS = "nonbillable"


def _text(value: Any) -> str:
    """Stringify a value the way the upstream UI does: falsy becomes ""."""
    if value is None or value is False or value == "":
        return ""
    return str(value).strip()


def first_text(record: dict[str, Any], candidates: Iterable[str]) -> str:
    """First non-blank candidate value, trimmed, or ""."""
    for name in candidates:
        value = _text(record.get(name))
        if value:
            return value
    return ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_amount(record: dict[str, Any], candidates: Iterable[str]) -> float:
    """Derive a non-negative, finite amount.

    A positive number among the candidates wins; otherwise the first
    non-blank candidate is parsed as a float; anything else is 0.
    """
    candidates = tuple(candidates)

    for name in candidates:
        value = record.get(name)
        if _is_number(value) and value > 0 and math.isfinite(value):
            return float(value)

    for name in candidates:
        value = record.get(name)
        if value is None or value is False or value == "" or value == 0:
            continue
        if _is_number(value) and not math.isfinite(value):
            continue
        try:
            amount = float(str(value).strip())
        except ValueError:
            amount = 0.0
        return amount if math.isfinite(amount) and amount > 0 else 0.0

    return 0.0


def _account(record: dict[str, Any]) -> tuple[str, str]:
    account_name = ""
    account_id = ""

    account = record.get("account")
    if isinstance(account, dict):
        account_name = _text(account.get("account_name"))
        account_id = _text(account.get("account_id"))
    elif account:
        account_name = _text(account)

    if not account_id:
        account_id = _text(record.get("account_id"))
    return account_name, account_id


class ExpenseNormalizer:
    """Coerces raw expense records into NormalizedExpense.

    The transformation is total (never raises on a dict input) and
    order-preserving. Only the synthesized identifier, used when the record
    carries no id at all, depends on the clock and so differs between
    fetches.
    """

    def __init__(
        self,
        id_fields: tuple[str, ...] = ID_FIELDS,
        vendor_name_fields: tuple[str, ...] = VENDOR_NAME_FIELDS,
        amount_fields: tuple[str, ...] = AMOUNT_FIELDS,
        date_fields: tuple[str, ...] = DATE_FIELDS,
        status_fields: tuple[str, ...] = STATUS_FIELDS,
        currency_fields: tuple[str, ...] = CURRENCY_FIELDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.id_fields = id_fields
        self.vendor_name_fields = vendor_name_fields
        self.amount_fields = amount_fields
        self.date_fields = date_fields
        self.status_fields = status_fields
        self.currency_fields = currency_fields
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def normalize(self, record: dict[str, Any], index: int = 0) -> NormalizedExpense:
        """Normalize one raw expense at position ``index`` of its list."""
        now = self.clock()

        expense_id = first_text(record, self.id_fields)
        if not expense_id:
            expense_id = f"expense-{index}-{int(now.timestamp() * 1000)}"
            logger.warning(f"Expense {index} has no identifier, using {expense_id}")

        account_name, account_id = _account(record)
        status = first_text(record, self.status_fields) or DEFAULT_STATUS

        return NormalizedExpense(
            expense_id=expense_id,
            vendor_name=first_text(record, self.vendor_name_fields) or DEFAULT_VENDOR_NAME,
            vendor_id=_text(record.get("vendor_id")),
            amount=coerce_amount(record, self.amount_fields),
            status=status.lower(),
            expense_date=first_text(record, self.date_fields) or now.date().isoformat(),
            reference_number=_text(record.get("reference_number")),
            customer_name=_text(record.get("customer_name")),
            paid_through=_text(record.get("paid_through")),
            account_name=account_name,
            account_id=account_id,
            currency=first_text(record, self.currency_fields),
        )

    def normalize_all(self, records: Any) -> list[NormalizedExpense]:
        """Normalize a list of raw expenses; a non-list yields []."""
        if not isinstance(records, list):
            logger.warning(f"Expenses is not a list: {type(records).__name__}")
            return []
        return [
            self.normalize(record if isinstance(record, dict) else {}, index)
            for index, record in enumerate(records)
        ]
