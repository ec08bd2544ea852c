"""Tests for expense normalization."""

import math
from datetime import datetime, timezone

import pytest

from zohobooks_mcp.normalizer import ExpenseNormalizer, coerce_amount, first_text


def fixed_clock(ms: int):
    return lambda: datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class TestNormalize:
    """Test cases for ExpenseNormalizer.normalize."""

    def test_string_amount_and_alternate_field_names(self):
        """The documented example record normalizes to the canonical shape."""
        normalizer = ExpenseNormalizer()
        [expense] = normalizer.normalize_all(
            [{"amount": "12.50", "vendor": "Acme", "date": "2024-01-05"}]
        )

        assert expense.amount == 12.5
        assert expense.vendor_name == "Acme"
        assert expense.expense_date == "2024-01-05"
        assert expense.status == "nonbillable"

    def test_empty_record_is_total(self):
        """A record missing every field still yields a valid expense."""
        normalizer = ExpenseNormalizer(clock=fixed_clock(1_704_067_200_000))
        expense = normalizer.normalize({}, index=3)

        assert expense.expense_id == "expense-3-1704067200000"
        assert expense.vendor_name == "Unknown Vendor"
        assert expense.amount == 0
        assert expense.status == "nonbillable"
        assert expense.expense_date == "2024-01-01"
        assert expense.account_name == ""
        assert expense.currency == ""

    def test_synthesized_id_is_the_only_unstable_field(self):
        """Refetching without an upstream id changes the id and nothing else."""
        record = {"vendor_name": "Acme", "total": 40, "payment_status": "PAID"}
        first = ExpenseNormalizer(clock=fixed_clock(1_000)).normalize(record, 0)
        second = ExpenseNormalizer(clock=fixed_clock(2_000)).normalize(record, 0)

        assert first.expense_id != second.expense_id
        assert first.amount == second.amount == 40
        assert first.status == second.status == "paid"
        assert first.expense_date == second.expense_date

    def test_upstream_id_is_stable(self):
        record = {"id": 987, "amount": 5}
        first = ExpenseNormalizer(clock=fixed_clock(1_000)).normalize(record, 0)
        second = ExpenseNormalizer(clock=fixed_clock(2_000)).normalize(record, 5)

        assert first.expense_id == second.expense_id == "987"

    def test_expense_id_preferred_over_id(self):
        expense = ExpenseNormalizer().normalize({"expense_id": "e1", "id": "x"})
        assert expense.expense_id == "e1"

    def test_status_is_lowercased_and_trimmed(self):
        expense = ExpenseNormalizer().normalize({"status": "  Unbilled "})
        assert expense.status == "unbilled"

    def test_blank_vendor_falls_back(self):
        expense = ExpenseNormalizer().normalize({"vendor_name": "   ", "vendor": ""})
        assert expense.vendor_name == "Unknown Vendor"

    def test_nested_account_object(self):
        expense = ExpenseNormalizer().normalize(
            {"account": {"account_name": "Travel", "account_id": "acc-1"}}
        )
        assert expense.account_name == "Travel"
        assert expense.account_id == "acc-1"

    def test_flat_account_with_separate_id(self):
        expense = ExpenseNormalizer().normalize({"account": "Meals", "account_id": 42})
        assert expense.account_name == "Meals"
        assert expense.account_id == "42"

    def test_pass_through_fields(self):
        expense = ExpenseNormalizer().normalize({
            "reference_number": "R-1",
            "customer_name": "Bob",
            "paid_through": "Petty Cash",
            "currency": "EUR",
            "vendor_id": " v-9 ",
        })
        assert expense.reference_number == "R-1"
        assert expense.customer_name == "Bob"
        assert expense.paid_through == "Petty Cash"
        assert expense.currency == "EUR"
        assert expense.vendor_id == "v-9"

    def test_currency_code_preferred(self):
        expense = ExpenseNormalizer().normalize({"currency_code": "USD", "currency": "EUR"})
        assert expense.currency == "USD"

    def test_candidate_lists_are_configurable(self):
        normalizer = ExpenseNormalizer(vendor_name_fields=("payee",))
        expense = normalizer.normalize({"payee": "Acme", "vendor_name": "Ignored"})
        assert expense.vendor_name == "Acme"


class TestNormalizeAll:
    """Test cases for list handling."""

    def test_preserves_order(self):
        expenses = ExpenseNormalizer().normalize_all(
            [{"id": "a"}, {"id": "b"}, {"id": "c"}]
        )
        assert [e.expense_id for e in expenses] == ["a", "b", "c"]

    def test_non_list_yields_empty(self):
        assert ExpenseNormalizer().normalize_all({"id": "a"}) == []
        assert ExpenseNormalizer().normalize_all(None) == []

    def test_non_dict_entries_are_normalized_as_empty(self):
        [expense] = ExpenseNormalizer().normalize_all(["junk"])
        assert expense.vendor_name == "Unknown Vendor"
        assert expense.amount == 0


class TestCoerceAmount:
    """Test cases for coerce_amount."""

    fields = ("amount", "total")

    @pytest.mark.parametrize(
        "record, expected",
        [
            ({"amount": 10}, 10.0),
            ({"amount": 0, "total": 7.5}, 7.5),
            ({"amount": "3.25"}, 3.25),
            ({"total": "8"}, 8.0),
            ({"amount": "abc"}, 0.0),
            ({"amount": -5}, 0.0),
            ({"amount": "-5"}, 0.0),
            ({"amount": "nan"}, 0.0),
            ({"amount": "inf"}, 0.0),
            ({"amount": True}, 0.0),
            ({}, 0.0),
        ],
    )
    def test_amount_rules(self, record, expected):
        amount = coerce_amount(record, self.fields)
        assert amount == expected
        assert amount >= 0
        assert not math.isnan(amount)

    def test_numeric_candidate_beats_earlier_string(self):
        """A positive number in any candidate wins over string parsing."""
        assert coerce_amount({"amount": "1.00", "total": 9}, self.fields) == 9.0


def test_first_text_skips_blank_values():
    assert first_text({"a": "", "b": None, "c": " x "}, ("a", "b", "c")) == "x"


@pytest.mark.parametrize("blank", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_amount_falls_through_to_next_candidate(blank):
    assert coerce_amount({"amount": blank, "total": "7.25"}, ("amount", "total")) == 7.25
