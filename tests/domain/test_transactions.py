"""
Tests for finsight/domain/transactions.py

Verifies record validation, derived fields, account classification and the
metric bundle totals on the reference transaction set.
"""

from datetime import UTC, datetime

import pytest

from finsight.domain.transactions import (
    Account,
    MetricBundle,
    Transaction,
    TransactionValidationError,
    parse_transactions,
)


class TestTransactionFromDict:
    """Validation of raw records."""

    def test_valid_record(self):
        t = Transaction.from_dict(
            {"id": "t1", "timestamp": "2026-01-04T12:00:00Z", "amount": "-42.50", "description": "  Corner shop  "}
        )
        assert t.id == "t1"
        assert t.amount == -42.5
        assert t.description == "Corner shop"
        assert t.category == "Uncategorized"
        assert t.timestamp.tzinfo is not None

    def test_date_key_accepted(self):
        t = Transaction.from_dict({"date": "2026-01-04", "amount": 10, "description": "Refund"}, index=7)
        assert t.id == "7"
        assert t.timestamp == datetime(2026, 1, 4, tzinfo=UTC)

    @pytest.mark.parametrize(
        "record, message",
        [
            ({"timestamp": "2026-01-04", "description": "x"}, "no amount"),
            ({"timestamp": "2026-01-04", "amount": "ten", "description": "x"}, "non-numeric"),
            ({"amount": 1, "description": "x"}, "no timestamp"),
            ({"timestamp": "yesterday", "amount": 1, "description": "x"}, "Invalid timestamp"),
            ({"timestamp": "2026-01-04", "amount": 1, "description": "   "}, "no description"),
            ({"timestamp": "2026-01-04", "amount": True, "description": "x"}, "no amount"),
        ],
    )
    def test_invalid_records_rejected(self, record, message):
        with pytest.raises(TransactionValidationError, match=message):
            Transaction.from_dict(record)

    def test_non_mapping_rejected(self):
        with pytest.raises(TransactionValidationError, match="not a mapping"):
            Transaction.from_dict(["not", "a", "dict"])  # type: ignore[arg-type]

    def test_non_finite_amount_rejected(self):
        with pytest.raises(TransactionValidationError, match="finite"):
            Transaction(id="x", timestamp=datetime(2026, 1, 1, tzinfo=UTC), amount=float("inf"))


class TestDerivedFields:
    """Fields computed in __post_init__."""

    def test_calendar_fields(self):
        # 2026-01-04 is a Sunday
        t = Transaction(id="x", timestamp=datetime(2026, 1, 4, 15, 30, tzinfo=UTC), amount=-20.0)
        assert t.day_of_week == 0
        assert t.month_of_year == 0
        assert t.hour == 15
        assert t.week_of_year == 1
        assert t.abs_amount == 20.0

    def test_type_by_sign(self):
        moment = datetime(2026, 1, 4, tzinfo=UTC)
        assert Transaction(id="a", timestamp=moment, amount=10).type == "Income"
        assert Transaction(id="b", timestamp=moment, amount=-10).type == "Expense"
        zero = Transaction(id="c", timestamp=moment, amount=0)
        assert zero.type == "Income"
        assert not zero.is_income
        assert not zero.is_expense

    def test_merchant_name(self):
        moment = datetime(2026, 1, 4, tzinfo=UTC)
        assert Transaction(id="a", timestamp=moment, amount=-1, description="Shell gas").merchant_name == "Shell"
        assert Transaction(id="b", timestamp=moment, amount=-1, description="x", merchant="Acme").merchant_name == "Acme"
        assert Transaction(id="c", timestamp=moment, amount=-1).merchant_name == "Unknown"


class TestParseTransactions:
    """Batch parsing."""

    def test_malformed_records_skipped_and_sorted(self):
        records = [
            {"id": "late", "timestamp": "2026-01-05", "amount": -1, "description": "b"},
            {"id": "bad", "amount": -1, "description": "c"},
            {"id": "early", "timestamp": "2026-01-01", "amount": -1, "description": "a"},
        ]
        transactions, rejected = parse_transactions(records)

        assert [t.id for t in transactions] == ["early", "late"]
        assert len(rejected) == 1
        assert "Record 1" in rejected[0]

    def test_counts_are_conserved(self, sample_records):
        """Accepted plus rejected equals the input count."""
        records = sample_records + [{"amount": 1}, "garbage"]
        transactions, rejected = parse_transactions(records)
        assert len(transactions) + len(rejected) == len(records)


class TestAccount:
    def test_classification(self):
        assert Account(id="a", name="A", type="liquid_checking", balance=1).is_liquid
        assert Account(id="b", name="B", type="RETIREMENT_401K", balance=1).is_investment
        assert Account(id="c", name="C", type="CREDIT", balance=-5).is_debt

    def test_from_dict_alternate_keys(self):
        account = Account.from_dict({"id": 7, "account_type": "INVESTMENT", "current_balance": "12.5"})
        assert account.id == "7"
        assert account.name == "7"
        assert account.type == "INVESTMENT"
        assert account.balance == 12.5


class TestMetricBundle:
    """Aggregate metrics."""

    def test_reference_totals(self, sample_transactions):
        """Two incomes and thirteen expenses give 6200.00 / 5230.99 / 969.01."""
        metrics = MetricBundle.from_transactions(sample_transactions)

        assert metrics.total_income == pytest.approx(6200.00, abs=0.01)
        assert metrics.total_expenses == pytest.approx(5230.99, abs=0.01)
        assert metrics.net_income == pytest.approx(969.01, abs=0.01)
        assert metrics.transaction_count == 15
        assert metrics.income_transaction_count == 2
        assert metrics.expense_transaction_count == 13
        assert metrics.day_span == 14
        assert metrics.total_range == pytest.approx(5000 - 6)

    def test_net_income_identity(self, sample_transactions):
        metrics = MetricBundle.from_transactions(sample_transactions)
        assert metrics.net_income == pytest.approx(metrics.total_income - metrics.total_expenses)
        assert metrics.total_income >= 0
        assert metrics.total_expenses >= 0

    def test_empty_bundle(self):
        metrics = MetricBundle.from_transactions([])
        assert metrics.transaction_count == 0
        assert metrics.net_income == 0
        assert metrics.day_span == 1
        assert metrics.to_dict()["date_range"] == {"start": None, "end": None, "day_span": 1}

    def test_to_dict_date_range(self, sample_transactions):
        data = MetricBundle.from_transactions(sample_transactions).to_dict()
        assert data["date_range"]["start"].startswith("2026-01-01")
        assert data["date_range"]["end"].startswith("2026-01-15")
