"""
Transaction domain models

Provides:
    - Transaction: one preprocessed ledger entry with its derived calendar fields
    - Account: a balance-holding account used by the 100-point health scheme
    - MetricBundle: aggregate numbers derived from a transaction set

All models serialize to plain dicts (``to_dict``) so pipeline state stays
JSON-serializable.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from finsight.utils.datetime_utils import day_of_week, day_span, parse_timestamp, week_of_year

INCOME = "Income"
EXPENSE = "Expense"
UNCATEGORIZED = "Uncategorized"


class TransactionValidationError(ValueError):
    """Raised when a raw transaction record is missing or has malformed fields."""


@dataclass
class Transaction:
    """
    A single preprocessed transaction.

    Derived fields are computed once in ``__post_init__``; amount keeps its sign
    (positive = income, negative = expense).

    Attributes:
        id: Transaction identifier
        timestamp: When the transaction happened (UTC)
        amount: Signed amount
        category: Category label (default "Uncategorized")
        description: Free-text description (first word is treated as the merchant)
        merchant: Optional explicit merchant name
    """

    id: str
    timestamp: datetime
    amount: float
    category: str = UNCATEGORIZED
    description: str = ""
    merchant: str | None = None
    abs_amount: float = field(init=False)
    type: str = field(init=False)
    day_of_week: int = field(init=False)
    month_of_year: int = field(init=False)
    week_of_year: int = field(init=False)
    hour: int = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.timestamp, datetime):
            raise TransactionValidationError(f"timestamp must be datetime, got {type(self.timestamp)}")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int | float) or not math.isfinite(self.amount):
            raise TransactionValidationError(f"amount must be a finite number, got {self.amount!r}")

        self.amount = float(self.amount)
        self.abs_amount = abs(self.amount)
        self.type = INCOME if self.amount >= 0 else EXPENSE
        self.day_of_week = day_of_week(self.timestamp)
        self.month_of_year = self.timestamp.month - 1
        self.week_of_year = week_of_year(self.timestamp)
        self.hour = self.timestamp.hour

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @property
    def merchant_name(self) -> str:
        """Explicit merchant, else the first word of the description."""
        if self.merchant:
            return self.merchant
        words = self.description.split(" ")
        return words[0] if words and words[0] else "Unknown"

    @classmethod
    def from_dict(cls, raw: dict[str, Any], index: int = 0) -> "Transaction":
        """
        Build a Transaction from a raw record.

        Accepts ``timestamp`` or ``date`` for the time field; amounts given as
        numeric strings are converted.

        Args:
            raw: Raw transaction mapping
            index: Position in the input, used as id fallback and in error messages

        Raises:
            TransactionValidationError: If amount, timestamp or description is missing or malformed
        """
        if not isinstance(raw, dict):
            raise TransactionValidationError(f"Record {index} is not a mapping: {type(raw).__name__}")

        amount = raw.get("amount")
        if amount is None or isinstance(amount, bool):
            raise TransactionValidationError(f"Record {index} has no amount")
        if isinstance(amount, str):
            try:
                amount = float(amount)
            except ValueError as e:
                raise TransactionValidationError(f"Record {index} has non-numeric amount {amount!r}") from e

        try:
            timestamp = parse_timestamp(raw.get("timestamp", raw.get("date")))
        except ValueError as e:
            raise TransactionValidationError(f"Record {index}: {e}") from e
        if timestamp is None:
            raise TransactionValidationError(f"Record {index} has no timestamp")

        description = raw.get("description")
        if not isinstance(description, str) or not description.strip():
            raise TransactionValidationError(f"Record {index} has no description")

        return cls(
            id=str(raw.get("id", index)),
            timestamp=timestamp,
            amount=amount,
            category=raw.get("category") or UNCATEGORIZED,
            description=description.strip(),
            merchant=raw.get("merchant"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "amount": self.amount,
            "category": self.category,
            "description": self.description,
            "merchant": self.merchant,
            "abs_amount": self.abs_amount,
            "type": self.type,
            "day_of_week": self.day_of_week,
            "month_of_year": self.month_of_year,
            "week_of_year": self.week_of_year,
            "hour": self.hour,
        }


def parse_transactions(records: list[Any]) -> tuple[list[Transaction], list[str]]:
    """
    Parse raw records, skipping malformed ones.

    Returns:
        (transactions sorted by timestamp, list of rejection messages)
    """
    transactions: list[Transaction] = []
    rejected: list[str] = []
    for index, raw in enumerate(records):
        try:
            transactions.append(Transaction.from_dict(raw, index))
        except TransactionValidationError as e:
            rejected.append(str(e))
    transactions.sort(key=lambda t: t.timestamp)
    return transactions, rejected


@dataclass
class Account:
    """
    A balance-holding account.

    ``type`` is matched by substring: LIQUID accounts feed the emergency-fund and
    liquidity ratios, INVESTMENT/RETIREMENT accounts the investment allocation.
    """

    id: str
    name: str
    type: str
    balance: float
    user_id: str | None = None

    @property
    def is_liquid(self) -> bool:
        return "LIQUID" in self.type.upper()

    @property
    def is_investment(self) -> bool:
        account_type = self.type.upper()
        return "INVESTMENT" in account_type or "RETIREMENT" in account_type

    @property
    def is_debt(self) -> bool:
        return self.balance < 0

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Account":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            type=str(raw.get("type", raw.get("account_type", ""))),
            balance=float(raw.get("balance", raw.get("current_balance", 0.0))),
            user_id=raw.get("user_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.type, "balance": self.balance, "user_id": self.user_id}


@dataclass(frozen=True)
class MetricBundle:
    """
    Aggregate numbers for one transaction set.

    Invariant: net_income == total_income - total_expenses, both totals >= 0.
    """

    total_income: float
    total_expenses: float
    net_income: float
    avg_transaction_amount: float
    transaction_count: int
    income_transaction_count: int
    expense_transaction_count: int
    total_range: float
    avg_daily_spending: float
    start: datetime | None
    end: datetime | None
    day_span: int
    max_amount: float = 0.0

    @classmethod
    def from_transactions(cls, transactions: list[Transaction]) -> "MetricBundle":
        """
        Compute metrics; ``transactions`` must be sorted by timestamp.

        An empty set yields an all-zero bundle with a 1-day span.
        """
        income = [t for t in transactions if t.is_income]
        expenses = [t for t in transactions if t.is_expense]

        total_income = sum(t.amount for t in income)
        total_expenses = abs(sum(t.amount for t in expenses))
        count = len(transactions)

        if transactions:
            start, end = transactions[0].timestamp, transactions[-1].timestamp
            amounts = [t.abs_amount for t in transactions]
            avg_amount = sum(amounts) / count
            max_amount = max(amounts)
            total_range = max(amounts) - min(amounts)
        else:
            start = end = None
            avg_amount = 0.0
            total_range = 0.0
            max_amount = 0.0

        span = day_span(start, end, count) if start and end else 1

        return cls(
            total_income=total_income,
            total_expenses=total_expenses,
            net_income=total_income - total_expenses,
            avg_transaction_amount=avg_amount,
            transaction_count=count,
            income_transaction_count=len(income),
            expense_transaction_count=len(expenses),
            total_range=total_range,
            avg_daily_spending=total_expenses / max(1, span),
            start=start,
            end=end,
            day_span=span,
            max_amount=max_amount,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "net_income": self.net_income,
            "avg_transaction_amount": self.avg_transaction_amount,
            "transaction_count": self.transaction_count,
            "income_transaction_count": self.income_transaction_count,
            "expense_transaction_count": self.expense_transaction_count,
            "total_range": self.total_range,
            "max_amount": self.max_amount,
            "avg_daily_spending": self.avg_daily_spending,
            "date_range": {
                "start": self.start.isoformat() if self.start else None,
                "end": self.end.isoformat() if self.end else None,
                "day_span": self.day_span,
            },
        }
