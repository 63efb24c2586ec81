"""
Pytest configuration and shared fixtures

Provides the reference transaction set used across the suite, plus accounts,
health scores and snapshots for the monitoring tests.
"""

from datetime import UTC, datetime

import pytest

from finsight.domain.analysis import ComponentScore, HealthScore, HealthSnapshot
from finsight.domain.transactions import Account, parse_transactions

# ===== Transaction Fixtures =====

# (day of January 2026, amount, category, description)
SCENARIO_ROWS = [
    (1, 5000.00, "Income", "Payroll deposit"),
    (2, -1800.00, "Housing", "Landlord rent payment"),
    (3, -150.00, "Groceries", "Fresh grocery run"),
    (4, -45.00, "Dining", "Corner restaurant dinner"),
    (5, -85.00, "Utilities", "Power company bill"),
    (6, -2500.00, "Travel", "Airline tickets"),
    (7, -200.00, "Groceries", "Market grocery haul"),
    (8, -120.00, "Transportation", "Shell gas station"),
    (9, -6.00, "Dining", "Coffee shop"),
    (10, -180.00, "Shopping", "Department store"),
    (11, -25.00, "Entertainment", "Cinema tickets"),
    (12, -75.00, "Health", "Pharmacy order"),
    (13, -9.99, "Entertainment", "Streaming subscription"),
    (14, -35.00, "Dining", "Pizza delivery"),
    (15, 1200.00, "Income", "Freelance invoice"),
]


def scenario_records() -> list[dict]:
    """Fifteen raw records: two incomes (6200.00) and thirteen expenses (5230.99)."""
    return [
        {
            "id": f"tx-{day:02d}",
            "timestamp": datetime(2026, 1, day, 12, 0, tzinfo=UTC).isoformat(),
            "amount": amount,
            "category": category,
            "description": description,
        }
        for day, amount, category, description in SCENARIO_ROWS
    ]


@pytest.fixture
def sample_records():
    """Provide the raw scenario records"""
    return scenario_records()


@pytest.fixture
def sample_transactions():
    """Provide the scenario records parsed into Transaction objects"""
    transactions, rejected = parse_transactions(scenario_records())
    assert not rejected
    return transactions


@pytest.fixture
def sample_accounts():
    """Provide a checking, savings, brokerage and credit card account"""
    return [
        Account(id="chk", name="Checking", type="LIQUID_CHECKING", balance=4000.0, user_id="user-1"),
        Account(id="sav", name="Savings", type="LIQUID_SAVINGS", balance=6000.0, user_id="user-1"),
        Account(id="brk", name="Brokerage", type="INVESTMENT", balance=15000.0, user_id="user-1"),
        Account(id="cc", name="Credit Card", type="CREDIT", balance=-1500.0, user_id="user-1"),
    ]


# ===== Health Fixtures =====


def make_health(overall: float, component_scores: dict[str, float] | None = None) -> HealthScore:
    """Build a 100-point HealthScore with the given overall and component scores."""
    scores = component_scores or {
        "cash_flow_health": overall,
        "debt_health": overall,
        "emergency_fund_health": overall,
        "spending_health": overall,
        "savings_health": overall,
        "investment_health": overall,
        "liquidity_health": overall,
    }
    return HealthScore(
        scheme="hundred_point",
        overall=overall,
        grade="B",
        components={name: ComponentScore(score=score, assessment="good") for name, score in scores.items()},
        weights={name: 1 / len(scores) for name in scores},
    )


@pytest.fixture
def healthy_score():
    """Provide a healthy 100-point score (every component at 85)"""
    return make_health(85.0)


def make_snapshot(timestamp: int, overall: float) -> HealthSnapshot:
    return HealthSnapshot(
        timestamp=timestamp,
        overall=overall,
        grade="B",
        components={"cash_flow_health": overall, "debt_health": overall},
    )


@pytest.fixture
def declining_history():
    """Provide five snapshots whose overall score drops 10 points per run"""
    return [make_snapshot(1_700_000_000_000 + i * 60_000, 90.0 - i * 10) for i in range(5)]


@pytest.fixture
def health_factory():
    """Provide the make_health builder"""
    return make_health


@pytest.fixture
def snapshot_factory():
    """Provide the make_snapshot builder"""
    return make_snapshot
