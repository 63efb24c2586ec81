"""
Financial Health Scorers

Two composite scoring schemes over the same transaction data:

FivePointHealthScorer (0-5), used by the financial intelligence workflow:
  0.40 cash flow + 0.25 spending stability + 0.20 budgeting discipline
  + 0.15 risk management

HundredPointHealthScorer (0-100), used by the health monitor:
  0.20 cash flow + 0.18 debt + 0.15 emergency fund + 0.15 spending
  + 0.12 savings + 0.10 investment + 0.10 liquidity
  Each component maps a financial ratio onto a piecewise business-rule table.

Grades:
  five-point:    A >= 4.5, B+ >= 4.0, B >= 3.5, B- >= 3.0, C+ >= 2.5, C >= 2.0,
                 C- >= 1.5, D >= 1.0, F
  hundred-point: A+ >= 90, A >= 85, A- >= 80, B+ >= 75, B >= 70, B- >= 65,
                 C+ >= 60, C >= 55, C- >= 50, D+ >= 45, D >= 40, F
"""

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from finsight.core import get_logger
from finsight.domain.analysis import ComponentScore, HealthScore
from finsight.domain.transactions import Account, Transaction
from finsight.ml.patterns import transaction_span
from finsight.utils.statistics import clamp, coefficient_of_variation, round_half_up, safe_divide

logger = get_logger(__name__)

RECENT_WINDOW_DAYS = 30
NEUTRAL_FIVE_POINT = 2.5
INSUFFICIENT_DATA = "Insufficient Data"
MIN_EXPENSES_FOR_SPENDING = 7

FIVE_POINT_WEIGHTS = {
    "cash_flow_health": 0.40,
    "spending_stability": 0.25,
    "budgeting_discipline": 0.20,
    "risk_management": 0.15,
}

HUNDRED_POINT_WEIGHTS = {
    "cash_flow_health": 0.20,
    "debt_health": 0.18,
    "emergency_fund_health": 0.15,
    "spending_health": 0.15,
    "savings_health": 0.12,
    "investment_health": 0.10,
    "liquidity_health": 0.10,
}

_FIVE_POINT_GRADES = [(4.5, "A"), (4.0, "B+"), (3.5, "B"), (3.0, "B-"), (2.5, "C+"), (2.0, "C"), (1.5, "C-"), (1.0, "D")]

_HUNDRED_POINT_GRADES = [
    (90, "A+"),
    (85, "A"),
    (80, "A-"),
    (75, "B+"),
    (70, "B"),
    (65, "B-"),
    (60, "C+"),
    (55, "C"),
    (50, "C-"),
    (45, "D+"),
    (40, "D"),
]


def _grade(score: float, table: list[tuple[float, str]]) -> str:
    for minimum, grade in table:
        if score >= minimum:
            return grade
    return "F"


def five_point_grade(score: float) -> str:
    return _grade(score, _FIVE_POINT_GRADES)


def hundred_point_grade(score: float) -> str:
    return _grade(score, _HUNDRED_POINT_GRADES)


def health_percentile(score: float) -> int:
    """Approximate percentile for a five-point score, kept within [5, 95]."""
    return int(min(95, max(5, round_half_up(score * 20))))


def recent_transactions(
    transactions: Sequence[Transaction], days: int = RECENT_WINDOW_DAYS, as_of: datetime | None = None
) -> list[Transaction]:
    """
    Transactions within ``days`` before ``as_of`` (default: the latest transaction).
    """
    if not transactions:
        return []
    end = as_of or max(t.timestamp for t in transactions)
    start = end - timedelta(days=days)
    return [t for t in transactions if start <= t.timestamp <= end]


def daily_expense_totals(transactions: Sequence[Transaction]) -> list[float]:
    """Absolute expense total per calendar day (days without expenses omitted)."""
    totals: dict[Any, float] = {}
    for t in transactions:
        if t.is_expense:
            day = t.timestamp.date()
            totals[day] = totals.get(day, 0.0) + t.amount
    return [abs(total) for total in totals.values()]


# ---------------------------------------------------------------------------
# Financial ratios
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FinancialRatios:
    """
    Ratios behind the 100-point components, in their native units.

    Attributes:
        income / expenses / net_cash_flow: Totals over the scored window
        cash_flow_ratio: net / income (0 without income)
        savings_rate: Same quantity as cash_flow_ratio, scored on its own table
        debt_ratio: total debt / total assets (1.0 when there are no assets)
        emergency_fund_months: liquid assets / window expenses (None without expenses)
        spending_variance: Coefficient of variation of daily expense totals
        investment_ratio: investment assets / total assets
        liquidity_ratio: liquid assets / total assets
    """

    income: float
    expenses: float
    net_cash_flow: float
    cash_flow_ratio: float
    savings_rate: float
    total_assets: float
    total_debt: float
    liquid_assets: float
    investment_assets: float
    debt_ratio: float
    emergency_fund_months: float | None
    spending_variance: float
    investment_ratio: float
    liquidity_ratio: float
    transaction_count: int
    expense_count: int
    investment_account_count: int

    @classmethod
    def compute(cls, transactions: Sequence[Transaction], accounts: Sequence[Account]) -> "FinancialRatios":
        income = sum(t.amount for t in transactions if t.is_income)
        expenses = abs(sum(t.amount for t in transactions if t.is_expense))
        net = income - expenses

        total_assets = sum(a.balance for a in accounts if a.balance > 0)
        total_debt = sum(abs(a.balance) for a in accounts if a.balance < 0)
        liquid_assets = sum(a.balance for a in accounts if a.is_liquid and a.balance > 0)
        investment_accounts = [a for a in accounts if a.is_investment]
        investment_assets = sum(max(0.0, a.balance) for a in investment_accounts)

        cash_flow_ratio = safe_divide(net, income)
        return cls(
            income=income,
            expenses=expenses,
            net_cash_flow=net,
            cash_flow_ratio=cash_flow_ratio,
            savings_rate=cash_flow_ratio,
            total_assets=total_assets,
            total_debt=total_debt,
            liquid_assets=liquid_assets,
            investment_assets=investment_assets,
            debt_ratio=safe_divide(total_debt, total_assets, default=1.0) if total_debt else 0.0,
            emergency_fund_months=liquid_assets / expenses if expenses else None,
            spending_variance=coefficient_of_variation(daily_expense_totals(transactions)),
            investment_ratio=safe_divide(investment_assets, total_assets),
            liquidity_ratio=safe_divide(liquid_assets, total_assets),
            transaction_count=len(transactions),
            expense_count=sum(1 for t in transactions if t.is_expense),
            investment_account_count=len(investment_accounts),
        )

    @property
    def has_spending_history(self) -> bool:
        """Enough expenses for the spending variance to mean something."""
        return self.expense_count >= MIN_EXPENSES_FOR_SPENDING

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# 100-point component tables
# ---------------------------------------------------------------------------


def cash_flow_score(ratios: FinancialRatios) -> float:
    if not ratios.transaction_count:
        return 50.0
    ratio = ratios.cash_flow_ratio
    if ratio >= 0.3:
        return 100.0
    if ratio >= 0.2:
        return 85.0
    if ratio >= 0.1:
        return 70.0
    if ratio >= 0.05:
        return 55.0
    if ratio >= 0:
        return 40.0
    return max(0.0, 40 + ratio * 100)


def debt_score(ratios: FinancialRatios) -> float:
    if ratios.total_debt == 0:
        return 100.0
    ratio = ratios.debt_ratio
    if ratio <= 0.1:
        return 95.0
    if ratio <= 0.2:
        return 85.0
    if ratio <= 0.3:
        return 70.0
    if ratio <= 0.5:
        return 50.0
    if ratio <= 0.8:
        return 25.0
    return 10.0


def emergency_fund_score(ratios: FinancialRatios) -> float:
    months = ratios.emergency_fund_months
    if months is None:
        return 50.0
    if months >= 6:
        return 100.0
    if months >= 3:
        return 80.0
    if months >= 1:
        return 60.0
    if months >= 0.5:
        return 30.0
    return 10.0


def spending_score(ratios: FinancialRatios) -> float:
    if not ratios.transaction_count or not ratios.has_spending_history:
        return 50.0
    variation = ratios.spending_variance
    if variation <= 0.2:
        return 90.0
    if variation <= 0.4:
        return 75.0
    if variation <= 0.6:
        return 60.0
    if variation <= 0.8:
        return 45.0
    return 25.0


def savings_score(ratios: FinancialRatios) -> float:
    if not ratios.transaction_count:
        return 50.0
    if ratios.income == 0:
        return 0.0
    rate = ratios.savings_rate
    if rate >= 0.3:
        return 100.0
    if rate >= 0.2:
        return 85.0
    if rate >= 0.15:
        return 70.0
    if rate >= 0.1:
        return 55.0
    if rate >= 0.05:
        return 35.0
    return max(0.0, 20 + rate * 100)


def investment_score(ratios: FinancialRatios) -> float:
    if not ratios.investment_account_count or ratios.total_assets == 0:
        return 30.0
    ratio = ratios.investment_ratio
    if ratio >= 0.7:
        return 100.0
    if ratio >= 0.5:
        return 85.0
    if ratio >= 0.3:
        return 70.0
    if ratio >= 0.15:
        return 55.0
    if ratio >= 0.05:
        return 35.0
    return 20.0


def liquidity_score(ratios: FinancialRatios) -> float:
    """Both too little and too much cash score low; 20-40% of assets is optimal."""
    if ratios.total_assets == 0:
        return 50.0
    ratio = ratios.liquidity_ratio
    if 0.2 <= ratio <= 0.4:
        return 100.0
    if 0.15 <= ratio <= 0.5:
        return 85.0
    if 0.1 <= ratio <= 0.6:
        return 70.0
    if 0.05 <= ratio <= 0.8:
        return 50.0
    return 30.0


_HUNDRED_POINT_COMPONENTS = {
    "cash_flow_health": (cash_flow_score, ("net_cash_flow", "cash_flow_ratio")),
    "debt_health": (debt_score, ("total_debt", "debt_ratio")),
    "emergency_fund_health": (emergency_fund_score, ("liquid_assets", "emergency_fund_months")),
    "spending_health": (spending_score, ("spending_variance", "expense_count")),
    "savings_health": (savings_score, ("savings_rate",)),
    "investment_health": (investment_score, ("investment_assets", "investment_ratio")),
    "liquidity_health": (liquidity_score, ("liquid_assets", "liquidity_ratio")),
}


def component_status(score: float) -> str:
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


class HundredPointHealthScorer:
    """
    Composite 0-100 health score from recent transactions and account balances.

    Components and the overall score are published rounded half-up; the grade
    is taken from the unrounded overall.
    """

    def __init__(self, weights: dict[str, float] | None = None):
        self.weights = dict(weights or HUNDRED_POINT_WEIGHTS)
        if set(self.weights) != set(HUNDRED_POINT_WEIGHTS) or abs(sum(self.weights.values()) - 1.0) > 1e-9:
            raise ValueError(f"Weights must cover {sorted(HUNDRED_POINT_WEIGHTS)} and sum to 1.0")

    def ratios(self, transactions: Sequence[Transaction], accounts: Sequence[Account]) -> FinancialRatios:
        return FinancialRatios.compute(transactions, accounts)

    def score(
        self,
        transactions: Sequence[Transaction],
        accounts: Sequence[Account],
        ratios: FinancialRatios | None = None,
    ) -> HealthScore:
        """
        Args:
            transactions: Transactions of the scoring window (usually the last 30 days)
            accounts: Account balances
            ratios: Precomputed ratios for the same inputs

        Returns:
            HealthScore with scheme ``hundred_point``
        """
        ratios = ratios or self.ratios(transactions, accounts)
        ratio_values = ratios.to_dict()

        raw: dict[str, float] = {}
        components: dict[str, ComponentScore] = {}
        for name, (scorer, detail_keys) in _HUNDRED_POINT_COMPONENTS.items():
            raw[name] = scorer(ratios)
            rounded = round_half_up(raw[name])
            components[name] = ComponentScore(
                score=rounded,
                assessment=component_status(rounded),
                details={key: ratio_values[key] for key in detail_keys},
            )

        overall = sum(raw[name] * weight for name, weight in self.weights.items())
        result = HealthScore(
            scheme="hundred_point",
            overall=round_half_up(overall),
            grade=hundred_point_grade(overall),
            components=components,
            weights=dict(self.weights),
        )

        logger.info(
            "100-point health score calculated",
            extra={
                "overall": result.overall,
                "grade": result.grade,
                "transactions": len(transactions),
                "accounts": len(accounts),
            },
        )
        return result


# ---------------------------------------------------------------------------
# 5-point scheme
# ---------------------------------------------------------------------------


def _insufficient(**details: Any) -> ComponentScore:
    return ComponentScore(score=NEUTRAL_FIVE_POINT, assessment=INSUFFICIENT_DATA, details=details)


def _band(score: float, labels: tuple[str, str, str, str]) -> str:
    if score >= 4:
        return labels[0]
    if score >= 3:
        return labels[1]
    if score >= 2:
        return labels[2]
    return labels[3]


class FivePointHealthScorer:
    """Composite 0-5 health score from a transaction set and its anomaly count."""

    weights = FIVE_POINT_WEIGHTS

    def cash_flow(self, transactions: Sequence[Transaction]) -> ComponentScore:
        if not transactions:
            return _insufficient(cash_flow_ratio=0.0)

        income = sum(t.amount for t in transactions if t.is_income)
        expenses = abs(sum(t.amount for t in transactions if t.is_expense))
        ratio = (income - expenses) / income if income > 0 else 0.0
        score = clamp(2.5 + ratio * 2.5, 0.0, 5.0)
        months = max(1, transaction_span(transactions) / 30)
        return ComponentScore(
            score=score,
            assessment=_band(score, ("Excellent", "Good", "Fair", "Poor")),
            details={
                "cash_flow_ratio": ratio,
                "monthly_income": income / months,
                "monthly_expenses": expenses / months,
            },
        )

    def spending_stability(self, transactions: Sequence[Transaction]) -> ComponentScore:
        daily: dict[Any, float] = {}
        for t in transactions:
            day = t.timestamp.date()
            daily[day] = daily.get(day, 0.0) + t.abs_amount
        amounts = list(daily.values())
        if not amounts or sum(amounts) == 0:
            return _insufficient(coefficient_of_variation=0.0)

        variation = coefficient_of_variation(amounts)
        score = clamp(5 - variation * 2, 0.0, 5.0)
        return ComponentScore(
            score=score,
            assessment=_band(score, ("Very Stable", "Stable", "Moderate", "Unstable")),
            details={
                "coefficient_of_variation": variation,
                "mean_daily_spending": sum(amounts) / len(amounts),
            },
        )

    def budgeting_discipline(self, transactions: Sequence[Transaction]) -> ComponentScore:
        by_category: dict[str, float] = {}
        for t in transactions:
            if t.is_expense:
                by_category[t.category] = by_category.get(t.category, 0.0) + t.abs_amount
        total = sum(by_category.values())
        if total == 0:
            return _insufficient(top_category_percentage=0.0, category_distribution=0)

        share = max(by_category.values()) / total
        score = clamp(5 - share * 5, 0.0, 5.0)
        return ComponentScore(
            score=score,
            assessment=_band(score, ("Excellent", "Good", "Fair", "Poor")),
            details={"top_category_percentage": share, "category_distribution": len(by_category)},
        )

    def risk_management(self, transactions: Sequence[Transaction], anomaly_count: int) -> ComponentScore:
        if not transactions:
            return _insufficient(anomaly_rate=0.0, anomaly_count=anomaly_count, transaction_count=0)

        rate = anomaly_count / len(transactions)
        score = clamp(5 - rate * 10, 0.0, 5.0)
        return ComponentScore(
            score=score,
            assessment=_band(score, ("Low Risk", "Moderate Risk", "High Risk", "Very High Risk")),
            details={"anomaly_rate": rate, "anomaly_count": anomaly_count, "transaction_count": len(transactions)},
        )

    def score(self, transactions: Sequence[Transaction], anomaly_count: int = 0) -> HealthScore:
        """
        Args:
            transactions: Preprocessed transactions
            anomaly_count: Number of prioritized anomalies found in them

        Returns:
            HealthScore with scheme ``five_point``, percentile and recommendations
        """
        components = {
            "cash_flow_health": self.cash_flow(transactions),
            "spending_stability": self.spending_stability(transactions),
            "budgeting_discipline": self.budgeting_discipline(transactions),
            "risk_management": self.risk_management(transactions, anomaly_count),
        }
        overall = sum(components[name].score * weight for name, weight in self.weights.items())

        result = HealthScore(
            scheme="five_point",
            overall=round_half_up(overall, 2),
            grade=five_point_grade(overall),
            components=components,
            weights=dict(self.weights),
            percentile=health_percentile(overall),
            recommendations=five_point_recommendations(components),
        )

        logger.info(
            "5-point health score calculated",
            extra={"overall": result.overall, "grade": result.grade, "transactions": len(transactions)},
        )
        return result


_FIVE_POINT_RECOMMENDATIONS = {
    "cash_flow_health": (
        "high",
        "Cash Flow",
        "Focus on increasing income or reducing expenses",
        "Improve monthly cash flow balance",
    ),
    "spending_stability": ("medium", "Stability", "Create a consistent spending routine", "Reduce spending volatility"),
    "budgeting_discipline": ("medium", "Budgeting", "Diversify spending across categories", "Better budget distribution"),
    "risk_management": ("high", "Risk", "Review unusual transactions", "Reduce financial risk exposure"),
}


def five_point_recommendations(components: dict[str, ComponentScore]) -> list[dict[str, str]]:
    """One recommendation per component scoring below 3."""
    recommendations = []
    for name, (priority, category, action, impact) in _FIVE_POINT_RECOMMENDATIONS.items():
        if name in components and components[name].score < 3:
            recommendations.append({"priority": priority, "category": category, "action": action, "impact": impact})
    return recommendations
