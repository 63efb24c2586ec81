"""
Health Alert Engine

Evaluates a 100-point health score, its underlying financial ratios, the risk
assessment and the health trend against configurable thresholds and produces
severity-tagged alerts, plus risk assessment and proactive recommendations.

A second rule set, ``evaluate_analysis``, covers one transaction analysis: the
metric bundle, the prioritized anomaly list and the 5-point health score.

Thresholds are keyed ``"<metric>.<level>"`` and can be overridden at
construction (``{"overall_health.warning": 45}``). The engine is stateless: every
call evaluates its inputs from scratch and does not deduplicate against earlier
runs.

Usage::

    from finsight.ml.alert_engine import AlertEngine

    engine = AlertEngine(thresholds=config.thresholds)
    risk = engine.assess_risks(health, trends)
    alerts = engine.evaluate(health, ratios, risk, trends, previous=last_snapshot)
    alerts += engine.evaluate_analysis(metrics, anomalies, five_point_health, error_count=len(errors))
    recommendations = engine.build_recommendations(health, trends)
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from finsight.core import ConfigurationError, get_logger
from finsight.domain.analysis import Alert, HealthScore, HealthSnapshot, Recommendation
from finsight.domain.transactions import MetricBundle
from finsight.ml.health_scorer import FinancialRatios

logger = get_logger(__name__)

DEFAULT_THRESHOLDS: dict[str, float] = {
    "overall_health.critical": 20,
    "overall_health.warning": 40,
    "overall_health.drop": 10,
    "cash_flow.critical": -1000,
    "cash_flow.warning": -500,
    "debt_ratio.critical": 0.8,
    "debt_ratio.warning": 0.6,
    "emergency_fund.critical": 0.5,
    "emergency_fund.warning": 1.0,
    "spending_variance.critical": 0.5,
    "spending_variance.warning": 0.3,
    "savings_rate.critical": 0.05,
    "savings_rate.warning": 0.10,
    "liquidity_ratio.critical": 0.1,
    "liquidity_ratio.warning": 0.3,
    "anomaly_risk.high": 0.7,
    "five_point_health.warning": 2.5,
    "large_transaction.warning": 500,
    "system_errors.warning": 5,
}

SEVERITY_BY_LEVEL = {"critical": "critical", "warning": "high"}

RISK_BANDS = [(30, "critical"), (50, "moderate"), (70, "low")]
RISK_POINTS = {"critical": 30, "moderate": 15, "low": 5}
WARNING_POINTS = {"critical": 25, "moderate": 10}


@dataclass
class ThresholdRule:
    """A two-level threshold rule on one financial ratio."""

    metric: str
    attribute: str
    operator: str  # "below" | "above"
    requires: str  # ratio attribute that must be truthy for the rule to apply
    title: str
    message_template: str

    def breached(self, value: float, threshold: float) -> bool:
        if self.operator == "below":
            return value < threshold
        return value > threshold


# ---------------------------------------------------------------------------
# Built-in ratio rules
# ---------------------------------------------------------------------------

THRESHOLD_RULES: list[ThresholdRule] = [
    ThresholdRule(
        metric="cash_flow",
        attribute="net_cash_flow",
        operator="below",
        requires="transaction_count",
        title="Negative Cash Flow",
        message_template="Net cash flow is ${value:,.2f} (threshold ${threshold:,.2f})",
    ),
    ThresholdRule(
        metric="debt_ratio",
        attribute="debt_ratio",
        operator="above",
        requires="total_debt",
        title="High Debt Ratio",
        message_template="Debt is {value:.0%} of assets (threshold {threshold:.0%})",
    ),
    ThresholdRule(
        metric="emergency_fund",
        attribute="emergency_fund_months",
        operator="below",
        requires="expenses",
        title="Low Emergency Fund",
        message_template="Liquid savings cover {value:.1f} months of expenses (threshold {threshold:.1f})",
    ),
    ThresholdRule(
        metric="spending_variance",
        attribute="spending_variance",
        operator="above",
        requires="has_spending_history",
        title="Irregular Spending",
        message_template="Daily spending varies by {value:.0%} of its mean (threshold {threshold:.0%})",
    ),
    ThresholdRule(
        metric="savings_rate",
        attribute="savings_rate",
        operator="below",
        requires="transaction_count",
        title="Low Savings Rate",
        message_template="Savings rate is {value:.1%} (threshold {threshold:.1%})",
    ),
    ThresholdRule(
        metric="liquidity_ratio",
        attribute="liquidity_ratio",
        operator="below",
        requires="total_assets",
        title="Low Liquidity",
        message_template="Liquid assets are {value:.0%} of total assets (threshold {threshold:.0%})",
    ),
]

_RISK_MESSAGES: dict[str, dict[str, str]] = {
    "cash_flow_health": {
        "critical": "Negative cash flow detected. Immediate budget review needed.",
        "moderate": "Low cash flow margin. Consider reducing expenses.",
        "low": "Cash flow could be improved with better budgeting.",
    },
    "debt_health": {
        "critical": "High debt levels pose significant financial risk.",
        "moderate": "Debt levels are concerning. Focus on debt reduction.",
        "low": "Debt levels are manageable but could be improved.",
    },
    "emergency_fund_health": {
        "critical": "Emergency fund critically low. Build emergency savings immediately.",
        "moderate": "Emergency fund insufficient. Aim for 3-6 months expenses.",
        "low": "Emergency fund below recommended levels.",
    },
    "spending_health": {
        "critical": "Spending patterns are highly irregular and unpredictable.",
        "moderate": "Spending inconsistency detected. Create a budget plan.",
        "low": "Spending could be more consistent.",
    },
    "savings_health": {
        "critical": "No savings or negative savings rate. Review income and expenses.",
        "moderate": "Low savings rate. Increase savings goals.",
        "low": "Savings rate below optimal levels.",
    },
    "investment_health": {
        "critical": "No investment portfolio. Consider long-term investing.",
        "moderate": "Limited investment diversification. Expand portfolio.",
        "low": "Investment allocation could be optimized.",
    },
    "liquidity_health": {
        "critical": "Liquidity severely constrained. Maintain more liquid assets.",
        "moderate": "Liquidity levels may be insufficient for emergencies.",
        "low": "Liquidity allocation could be balanced better.",
    },
}


def risk_message(component: str, score: float, severity: str) -> str:
    messages = _RISK_MESSAGES.get(component, {})
    return messages.get(severity, f"{component} needs attention (score: {score})")


def risk_level(risk_score: float) -> str:
    if risk_score >= 70:
        return "critical"
    if risk_score >= 40:
        return "high"
    if risk_score >= 20:
        return "moderate"
    return "low"


def _label(component: str) -> str:
    return component.replace("_", " ")


def _trend_analysis(trends: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not trends:
        return {}
    return trends.get("trend_analysis") or {}


class AlertEngine:
    """
    Stateless rule engine over health, ratio, risk and trend results.

    Args:
        thresholds: Overrides keyed ``"<metric>.<level>"``

    Raises:
        ConfigurationError: If an override key is unknown
    """

    def __init__(self, thresholds: Mapping[str, float] | None = None):
        overrides = dict(thresholds or {})
        unknown = sorted(set(overrides) - set(DEFAULT_THRESHOLDS))
        if unknown:
            raise ConfigurationError(f"Unknown alert threshold keys: {unknown}")
        self.thresholds = {**DEFAULT_THRESHOLDS, **overrides}

    def threshold(self, metric: str, level: str) -> float:
        return self.thresholds[f"{metric}.{level}"]

    # ------------------------------------------------------------------
    # Risk assessment
    # ------------------------------------------------------------------

    def assess_risks(self, health: HealthScore, trends: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        Band component scores into critical/moderate/low risks and add trend early warnings.

        Risk score = 30/15/5 per critical/moderate/low risk plus 25/10 per
        critical/moderate early warning, capped at 100.
        """
        risks: dict[str, list[dict[str, Any]]] = {"critical": [], "moderate": [], "low": []}
        for component, score in health.component_scores().items():
            for upper, severity in RISK_BANDS:
                if score < upper:
                    risks[severity].append(
                        {
                            "type": component,
                            "score": score,
                            "severity": severity,
                            "message": risk_message(component, score, severity),
                        }
                    )
                    break

        early_warnings = []
        analysis = _trend_analysis(trends)
        direction = analysis.get("direction")
        strength = analysis.get("strength", 0)
        if direction == "strongly_declining" and strength > 50:
            early_warnings.append(
                {
                    "type": "declining_health_trend",
                    "severity": "critical",
                    "message": "Financial health is declining rapidly. Immediate action recommended.",
                    "trend_strength": strength,
                }
            )
        elif direction == "declining" and strength > 30:
            early_warnings.append(
                {
                    "type": "declining_health_trend",
                    "severity": "moderate",
                    "message": "Financial health showing downward trend. Monitor closely.",
                    "trend_strength": strength,
                }
            )

        score = sum(len(items) * RISK_POINTS[severity] for severity, items in risks.items())
        score += sum(WARNING_POINTS.get(warning["severity"], 0) for warning in early_warnings)
        score = min(100, score)

        return {
            "overall_risk_level": risk_level(score),
            "risk_score": score,
            "risk_factors": [risk["type"] for severity in ("critical", "moderate") for risk in risks[severity]],
            "early_warnings": early_warnings,
            "critical_risks": risks["critical"],
            "moderate_risks": risks["moderate"],
            "low_risks": risks["low"],
        }

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def evaluate(
        self,
        health: HealthScore,
        ratios: FinancialRatios | None,
        risk: Mapping[str, Any] | None,
        trends: Mapping[str, Any] | None,
        previous: HealthSnapshot | None = None,
    ) -> list[Alert]:
        """
        Run every rule and return the triggered alerts in rule order.

        Args:
            health: Current 100-point score
            ratios: Ratios behind the score (ratio rules are skipped when None)
            risk: Output of ``assess_risks``
            trends: Output of ``analyze_health_trends``
            previous: Last archived snapshot, for the change-since-last-run rule
        """
        alerts: list[Alert] = []
        alerts.extend(self._overall_alerts(health))
        alerts.extend(self._component_alerts(health))
        if ratios is not None:
            alerts.extend(self._ratio_alerts(ratios))
        alerts.extend(self._risk_alerts(risk or {}))
        alerts.extend(self._trend_alerts(trends))
        if previous is not None:
            alerts.extend(self._change_alerts(health, previous))

        logger.info(
            "Alert evaluation complete",
            extra={
                "alerts": len(alerts),
                "critical": sum(1 for alert in alerts if alert.severity == "critical"),
                "overall": health.overall,
            },
        )
        return alerts

    def evaluate_analysis(
        self,
        metrics: MetricBundle | None,
        anomalies: Sequence[Mapping[str, Any]],
        health: Mapping[str, Any] | None,
        error_count: int = 0,
    ) -> list[Alert]:
        """
        Rules over one transaction analysis.

        Args:
            metrics: Metric bundle of the analysed transactions (large-transaction rule)
            anomalies: Serialized anomaly records, each with a ``risk_score``
            health: Serialized 5-point health score with ``overall`` and ``grade``
            error_count: Errors recorded by the run so far
        """
        alerts: list[Alert] = []

        risk_threshold = self.threshold("anomaly_risk", "high")
        high_risk = [anomaly for anomaly in anomalies if anomaly.get("risk_score", 0) > risk_threshold]
        if high_risk:
            alerts.append(
                Alert(
                    type="high_risk_anomaly",
                    severity="high",
                    title="High-Risk Financial Anomaly Detected",
                    message=f"{len(high_risk)} high-risk anomalies detected in your recent transactions",
                    action_required=True,
                    data={"anomalies": high_risk, "threshold": risk_threshold},
                )
            )

        if health and health.get("overall") is not None:
            overall = float(health["overall"])
            if overall < self.threshold("five_point_health", "warning"):
                alerts.append(
                    Alert(
                        type="low_health_score",
                        severity="medium",
                        title="Financial Health Score Alert",
                        message=f"Your financial health score is {overall:.1f}/5.0 ({health.get('grade', 'Unknown')})",
                        action_required=False,
                        data={"overall": overall, "grade": health.get("grade")},
                    )
                )

        if metrics is not None and metrics.max_amount > self.threshold("large_transaction", "warning"):
            alerts.append(
                Alert(
                    type="large_transaction",
                    severity="low",
                    title="Large Transaction Detected",
                    message=f"Large transaction of ${metrics.max_amount:,.2f} detected",
                    action_required=False,
                    data={"amount": metrics.max_amount},
                )
            )

        if error_count > self.threshold("system_errors", "warning"):
            alerts.append(
                Alert(
                    type="system_health",
                    severity="medium",
                    title="System Error Alert",
                    message=f"{error_count} errors recorded during analysis",
                    action_required=True,
                    data={"error_count": error_count},
                )
            )

        return alerts

    def _overall_alerts(self, health: HealthScore) -> list[Alert]:
        score = health.overall
        if score < self.threshold("overall_health", "critical"):
            return [
                Alert(
                    type="financial_health",
                    severity="critical",
                    title="Critical Financial Health Alert",
                    message=(
                        f"Overall financial health score is critically low ({score:g}/100). Immediate action required."
                    ),
                    action_required=True,
                    data={
                        "score": score,
                        "recommendations": [
                            "Review budget immediately",
                            "Reduce non-essential expenses",
                            "Consider financial counseling",
                        ],
                    },
                )
            ]
        if score < self.threshold("overall_health", "warning"):
            return [
                Alert(
                    type="financial_health",
                    severity="high",
                    title="Financial Health Warning",
                    message=f"Financial health score below recommended level ({score:g}/100). Review and improve.",
                    action_required=True,
                    data={
                        "score": score,
                        "recommendations": [
                            "Analyze spending patterns",
                            "Increase savings rate",
                            "Review financial goals",
                        ],
                    },
                )
            ]
        return []

    def _component_alerts(self, health: HealthScore) -> list[Alert]:
        critical = self.threshold("overall_health", "critical")
        warning = self.threshold("overall_health", "warning")
        alerts = []
        for component, score in health.component_scores().items():
            label = _label(component)
            if score < critical:
                alerts.append(
                    Alert(
                        type=component,
                        severity="critical",
                        title=f"Critical {label.upper()} Alert",
                        message=f"{label} score is critically low ({score:g}/100)",
                        action_required=True,
                        data={"score": score},
                    )
                )
            elif score < warning:
                alerts.append(
                    Alert(
                        type=component,
                        severity="high",
                        title=f"{label.upper()} Warning",
                        message=f"{label} score needs attention ({score:g}/100)",
                        action_required=True,
                        data={"score": score},
                    )
                )
        return alerts

    def _ratio_alerts(self, ratios: FinancialRatios) -> list[Alert]:
        alerts = []
        for rule in THRESHOLD_RULES:
            if not getattr(ratios, rule.requires):
                continue
            value = getattr(ratios, rule.attribute)
            if value is None:
                continue
            for level in ("critical", "warning"):
                threshold = self.threshold(rule.metric, level)
                if rule.breached(value, threshold):
                    severity = SEVERITY_BY_LEVEL[level]
                    alerts.append(
                        Alert(
                            type=rule.metric,
                            severity=severity,
                            title=rule.title,
                            message=rule.message_template.format(value=value, threshold=threshold),
                            action_required=True,
                            data={"metric": rule.metric, "value": value, "threshold": threshold, "level": level},
                        )
                    )
                    break
        return alerts

    def _risk_alerts(self, risk: Mapping[str, Any]) -> list[Alert]:
        return [
            Alert(
                type="risk_alert",
                severity="critical",
                title=f"High Risk: {_label(item['type']).upper()}",
                message=item["message"],
                action_required=True,
                data={"risk_score": item["score"]},
            )
            for item in risk.get("critical_risks", [])
        ]

    def _trend_alerts(self, trends: Mapping[str, Any] | None) -> list[Alert]:
        analysis = _trend_analysis(trends)
        if analysis.get("direction") != "strongly_declining":
            return []
        return [
            Alert(
                type="trend_alert",
                severity="medium",
                title="Declining Financial Health Trend",
                message="Your financial health has been declining. Review recent changes.",
                action_required=False,
                data={"trend_direction": analysis["direction"], "trend_strength": analysis.get("strength", 0)},
            )
        ]

    def _change_alerts(self, health: HealthScore, previous: HealthSnapshot) -> list[Alert]:
        drop = previous.overall - health.overall
        if drop < self.threshold("overall_health", "drop"):
            return []
        insights = self.change_insights(HealthSnapshot.from_score(health), previous)
        return [
            Alert(
                type="health_change",
                severity="high" if drop >= 2 * self.threshold("overall_health", "drop") else "medium",
                title="Financial Health Dropped",
                message=f"Overall health fell {drop:g} points since the last check ({previous.overall:g} to {health.overall:g})",
                action_required=drop >= 2 * self.threshold("overall_health", "drop"),
                data=insights,
            )
        ]

    # ------------------------------------------------------------------
    # Change insights
    # ------------------------------------------------------------------

    def change_insights(self, current: HealthSnapshot, previous: HealthSnapshot | None) -> dict[str, Any]:
        """
        Compare two snapshots.

        Returns:
            Overall and per-component deltas, the components that moved, and the
            largest decline; ``{"has_previous": False}`` without a previous snapshot
        """
        if previous is None:
            return {"has_previous": False}

        changes = {
            name: score - previous.components[name]
            for name, score in current.components.items()
            if name in previous.components
        }
        declined = sorted((name for name, delta in changes.items() if delta < 0), key=lambda name: changes[name])
        improved = sorted(
            (name for name, delta in changes.items() if delta > 0), key=lambda name: changes[name], reverse=True
        )
        return {
            "has_previous": True,
            "overall_change": current.overall - previous.overall,
            "previous_grade": previous.grade,
            "current_grade": current.grade,
            "component_changes": changes,
            "improved": improved,
            "declined": declined,
            "largest_decline": declined[0] if declined else None,
        }

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def build_recommendations(
        self, health: HealthScore, trends: Mapping[str, Any] | None = None
    ) -> list[Recommendation]:
        """Proactive recommendations from component scores and the trend direction."""
        scores = health.component_scores()
        recommendations = []

        if scores.get("emergency_fund_health", 100) < 50:
            recommendations.append(
                Recommendation(
                    category="emergency_preparedness",
                    priority="high",
                    title="Build Emergency Fund",
                    description="Establish or increase emergency fund to cover 3-6 months of expenses",
                    action_items=[
                        "Calculate monthly expenses",
                        "Set automatic savings transfer",
                        "Use high-yield savings account",
                        "Start with $1000 emergency fund",
                    ],
                    estimated_impact="High",
                    timeframe="3-6 months",
                )
            )

        cash_flow = scores.get("cash_flow_health", 100)
        if cash_flow < 60:
            recommendations.append(
                Recommendation(
                    category="cash_flow_optimization",
                    priority="critical" if cash_flow < 30 else "high",
                    title="Improve Cash Flow",
                    description="Optimize income and expenses to improve monthly cash flow",
                    action_items=[
                        "Review and categorize all expenses",
                        "Identify and eliminate unnecessary subscriptions",
                        "Consider additional income sources",
                        "Negotiate better rates on utilities and services",
                    ],
                    estimated_impact="High",
                    timeframe="1-3 months",
                )
            )

        debt = scores.get("debt_health", 100)
        if debt < 70:
            recommendations.append(
                Recommendation(
                    category="debt_reduction",
                    priority="critical" if debt < 40 else "medium",
                    title="Reduce Debt Burden",
                    description="Implement debt reduction strategy to improve financial health",
                    action_items=[
                        "List all debts with interest rates",
                        "Consider debt avalanche or snowball method",
                        "Negotiate with creditors for better terms",
                        "Avoid taking on new debt",
                    ],
                    estimated_impact="High",
                    timeframe="6-24 months",
                )
            )

        if scores.get("investment_health", 100) < 60:
            recommendations.append(
                Recommendation(
                    category="wealth_building",
                    priority="medium",
                    title="Start or Improve Investment Strategy",
                    description="Build long-term wealth through strategic investing",
                    action_items=[
                        "Open investment account if needed",
                        "Start with low-cost index funds",
                        "Contribute to employer 401(k) match",
                        "Consider Roth IRA for tax advantages",
                    ],
                    estimated_impact="Medium",
                    timeframe="3-12 months",
                )
            )

        if scores.get("spending_health", 100) < 70:
            recommendations.append(
                Recommendation(
                    category="spending_optimization",
                    priority="medium",
                    title="Improve Spending Consistency",
                    description="Create more predictable and controlled spending patterns",
                    action_items=[
                        "Create and stick to monthly budget",
                        "Use spending tracking app",
                        "Implement the 24-hour rule for large purchases",
                        "Set up separate accounts for different spending categories",
                    ],
                    estimated_impact="Medium",
                    timeframe="1-3 months",
                )
            )

        if "declining" in str(_trend_analysis(trends).get("direction", "")):
            recommendations.append(
                Recommendation(
                    category="trend_reversal",
                    priority="high",
                    title="Reverse Declining Trend",
                    description="Take action to improve declining financial health trend",
                    action_items=[
                        "Identify what changed in recent months",
                        "Return to previous successful financial habits",
                        "Seek professional financial advice",
                        "Set up weekly financial check-ins",
                    ],
                    estimated_impact="High",
                    timeframe="1-2 months",
                )
            )

        return recommendations
