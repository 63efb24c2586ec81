"""
Insight Service

Builds prompts from computed metrics, sends them to an ``InsightClient`` and
extracts structured fields from the reply. Without a client, or when the client
fails, each method returns its deterministic fallback instead; insight
generation never fails a pipeline stage.

Usage::

    from finsight.insights import InsightService

    service = InsightService(client)           # client=None -> fallbacks only
    insights = await service.spending_insights(metrics, patterns)
    print(insights["source"], insights["confidence"])
"""

from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from finsight.collaborators.insight_client import InsightClient, InsightClientError
from finsight.core import get_logger
from finsight.domain.analysis import AnomalyRecord, HealthScore
from finsight.domain.transactions import MetricBundle
from finsight.insights import extraction
from finsight.insights.fallbacks import (
    busiest_day,
    fallback_anomaly_insights,
    fallback_health_insights,
    fallback_personalized_recommendations,
    fallback_spending_insights,
    top_category,
)
from finsight.utils.error_handling import log_and_return_default

logger = get_logger(__name__)

SPENDING_CONFIDENCE = 0.85
ANOMALY_CONFIDENCE = 0.8
HEALTH_CONFIDENCE = 0.8
PERSONALIZED_CONFIDENCE = 0.8

TOP_ANOMALIES_IN_PROMPT = 5

CLIENT_ERRORS = (InsightClientError, httpx.HTTPError)


def spending_prompt(metrics: MetricBundle, patterns: Mapping[str, Any]) -> str:
    category = top_category(patterns)
    day = busiest_day(patterns)
    frequency = (patterns.get("behavioral") or {}).get("spending_frequency", {}).get("frequency", {})
    return f"""Analyze financial spending patterns and provide insights:

FINANCIAL SUMMARY:
- Total Income: ${metrics.total_income:.2f}
- Total Expenses: ${metrics.total_expenses:.2f}
- Net Income: ${metrics.net_income:.2f}
- Avg Transaction: ${metrics.avg_transaction_amount:.2f}
- Transaction Count: {metrics.transaction_count}

SPENDING PATTERNS:
- Top Category: {category['category'] if category else 'Unknown'}
- Top Amount: ${category['total'] if category else 0:.2f}
- Daily Avg: ${metrics.avg_daily_spending:.2f}

BEHAVIORAL INSIGHTS:
- Highest spending day: {day[0] if day else 'Unknown'}
- Spending frequency: {frequency.get('daily', 0.0):.1f} transactions/day

Respond with:
1. Key insights (3-5 bullet points)
2. Behavior analysis: one sentence
3. Concerns: potential concerns or positive trends
4. Confidence: a score between 0 and 1"""


def anomaly_prompt(prioritized: Sequence[AnomalyRecord], transaction_count: int) -> str:
    top = prioritized[:TOP_ANOMALIES_IN_PROMPT]
    lines = "\n".join(f"- {a.kind}: {a.description} (Risk: {a.risk_score * 100:.0f}%)" for a in top)
    kinds = ", ".join(dict.fromkeys(a.kind for a in prioritized))
    high_risk = sum(1 for a in prioritized if a.risk_score > 0.7)
    return f"""Analyze financial anomalies and provide insights:

DETECTED ANOMALIES ({len(prioritized)} total):
{lines}

CONTEXT:
- Total transactions analyzed: {transaction_count}
- High-risk anomalies: {high_risk}
- Anomaly types detected: {kinds}

Respond with:
1. Risk assessment: one sentence
2. Recommended actions (2-3 bullet points)
3. Potential causes for the top anomalies
4. Confidence: a score between 0 and 1"""


def health_prompt(health: HealthScore) -> str:
    components = "\n".join(
        f"- {name.replace('_', ' ').title()}: {component.score:.2f}/5.0 ({component.assessment})"
        for name, component in health.components.items()
    )
    return f"""Analyze financial health score and provide insights:

FINANCIAL HEALTH SCORE: {health.overall:.2f}/5.0 ({health.grade})

COMPONENT SCORES:
{components}

Respond with:
1. Strengths (2-3 items)
2. Areas to improve (2-3 items)
3. Advice: one personalized sentence
4. Confidence: a score between 0 and 1"""


def personalized_prompt(summary: Mapping[str, Any]) -> str:
    facts = "\n".join(f"- {key.replace('_', ' ')}: {value}" for key, value in summary.items())
    return f"""Give personalized financial recommendations for this profile:

{facts}

Respond with:
1. Personalized tips (2-3 bullet points)
2. Goals (2 measurable goals, each line containing the word goal)
3. Confidence: a score between 0 and 1"""


class InsightService:
    """
    Args:
        client: Language-model client, or None to always use fallbacks
    """

    def __init__(self, client: InsightClient | None = None):
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _complete(self, prompt: str) -> str:
        if self.client is None:
            raise InsightClientError("No language-model client configured")
        return await self.client.complete(prompt)

    async def spending_insights(self, metrics: MetricBundle, patterns: Mapping[str, Any]) -> dict[str, Any]:
        fallback = fallback_spending_insights(metrics, patterns)
        if self.client is None:
            return fallback
        try:
            text = await self._complete(spending_prompt(metrics, patterns))
        except CLIENT_ERRORS as e:
            return log_and_return_default(
                logger, e, {"insight": "spending"}, default_value=fallback, error_type="Spending insight generation"
            )
        return {
            "raw_analysis": text,
            "key_insights": extraction.extract_key_insights(text),
            "behavior_analysis": extraction.extract_behavior_analysis(text),
            "concerns": extraction.extract_concerns(text),
            "confidence": extraction.extract_confidence(text) or SPENDING_CONFIDENCE,
            "source": "model",
        }

    async def anomaly_insights(self, prioritized: Sequence[AnomalyRecord], transaction_count: int) -> dict[str, Any]:
        fallback = fallback_anomaly_insights(prioritized)
        if self.client is None:
            return fallback
        try:
            text = await self._complete(anomaly_prompt(prioritized, transaction_count))
        except CLIENT_ERRORS as e:
            return log_and_return_default(
                logger, e, {"insight": "anomaly"}, default_value=fallback, error_type="Anomaly insight generation"
            )
        return {
            "raw_analysis": text,
            "risk_assessment": extraction.extract_risk_assessment(text),
            "recommended_actions": extraction.extract_recommended_actions(text),
            "potential_causes": extraction.extract_potential_causes(text),
            "confidence": extraction.extract_confidence(text) or ANOMALY_CONFIDENCE,
            "source": "model",
        }

    async def health_insights(self, health: HealthScore) -> dict[str, Any]:
        fallback = fallback_health_insights(health)
        if self.client is None:
            return fallback
        try:
            text = await self._complete(health_prompt(health))
        except CLIENT_ERRORS as e:
            return log_and_return_default(
                logger, e, {"insight": "health"}, default_value=fallback, error_type="Health insight generation"
            )
        return {
            "raw_analysis": text,
            "strengths": extraction.extract_strengths(text),
            "improvements": extraction.extract_improvements(text),
            "personalized_advice": extraction.extract_advice(text),
            "confidence": extraction.extract_confidence(text) or HEALTH_CONFIDENCE,
            "source": "model",
        }

    async def personalized_recommendations(self, summary: Mapping[str, Any]) -> dict[str, Any]:
        fallback = fallback_personalized_recommendations()
        if self.client is None:
            return fallback
        try:
            text = await self._complete(personalized_prompt(summary))
        except CLIENT_ERRORS as e:
            return log_and_return_default(
                logger,
                e,
                {"insight": "personalized"},
                default_value=fallback,
                error_type="Personalized recommendation generation",
            )
        return {
            "raw_analysis": text,
            "personalized_tips": extraction.extract_key_insights(text, limit=3),
            "goals": extraction.extract_goals(text),
            "confidence": extraction.extract_confidence(text) or PERSONALIZED_CONFIDENCE,
            "source": "model",
        }
