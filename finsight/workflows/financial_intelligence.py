"""
Financial Intelligence Workflow

Six sequential stages over one transaction set:

    1. load_and_preprocess          parse records, metrics, time/category summaries
    2. analyze_spending_patterns    temporal, categorical, behavioral patterns + insights
    3. detect_anomalies             five standard-deviation detectors + insights
    4. calculate_financial_health   5-point health score + insights
    5. categorize_transactions      rule / pattern / original category selection
    6. generate_insights            executive summary, findings, recommendations, alerts

Every stage tolerates missing upstream results: it records a dependency error
and works on an empty transaction set instead.

Usage::

    from finsight.workflows.financial_intelligence import FinancialIntelligenceWorkflow

    workflow = FinancialIntelligenceWorkflow()
    state = await workflow.run(records)
    print(state["health_score"]["overall"], state["errors"])
"""

import time
from collections.abc import Mapping
from typing import Any

from finsight.core import get_logger
from finsight.domain.transactions import MetricBundle, Transaction
from finsight.insights import InsightService, synthesis
from finsight.ml.alert_engine import AlertEngine
from finsight.ml.anomaly_detector import AnomalyDetector
from finsight.ml.categorizer import TransactionCategorizer
from finsight.ml.health_scorer import FivePointHealthScorer
from finsight.ml.patterns import analyze_patterns, category_distribution, time_analysis
from finsight.pipeline import Channel, MergePolicy, Pipeline, PipelineSchema, Stage, dependency_error
from finsight.utils.statistics import safe_divide
from finsight.workflows.common import (
    METADATA_CHANNEL,
    PHASES_CHANNEL,
    coerce_transactions,
    metadata_channel,
    phases_channel,
    require_records,
)

logger = get_logger(__name__)

WORKFLOW_NAME = "financial_intelligence"
WORKFLOW_VERSION = "3.5.2"

FINANCIAL_INTELLIGENCE_SCHEMA = PipelineSchema(
    [
        Channel("transactions", MergePolicy.REPLACE),
        Channel("transaction_data", MergePolicy.REPLACE),
        Channel("spending_patterns", MergePolicy.REPLACE),
        Channel("anomalies", MergePolicy.REPLACE),
        Channel("health_score", MergePolicy.REPLACE),
        Channel("categorized_transactions", MergePolicy.REPLACE),
        Channel("insights", MergePolicy.REPLACE),
        Channel("recommendations", MergePolicy.REPLACE),
        Channel("alerts", MergePolicy.APPEND),
        metadata_channel(WORKFLOW_NAME, WORKFLOW_VERSION),
        phases_channel(),
    ]
)


def _transaction_inputs(
    state: Mapping[str, Any], stage: str
) -> tuple[list[Transaction], MetricBundle, list[dict[str, Any]]]:
    """Preprocessed transactions and metrics, or an empty set plus a dependency error."""
    data = state.get("transaction_data")
    if not data or not isinstance(data.get("transactions"), list):
        return [], MetricBundle.from_transactions([]), [dependency_error(stage, "No transaction data available")]
    transactions = data["transactions"]
    metrics = data.get("metrics") or MetricBundle.from_transactions(transactions)
    return transactions, metrics, []


class FinancialIntelligenceWorkflow:
    """
    Args:
        insight_service: Insight generation (defaults to fallbacks only)
        anomaly_detector: Univariate anomaly detectors
        health_scorer: 5-point health scorer
        categorizer: Transaction categorizer
        alert_engine: Rules over the finished analysis
    """

    def __init__(
        self,
        insight_service: InsightService | None = None,
        anomaly_detector: AnomalyDetector | None = None,
        health_scorer: FivePointHealthScorer | None = None,
        categorizer: TransactionCategorizer | None = None,
        alert_engine: AlertEngine | None = None,
    ):
        self.insights = insight_service or InsightService()
        self.detector = anomaly_detector or AnomalyDetector()
        self.scorer = health_scorer or FivePointHealthScorer()
        self.categorizer = categorizer or TransactionCategorizer()
        self.alert_engine = alert_engine or AlertEngine()
        self.pipeline = Pipeline(
            WORKFLOW_NAME,
            FINANCIAL_INTELLIGENCE_SCHEMA,
            [
                Stage("load_and_preprocess", self.load_and_preprocess, {"transaction_data", METADATA_CHANNEL}),
                Stage("analyze_spending_patterns", self.analyze_spending_patterns, {"spending_patterns"}),
                Stage("detect_anomalies", self.detect_anomalies, {"anomalies"}),
                Stage("calculate_financial_health", self.calculate_financial_health, {"health_score"}),
                Stage("categorize_transactions", self.categorize_transactions, {"categorized_transactions"}),
                Stage(
                    "generate_insights",
                    self.generate_insights,
                    {"insights", "recommendations", "alerts", METADATA_CHANNEL},
                ),
            ],
            phase_channel=PHASES_CHANNEL,
        )

    async def run(self, records: Any) -> dict[str, Any]:
        """Invoke the pipeline on raw transaction records."""
        return await self.pipeline.invoke({"transactions": records})

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def load_and_preprocess(self, state: Mapping[str, Any]) -> dict[str, Any]:
        records = require_records(state.get("transactions"))
        transactions, rejected = coerce_transactions(records)
        metrics = MetricBundle.from_transactions(transactions)

        logger.info(
            "Transactions preprocessed",
            extra={"received": len(records), "processed": len(transactions), "rejected": len(rejected)},
        )
        return {
            "transaction_data": {
                "transactions": transactions,
                "metrics": metrics,
                "time_analysis": time_analysis(transactions),
                "category_distribution": category_distribution(transactions),
                "processing_quality": {
                    "original_count": len(records),
                    "processed_count": len(transactions),
                    "rejected_count": len(rejected),
                    "rejections": rejected,
                    "completeness": safe_divide(len(transactions), len(records)),
                    "avg_amount": metrics.avg_transaction_amount,
                    "total_range": metrics.total_range,
                },
            },
            METADATA_CHANNEL: {"current_phase": "preprocessing"},
        }

    async def analyze_spending_patterns(self, state: Mapping[str, Any]) -> dict[str, Any]:
        transactions, metrics, errors = _transaction_inputs(state, "analyze_spending_patterns")
        patterns = analyze_patterns(transactions)
        insights = await self.insights.spending_insights(metrics, patterns)
        patterns["insights"] = insights
        patterns["confidence"] = insights["confidence"]
        return {"spending_patterns": patterns, "errors": errors}

    async def detect_anomalies(self, state: Mapping[str, Any]) -> dict[str, Any]:
        transactions, _, errors = _transaction_inputs(state, "detect_anomalies")
        report = self.detector.detect(transactions)
        result = report.to_dict()
        result["ai_analysis"] = await self.insights.anomaly_insights(report.prioritized, len(transactions))
        return {"anomalies": result, "errors": errors}

    async def calculate_financial_health(self, state: Mapping[str, Any]) -> dict[str, Any]:
        transactions, _, errors = _transaction_inputs(state, "calculate_financial_health")
        anomalies = state.get("anomalies")
        if anomalies is None:
            errors.append(dependency_error("calculate_financial_health", "No anomaly results; assuming none"))
        anomaly_count = int((anomalies or {}).get("total_anomalies", 0))

        health = self.scorer.score(transactions, anomaly_count=anomaly_count)
        insights = await self.insights.health_insights(health)
        result = health.to_dict()
        result["insights"] = insights
        result["confidence"] = insights["confidence"]
        return {"health_score": result, "errors": errors}

    def categorize_transactions(self, state: Mapping[str, Any]) -> dict[str, Any]:
        transactions, _, errors = _transaction_inputs(state, "categorize_transactions")
        categorized, stats = self.categorizer.categorize_all(transactions)
        return {"categorized_transactions": {"transactions": categorized, "stats": stats}, "errors": errors}

    async def generate_insights(self, state: Mapping[str, Any]) -> dict[str, Any]:
        transactions, metrics, errors = _transaction_inputs(state, "generate_insights")
        patterns = state.get("spending_patterns")
        anomalies = state.get("anomalies")
        health = state.get("health_score")
        categorized = state.get("categorized_transactions") or {}

        summary = synthesis.executive_summary(len(transactions), metrics.day_span, health, anomalies)
        personalized = await self.insights.personalized_recommendations(summary)

        metadata = state.get(METADATA_CHANNEL) or {}
        processing_ms = int(time.time() * 1000) - int(metadata.get("start_time", time.time() * 1000))
        confidence = synthesis.overall_confidence(patterns, health, (anomalies or {}).get("ai_analysis"))

        insights = {
            "executive_summary": summary,
            "key_findings": synthesis.key_findings(patterns, anomalies, health),
            "trend_analysis": synthesis.trend_analysis(patterns),
            "risk_assessment": synthesis.risk_assessment(anomalies, health),
            "opportunities": synthesis.opportunities(patterns, health),
            "execution_summary": {
                "total_transactions": len(transactions),
                "spending_patterns": len((patterns or {}).get("temporal") or {}),
                "anomalies_detected": summary["anomalies_found"],
                "health_score": summary["health_score"],
                "health_grade": (health or {}).get("grade", "Unknown"),
                "categorized_transactions": len(categorized.get("transactions", [])),
                "ai_enabled": self.insights.enabled,
                "processing_time_ms": processing_ms,
            },
            "confidence": confidence,
        }
        recommendations = {
            "immediate": synthesis.immediate_recommendations(anomalies, health),
            "short_term": list(synthesis.SHORT_TERM_RECOMMENDATIONS),
            "long_term": list(synthesis.LONG_TERM_RECOMMENDATIONS),
            "ai_personalized": personalized,
        }
        alerts = self.alert_engine.evaluate_analysis(
            metrics,
            (anomalies or {}).get("prioritized_anomalies", []),
            health,
            error_count=len(state.get("errors") or []) + len(errors),
        )

        logger.info(
            "Insights generated",
            extra={"findings": len(insights["key_findings"]), "alerts": len(alerts), "confidence": confidence},
        )
        return {
            "insights": insights,
            "recommendations": recommendations,
            "alerts": [alert.to_dict() for alert in alerts],
            METADATA_CHANNEL: {"current_phase": "insights", "processing_time_ms": processing_ms},
            "errors": errors,
        }


def create_financial_intelligence_pipeline(insight_service: InsightService | None = None) -> Pipeline:
    return FinancialIntelligenceWorkflow(insight_service=insight_service).pipeline
