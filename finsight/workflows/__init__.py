"""
Financial workflows built on the pipeline engine.

Usage:
    from finsight.workflows import FinancialIntelligenceWorkflow

    state = await FinancialIntelligenceWorkflow().run(records)
"""

from .financial_intelligence import FinancialIntelligenceWorkflow, create_financial_intelligence_pipeline
from .health_monitoring import HealthMonitoringWorkflow, create_health_monitoring_pipeline
from .predictive_analytics import PredictiveAnalyticsWorkflow, create_predictive_analytics_pipeline

__all__ = [
    "FinancialIntelligenceWorkflow",
    "HealthMonitoringWorkflow",
    "PredictiveAnalyticsWorkflow",
    "create_financial_intelligence_pipeline",
    "create_health_monitoring_pipeline",
    "create_predictive_analytics_pipeline",
]
