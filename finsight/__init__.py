"""
Financial Analytics Platform - Staged Analysis Pipelines

This package contains the channel-based pipeline engine, the statistical analysis
library and the financial workflows built on top of them.

Package Structure:
    - core: Infrastructure (logging, configuration, observability)
    - domain: Domain models (Transaction, Account, MetricBundle, HealthScore, Alert)
    - pipeline: Channel store, stage executor, parallel orchestrator
    - ml: Forecasting, anomaly detection, health scoring, alert rules
    - insights: Language-model insight extraction with deterministic fallbacks
    - collaborators: Account persistence and language-model client adapters
    - workflows: Financial intelligence, health monitoring, predictive analytics
"""

__version__ = "0.1.0"
__author__ = "Financial Analytics Team"
