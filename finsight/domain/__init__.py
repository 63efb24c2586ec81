"""
Domain Models - Type-safe data structures for financial analysis

This package contains dataclasses representing business domain concepts:
    - transactions: Transaction, Account, MetricBundle
    - analysis: AnomalyRecord, HealthScore, Alert, Recommendation, HealthSnapshot

Usage:
    from finsight.domain.transactions import Transaction, MetricBundle

    transactions, rejected = parse_transactions(raw_records)
    metrics = MetricBundle.from_transactions(transactions)
    print(f"Net income: {metrics.net_income:.2f}")
"""

from .analysis import Alert, AnomalyRecord, ComponentScore, HealthScore, HealthSnapshot, Recommendation
from .transactions import Account, MetricBundle, Transaction, TransactionValidationError, parse_transactions

__all__ = [
    # Transactions
    "Transaction",
    "TransactionValidationError",
    "parse_transactions",
    "Account",
    "MetricBundle",
    # Analysis results
    "AnomalyRecord",
    "ComponentScore",
    "HealthScore",
    "Alert",
    "Recommendation",
    "HealthSnapshot",
]
