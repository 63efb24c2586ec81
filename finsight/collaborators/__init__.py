"""
Collaborator adapters - account persistence and the language-model client.

Usage:
    from finsight.collaborators import InMemoryAccountRepository, HttpInsightClient
"""

from .insight_client import HttpInsightClient, InsightClient, InsightClientError
from .persistence import AccountRepository, InMemoryAccountRepository, SQLiteAccountRepository, account_statistics

__all__ = [
    "AccountRepository",
    "InMemoryAccountRepository",
    "SQLiteAccountRepository",
    "account_statistics",
    "InsightClient",
    "HttpInsightClient",
    "InsightClientError",
]
