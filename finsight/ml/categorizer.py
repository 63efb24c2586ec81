"""
Transaction Categorizer

Suggests a category per transaction by combining a keyword rule, an amount and
merchant pattern, and the category the transaction arrived with. Each candidate
carries a confidence; the one with the highest ``confidence * weight`` wins
(ties keep the earlier candidate).

    rule 0.4, pattern 0.3, original 0.2 (original confidence fixed at 0.5)

Usage::

    from finsight.ml.categorizer import TransactionCategorizer

    categorized, stats = TransactionCategorizer().categorize_all(transactions)
    print(stats["avg_confidence"], stats["category_distribution"])
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from finsight.domain.transactions import Transaction

RULE_WEIGHT = 0.4
PATTERN_WEIGHT = 0.3
ORIGINAL_WEIGHT = 0.2
ORIGINAL_CONFIDENCE = 0.5

SMALL_PURCHASE_LIMIT = 10
LARGE_EXPENSE_LIMIT = 1000

# (keywords, category, confidence), checked in order
KEYWORD_RULES: list[tuple[tuple[str, ...], str, float]] = [
    (("grocery", "supermarket"), "Groceries", 0.9),
    (("gas", "fuel"), "Transportation", 0.9),
    (("restaurant", "food"), "Dining", 0.8),
    (("rent", "mortgage"), "Housing", 0.95),
]


@dataclass(frozen=True)
class CategoryCandidate:
    category: str
    confidence: float
    method: str
    weight: float

    @property
    def weighted(self) -> float:
        return self.confidence * self.weight


def rule_category(transaction: Transaction) -> CategoryCandidate:
    description = transaction.description.lower()
    for keywords, category, confidence in KEYWORD_RULES:
        if any(keyword in description for keyword in keywords):
            return CategoryCandidate(category, confidence, "rule", RULE_WEIGHT)
    if transaction.is_income:
        return CategoryCandidate("Income", 0.7, "rule", RULE_WEIGHT)
    return CategoryCandidate("Other", 0.3, "rule", RULE_WEIGHT)


def pattern_category(transaction: Transaction) -> CategoryCandidate:
    amount = transaction.abs_amount
    if amount < SMALL_PURCHASE_LIMIT:
        return CategoryCandidate("Small Purchases", 0.6, "pattern", PATTERN_WEIGHT)
    if amount > LARGE_EXPENSE_LIMIT:
        return CategoryCandidate("Large Expenses", 0.7, "pattern", PATTERN_WEIGHT)
    if transaction.merchant_name != "Unknown":
        return CategoryCandidate("Retail", 0.5, "pattern", PATTERN_WEIGHT)
    return CategoryCandidate("General", 0.4, "pattern", PATTERN_WEIGHT)


class TransactionCategorizer:
    def select(self, transaction: Transaction) -> dict[str, Any]:
        candidates = [
            rule_category(transaction),
            pattern_category(transaction),
            CategoryCandidate(transaction.category, ORIGINAL_CONFIDENCE, "original", ORIGINAL_WEIGHT),
        ]
        best = candidates[0]
        for candidate in candidates[1:]:
            if candidate.weighted > best.weighted:
                best = candidate
        return {
            "category": best.category,
            "confidence": best.confidence,
            "methods": [candidate.method for candidate in candidates],
        }

    def categorize(self, transaction: Transaction) -> dict[str, Any]:
        selection = self.select(transaction)
        return {
            **transaction.to_dict(),
            "original_category": transaction.category,
            "suggested_category": selection["category"],
            "category_confidence": selection["confidence"],
            "categorization_methods": selection["methods"],
        }

    def categorize_all(self, transactions: Sequence[Transaction]) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """
        Returns:
            (categorized transaction dicts, statistics with total_categorized,
            avg_confidence, category_distribution and method_usage)
        """
        categorized = [self.categorize(t) for t in transactions]

        distribution: dict[str, int] = {}
        method_usage: dict[str, int] = {}
        for item in categorized:
            category = item["suggested_category"]
            distribution[category] = distribution.get(category, 0) + 1
            for method in item["categorization_methods"]:
                method_usage[method] = method_usage.get(method, 0) + 1

        stats = {
            "total_categorized": len(categorized),
            "avg_confidence": (
                sum(item["category_confidence"] for item in categorized) / len(categorized) if categorized else 0.0
            ),
            "category_distribution": distribution,
            "method_usage": method_usage,
        }
        return categorized, stats
