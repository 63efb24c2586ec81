"""
Statistics Utilities

Shared statistical functions for the detectors and scorers. All of them are total:
empty input returns 0.0 instead of raising, because pipeline stages must degrade on
missing data rather than fail.

Usage:
    from finsight.utils.statistics import mean, population_std, coefficient_of_variation

    avg = mean(amounts)
    spread = population_std(amounts)
"""

import logging
import math
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

# Set up logger
logger = logging.getLogger(__name__)


def mean(data: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for empty input."""
    if not data:
        return 0.0
    return float(sum(data) / len(data))


def population_std(data: Sequence[float]) -> float:
    """
    Population standard deviation (divides by n, not n - 1).

    Args:
        data: Sequence of numeric values

    Returns:
        Standard deviation, 0.0 for empty input
    """
    if not data:
        return 0.0
    avg = mean(data)
    variance = sum((value - avg) ** 2 for value in data) / len(data)
    return math.sqrt(variance)


def coefficient_of_variation(data: Sequence[float]) -> float:
    """
    Population std divided by the mean.

    Returns 0.0 when the mean is zero (all values zero, or empty input).
    """
    avg = mean(data)
    if avg == 0:
        return 0.0
    return population_std(data) / avg


def calculate_percentile(data: Sequence[float], percentile: float) -> float:
    """
    Calculate a single percentile value.

    Uses linear interpolation between values (same as numpy.percentile).

    Args:
        data: Sequence of numeric values
        percentile: Percentile to calculate (0-100)

    Returns:
        Percentile value

    Raises:
        ValueError: If data is empty or percentile is out of range

    Example:
        daily_totals = [52.0, 101.0, 153.0, 200.0, 255.0]
        median = calculate_percentile(daily_totals, 50)
    """
    if not data:
        raise ValueError("Cannot calculate percentile of empty data")

    if not 0 <= percentile <= 100:
        raise ValueError(f"Percentile must be 0-100, got {percentile}")

    sorted_data = sorted(data)
    n = len(sorted_data)

    index = (n - 1) * (percentile / 100.0)
    lower_index = int(index)
    upper_index = min(lower_index + 1, n - 1)

    lower_value = sorted_data[lower_index]
    upper_value = sorted_data[upper_index]
    fraction = index - lower_index

    return float(lower_value + fraction * (upper_value - lower_value))


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round with ties away from zero for positives (2.5 -> 3), unlike built-in round().

    Business-rule scores are published with this rounding.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into the closed interval [lower, upper]."""
    return max(lower, min(upper, value))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, returning default when the denominator is zero.

    Zero denominators on non-trivial input are logged at debug so degenerate data
    stays visible without failing the calculation.
    """
    if denominator == 0:
        if numerator != 0:
            logger.debug(
                "Division by zero guarded",
                extra={"numerator": numerator, "default": default},
            )
        return default
    return numerator / denominator
