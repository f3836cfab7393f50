"""Canonical anomaly and pattern type names.

The values are the user-facing type tags stored on ``DataAnomaly`` and
``DataPattern``; scope-specific ML and cluster tags are built by the
helpers below.
"""

from enum import Enum


class AnomalyType(str, Enum):
    BIMODAL_DISTRIBUTION = "Bimodal Distribution"
    SKEWED_DISTRIBUTION = "Skewed Distribution"
    CROSS_DEALER_OUTLIER = "Cross-Dealer Outlier"
    INCREASING_TREND = "Increasing Trend"
    DECREASING_TREND = "Decreasing Trend"
    MISSING_DATA = "Missing Data"
    STATISTICAL_OUTLIER = "Statistical Outlier"
    YEAR_OVER_YEAR_VARIANCE = "Year-Over-Year Variance"
    MISSING_HISTORICAL_DATA = "Missing Historical Data"
    QUARTERLY_PATTERN = "Quarterly Pattern"
    INDUSTRY_DEVIATION = "Industry Deviation"


class PatternType(str, Enum):
    STRONG_POSITIVE_CORRELATION = "Strong Positive Correlation"
    STRONG_NEGATIVE_CORRELATION = "Strong Negative Correlation"
    SUM_RELATIONSHIP = "Sum Relationship"
    DIFFERENCE_RELATIONSHIP = "Difference Relationship"
    SEASONAL_PATTERN = "Seasonal Pattern"
    YEARLY_CHANGE_PATTERN = "Yearly Change Pattern"
    MONTHLY_SEASONAL_PATTERN = "Monthly Seasonal Pattern"
    GROUP_DEVIATION_PATTERN = "Group Deviation Pattern"
    STABLE_PATTERN = "Stable Pattern"
    FORECAST = "Forecast"


def ml_anomaly_type(kind: str, scope_label: str = "") -> str:
    """Tag for an ML finding, e.g. ``ML-Detected Dealer Spike``.

    >>> ml_anomaly_type("Spike", "Dealer")
    'ML-Detected Dealer Spike'
    >>> ml_anomaly_type("Change Point")
    'ML-Detected Change Point'
    """
    parts = ["ML-Detected", scope_label, kind]
    return " ".join(p for p in parts if p)


def cluster_pattern_type(scope_label: str) -> str:
    """
    >>> cluster_pattern_type("Group 4")
    'Group 4 Cluster Pattern'
    """
    return f"{scope_label} Cluster Pattern"
