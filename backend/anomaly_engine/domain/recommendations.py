"""Recommended follow-up actions and business-impact notes per finding type."""

from typing import Optional

from anomaly_engine.domain.finding_types import AnomalyType
from anomaly_engine.schemas.findings import BusinessImpact

RECOMMENDED_ACTIONS: dict[str, str] = {
    AnomalyType.BIMODAL_DISTRIBUTION.value: "Check whether two dealer populations report this line item on different bases.",
    AnomalyType.SKEWED_DISTRIBUTION.value: "Review the largest contributors to the tail before using averages for this line item.",
    AnomalyType.CROSS_DEALER_OUTLIER.value: "Confirm the reported figure with the dealer and check for unit or keying errors.",
    AnomalyType.INCREASING_TREND.value: "Monitor the line item and confirm the growth is backed by activity.",
    AnomalyType.DECREASING_TREND.value: "Investigate the decline with the affected dealers.",
    AnomalyType.MISSING_DATA.value: "Ask the dealer to complete the missing cells and resubmit.",
    AnomalyType.STATISTICAL_OUTLIER.value: "Verify the flagged values against the dealer's source ledgers.",
    AnomalyType.YEAR_OVER_YEAR_VARIANCE.value: "Request an explanation for the change against the same month last year.",
    AnomalyType.MISSING_HISTORICAL_DATA.value: "Check whether the line items were dropped or moved to other cells.",
    AnomalyType.QUARTERLY_PATTERN.value: "Review quarter-end postings for timing adjustments.",
    AnomalyType.INDUSTRY_DEVIATION.value: "Compare the dealer's accounting treatment with peer dealers.",
}

ML_RECOMMENDED_ACTION = "Review the period flagged by the model against the dealer's submission history."


def recommended_action(anomaly_type: str) -> str:
    return RECOMMENDED_ACTIONS.get(anomaly_type, ML_RECOMMENDED_ACTION)


def value_impact(actual: Optional[float], expected: Optional[float]) -> Optional[BusinessImpact]:
    """Impact note quantifying the gap between an actual and an expected value."""
    if actual is None or expected is None:
        return None
    gap = actual - expected
    direction = "above" if gap > 0 else "below"
    return BusinessImpact(
        description=f"Reported value is {abs(gap):,.2f} {direction} the expected level",
        estimated_value=round(abs(gap), 2),
    )


def count_impact(count: int, noun: str) -> BusinessImpact:
    return BusinessImpact(description=f"{count} {noun} affect reporting completeness")
