"""Severity and significance classification rules.

Each detector maps a magnitude onto {low, medium, high} with its own
limits; the limits come from ``DetectionThresholds`` and are passed in.

Usage:
    from anomaly_engine.domain.severity import high_if_above

    severity = high_if_above(abs(change_pct), 50.0)
"""

from anomaly_engine.schemas.findings import Severity


def high_if_above(value: float, high_limit: float, otherwise: Severity = Severity.MEDIUM) -> Severity:
    """HIGH when ``value`` exceeds ``high_limit``, else ``otherwise``.

    Examples:
        >>> high_if_above(60, 50)
        <Severity.HIGH: 'high'>
        >>> high_if_above(50, 50)
        <Severity.MEDIUM: 'medium'>
    """
    return Severity.HIGH if value > high_limit else otherwise


def severity_from_z(z: float, medium_limit: float, high_limit: float) -> Severity:
    """Outlier severity from an absolute z-score.

    Examples:
        >>> severity_from_z(3.4, 2.5, 3.0)
        <Severity.HIGH: 'high'>
        >>> severity_from_z(2.7, 2.5, 3.0)
        <Severity.MEDIUM: 'medium'>
        >>> severity_from_z(2.1, 2.5, 3.0)
        <Severity.LOW: 'low'>
    """
    if z > high_limit:
        return Severity.HIGH
    if z > medium_limit:
        return Severity.MEDIUM
    return Severity.LOW


def significance_from_share(share_pct: float, medium_limit: float, high_limit: float) -> Severity:
    """Significance of a cluster from the share of submissions it holds.

    Examples:
        >>> significance_from_share(75, 40, 70)
        <Severity.HIGH: 'high'>
        >>> significance_from_share(30, 40, 70)
        <Severity.LOW: 'low'>
    """
    if share_pct > high_limit:
        return Severity.HIGH
    if share_pct > medium_limit:
        return Severity.MEDIUM
    return Severity.LOW


def forecast_significance(change_pct: float, medium_limit: float, high_limit: float) -> Severity:
    """Significance of a forecast from the absolute projected change."""
    magnitude = abs(change_pct)
    if magnitude > high_limit:
        return Severity.HIGH
    if magnitude > medium_limit:
        return Severity.MEDIUM
    return Severity.LOW
