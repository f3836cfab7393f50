"""Merge, deduplicate and order detector output for a scope."""

from typing import Iterable, List

from anomaly_engine.schemas.findings import DataAnomaly, DataPattern


class FindingRanker:
    """Fan-in point for findings produced by independent detectors."""

    @staticmethod
    def deduplicate(findings: Iterable) -> list:
        """Drop repeats of the same finding, keeping the first occurrence."""
        seen: set = set()
        unique = []
        for finding in findings:
            key = finding.dedupe_key
            if key in seen:
                continue
            seen.add(key)
            unique.append(finding)
        return unique

    def rank_anomalies(self, anomalies: Iterable[DataAnomaly], *, by_recency: bool = False) -> List[DataAnomaly]:
        """Most severe first; ``by_recency`` orders by detection time instead.

        Both orders are descending and stable, so equal keys keep the order
        the detectors produced them in.
        """
        unique = self.deduplicate(anomalies)
        if by_recency:
            return sorted(unique, key=lambda a: a.detected_at, reverse=True)
        return sorted(
            unique,
            key=lambda a: (a.severity.rank, a.anomaly_score or 0.0, a.detected_at),
            reverse=True,
        )

    def rank_patterns(self, patterns: Iterable[DataPattern]) -> List[DataPattern]:
        unique = self.deduplicate(patterns)
        return sorted(
            unique,
            key=lambda p: (p.significance.rank, p.confidence_score, p.detected_at),
            reverse=True,
        )
