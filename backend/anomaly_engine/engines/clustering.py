"""K-means clustering of submissions into behavioural groups.

Each submission becomes a fixed-length numeric vector over a common set of
global addresses; vectors are min-max normalised and clustered with
scikit-learn. Clusters with enough members are summarised as patterns.
"""

import logging
import math
from collections import Counter
from typing import List, Optional

import numpy as np
from sklearn.cluster import KMeans
from sklearn.preprocessing import MinMaxScaler

from anomaly_engine.config import DetectionThresholds
from anomaly_engine.domain.finding_types import PatternType, cluster_pattern_type
from anomaly_engine.domain.severity import significance_from_share
from anomaly_engine.schemas.detection import ClusterAssignment, ClusteringResult
from anomaly_engine.schemas.findings import DataPattern, Severity
from anomaly_engine.schemas.submission import Submission, newest_first
from anomaly_engine.utils.periods import span

logger = logging.getLogger(__name__)


def choose_k(n: int, min_k: int = 2, max_k: int = 10) -> int:
    """Cluster count from the sample size: round(sqrt(n / 2)), clamped.

    >>> choose_k(12)
    2
    >>> choose_k(50)
    5
    >>> choose_k(1000)
    10
    """
    return max(min_k, min(max_k, round(math.sqrt(n / 2))))


class SubmissionClusterer:
    def __init__(self, thresholds: Optional[DetectionThresholds] = None):
        self.t = thresholds or DetectionThresholds()

    def select_features(self, submissions: List[Submission]) -> list[str]:
        """Addresses frequent enough to describe every submission.

        Most frequent first (address breaks ties), capped at
        ``cluster_max_features``.
        """
        frequency: Counter = Counter()
        for s in submissions:
            frequency.update(s.numeric_values().keys())
        minimum = self.t.cluster_address_min_share * len(submissions)
        eligible = [a for a, n in frequency.items() if n >= minimum]
        eligible.sort(key=lambda a: (-frequency[a], a))
        return eligible[: self.t.cluster_max_features]

    def cluster(self, submissions: List[Submission]) -> ClusteringResult:
        considered = newest_first(submissions)[: self.t.cluster_max_submissions]
        if len(considered) < self.t.cluster_min_submissions:
            return ClusteringResult.insufficient(
                f"{len(considered)} submissions, clustering needs {self.t.cluster_min_submissions}"
            )
        features = self.select_features(considered)
        if len(features) < 2:
            return ClusteringResult.insufficient("fewer than two common addresses")

        matrix = np.array(
            [[s.numeric_values().get(f, 0.0) for f in features] for s in considered],
            dtype=float,
        )
        distinct = len(np.unique(matrix, axis=0))
        k = min(choose_k(len(considered), self.t.cluster_min_k, self.t.cluster_max_k), distinct)
        if k < self.t.cluster_min_k:
            return ClusteringResult.insufficient("submissions have identical feature vectors")

        scaled = MinMaxScaler().fit_transform(matrix)
        model = KMeans(n_clusters=k, n_init=10, random_state=self.t.cluster_random_state)
        labels = model.fit_predict(scaled)
        distances = model.transform(scaled)[np.arange(len(considered)), labels]

        assignments = [
            ClusterAssignment(
                submission_id=s.id, cluster_id=int(label), distance=round(float(dist), 6)
            )
            for s, label, dist in zip(considered, labels, distances)
        ]
        centroids = {
            int(label): tuple(float(v) for v in matrix[labels == label].mean(axis=0))
            for label in np.unique(labels)
        }
        logger.debug("Clustered %d submissions into %d groups", len(considered), k)
        return ClusteringResult.completed(assignments, features, centroids)

    def summarize(
        self,
        result: ClusteringResult,
        submissions: List[Submission],
        scope_label: str,
        entity_name: str,
    ) -> List[DataPattern]:
        """Cluster and stable-pattern findings for clusters with enough members."""
        if not result.ok:
            return []
        by_id = {s.id: s for s in submissions}
        total = len(result.assignments)
        patterns: list[DataPattern] = []

        for cluster_id in sorted(result.centroids):
            members = [by_id[a.submission_id] for a in result.members(cluster_id)]
            if len(members) < self.t.cluster_min_members:
                continue
            share = len(members) * 100 / total
            averages = sorted(
                zip(result.features, result.centroids[cluster_id]), key=lambda fa: -fa[1]
            )[: self.t.pattern_top_n]
            characteristics = ", ".join(f"{a} ≈ {v:,.2f}" for a, v in averages)
            time_range = span(s.period for s in members)
            related = tuple(a for a, _ in averages)

            patterns.append(DataPattern(
                pattern_type=cluster_pattern_type(scope_label),
                description=(
                    f"{entity_name} shows a pattern where {share:.1f}% of submissions "
                    f"({len(members)} out of {total}) share characteristics: {characteristics}"
                ),
                significance=significance_from_share(
                    share, self.t.cluster_medium_share, self.t.cluster_high_share
                ),
                confidence_score=self.t.cluster_confidence,
                related_cell_addresses=related,
                time_range=time_range,
            ))

            years = sorted({s.year for s in members})
            if len(years) > 1:
                patterns.append(DataPattern(
                    pattern_type=PatternType.STABLE_PATTERN.value,
                    description=(
                        f"{entity_name} shows a stable pattern from {years[0]} to {years[-1]} "
                        f"with consistent financial characteristics: {characteristics}"
                    ),
                    significance=Severity.HIGH,
                    confidence_score=self.t.stable_pattern_confidence,
                    related_cell_addresses=related,
                    time_range=time_range,
                ))
        return patterns
