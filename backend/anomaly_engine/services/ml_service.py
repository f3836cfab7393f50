"""Time-series ML: spike and change-point anomalies, clusters and forecasts.

Series are built per global address from the scope's submissions and
analysed independently on a bounded thread pool. Algorithms that cannot
run on a series (too short, constant, solver failure) are logged and
produce no finding.
"""

from typing import List, Optional, Tuple

import numpy as np

from anomaly_engine.config import Settings
from anomaly_engine.domain.finding_types import PatternType, ml_anomaly_type
from anomaly_engine.domain.recommendations import recommended_action, value_impact
from anomaly_engine.domain.severity import forecast_significance, high_if_above
from anomaly_engine.engines.clustering import SubmissionClusterer
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.engines.time_series import (
    TimeSeriesAnalyzer,
    change_point_window,
    period_series,
)
from anomaly_engine.logging_config import bind_scope, get_logger
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.schemas.detection import (
    AlgorithmResult,
    DetectionScope,
    DetectionStatus,
    ScopeKind,
)
from anomaly_engine.schemas.findings import DataAnomaly, DataPattern
from anomaly_engine.schemas.submission import Submission
from anomaly_engine.utils.cancellation import CancellationToken
from anomaly_engine.utils.concurrency import fan_out
from anomaly_engine.utils.periods import period_label, shift_period, span
from anomaly_engine.utils.statistics import percent_change

logger = get_logger(__name__)

Period = Tuple[int, int]
Series = Tuple[str, List[Tuple[Period, float]]]


class TimeSeriesMLService:
    def __init__(
        self,
        dealer_repo: DealerRepository,
        submission_repo: SubmissionRepository,
        analyzer: TimeSeriesAnalyzer,
        clusterer: SubmissionClusterer,
        ranker: FindingRanker,
        settings: Optional[Settings] = None,
    ):
        self.dealers = dealer_repo
        self.submissions = submission_repo
        self.analyzer = analyzer
        self.clusterer = clusterer
        self.ranker = ranker
        self.settings = settings or Settings()
        self.t = analyzer.t

    # ══════════════════════════════════════════════════════════════════
    # SPIKES AND CHANGE POINTS
    # ══════════════════════════════════════════════════════════════════

    def detect_time_series_anomalies(
        self, scope: DetectionScope, cancel_token: Optional[CancellationToken] = None
    ) -> List[DataAnomaly]:
        bind_scope(scope.kind.value, scope.id)
        try:
            loaded = self._load_series(scope)
            if loaded is None:
                return []
            entity, scope_label, series = loaded
            anomalies = fan_out(
                lambda item: self._series_anomalies(item, entity, scope_label),
                series,
                max_workers=self.settings.max_workers,
                cancel_token=cancel_token,
            )
        except Exception:
            logger.exception("time_series_detection_failed", scope=scope.kind.value, scope_id=scope.id)
            return []

        ranked = self.ranker.rank_anomalies(anomalies)
        logger.info(
            "time_series_anomalies_detected",
            scope=scope.kind.value, scope_id=scope.id, series=len(series), count=len(ranked),
        )
        return ranked

    def _load_series(self, scope: DetectionScope) -> Optional[Tuple[str, str, List[Series]]]:
        """Entity name, type label and analysable series for a scope."""
        minimum = self.t.series_min_points

        if scope.kind == ScopeKind.SUBMISSION:
            submission = self.submissions.get_submission(scope.id)
            if submission is None:
                logger.info("submission_not_found", submission_id=scope.id)
                return None
            history = self._history_until(submission)
            if len(history) < minimum:
                logger.info("insufficient_history", submissions=len(history), required=minimum)
                return None
            wanted = set(submission.numeric_values())
            series = [
                (a, pts) for a, pts in sorted(period_series(history).items())
                if a in wanted and len(pts) >= minimum
            ]
            return self._dealer_name(submission.dealer_id), "", series

        if scope.kind == ScopeKind.DEALER:
            dealer = self.dealers.get_dealer(scope.id)
            if dealer is None:
                logger.info("dealer_not_found", dealer_id=scope.id)
                return None
            history = self.submissions.list_submissions(dealer_id=dealer.id)
            if len(history) < minimum:
                logger.info("insufficient_history", submissions=len(history), required=minimum)
                return None
            series = [
                (a, pts) for a, pts in sorted(period_series(history).items())
                if len(pts) >= minimum
            ]
            return dealer.name, "Dealer", series

        if scope.kind == ScopeKind.GROUP:
            dealers = self.dealers.list_dealers(group_id=scope.id)
            if not dealers:
                logger.info("group_not_found", group_id=scope.id)
                return None
            history = self.submissions.list_submissions(dealer_ids=[d.id for d in dealers])
            periods = {s.period for s in history}
            if len(periods) < minimum:
                logger.info("insufficient_periods", periods=len(periods), required=minimum)
                return None
            series = [
                (a, pts) for a, pts in sorted(period_series(history).items())
                if len(pts) >= minimum and len(pts) >= len(periods) / 2
            ]
            return f"Dealer group {dealers[0].group_label}", "Group", series

        logger.info("time_series_scope_unsupported", scope=scope.kind.value)
        return None

    def _series_anomalies(self, item: Series, entity: str, scope_label: str) -> List[DataAnomaly]:
        address, points = item
        periods = [p for p, _ in points]
        values = [v for _, v in points]
        anomalies: list[DataAnomaly] = []

        spikes = self.analyzer.detect_spikes(values)
        self._log_outcome("spike", address, spikes)
        median = float(np.median(values))
        for point in spikes.points:
            anomalies.append(self._ml_anomaly(
                ml_anomaly_type("Spike", scope_label),
                f"Spike in {address} for {entity} in {period_label(*periods[point.position])}",
                address, entity, point.score, point.value, median, periods[point.position],
            ))

        changes = self.analyzer.detect_change_points(values)
        self._log_outcome("change_point", address, changes)
        window = change_point_window(len(values))
        for point in changes.points:
            before = float(np.mean(values[point.position - window:point.position]))
            anomalies.append(self._ml_anomaly(
                ml_anomaly_type("Change Point", scope_label),
                (
                    f"Level shift in {address} for {entity} starting "
                    f"{period_label(*periods[point.position])}"
                ),
                address, entity, point.score, point.value, before, periods[point.position],
            ))
        return anomalies

    def _ml_anomaly(
        self,
        anomaly_type: str,
        headline: str,
        address: str,
        entity: str,
        score: float,
        actual: float,
        expected: float,
        period: Period,
    ) -> DataAnomaly:
        return DataAnomaly(
            anomaly_type=anomaly_type,
            description=f"{headline} (model score {score:.2f})",
            severity=high_if_above(score, self.t.ml_high_score),
            anomaly_score=round(min(1.0, score) * 100, 2),
            affected_entity=entity,
            affected_metric=address,
            actual_value=actual,
            expected_value=expected,
            related_cell_addresses=(address,),
            business_impact=value_impact(actual, expected),
            recommended_action=recommended_action(anomaly_type),
            time_range=span([period]),
        )

    # ══════════════════════════════════════════════════════════════════
    # CLUSTERS
    # ══════════════════════════════════════════════════════════════════

    def detect_clusters(self, scope: DetectionScope) -> List[DataPattern]:
        """Cluster patterns for a submission's dealer, a dealer, a group or
        the most recent submissions overall."""
        bind_scope(scope.kind.value, scope.id)
        try:
            if scope.kind == ScopeKind.SUBMISSION:
                submission = self.submissions.get_submission(scope.id)
                if submission is None:
                    logger.info("submission_not_found", submission_id=scope.id)
                    return []
                submissions = self._history_until(submission)
                label, entity = "Dealer", self._dealer_name(submission.dealer_id)
            elif scope.kind == ScopeKind.DEALER:
                dealer = self.dealers.get_dealer(scope.id)
                if dealer is None:
                    logger.info("dealer_not_found", dealer_id=scope.id)
                    return []
                submissions = self.submissions.list_submissions(dealer_id=dealer.id)
                label, entity = "Dealer", dealer.name
            elif scope.kind == ScopeKind.GROUP:
                dealers = self.dealers.list_dealers(group_id=scope.id)
                if not dealers:
                    logger.info("group_not_found", group_id=scope.id)
                    return []
                submissions = self.submissions.list_submissions(dealer_ids=[d.id for d in dealers])
                label, entity = "Group", f"Dealer group {dealers[0].group_label}"
            else:
                submissions = self.submissions.list_submissions(limit=self.t.cluster_max_submissions)
                label, entity = "Global", "All dealers"

            result = self.clusterer.cluster(submissions)
            if not result.ok:
                logger.info("clustering_skipped", status=result.status.value, reason=result.reason)
            patterns = self.clusterer.summarize(result, submissions, label, entity)
        except Exception:
            logger.exception("clustering_failed", scope=scope.kind.value, scope_id=scope.id)
            return []

        ranked = self.ranker.rank_patterns(patterns)
        logger.info("clusters_detected", scope=scope.kind.value, scope_id=scope.id, count=len(ranked))
        return ranked

    # ══════════════════════════════════════════════════════════════════
    # FORECASTS
    # ══════════════════════════════════════════════════════════════════

    def forecast(self, submission_id: int) -> List[DataPattern]:
        """Short-horizon forecast for every address of a submission with
        enough dealer history up to that submission's period."""
        bind_scope("submission", submission_id)
        try:
            submission = self.submissions.get_submission(submission_id)
            if submission is None:
                logger.info("submission_not_found", submission_id=submission_id)
                return []
            entity = self._dealer_name(submission.dealer_id)
            wanted = set(submission.numeric_values())
            series = [
                (a, pts) for a, pts in sorted(period_series(self._history_until(submission)).items())
                if a in wanted and len(pts) >= self.t.forecast_min_points
            ]
            patterns = fan_out(
                lambda item: self._forecast_pattern(item, entity),
                series,
                max_workers=self.settings.max_workers,
            )
        except Exception:
            logger.exception("forecast_failed", submission_id=submission_id)
            return []

        ranked = self.ranker.rank_patterns(patterns)
        logger.info("forecasts_built", submission_id=submission_id, series=len(series), count=len(ranked))
        return ranked

    def _forecast_pattern(self, item: Series, entity: str) -> List[DataPattern]:
        address, points = item
        result = self.analyzer.forecast([v for _, v in points])
        self._log_outcome("forecast", address, result)
        if not result.ok or not result.points:
            return []

        last_period, last_value = points[-1]
        change = percent_change(result.points[0].value, last_value)
        if change is None:
            return []
        future = [shift_period(*last_period, step + 1) for step in range(len(result.points))]
        projected = ", ".join(
            f"{period_label(*p)}: {pt.value:,.2f}" for p, pt in zip(future, result.points)
        )
        r2 = result.r2_value or 0.0
        return [DataPattern(
            pattern_type=PatternType.FORECAST.value,
            description=(
                f"{address} for {entity} is projected to change {change:+.1f}% from "
                f"{period_label(*last_period)} ({last_value:,.2f}); {projected}"
            ),
            significance=forecast_significance(
                change, self.t.forecast_medium_percent, self.t.forecast_high_percent
            ),
            confidence_score=round(max(0.0, min(self.t.forecast_max_confidence, r2 * 100)), 2),
            r2_value=r2,
            related_cell_addresses=(address,),
            time_range=span(future),
        )]

    # ── helpers ──────────────────────────────────────────────────────

    def _history_until(self, submission: Submission) -> List[Submission]:
        """The dealer's submissions up to and including this one's period."""
        return [
            s for s in self.submissions.list_submissions(dealer_id=submission.dealer_id)
            if s.period <= submission.period
        ]

    def _dealer_name(self, dealer_id: int) -> str:
        dealer = self.dealers.get_dealer(dealer_id)
        return dealer.name if dealer else f"Dealer {dealer_id}"

    @staticmethod
    def _log_outcome(algorithm: str, address: str, result: AlgorithmResult) -> None:
        if result.ok:
            return
        log = logger.warning if result.status == DetectionStatus.FAILED else logger.debug
        log("algorithm_skipped", algorithm=algorithm, address=address,
            status=result.status.value, reason=result.reason)
