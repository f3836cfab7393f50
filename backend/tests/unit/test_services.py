"""Tests for the detection services against a seeded in-memory database."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from anomaly_engine.config import Settings
from anomaly_engine.domain.finding_types import AnomalyType, PatternType
from anomaly_engine.engines.clustering import SubmissionClusterer
from anomaly_engine.engines.pattern_detector import PatternDetector
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.engines.statistical_detector import StatisticalAnomalyDetector
from anomaly_engine.engines.time_series import TimeSeriesAnalyzer
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.repositories.template_repo import TemplateRepository
from anomaly_engine.schemas.detection import DetectionScope
from anomaly_engine.schemas.findings import Severity
from anomaly_engine.services.anomaly_service import AnomalyDetectionService
from anomaly_engine.services.ml_service import TimeSeriesMLService
from anomaly_engine.services.pattern_service import PatternDetectionService
from anomaly_engine.utils.cancellation import CancellationToken
from tests.fixtures import months, seed_dealer, seed_submission, seed_template

SPIKY = [100, 102, 98, 101, 99, 103, 100, 97, 400, 101, 99, 102, 100, 98, 101]


def _settings():
    return Settings(_env_file=None, max_workers=2)


def _anomaly_service(db, detector=None):
    return AnomalyDetectionService(
        DealerRepository(db),
        SubmissionRepository(db),
        TemplateRepository(db),
        detector or StatisticalAnomalyDetector(),
        FindingRanker(),
        _settings(),
    )


def _pattern_service(db):
    return PatternDetectionService(
        DealerRepository(db), SubmissionRepository(db), PatternDetector(), SubmissionClusterer(), FindingRanker()
    )


def _ml_service(db):
    return TimeSeriesMLService(
        DealerRepository(db), SubmissionRepository(db), TimeSeriesAnalyzer(), SubmissionClusterer(),
        FindingRanker(), _settings(),
    )


def _seed_series(db, dealer, values, start=(2023, 1), address="Income!B4"):
    return [
        seed_submission(db, dealer, year, month, {address: float(v)})
        for (year, month), v in zip(months(*start, len(values)), values)
    ]


# ══════════════════════════════════════════════════════════════════════
# ANOMALIES
# ══════════════════════════════════════════════════════════════════════


class TestAnomalyService:
    def test_unknown_ids_return_empty(self, db):
        svc = _anomaly_service(db)
        assert svc.detect_anomalies_in_submission(404) == []
        assert svc.detect_anomalies_by_dealer(404) == []
        assert svc.detect_anomalies_by_group(404) == []

    def test_submission_uses_template_and_prior_year(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        template = seed_template(db, {"Revenue": ["Income!B4", "Income!B5"]})
        seed_submission(db, dealer, 2023, 3, {"Income!B4": 100.0, "Income!B5": 40.0}, template)
        current = seed_submission(db, dealer, 2024, 3, {"Income!B4": 180.0, "Income!B5": None}, template)

        anomalies = _anomaly_service(db).detect_anomalies_in_submission(current.id)

        types = [a.anomaly_type for a in anomalies]
        assert AnomalyType.MISSING_DATA.value in types
        assert AnomalyType.YEAR_OVER_YEAR_VARIANCE.value in types
        assert AnomalyType.MISSING_HISTORICAL_DATA.value in types
        # high severity first
        assert anomalies[0].severity == Severity.HIGH

    def test_dealer_compares_latest_with_industry(self, db, dealer_group):
        outlier = dealer_group[-1]
        anomalies = _anomaly_service(db).detect_anomalies_by_dealer(outlier.id)

        deviations = [a for a in anomalies if a.anomaly_type == AnomalyType.INDUSTRY_DEVIATION.value]
        assert len(deviations) == 1
        assert deviations[0].affected_metric == "Income!B4"
        assert deviations[0].expected_value == pytest.approx(100.0)

    def test_dealer_without_submissions(self, db):
        dealer = seed_dealer(db, "Empty")
        assert _anomaly_service(db).detect_anomalies_by_dealer(dealer.id) == []

    def test_group_flags_cross_dealer_outlier(self, db, dealer_group):
        anomalies = _anomaly_service(db).detect_anomalies_by_group(1)

        outliers = [a for a in anomalies if a.anomaly_type == AnomalyType.CROSS_DEALER_OUTLIER.value]
        assert [a.affected_entity for a in outliers] == ["Dealer D"]
        assert outliers[0].severity == Severity.HIGH

    def test_group_cancelled(self, db, dealer_group):
        token = CancellationToken()
        token.cancel()
        assert _anomaly_service(db).detect_anomalies_by_group(1, cancel_token=token) == []

    def test_global_window(self, db, dealer_group):
        svc = _anomaly_service(db)
        inside = svc.detect_global_anomalies(3, as_of=datetime(2024, 7, 1))
        outside = svc.detect_global_anomalies(3, as_of=datetime(2025, 1, 1))

        assert any(a.anomaly_type == AnomalyType.CROSS_DEALER_OUTLIER.value for a in inside)
        assert outside == []

    def test_global_orders_by_detection_time(self, db, dealer_group):
        anomalies = _anomaly_service(db).detect_global_anomalies(3, as_of=datetime(2024, 7, 1))
        stamps = [a.detected_at for a in anomalies]
        assert stamps == sorted(stamps, reverse=True)

    def test_detector_failure_is_contained(self, db, dealer_group):
        detector = MagicMock()
        detector.detect_batch.side_effect = RuntimeError("boom")
        assert _anomaly_service(db, detector).detect_anomalies_by_group(1) == []

    def test_global_window_too_large(self, db, dealer_group):
        # reaches before year 1
        assert _anomaly_service(db).detect_global_anomalies(100000, as_of=datetime(2024, 7, 1)) == []

    @pytest.mark.parametrize("window", [0, -3])
    def test_global_window_not_positive(self, db, dealer_group, window):
        assert _anomaly_service(db).detect_global_anomalies(window, as_of=datetime(2024, 7, 1)) == []


# ══════════════════════════════════════════════════════════════════════
# PATTERNS
# ══════════════════════════════════════════════════════════════════════


class TestPatternService:
    def test_submission_patterns(self, db, dealer_history):
        _, rows = dealer_history
        patterns = _pattern_service(db).detect_patterns_in_submission(rows[-1].id)

        types = {p.pattern_type for p in patterns}
        assert PatternType.SEASONAL_PATTERN.value in types
        assert PatternType.STRONG_POSITIVE_CORRELATION.value in types
        assert PatternType.SUM_RELATIONSHIP.value in types
        ranks = [p.significance.rank for p in patterns]
        assert ranks == sorted(ranks, reverse=True)

    def test_dealer_patterns(self, db, dealer_history):
        dealer, _ = dealer_history
        patterns = _pattern_service(db).detect_patterns_by_dealer(dealer.id)

        types = {p.pattern_type for p in patterns}
        assert PatternType.MONTHLY_SEASONAL_PATTERN.value in types
        assert PatternType.YEARLY_CHANGE_PATTERN.value in types

    def test_group_patterns_are_clusters(self, db, dealer_history):
        patterns = _pattern_service(db).detect_patterns_by_group(2)
        assert patterns
        assert {p.pattern_type for p in patterns} <= {
            "Group Cluster Pattern", PatternType.STABLE_PATTERN.value,
        }

    def test_unknown_ids(self, db):
        svc = _pattern_service(db)
        assert svc.detect_patterns_in_submission(1) == []
        assert svc.detect_patterns_by_dealer(1) == []
        assert svc.detect_patterns_by_group(1) == []


# ══════════════════════════════════════════════════════════════════════
# TIME-SERIES ML
# ══════════════════════════════════════════════════════════════════════


class TestTimeSeriesService:
    def test_dealer_spike(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        _seed_series(db, dealer, SPIKY)

        anomalies = _ml_service(db).detect_time_series_anomalies(DetectionScope.dealer(dealer.id))

        spikes = [a for a in anomalies if a.anomaly_type == "ML-Detected Dealer Spike"]
        september = [a for a in spikes if "September 2023" in a.description]
        assert len(september) == 1
        assert september[0].actual_value == 400.0
        assert 30.0 < september[0].anomaly_score <= 100.0
        assert september[0].time_range.start == datetime(2023, 9, 1)

    def test_dealer_needs_ten_submissions(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        _seed_series(db, dealer, SPIKY[:9])
        assert _ml_service(db).detect_time_series_anomalies(DetectionScope.dealer(dealer.id)) == []

    def test_group_spike_uses_period_average(self, db):
        a = seed_dealer(db, "A", group_id=5)
        b = seed_dealer(db, "B", group_id=5)
        _seed_series(db, a, SPIKY)
        _seed_series(db, b, SPIKY)

        anomalies = _ml_service(db).detect_time_series_anomalies(DetectionScope.group(5))
        assert any(x.anomaly_type == "ML-Detected Group Spike" for x in anomalies)

    def test_group_skips_sparse_addresses(self, db):
        class RecordingAnalyzer(TimeSeriesAnalyzer):
            lengths: list = []

            def detect_spikes(self, values):
                self.lengths.append(len(values))
                return super().detect_spikes(values)

        sparse = [100, 101, 99, 500, 100, 102, 98, 101]
        for name in ("A", "B"):
            dealer = seed_dealer(db, name, group_id=5)
            for i, (year, month) in enumerate(months(2023, 1, 16)):
                values = {"Income!B4": 100.0 + i % 3}
                if i < len(sparse):
                    values["Income!B9"] = float(sparse[i])
                seed_submission(db, dealer, year, month, values)

        analyzer = RecordingAnalyzer()
        svc = TimeSeriesMLService(
            DealerRepository(db), SubmissionRepository(db), analyzer, SubmissionClusterer(),
            FindingRanker(), _settings(),
        )
        anomalies = svc.detect_time_series_anomalies(DetectionScope.group(5))

        # Income!B9 covers half of the 16 periods but has fewer than ten points
        assert "Income!B9" not in {a.affected_metric for a in anomalies}
        assert analyzer.lengths == [16]

    def test_submission_scope(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        rows = _seed_series(db, dealer, SPIKY)

        anomalies = _ml_service(db).detect_time_series_anomalies(DetectionScope.submission(rows[-1].id))
        assert any(x.anomaly_type == "ML-Detected Spike" for x in anomalies)

    def test_submission_scope_ignores_later_history(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        rows = _seed_series(db, dealer, SPIKY)
        # nine periods up to the ninth submission
        assert _ml_service(db).detect_time_series_anomalies(DetectionScope.submission(rows[8].id)) == []

    def test_global_scope_is_not_a_series(self, db):
        assert _ml_service(db).detect_time_series_anomalies(DetectionScope.global_window()) == []

    def test_dealer_clusters(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        for i, (year, month) in enumerate(months(2024, 1, 12)):
            v = 10.0 if i % 2 == 0 else 100.0
            seed_submission(db, dealer, year, month, {"Income!B4": v, "Income!B5": v})

        patterns = _ml_service(db).detect_clusters(DetectionScope.dealer(dealer.id))
        clusters = [p for p in patterns if p.pattern_type == "Dealer Cluster Pattern"]
        assert len(clusters) == 2

    def test_clusters_unknown_scope_id(self, db):
        assert _ml_service(db).detect_clusters(DetectionScope.group(77)) == []

    def test_forecast(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        values = [100 + 5 * i + (1 if i % 2 else -1) for i in range(18)]
        rows = _seed_series(db, dealer, values)

        patterns = _ml_service(db).forecast(rows[-1].id)

        assert len(patterns) == 1
        forecast = patterns[0]
        assert forecast.pattern_type == PatternType.FORECAST.value
        assert forecast.related_cell_addresses == ("Income!B4",)
        assert forecast.time_range.start == datetime(2024, 7, 1)
        assert forecast.time_range.end.month == 9
        assert 0.0 <= forecast.confidence_score <= 95.0
        assert forecast.r2_value > 0.9

    def test_forecast_needs_twelve_points(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        rows = _seed_series(db, dealer, range(100, 111))
        assert _ml_service(db).forecast(rows[-1].id) == []

    def test_forecast_unknown_submission(self, db):
        assert _ml_service(db).forecast(123) == []
