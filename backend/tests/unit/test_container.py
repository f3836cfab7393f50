"""Tests for dependency injection container.

Verifies that the DI container wires settings, repositories, engines and
services, and that providers can be overridden for testing.
"""

from dependency_injector import providers

from anomaly_engine.config import DetectionThresholds, Settings
from anomaly_engine.container import AppContainer
from anomaly_engine.engines.clustering import SubmissionClusterer
from anomaly_engine.engines.pattern_detector import PatternDetector
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.engines.statistical_detector import StatisticalAnomalyDetector
from anomaly_engine.engines.time_series import TimeSeriesAnalyzer
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.repositories.template_repo import TemplateRepository
from anomaly_engine.services.anomaly_service import AnomalyDetectionService
from anomaly_engine.services.ml_service import TimeSeriesMLService
from anomaly_engine.services.pattern_service import PatternDetectionService
from tests.fixtures import seed_dealer, seed_submission


def _container_for(db) -> AppContainer:
    container = AppContainer()
    container.db_session.override(providers.Object(db))
    return container


class TestContainerConfiguration:
    def test_settings_singleton(self):
        container = AppContainer()
        settings = container.settings()

        assert isinstance(settings, Settings)
        assert settings is container.settings()

    def test_thresholds_come_from_settings(self):
        container = AppContainer()
        assert container.thresholds() is container.settings().thresholds

    def test_engines(self):
        container = AppContainer()
        engines = [
            (container.statistical_detector(), StatisticalAnomalyDetector),
            (container.pattern_detector(), PatternDetector),
            (container.time_series_analyzer(), TimeSeriesAnalyzer),
            (container.clusterer(), SubmissionClusterer),
            (container.ranker(), FindingRanker),
        ]
        for instance, cls in engines:
            assert isinstance(instance, cls)

    def test_repositories(self, db):
        container = _container_for(db)
        for instance, cls in [
            (container.dealer_repo(), DealerRepository),
            (container.submission_repo(), SubmissionRepository),
            (container.template_repo(), TemplateRepository),
        ]:
            assert isinstance(instance, cls)
            assert instance.db is db

    def test_services(self, db):
        container = _container_for(db)
        anomaly = container.anomaly_service()
        pattern = container.pattern_service()
        ml = container.ml_service()

        assert isinstance(anomaly, AnomalyDetectionService)
        assert isinstance(pattern, PatternDetectionService)
        assert isinstance(ml, TimeSeriesMLService)
        assert isinstance(anomaly.templates, TemplateRepository)
        assert isinstance(ml.analyzer, TimeSeriesAnalyzer)


class TestContainerOverrides:
    def test_threshold_override_reaches_engines(self):
        container = AppContainer()
        custom = Settings(_env_file=None, thresholds=DetectionThresholds(outlier_z_score=4.0))
        container.settings.override(providers.Object(custom))

        assert container.statistical_detector().t.outlier_z_score == 4.0

    def test_override_database_session(self, db):
        dealer = seed_dealer(db, "Harbor Motors")
        seed_submission(db, dealer, 2024, 1, {"Income!B4": 1.0})
        container = _container_for(db)

        assert container.dealer_repo().get_dealer(dealer.id).name == "Harbor Motors"

    def test_resources_lifecycle(self):
        container = AppContainer()
        container.settings.override(providers.Object(
            Settings(_env_file=None, database_url="sqlite:///:memory:")
        ))
        container.init_resources()
        try:
            assert container.anomaly_service().detect_anomalies_by_dealer(1) == []
        finally:
            container.shutdown_resources()
