"""Dependency Injection Container.

Centralized definition of the detection engine's dependencies using
dependency-injector.

Usage::

    from anomaly_engine.container import AppContainer

    container = AppContainer()
    container.init_resources()  # Initialize DB, etc.

    anomalies = container.anomaly_service().detect_anomalies_by_dealer(7)

    container.shutdown_resources()
"""

from dependency_injector import containers, providers

from anomaly_engine.config import Settings
from anomaly_engine.database import build_engine, build_session_factory, init_db
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


def _open_session(factory):
    session = factory()
    yield session
    session.close()


class AppContainer(containers.DeclarativeContainer):
    """Application Dependency Injection Container.

    - Configuration (Settings, detector thresholds)
    - Database (engine, sessions)
    - Repositories (read-only data access)
    - Engines (detection algorithms)
    - Services (scope orchestration)
    """

    # ══════════════════════════════════════════════════════════════════
    # CONFIGURATION
    # ══════════════════════════════════════════════════════════════════

    settings = providers.Singleton(Settings)

    thresholds = providers.Callable(
        lambda settings: settings.thresholds,
        settings=settings,
    )

    # ══════════════════════════════════════════════════════════════════
    # DATABASE
    # ══════════════════════════════════════════════════════════════════

    db_engine = providers.Singleton(
        build_engine,
        database_url=settings.provided.database_url,
        echo=False,
    )

    db_initialized = providers.Resource(
        init_db,
        engine=db_engine,
    )

    session_factory = providers.Singleton(
        build_session_factory,
        engine=db_engine,
    )

    # Single session per container instance, closed on shutdown_resources()
    db_session = providers.Resource(
        _open_session,
        factory=session_factory,
    )

    # ══════════════════════════════════════════════════════════════════
    # REPOSITORIES (Data Access Layer)
    # ══════════════════════════════════════════════════════════════════

    dealer_repo = providers.Factory(
        DealerRepository,
        db=db_session,
    )

    submission_repo = providers.Factory(
        SubmissionRepository,
        db=db_session,
    )

    template_repo = providers.Factory(
        TemplateRepository,
        db=db_session,
    )

    # ══════════════════════════════════════════════════════════════════
    # ENGINES (Detection Layer)
    # ══════════════════════════════════════════════════════════════════

    statistical_detector = providers.Factory(
        StatisticalAnomalyDetector,
        thresholds=thresholds,
    )

    pattern_detector = providers.Factory(
        PatternDetector,
        thresholds=thresholds,
    )

    time_series_analyzer = providers.Factory(
        TimeSeriesAnalyzer,
        thresholds=thresholds,
    )

    clusterer = providers.Factory(
        SubmissionClusterer,
        thresholds=thresholds,
    )

    ranker = providers.Factory(FindingRanker)

    # ══════════════════════════════════════════════════════════════════
    # SERVICES (Orchestration Layer)
    # ══════════════════════════════════════════════════════════════════

    anomaly_service = providers.Factory(
        AnomalyDetectionService,
        dealer_repo=dealer_repo,
        submission_repo=submission_repo,
        template_repo=template_repo,
        detector=statistical_detector,
        ranker=ranker,
        settings=settings,
    )

    pattern_service = providers.Factory(
        PatternDetectionService,
        dealer_repo=dealer_repo,
        submission_repo=submission_repo,
        pattern_detector=pattern_detector,
        clusterer=clusterer,
        ranker=ranker,
    )

    ml_service = providers.Factory(
        TimeSeriesMLService,
        dealer_repo=dealer_repo,
        submission_repo=submission_repo,
        analyzer=time_series_analyzer,
        clusterer=clusterer,
        ranker=ranker,
        settings=settings,
    )
