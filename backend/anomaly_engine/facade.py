"""Detection facade: single entry point for every external consumer.

The CLI and any embedding application use this instead of wiring
repositories, engines and services directly. Returns plain dicts, never
ORM models or schema objects.

Usage::

    with DetectionFacade() as facade:          # uses Settings() from .env
        anomalies = facade.detect_anomalies_by_dealer(7)
        clusters = facade.detect_clusters("group", 2)
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from anomaly_engine.config import Settings
from anomaly_engine.container import AppContainer
from anomaly_engine.database import build_engine, build_session_factory, init_db
from anomaly_engine.engines.clustering import SubmissionClusterer
from anomaly_engine.engines.pattern_detector import PatternDetector
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.engines.statistical_detector import StatisticalAnomalyDetector
from anomaly_engine.engines.time_series import TimeSeriesAnalyzer
from anomaly_engine.logging_config import get_logger
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.repositories.template_repo import TemplateRepository
from anomaly_engine.schemas.detection import DetectionScope, ScopeKind
from anomaly_engine.services.anomaly_service import AnomalyDetectionService
from anomaly_engine.services.ml_service import TimeSeriesMLService
from anomaly_engine.services.pattern_service import PatternDetectionService
from anomaly_engine.utils.cancellation import CancellationToken

logger = get_logger(__name__)

Findings = List[Dict[str, Any]]


def _dump(findings: List[BaseModel]) -> Findings:
    return [f.model_dump(mode="json") for f in findings]


class DetectionFacade:
    """High-level API for anomaly, pattern and time-series detection.

    Pass a ``container`` to reuse an existing dependency graph; otherwise
    the facade builds its own from ``settings``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        container: Optional[AppContainer] = None,
    ):
        self._container = container
        if container is not None:
            self._settings = container.settings()
            self._db = None
            self._anomalies = container.anomaly_service()
            self._patterns = container.pattern_service()
            self._ml = container.ml_service()
            return

        self._settings = settings or Settings()
        self._setup_db()
        self._setup_services()

    # ── internal wiring (private) ─────────────────────────────────────

    def _setup_db(self) -> None:
        s = self._settings
        if s.database_url.startswith("sqlite:///"):
            db_path = Path(s.database_url.replace("sqlite:///", ""))
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._engine = init_db(build_engine(s.database_url, echo=False))
        Session = build_session_factory(self._engine)
        self._db = Session()

    def _setup_services(self) -> None:
        s, db = self._settings, self._db
        thresholds = s.thresholds
        dealers = DealerRepository(db)
        submissions = SubmissionRepository(db)
        ranker = FindingRanker()
        clusterer = SubmissionClusterer(thresholds)

        self._anomalies = AnomalyDetectionService(
            dealers,
            submissions,
            TemplateRepository(db),
            StatisticalAnomalyDetector(thresholds),
            ranker,
            s,
        )
        self._patterns = PatternDetectionService(
            dealers, submissions, PatternDetector(thresholds), clusterer, ranker
        )
        self._ml = TimeSeriesMLService(
            dealers, submissions, TimeSeriesAnalyzer(thresholds), clusterer, ranker, s
        )

    # ══════════════════════════════════════════════════════════════════
    # ANOMALIES
    # ══════════════════════════════════════════════════════════════════

    def detect_anomalies_in_submission(self, submission_id: int) -> Findings:
        return _dump(self._anomalies.detect_anomalies_in_submission(submission_id))

    def detect_anomalies_by_dealer(self, dealer_id: int) -> Findings:
        return _dump(self._anomalies.detect_anomalies_by_dealer(dealer_id))

    def detect_anomalies_by_group(
        self, group_id: int, cancel_token: Optional[CancellationToken] = None
    ) -> Findings:
        return _dump(self._anomalies.detect_anomalies_by_group(group_id, cancel_token))

    def detect_global_anomalies(
        self,
        last_months_count: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Findings:
        """Anomalies across all dealers in the last N months, newest first."""
        return _dump(self._anomalies.detect_global_anomalies(last_months_count, cancel_token))

    # ══════════════════════════════════════════════════════════════════
    # PATTERNS
    # ══════════════════════════════════════════════════════════════════

    def detect_patterns_in_submission(self, submission_id: int) -> Findings:
        return _dump(self._patterns.detect_patterns_in_submission(submission_id))

    def detect_patterns_by_dealer(self, dealer_id: int) -> Findings:
        return _dump(self._patterns.detect_patterns_by_dealer(dealer_id))

    def detect_patterns_by_group(
        self, group_id: int, cancel_token: Optional[CancellationToken] = None
    ) -> Findings:
        return _dump(self._patterns.detect_patterns_by_group(group_id, cancel_token))

    # ══════════════════════════════════════════════════════════════════
    # TIME-SERIES ML
    # ══════════════════════════════════════════════════════════════════

    def detect_time_series_anomalies(
        self,
        submission_id: Optional[int] = None,
        dealer_id: Optional[int] = None,
        group_id: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Findings:
        """Spikes and change points for exactly one of the three scopes."""
        given = []
        if submission_id is not None:
            given.append(DetectionScope.submission(submission_id))
        if dealer_id is not None:
            given.append(DetectionScope.dealer(dealer_id))
        if group_id is not None:
            given.append(DetectionScope.group(group_id))
        if len(given) != 1:
            logger.warning("time_series_scope_invalid", scopes_given=len(given))
            return []
        return _dump(self._ml.detect_time_series_anomalies(given[0], cancel_token))

    def detect_clusters(self, scope_kind: str = "global", scope_id: Optional[int] = None) -> Findings:
        """Cluster patterns for ``submission``, ``dealer``, ``group`` or ``global``."""
        try:
            kind = ScopeKind(scope_kind)
        except ValueError:
            logger.warning("cluster_scope_invalid", scope_kind=scope_kind)
            return []
        if kind != ScopeKind.GLOBAL and scope_id is None:
            logger.warning("cluster_scope_id_missing", scope_kind=scope_kind)
            return []
        scope = DetectionScope(kind=kind, id=scope_id if kind != ScopeKind.GLOBAL else None)
        return _dump(self._ml.detect_clusters(scope))

    def forecast(self, submission_id: int) -> Findings:
        return _dump(self._ml.forecast(submission_id))

    # ── lifecycle ────────────────────────────────────────────────────

    def close(self) -> None:
        """Release the database session (and the container's resources)."""
        if self._container is not None:
            self._container.shutdown_resources()
        elif self._db is not None:
            self._db.close()
            self._engine.dispose()
            self._db = None

    def __enter__(self) -> "DetectionFacade":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
