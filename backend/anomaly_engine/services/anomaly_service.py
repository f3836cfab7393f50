"""Anomaly detection for a submission, a dealer, a dealer group or the
recent global window.

Loads the scope's snapshot through the repositories, runs the statistical
detector and hands the result to the ranker. Unknown ids and detector
failures end in an empty list; nothing is raised to the caller.
"""

from datetime import datetime, timezone
from typing import List, Optional

from anomaly_engine.config import Settings
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.engines.statistical_detector import StatisticalAnomalyDetector
from anomaly_engine.logging_config import bind_scope, get_logger
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.repositories.template_repo import TemplateRepository
from anomaly_engine.schemas.findings import DataAnomaly
from anomaly_engine.schemas.snapshot import DetectionSnapshot
from anomaly_engine.schemas.submission import Submission, chronological, newest_first
from anomaly_engine.utils.cancellation import CancellationToken
from anomaly_engine.utils.periods import months_before

logger = get_logger(__name__)


class AnomalyDetectionService:
    def __init__(
        self,
        dealer_repo: DealerRepository,
        submission_repo: SubmissionRepository,
        template_repo: TemplateRepository,
        detector: StatisticalAnomalyDetector,
        ranker: FindingRanker,
        settings: Optional[Settings] = None,
    ):
        self.dealers = dealer_repo
        self.submissions = submission_repo
        self.templates = template_repo
        self.detector = detector
        self.ranker = ranker
        self.settings = settings or Settings()

    # ── submission ───────────────────────────────────────────────────

    def detect_anomalies_in_submission(self, submission_id: int) -> List[DataAnomaly]:
        bind_scope("submission", submission_id)
        try:
            submission = self.submissions.get_submission(submission_id)
            if submission is None:
                logger.info("submission_not_found", submission_id=submission_id)
                return []
            anomalies = self._submission_anomalies(submission)
        except Exception:
            logger.exception("submission_anomaly_detection_failed", submission_id=submission_id)
            return []

        ranked = self.ranker.rank_anomalies(anomalies)
        logger.info("submission_anomalies_detected", submission_id=submission_id, count=len(ranked))
        return ranked

    def _submission_anomalies(
        self, submission: Submission, history: Optional[List[Submission]] = None
    ) -> List[DataAnomaly]:
        dealer = self.dealers.get_dealer(submission.dealer_id)
        dealer_name = dealer.name if dealer else f"Dealer {submission.dealer_id}"
        template = None
        if submission.template_id is not None:
            template = self.templates.get_template_structure(submission.template_id)
            if template is None:
                logger.info("template_not_found", template_id=submission.template_id)

        if history is None:
            candidates = self.submissions.list_submissions(
                dealer_id=submission.dealer_id, month=submission.month, year=submission.year - 1
            )
        else:
            candidates = [
                s for s in history
                if s.month == submission.month and s.year == submission.year - 1
            ]
        previous = chronological(candidates)[0] if candidates else None
        return self.detector.detect_submission_anomalies(submission, template, previous, dealer_name)

    # ── dealer ───────────────────────────────────────────────────────

    def detect_anomalies_by_dealer(self, dealer_id: int) -> List[DataAnomaly]:
        """Latest-submission checks plus quarter-end and peer comparisons."""
        bind_scope("dealer", dealer_id)
        try:
            dealer = self.dealers.get_dealer(dealer_id)
            if dealer is None:
                logger.info("dealer_not_found", dealer_id=dealer_id)
                return []
            history = self.submissions.list_submissions(dealer_id=dealer_id)
            if not history:
                logger.info("dealer_has_no_submissions", dealer_id=dealer_id)
                return []

            latest = newest_first(history)[0]
            anomalies = self._submission_anomalies(latest, history)
            anomalies.extend(self.detector.detect_quarterly_pattern(dealer, chronological(history)))
            peers = self.submissions.list_submissions(month=latest.month, year=latest.year)
            anomalies.extend(self.detector.detect_industry_deviation(dealer, latest, peers))
        except Exception:
            logger.exception("dealer_anomaly_detection_failed", dealer_id=dealer_id)
            return []

        ranked = self.ranker.rank_anomalies(anomalies)
        logger.info("dealer_anomalies_detected", dealer_id=dealer_id, count=len(ranked))
        return ranked

    # ── group ────────────────────────────────────────────────────────

    def detect_anomalies_by_group(
        self, group_id: int, cancel_token: Optional[CancellationToken] = None
    ) -> List[DataAnomaly]:
        bind_scope("group", group_id)
        try:
            dealers = self.dealers.list_dealers(group_id=group_id)
            if not dealers:
                logger.info("group_not_found", group_id=group_id)
                return []
            submissions = self.submissions.list_submissions(dealer_ids=[d.id for d in dealers])
            snapshot = DetectionSnapshot.build(dealers, submissions)
            entity = f"Dealer group {dealers[0].group_label}"
            anomalies = self.detector.detect_batch(snapshot, entity, cancel_token)
        except Exception:
            logger.exception("group_anomaly_detection_failed", group_id=group_id)
            return []

        ranked = self.ranker.rank_anomalies(anomalies)
        logger.info(
            "group_anomalies_detected",
            group_id=group_id, dealers=len(dealers), count=len(ranked),
        )
        return ranked

    # ── global window ────────────────────────────────────────────────

    def detect_global_anomalies(
        self,
        last_months_count: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        as_of: Optional[datetime] = None,
    ) -> List[DataAnomaly]:
        """Batch checks over every submission made in the last N months.

        Ordered by detection time, newest first.
        """
        months = self.settings.global_lookback_months if last_months_count is None else last_months_count
        bind_scope("global", months)
        if months <= 0:
            logger.info("global_window_invalid", months=months)
            return []
        now = as_of or datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            # windows reaching before year 1 raise here
            since = months_before(now, months)
            submissions = self.submissions.list_submissions(since=since)
            if not submissions:
                logger.info("global_window_empty", since=since.isoformat())
                return []
            snapshot = DetectionSnapshot.build(self.dealers.list_dealers(), submissions)
            anomalies = self.detector.detect_batch(snapshot, "All dealers", cancel_token)
        except Exception:
            logger.exception("global_anomaly_detection_failed", months=months)
            return []

        ranked = self.ranker.rank_anomalies(anomalies, by_recency=True)
        logger.info(
            "global_anomalies_detected",
            months=months, submissions=len(submissions), count=len(ranked),
        )
        return ranked
