"""Pattern detection for a submission, a dealer and a dealer group."""

from typing import List, Optional

from anomaly_engine.engines.clustering import SubmissionClusterer
from anomaly_engine.engines.pattern_detector import PatternDetector
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.logging_config import bind_scope, get_logger
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.schemas.findings import DataPattern
from anomaly_engine.utils.cancellation import CancellationToken, is_cancelled

logger = get_logger(__name__)


class PatternDetectionService:
    def __init__(
        self,
        dealer_repo: DealerRepository,
        submission_repo: SubmissionRepository,
        pattern_detector: PatternDetector,
        clusterer: SubmissionClusterer,
        ranker: FindingRanker,
    ):
        self.dealers = dealer_repo
        self.submissions = submission_repo
        self.detector = pattern_detector
        self.clusterer = clusterer
        self.ranker = ranker

    def detect_patterns_in_submission(self, submission_id: int) -> List[DataPattern]:
        """Correlations, arithmetic relationships and seasonality.

        History is the same dealer's other submissions.
        """
        bind_scope("submission", submission_id)
        try:
            submission = self.submissions.get_submission(submission_id)
            if submission is None:
                logger.info("submission_not_found", submission_id=submission_id)
                return []
            history = [
                s for s in self.submissions.list_submissions(dealer_id=submission.dealer_id)
                if s.id != submission.id
            ]
            patterns = self.detector.detect_submission_patterns(submission, history)
        except Exception:
            logger.exception("submission_pattern_detection_failed", submission_id=submission_id)
            return []

        ranked = self.ranker.rank_patterns(patterns)
        logger.info(
            "submission_patterns_detected",
            submission_id=submission_id, history=len(history), count=len(ranked),
        )
        return ranked

    def detect_patterns_by_dealer(self, dealer_id: int) -> List[DataPattern]:
        bind_scope("dealer", dealer_id)
        try:
            dealer = self.dealers.get_dealer(dealer_id)
            if dealer is None:
                logger.info("dealer_not_found", dealer_id=dealer_id)
                return []
            submissions = self.submissions.list_submissions(dealer_id=dealer_id)
            group_submissions = []
            if dealer.group_id is not None:
                group_ids = [d.id for d in self.dealers.list_dealers(group_id=dealer.group_id)]
                group_submissions = self.submissions.list_submissions(dealer_ids=group_ids)
            patterns = self.detector.detect_dealer_patterns(dealer, submissions, group_submissions)
        except Exception:
            logger.exception("dealer_pattern_detection_failed", dealer_id=dealer_id)
            return []

        ranked = self.ranker.rank_patterns(patterns)
        logger.info("dealer_patterns_detected", dealer_id=dealer_id, count=len(ranked))
        return ranked

    def detect_patterns_by_group(
        self, group_id: int, cancel_token: Optional[CancellationToken] = None
    ) -> List[DataPattern]:
        """Cluster patterns over every submission of the group's dealers."""
        bind_scope("group", group_id)
        try:
            dealers = self.dealers.list_dealers(group_id=group_id)
            if not dealers:
                logger.info("group_not_found", group_id=group_id)
                return []
            submissions = self.submissions.list_submissions(dealer_ids=[d.id for d in dealers])
            if is_cancelled(cancel_token):
                logger.info("group_pattern_detection_cancelled", group_id=group_id)
                return []
            result = self.clusterer.cluster(submissions)
            if not result.ok:
                logger.info("group_clustering_skipped", group_id=group_id, reason=result.reason)
            label = dealers[0].group_label
            patterns = self.clusterer.summarize(result, submissions, "Group", f"Dealer group {label}")
        except Exception:
            logger.exception("group_pattern_detection_failed", group_id=group_id)
            return []

        ranked = self.ranker.rank_patterns(patterns)
        logger.info("group_patterns_detected", group_id=group_id, count=len(ranked))
        return ranked
