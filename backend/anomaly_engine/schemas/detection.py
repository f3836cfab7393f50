"""Internal result types for the time-series and clustering algorithms.

Every algorithm returns one of these instead of raising, so a caller can
tell "ran and found nothing" apart from "could not run".
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class DetectionStatus(str, Enum):
    COMPLETED = "completed"
    INSUFFICIENT_DATA = "insufficient_data"
    FAILED = "failed"


class ScopeKind(str, Enum):
    SUBMISSION = "submission"
    DEALER = "dealer"
    GROUP = "group"
    GLOBAL = "global"


class DetectionScope(BaseModel):
    kind: ScopeKind
    id: Optional[int] = None

    model_config = {"frozen": True}

    @classmethod
    def submission(cls, submission_id: int) -> "DetectionScope":
        return cls(kind=ScopeKind.SUBMISSION, id=submission_id)

    @classmethod
    def dealer(cls, dealer_id: int) -> "DetectionScope":
        return cls(kind=ScopeKind.DEALER, id=dealer_id)

    @classmethod
    def group(cls, group_id: int) -> "DetectionScope":
        return cls(kind=ScopeKind.GROUP, id=group_id)

    @classmethod
    def global_window(cls) -> "DetectionScope":
        return cls(kind=ScopeKind.GLOBAL)


class SeriesPoint(BaseModel):
    position: int
    value: float
    score: float  # 0–1

    model_config = {"frozen": True}


class _Outcome(BaseModel):
    status: DetectionStatus
    reason: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.status == DetectionStatus.COMPLETED


class AlgorithmResult(_Outcome):
    """Flagged series points (spikes, change points) or forecast values."""

    points: tuple[SeriesPoint, ...] = ()
    r2_value: Optional[float] = None

    @classmethod
    def completed(cls, points, r2_value: Optional[float] = None) -> "AlgorithmResult":
        return cls(status=DetectionStatus.COMPLETED, points=tuple(points), r2_value=r2_value)

    @classmethod
    def insufficient(cls, reason: str) -> "AlgorithmResult":
        return cls(status=DetectionStatus.INSUFFICIENT_DATA, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "AlgorithmResult":
        return cls(status=DetectionStatus.FAILED, reason=reason)


class ClusterAssignment(BaseModel):
    submission_id: int
    cluster_id: int
    distance: float

    model_config = {"frozen": True}


class ClusteringResult(_Outcome):
    assignments: tuple[ClusterAssignment, ...] = ()
    features: tuple[str, ...] = ()
    # cluster id → feature averages in original units, ordered like ``features``
    centroids: dict[int, tuple[float, ...]] = {}

    @classmethod
    def completed(cls, assignments, features, centroids) -> "ClusteringResult":
        return cls(
            status=DetectionStatus.COMPLETED,
            assignments=tuple(assignments),
            features=tuple(features),
            centroids=centroids,
        )

    @classmethod
    def insufficient(cls, reason: str) -> "ClusteringResult":
        return cls(status=DetectionStatus.INSUFFICIENT_DATA, reason=reason)

    def members(self, cluster_id: int) -> list[ClusterAssignment]:
        return [a for a in self.assignments if a.cluster_id == cluster_id]
