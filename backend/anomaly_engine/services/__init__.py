"""Service-layer orchestration modules."""

from anomaly_engine.services.anomaly_service import AnomalyDetectionService
from anomaly_engine.services.ml_service import TimeSeriesMLService
from anomaly_engine.services.pattern_service import PatternDetectionService

__all__ = [
    "AnomalyDetectionService",
    "PatternDetectionService",
    "TimeSeriesMLService",
]
