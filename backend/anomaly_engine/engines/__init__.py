"""Core detection engines."""

from anomaly_engine.engines.clustering import SubmissionClusterer
from anomaly_engine.engines.pattern_detector import PatternDetector
from anomaly_engine.engines.ranker import FindingRanker
from anomaly_engine.engines.statistical_detector import StatisticalAnomalyDetector
from anomaly_engine.engines.time_series import TimeSeriesAnalyzer

__all__ = [
    "StatisticalAnomalyDetector",
    "PatternDetector",
    "TimeSeriesAnalyzer",
    "SubmissionClusterer",
    "FindingRanker",
]
