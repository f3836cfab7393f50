"""Pydantic schemas: source snapshots, detector outputs and result types."""

from anomaly_engine.schemas.dealer import Dealer
from anomaly_engine.schemas.detection import (
    AlgorithmResult,
    ClusterAssignment,
    ClusteringResult,
    DetectionScope,
    DetectionStatus,
    ScopeKind,
    SeriesPoint,
)
from anomaly_engine.schemas.findings import (
    BusinessImpact,
    DataAnomaly,
    DataPattern,
    IndustryComparison,
    Severity,
    TimeRange,
)
from anomaly_engine.schemas.snapshot import DetectionSnapshot
from anomaly_engine.schemas.submission import (
    AggregationType,
    CellDataType,
    Submission,
    SubmissionCell,
)
from anomaly_engine.schemas.template import (
    TemplateCell,
    TemplateSheet,
    TemplateStructure,
    TemplateTable,
)

__all__ = [
    "Dealer",
    "Submission", "SubmissionCell", "CellDataType", "AggregationType",
    "TemplateStructure", "TemplateSheet", "TemplateTable", "TemplateCell",
    "DataAnomaly", "DataPattern", "Severity", "TimeRange", "BusinessImpact",
    "IndustryComparison",
    "AlgorithmResult", "ClusteringResult", "ClusterAssignment", "SeriesPoint",
    "DetectionStatus", "DetectionScope", "ScopeKind",
    "DetectionSnapshot",
]
