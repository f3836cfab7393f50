"""Output records produced by the detectors.

Both record types are frozen: once a detector builds one it is never
mutated, and it references source data by global address only.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class TimeRange(BaseModel):
    start: datetime
    end: datetime

    model_config = {"frozen": True}


class BusinessImpact(BaseModel):
    description: str
    estimated_value: Optional[float] = None

    model_config = {"frozen": True}


class IndustryComparison(BaseModel):
    benchmark: float
    deviation: float  # percent

    model_config = {"frozen": True}


class DataAnomaly(BaseModel):
    anomaly_type: str
    description: str
    severity: Severity
    detected_at: datetime = Field(default_factory=utc_now)

    anomaly_score: Optional[float] = Field(default=None, ge=0, le=100)
    affected_entity: Optional[str] = None
    affected_metric: Optional[str] = None
    actual_value: Optional[float] = None
    expected_value: Optional[float] = None
    threshold: Optional[float] = None
    related_cell_addresses: tuple[str, ...] = ()
    business_impact: Optional[BusinessImpact] = None
    recommended_action: Optional[str] = None
    time_range: Optional[TimeRange] = None

    model_config = {"frozen": True}

    @property
    def dedupe_key(self) -> tuple:
        return (self.anomaly_type, self.description, self.related_cell_addresses)


class DataPattern(BaseModel):
    pattern_type: str
    description: str
    significance: Severity
    confidence_score: float = Field(ge=0, le=100)
    detected_at: datetime = Field(default_factory=utc_now)

    correlation: Optional[float] = Field(default=None, ge=-1, le=1)
    formula: Optional[str] = None
    r2_value: Optional[float] = None
    related_cell_addresses: tuple[str, ...] = ()
    time_range: Optional[TimeRange] = None
    industry_comparison: Optional[IndustryComparison] = None

    model_config = {"frozen": True}

    @property
    def dedupe_key(self) -> tuple:
        return (self.pattern_type, self.description, self.related_cell_addresses)
