"""Submission and cell snapshot schemas.

Snapshots carry ids instead of object references: a submission knows its
dealer id, never the dealer itself.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class CellDataType(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    LABEL = "label"


class AggregationType(str, Enum):
    MONTHLY = "monthly"
    FYTD = "fytd"
    R12 = "r12"


def sheet_of(global_address: str) -> str:
    """Sheet prefix of a global address.

    >>> sheet_of("Income!B4")
    'Income'
    >>> sheet_of("B4")
    ''
    """
    if "!" not in global_address:
        return ""
    return global_address.split("!", 1)[0]


class SubmissionCell(BaseModel):
    cell_address: str
    global_address: str
    value: Optional[float] = None
    text_value: Optional[str] = None
    data_type: CellDataType = CellDataType.NUMBER
    aggregation_type: AggregationType = AggregationType.MONTHLY

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def is_numeric(self) -> bool:
        return self.data_type == CellDataType.NUMBER and self.value is not None

    @property
    def is_blank(self) -> bool:
        if self.data_type == CellDataType.NUMBER:
            return self.value is None
        return self.text_value is None or not self.text_value.strip()


class Submission(BaseModel):
    id: int
    dealer_id: int
    template_id: Optional[int] = None
    title: str = ""
    month: int
    year: int
    submitted_at: datetime
    status: str = "submitted"
    cells: tuple[SubmissionCell, ...] = ()

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def period(self) -> tuple[int, int]:
        """(year, month) sort key."""
        return self.year, self.month

    def numeric_values(self) -> dict[str, float]:
        """Numeric values keyed by global address (first cell wins)."""
        values: dict[str, float] = {}
        for cell in self.cells:
            if cell.is_numeric and cell.global_address not in values:
                values[cell.global_address] = float(cell.value)
        return values

    def cell_by_address(self) -> dict[str, SubmissionCell]:
        cells: dict[str, SubmissionCell] = {}
        for cell in self.cells:
            cells.setdefault(cell.global_address, cell)
        return cells


def chronological(submissions: list[Submission]) -> list[Submission]:
    """Oldest first, ties broken by submission time then id."""
    return sorted(submissions, key=lambda s: (s.year, s.month, s.submitted_at, s.id))


def newest_first(submissions: list[Submission]) -> list[Submission]:
    return sorted(
        submissions, key=lambda s: (s.year, s.month, s.submitted_at, s.id), reverse=True
    )
