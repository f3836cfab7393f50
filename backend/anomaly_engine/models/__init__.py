"""SQLAlchemy ORM models: imported here so Base.metadata sees them."""

from anomaly_engine.models.dealer import DealerModel
from anomaly_engine.models.submission import SubmissionCellModel, SubmissionModel
from anomaly_engine.models.template import (
    TemplateCellModel,
    TemplateModel,
    TemplateSheetModel,
    TemplateTableModel,
)

__all__ = [
    "DealerModel",
    "SubmissionModel",
    "SubmissionCellModel",
    "TemplateModel",
    "TemplateSheetModel",
    "TemplateTableModel",
    "TemplateCellModel",
]
