"""Read-only data access repositories."""

from anomaly_engine.repositories.base import BaseRepository
from anomaly_engine.repositories.dealer_repo import DealerRepository
from anomaly_engine.repositories.submission_repo import SubmissionRepository
from anomaly_engine.repositories.template_repo import TemplateRepository

__all__ = [
    "BaseRepository",
    "DealerRepository",
    "SubmissionRepository",
    "TemplateRepository",
]
