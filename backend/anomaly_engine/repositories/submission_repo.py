"""Submission repository: submissions are always loaded with their cells."""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from anomaly_engine.models.submission import SubmissionModel
from anomaly_engine.repositories.base import BaseRepository
from anomaly_engine.schemas.submission import Submission


class SubmissionRepository(BaseRepository[SubmissionModel]):
    def __init__(self, db: Session):
        super().__init__(db, SubmissionModel)

    def get_submission(self, submission_id: int) -> Optional[Submission]:
        row = (
            self.db.query(self.model)
            .options(selectinload(self.model.cells))
            .filter(self.model.id == submission_id)
            .first()
        )
        return Submission.model_validate(row) if row else None

    def list_submissions(
        self,
        dealer_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        since: Optional[datetime] = None,
        *,
        dealer_ids: Optional[Iterable[int]] = None,
        limit: Optional[int] = None,
    ) -> List[Submission]:
        """Submissions matching every given filter, newest first.

        ``since`` compares against the submission timestamp; ``limit``
        keeps the most recent rows.
        """
        query = self.db.query(self.model).options(selectinload(self.model.cells))
        if dealer_id is not None:
            query = query.filter(self.model.dealer_id == dealer_id)
        if dealer_ids is not None:
            query = query.filter(self.model.dealer_id.in_(list(dealer_ids)))
        if month is not None:
            query = query.filter(self.model.month == month)
        if year is not None:
            query = query.filter(self.model.year == year)
        if since is not None:
            query = query.filter(self.model.submitted_at >= since)
        query = query.order_by(
            self.model.year.desc(),
            self.model.month.desc(),
            self.model.submitted_at.desc(),
            self.model.id.desc(),
        )
        if limit is not None:
            query = query.limit(limit)
        return [Submission.model_validate(row) for row in query.all()]
