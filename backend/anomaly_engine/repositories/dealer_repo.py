"""Dealer repository."""

from typing import List, Optional

from sqlalchemy.orm import Session

from anomaly_engine.models.dealer import DealerModel
from anomaly_engine.repositories.base import BaseRepository
from anomaly_engine.schemas.dealer import Dealer


class DealerRepository(BaseRepository[DealerModel]):
    def __init__(self, db: Session):
        super().__init__(db, DealerModel)

    def get_dealer(self, dealer_id: int) -> Optional[Dealer]:
        row = self.get(dealer_id)
        return Dealer.model_validate(row) if row else None

    def list_dealers(self, group_id: Optional[int] = None) -> List[Dealer]:
        query = self.db.query(self.model)
        if group_id is not None:
            query = query.filter(self.model.group_id == group_id)
        return [Dealer.model_validate(row) for row in query.order_by(self.model.id).all()]
