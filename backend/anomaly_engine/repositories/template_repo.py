"""Template structure repository."""

from typing import Optional

from sqlalchemy.orm import Session, selectinload

from anomaly_engine.models.template import TemplateModel, TemplateSheetModel, TemplateTableModel
from anomaly_engine.repositories.base import BaseRepository
from anomaly_engine.schemas.template import TemplateStructure


class TemplateRepository(BaseRepository[TemplateModel]):
    def __init__(self, db: Session):
        super().__init__(db, TemplateModel)

    def get_template_structure(self, template_id: int) -> Optional[TemplateStructure]:
        row = (
            self.db.query(self.model)
            .options(
                selectinload(self.model.sheets)
                .selectinload(TemplateSheetModel.tables)
                .selectinload(TemplateTableModel.cells)
            )
            .filter(self.model.id == template_id)
            .first()
        )
        return TemplateStructure.model_validate(row) if row else None
