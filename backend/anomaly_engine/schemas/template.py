"""Template structure schemas (sheet → table → cell)."""

from typing import Optional

from pydantic import BaseModel

from anomaly_engine.schemas.submission import CellDataType


class TemplateCell(BaseModel):
    cell_address: str
    global_address: str
    label: Optional[str] = None
    data_type: CellDataType = CellDataType.NUMBER

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def expects_value(self) -> bool:
        return self.data_type in (CellDataType.NUMBER, CellDataType.TEXT)


class TemplateTable(BaseModel):
    id: int
    name: str
    cells: tuple[TemplateCell, ...] = ()

    model_config = {"from_attributes": True, "frozen": True}


class TemplateSheet(BaseModel):
    id: int
    name: str
    page_number: int = 1
    tables: tuple[TemplateTable, ...] = ()

    model_config = {"from_attributes": True, "frozen": True}


class TemplateStructure(BaseModel):
    id: int
    name: str
    year: int
    sheets: tuple[TemplateSheet, ...] = ()

    model_config = {"from_attributes": True, "frozen": True}

    def tables(self) -> list[tuple[TemplateSheet, TemplateTable]]:
        return [(sheet, table) for sheet in self.sheets for table in sheet.tables]
