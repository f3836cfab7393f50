"""Master template ORM models: template → sheet → table → cell."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from anomaly_engine.database import Base


class TemplateModel(Base):
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    sheets = relationship(
        "TemplateSheetModel",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateSheetModel.page_number",
    )

    def __repr__(self) -> str:
        return f"<Template {self.name} {self.year}>"


class TemplateSheetModel(Base):
    __tablename__ = "template_sheets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_id = Column(Integer, ForeignKey("templates.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    page_number = Column(Integer, nullable=False, default=1)

    template = relationship("TemplateModel", back_populates="sheets")
    tables = relationship("TemplateTableModel", back_populates="sheet", cascade="all, delete-orphan")


class TemplateTableModel(Base):
    __tablename__ = "template_tables"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sheet_id = Column(Integer, ForeignKey("template_sheets.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    row_count = Column(Integer, nullable=False, default=0)
    column_count = Column(Integer, nullable=False, default=0)

    sheet = relationship("TemplateSheetModel", back_populates="tables")
    cells = relationship("TemplateCellModel", back_populates="table", cascade="all, delete-orphan")


class TemplateCellModel(Base):
    __tablename__ = "template_cells"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_id = Column(Integer, ForeignKey("template_tables.id"), nullable=False, index=True)
    cell_address = Column(String, nullable=False)
    global_address = Column(String, nullable=False)
    label = Column(String, nullable=True)
    data_type = Column(String, nullable=False, default="number")  # number | text | label

    table = relationship("TemplateTableModel", back_populates="cells")
