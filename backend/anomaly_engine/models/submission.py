"""Finance submission and submission cell ORM models."""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from anomaly_engine.database import Base


class SubmissionModel(Base):
    __tablename__ = "submissions"

    # No unique constraint on (dealer, template, month, year): upstream does
    # not enforce it and duplicates must be tolerated.
    id = Column(Integer, primary_key=True, autoincrement=True)
    dealer_id = Column(Integer, ForeignKey("dealers.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("templates.id"), nullable=True, index=True)
    title = Column(String, nullable=False, default="")
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    submitted_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="submitted")

    # Relationships
    dealer = relationship("DealerModel", back_populates="submissions")
    cells = relationship("SubmissionCellModel", back_populates="submission", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Submission {self.id} dealer_id={self.dealer_id} {self.month:02d}/{self.year}>"


class SubmissionCellModel(Base):
    __tablename__ = "submission_cells"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(Integer, ForeignKey("submissions.id"), nullable=False, index=True)
    cell_address = Column(String, nullable=False)
    global_address = Column(String, nullable=False, index=True)  # "Sheet!A1"
    value = Column(Float, nullable=True)
    text_value = Column(String, nullable=True)
    data_type = Column(String, nullable=False, default="number")  # number | text
    aggregation_type = Column(String, nullable=False, default="monthly")  # monthly | fytd | r12

    # Relationships
    submission = relationship("SubmissionModel", back_populates="cells")

    def __repr__(self) -> str:
        return f"<SubmissionCell {self.global_address}={self.value}>"
