"""Dealer ORM model."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from anomaly_engine.database import Base


class DealerModel(Base):
    __tablename__ = "dealers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    group_id = Column(Integer, nullable=True, index=True)
    group_name = Column(String, nullable=True)

    # Relationships
    submissions = relationship("SubmissionModel", back_populates="dealer", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Dealer {self.id} ({self.name})>"
