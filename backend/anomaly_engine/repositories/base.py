"""Generic read-only base repository."""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from anomaly_engine.database import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Thin read-only data-access layer over SQLAlchemy.

    There are no create/update/delete helpers: the source store is written
    by other applications. Subclasses add domain queries and convert rows
    into snapshot schemas.
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def get(self, id: int) -> Optional[T]:
        return self.db.query(self.model).filter(self.model.id == id).first()
