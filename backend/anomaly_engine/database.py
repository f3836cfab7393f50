"""Database connection, session management, and schema bootstrap.

The engine only reads dealer, submission and template rows. ``init_db``
exists so a fresh local SQLite file has the expected tables; it never
touches existing data.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def build_engine(database_url: str, echo: bool = False):
    """Create a SQLAlchemy engine.

    Uses check_same_thread=False for SQLite so worker threads can share
    the connection pool.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(engine):
    """Create all tables that don't exist yet."""
    # Import models so they register with Base.metadata
    import anomaly_engine.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    return engine
