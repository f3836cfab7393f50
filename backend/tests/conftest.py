"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database so tests are fully isolated.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import anomaly_engine.models  # noqa: F401
from anomaly_engine.config import DetectionThresholds
from anomaly_engine.database import Base
from anomaly_engine.models.dealer import DealerModel
from tests.fixtures import seed_dealer, seed_submission


@pytest.fixture()
def db_engine():
    # StaticPool keeps one connection so worker threads see the same database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(db_engine) -> Session:
    session = sessionmaker(bind=db_engine)()
    yield session
    session.close()


@pytest.fixture()
def thresholds() -> DetectionThresholds:
    return DetectionThresholds()


# ── Convenience fixtures ─────────────────────────────────────────────────

@pytest.fixture()
def dealer_group(db: Session) -> list[DealerModel]:
    """Four dealers in group 1 ("North"); the last reports a 500 outlier."""
    dealers = [seed_dealer(db, f"Dealer {c}", group_id=1, group_name="North") for c in "ABCD"]
    for dealer, value in zip(dealers, (100.0, 102.0, 98.0, 500.0)):
        seed_submission(db, dealer, 2024, 6, {"Income!B4": value, "Income!B5": 50.0})
    return dealers


@pytest.fixture()
def dealer_history(db: Session) -> tuple[DealerModel, list]:
    """A dealer with 24 monthly submissions (Jan 2023 .. Dec 2024).

    B4 doubles every December; B5 and B6 move together; C2 + C3 = C4.
    """
    dealer = seed_dealer(db, "Harbor Motors", group_id=2, group_name="Coastal")
    rows = []
    for i in range(24):
        year, month = 2023 + i // 12, i % 12 + 1
        rows.append(seed_submission(db, dealer, year, month, {
            "Income!B4": 200.0 if month == 12 else 100.0,
            "Income!B5": 10.0 + i,
            "Income!B6": 20.0 + 2 * i,
            "Balance!C2": 40.0,
            "Balance!C3": 60.0,
            "Balance!C4": 100.0,
        }))
    return dealer, rows
