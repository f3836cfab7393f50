"""Tests for DetectionFacade: the single entry point for the CLI and any
embedding application.

The facade is tested against a real SQLite file in a temp directory, seeded
through a separate engine the way a producer application would write it.
"""

import json

import pytest
from dependency_injector import providers
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import anomaly_engine.models  # noqa: F401
from anomaly_engine.config import Settings
from anomaly_engine.container import AppContainer
from anomaly_engine.database import Base
from anomaly_engine.facade import DetectionFacade
from tests.fixtures import months, seed_dealer, seed_submission


# ── Helpers ───────────────────────────────────────────────────────────────


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(_env_file=None, database_url=f"sqlite:///{tmp_path / 'dealers.db'}", max_workers=2)


@pytest.fixture()
def seeded(settings) -> dict:
    """Group 1 with an outlier dealer, plus one dealer with 15 months of history."""
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)
    db = sessionmaker(bind=engine)()

    dealers = [seed_dealer(db, f"Dealer {c}", group_id=1, group_name="North") for c in "ABCD"]
    for dealer, value in zip(dealers, (100.0, 102.0, 98.0, 500.0)):
        seed_submission(db, dealer, 2024, 6, {"Income!B4": value, "Income!B5": 50.0})

    history_dealer = seed_dealer(db, "Harbor Motors", group_id=2, group_name="Coastal")
    history = [
        seed_submission(db, history_dealer, year, month, {
            "Income!B4": 100.0 + 5 * i,
            "Income!B5": 400.0 if i == 8 else 50.0 + i % 3,
        })
        for i, (year, month) in enumerate(months(2023, 1, 15))
    ]
    ids = {
        "outlier_dealer": dealers[-1].id,
        "history_dealer": history_dealer.id,
        "latest": history[-1].id,
    }
    db.close()
    engine.dispose()
    return ids


# ── Anomalies and patterns ────────────────────────────────────────────────


class TestFacadeDetection:
    def test_group_anomalies_are_plain_dicts(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            findings = facade.detect_anomalies_by_group(1)

        outliers = [f for f in findings if f["anomaly_type"] == "Cross-Dealer Outlier"]
        assert len(outliers) == 1
        assert outliers[0]["affected_entity"] == "Dealer D"
        assert outliers[0]["severity"] == "high"
        assert isinstance(outliers[0]["detected_at"], str)
        json.dumps(findings)

    def test_dealer_anomalies(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            findings = facade.detect_anomalies_by_dealer(seeded["outlier_dealer"])
        assert "Industry Deviation" in {f["anomaly_type"] for f in findings}

    def test_unknown_ids_return_empty_lists(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            assert facade.detect_anomalies_in_submission(9999) == []
            assert facade.detect_patterns_by_dealer(9999) == []
            assert facade.detect_patterns_by_group(9999) == []
            assert facade.forecast(9999) == []

    def test_submission_patterns(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            findings = facade.detect_patterns_in_submission(seeded["latest"])
        assert all("pattern_type" in f for f in findings)

    def test_global_anomalies_outside_window(self, settings, seeded):
        # seeded submissions are dated 2023-2024; a one-month window from today is empty
        with DetectionFacade(settings=settings) as facade:
            assert facade.detect_global_anomalies(1) == []


# ── Time-series ML ────────────────────────────────────────────────────────


class TestFacadeTimeSeries:
    def test_dealer_series(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            findings = facade.detect_time_series_anomalies(dealer_id=seeded["history_dealer"])

        spikes = [f for f in findings if f["anomaly_type"] == "ML-Detected Dealer Spike"]
        assert any(f["affected_metric"] == "Income!B5" for f in spikes)

    @pytest.mark.parametrize("kwargs", [{}, {"dealer_id": 1, "group_id": 1}])
    def test_exactly_one_scope(self, settings, seeded, kwargs):
        with DetectionFacade(settings=settings) as facade:
            assert facade.detect_time_series_anomalies(**kwargs) == []

    def test_forecast(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            findings = facade.forecast(seeded["latest"])

        by_address = {f["related_cell_addresses"][0]: f for f in findings}
        assert by_address["Income!B4"]["pattern_type"] == "Forecast"
        assert by_address["Income!B4"]["time_range"]["start"].startswith("2024-04-01")

    def test_clusters_by_dealer(self, settings, seeded):
        with DetectionFacade(settings=settings) as facade:
            findings = facade.detect_clusters("dealer", seeded["history_dealer"])
        assert all(f["pattern_type"] in ("Dealer Cluster Pattern", "Stable Pattern") for f in findings)

    @pytest.mark.parametrize("kind, scope_id", [("region", 1), ("dealer", None)])
    def test_invalid_cluster_scope(self, settings, seeded, kind, scope_id):
        with DetectionFacade(settings=settings) as facade:
            assert facade.detect_clusters(kind, scope_id) == []


# ── Lifecycle ─────────────────────────────────────────────────────────────


class TestFacadeLifecycle:
    def test_creates_database_directory(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'nested' / 'dealers.db'}"
        with DetectionFacade(settings=Settings(_env_file=None, database_url=url)) as facade:
            assert facade.detect_anomalies_by_dealer(1) == []
        assert (tmp_path / "nested" / "dealers.db").exists()

    def test_close_releases_session(self, settings, seeded):
        facade = DetectionFacade(settings=settings)
        facade.close()
        assert facade._db is None
        facade.close()

    def test_uses_given_container(self, settings, seeded, db):
        dealer = seed_dealer(db, "Injected")
        seed_submission(db, dealer, 2024, 1, {"Income!B4": 1.0})
        container = AppContainer()
        container.settings.override(providers.Object(settings))
        container.db_session.override(providers.Object(db))

        with DetectionFacade(container=container) as facade:
            assert facade.detect_anomalies_by_dealer(dealer.id) == []
            assert facade.detect_anomalies_by_group(1) == []
