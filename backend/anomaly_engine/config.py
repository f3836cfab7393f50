"""Application configuration loaded from environment variables."""

import os
from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings

# Check if .env file exists and is readable
_env_file = None
try:
    env_path = Path(".env")
    if env_path.exists() and os.access(env_path, os.R_OK):
        _env_file = ".env"
except (OSError, PermissionError):
    # If we can't access .env, continue without it
    pass


class DetectionThresholds(BaseModel):
    """Every tunable constant used by the detectors.

    Override individual values with nested environment variables, e.g.
    ``THRESHOLDS__OUTLIER_Z_SCORE=2.5``.
    """

    # ── distribution ─────────────────────────────────────────────────
    distribution_min_observations: int = 5
    histogram_bins: int = 10
    bimodal_peak_ratio: float = 0.75
    skewness_limit: float = 1.5

    # ── cross-dealer outliers ────────────────────────────────────────
    cross_dealer_min_dealers: int = 3
    outlier_z_score: float = 2.0
    outlier_z_medium: float = 2.5
    outlier_z_high: float = 3.0
    anomaly_score_per_z: float = 25.0

    # ── temporal trends ──────────────────────────────────────────────
    trend_months: int = 3
    trend_high_percent: float = 30.0

    # ── per-submission ───────────────────────────────────────────────
    missing_cells_high: int = 5
    table_min_numeric_cells: int = 5
    table_outlier_z_score: float = 2.0
    table_outliers_high: int = 2
    yoy_variance_percent: float = 20.0
    yoy_variance_high_percent: float = 50.0
    missing_history_high: int = 5

    # ── dealer scope ─────────────────────────────────────────────────
    quarterly_min_submissions: int = 3
    quarterly_min_samples: int = 2
    quarterly_uplift_ratio: float = 1.2
    quarterly_high_uplift_percent: float = 40.0
    industry_min_peers: int = 3
    industry_deviation_percent: float = 30.0
    industry_high_deviation_percent: float = 50.0

    # ── correlation / arithmetic / seasonal ──────────────────────────
    correlation_min_history: int = 5
    correlation_min_addresses: int = 2
    correlation_threshold: float = 0.7
    correlation_high: float = 0.9
    arithmetic_min_cells: int = 3
    arithmetic_tolerance: float = 0.01
    arithmetic_confidence: float = 95.0
    seasonal_min_history: int = 11
    seasonal_min_percent: float = 20.0
    seasonal_high_percent: float = 50.0
    seasonal_base_confidence: float = 60.0
    seasonal_max_confidence: float = 95.0

    # ── dealer patterns ──────────────────────────────────────────────
    dealer_pattern_min_submissions: int = 12
    dealer_pattern_max_submissions: int = 60
    yearly_change_percent: float = 15.0
    yearly_change_high_percent: float = 30.0
    yearly_change_confidence: float = 80.0
    monthly_address_min_share: float = 0.8
    monthly_max_addresses: int = 10
    monthly_min_months: int = 6
    monthly_deviation_percent: float = 15.0
    monthly_confidence: float = 75.0
    group_deviation_dealer_window: int = 12
    group_deviation_group_window: int = 60
    group_deviation_min_dealer_submissions: int = 3
    group_deviation_min_group_submissions: int = 10
    group_deviation_min_occurrences: int = 10
    group_deviation_percent: float = 20.0
    group_deviation_high_percent: float = 40.0
    group_deviation_confidence: float = 75.0
    pattern_top_n: int = 3

    # ── time series ──────────────────────────────────────────────────
    series_min_points: int = 10
    algorithm_min_points: int = 8
    spike_threshold: float = 0.3
    spike_saliency_z: float = 2.0
    change_point_confidence: float = 0.95
    ml_high_score: float = 0.7

    # ── clustering ───────────────────────────────────────────────────
    cluster_min_submissions: int = 4
    cluster_max_submissions: int = 200
    cluster_address_min_share: float = 1 / 3
    cluster_max_features: int = 50
    cluster_min_k: int = 2
    cluster_max_k: int = 10
    cluster_min_members: int = 3
    cluster_high_share: float = 70.0
    cluster_medium_share: float = 40.0
    cluster_confidence: float = 85.0
    stable_pattern_confidence: float = 90.0
    cluster_random_state: int = 42

    # ── forecasting ──────────────────────────────────────────────────
    forecast_min_points: int = 12
    forecast_horizon: int = 3
    forecast_seasonal_points: int = 24
    forecast_high_percent: float = 20.0
    forecast_medium_percent: float = 5.0
    forecast_max_confidence: float = 95.0


class Settings(BaseSettings):
    """All configuration for the anomaly engine.

    Values are loaded from environment variables or a .env file.
    """

    # Application
    app_name: str = "dealer-anomaly-engine"
    debug: bool = False

    # Database (read-only source of dealers, submissions and templates)
    database_url: str = "sqlite:///./data/dealer_finance.db"

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # Execution
    max_workers: int = 4
    global_lookback_months: int = 3

    thresholds: DetectionThresholds = DetectionThresholds()

    model_config = {
        "env_file": _env_file,
        "env_file_encoding": "utf-8",
        "env_file_ignore_empty": True,
        "env_nested_delimiter": "__",
    }
