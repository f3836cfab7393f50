"""Time-series ML over per-address monthly series.

Three algorithms, each returning an ``AlgorithmResult`` instead of raising:

- spike detection: spectral-residual saliency scored against a local
  baseline
- change-point detection: rolling two-window Welch t-test on the level
- forecasting: Holt-Winters exponential smoothing (statsmodels)

Inputs are plain value sequences in chronological order; building them
from submissions is done by ``period_series``.
"""

import logging
import warnings
from collections import defaultdict
from typing import Iterable, Optional, Sequence

import numpy as np
from scipy import stats
from statsmodels.tsa.holtwinters import ExponentialSmoothing

from anomaly_engine.config import DetectionThresholds
from anomaly_engine.schemas.detection import AlgorithmResult, SeriesPoint
from anomaly_engine.schemas.submission import Submission

logger = logging.getLogger(__name__)

_EPS = 1e-8
_AVERAGING_WINDOW = 3
_MAX_EXTENSION = 5
_SEASON_LENGTH = 12

Period = tuple[int, int]


def period_series(submissions: Iterable[Submission]) -> dict[str, list[tuple[Period, float]]]:
    """Chronological (period, value) series per global address.

    Several submissions in the same month (duplicates, or several dealers
    of a group) are averaged. Zero and missing values are left out.
    """
    buckets: dict[str, dict[Period, list[float]]] = defaultdict(lambda: defaultdict(list))
    for submission in submissions:
        for address, value in submission.numeric_values().items():
            if value != 0:
                buckets[address][submission.period].append(value)
    return {
        address: [(period, float(np.mean(values))) for period, values in sorted(per_period.items())]
        for address, per_period in buckets.items()
    }


def spike_window(n: int) -> int:
    """
    >>> spike_window(15)
    3
    >>> spike_window(60)
    12
    """
    return min(max(3, n // 3), max(3, n // 5))


def change_point_window(n: int) -> int:
    """
    >>> change_point_window(24)
    4
    >>> change_point_window(8)
    3
    """
    return max(3, min(n // 2 - 1, n // 5))


class TimeSeriesAnalyzer:
    """Spike, change-point and forecast algorithms with fail-closed guards."""

    def __init__(self, thresholds: Optional[DetectionThresholds] = None):
        self.t = thresholds or DetectionThresholds()

    def _precondition(self, values: Sequence[float], min_points: int) -> Optional[str]:
        if len(values) < min_points:
            return f"series has {len(values)} points, needs {min_points}"
        arr = np.asarray(values, dtype=float)
        if not np.all(np.isfinite(arr)):
            return "series contains non-finite values"
        if float(np.std(arr)) == 0:
            return "series has zero variance"
        return None

    # ── spikes ───────────────────────────────────────────────────────

    def detect_spikes(self, values: Sequence[float]) -> AlgorithmResult:
        problem = self._precondition(values, self.t.algorithm_min_points)
        if problem:
            return AlgorithmResult.insufficient(problem)

        arr = np.asarray(values, dtype=float)
        n = len(arr)
        window = spike_window(n)
        saliency = self._saliency(arr, window)
        spread = float(saliency.std())
        if spread == 0:
            return AlgorithmResult.completed([])
        global_z = (saliency - saliency.mean()) / spread

        points = []
        for i in range(n):
            neighbours = np.concatenate(
                [saliency[max(0, i - window):i], saliency[i + 1:min(n, i + window + 1)]]
            )
            baseline = float(neighbours.mean()) if neighbours.size else 0.0
            total = float(saliency[i]) + baseline
            if total <= 0:
                continue
            score = (float(saliency[i]) - baseline) / total
            if score > self.t.spike_threshold and global_z[i] > self.t.spike_saliency_z:
                points.append(SeriesPoint(position=i, value=float(arr[i]), score=round(score, 4)))
        return AlgorithmResult.completed(points)

    @staticmethod
    def _saliency(arr: np.ndarray, window: int) -> np.ndarray:
        """Spectral-residual saliency map, trimmed to the input length."""
        centered = arr - np.median(arr)
        extended = np.concatenate([centered, _extension(centered, window)])
        spectrum = np.fft.fft(extended)
        log_amplitude = np.log(np.abs(spectrum) + _EPS)
        padded = np.pad(log_amplitude, _AVERAGING_WINDOW // 2, mode="edge")
        smoothed = np.convolve(padded, np.ones(_AVERAGING_WINDOW) / _AVERAGING_WINDOW, mode="valid")
        residual = log_amplitude - smoothed
        saliency = np.abs(np.fft.ifft(np.exp(residual + 1j * np.angle(spectrum))))
        return saliency[: len(arr)]

    # ── change points ────────────────────────────────────────────────

    def detect_change_points(self, values: Sequence[float]) -> AlgorithmResult:
        problem = self._precondition(values, self.t.algorithm_min_points)
        if problem:
            return AlgorithmResult.insufficient(problem)

        arr = np.asarray(values, dtype=float)
        n = len(arr)
        window = change_point_window(n)
        if n <= 2 * window:
            return AlgorithmResult.insufficient(f"series of {n} too short for window {window}")

        flagged: list[tuple[int, float]] = []
        for i in range(window, n - window + 1):
            before, after = arr[i - window:i], arr[i:i + window]
            if _shift_confidence(before, after) >= self.t.change_point_confidence:
                flagged.append((i, abs(float(after.mean() - before.mean()))))

        points = []
        for run in _consecutive_runs(flagged):
            position, shift = max(run, key=lambda item: item[1])
            level = float(arr[position - window:position].mean())
            score = 1.0 if level == 0 else min(1.0, shift / abs(level))
            points.append(SeriesPoint(position=position, value=float(arr[position]), score=round(score, 4)))
        return AlgorithmResult.completed(points)

    # ── forecasting ──────────────────────────────────────────────────

    def forecast(self, values: Sequence[float], horizon: Optional[int] = None) -> AlgorithmResult:
        """Project the next ``horizon`` values; points carry future positions."""
        problem = self._precondition(values, self.t.forecast_min_points)
        if problem:
            return AlgorithmResult.insufficient(problem)

        horizon = horizon or self.t.forecast_horizon
        arr = np.asarray(values, dtype=float)
        seasonal = len(arr) >= self.t.forecast_seasonal_points
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                model = ExponentialSmoothing(
                    arr,
                    trend="add",
                    seasonal="add" if seasonal else None,
                    seasonal_periods=_SEASON_LENGTH if seasonal else None,
                    initialization_method="estimated",
                )
                fit = model.fit()
                predicted = np.asarray(fit.forecast(horizon), dtype=float)
                fitted = np.asarray(fit.fittedvalues, dtype=float)
        except (ValueError, np.linalg.LinAlgError) as exc:
            return AlgorithmResult.failed(f"exponential smoothing failed: {exc}")

        if not np.all(np.isfinite(predicted)):
            return AlgorithmResult.failed("forecast produced non-finite values")

        ss_tot = float(np.sum((arr - arr.mean()) ** 2))
        ss_res = float(np.sum((arr - fitted) ** 2))
        r2 = 1.0 - ss_res / ss_tot
        confidence = max(0.0, min(1.0, r2))
        points = [
            SeriesPoint(position=len(arr) + h, value=float(v), score=round(confidence, 4))
            for h, v in enumerate(predicted)
        ]
        return AlgorithmResult.completed(points, r2_value=round(r2, 4))


def _extension(series: np.ndarray, window: int) -> np.ndarray:
    """Estimated points appended after the series to soften the FFT edge."""
    m = min(_MAX_EXTENSION, len(series) - 1)
    last = series[-1]
    gradient = np.mean([(last - series[-1 - i]) / i for i in range(1, m + 1)])
    estimate = series[-m] + gradient * m
    return np.full(min(window, _MAX_EXTENSION), estimate)


def _shift_confidence(before: np.ndarray, after: np.ndarray) -> float:
    """1 - p of a Welch t-test for a level shift between two windows."""
    if before.mean() == after.mean():
        return 0.0
    if before.var(ddof=1) == 0 and after.var(ddof=1) == 0:
        return 1.0
    with np.errstate(all="ignore"):
        _, p_value = stats.ttest_ind(before, after, equal_var=False)
    if not np.isfinite(p_value):
        return 0.0
    return 1.0 - float(p_value)


def _consecutive_runs(flagged: list[tuple[int, float]]) -> list[list[tuple[int, float]]]:
    runs: list[list[tuple[int, float]]] = []
    for item in flagged:
        if runs and item[0] == runs[-1][-1][0] + 1:
            runs[-1].append(item)
        else:
            runs.append([item])
    return runs
