"""Pure statistical helpers shared by the detectors.

Every function is stateless. Degenerate input (empty series, zero
variance, zero denominator) returns ``None`` or a neutral value instead of
raising, so callers skip that one computation.
"""

import math
from typing import Optional, Sequence

import numpy as np


def mean(values: Sequence[float]) -> Optional[float]:
    """Arithmetic mean, None for an empty series.

    >>> mean([1, 2, 3])
    2.0
    >>> mean([]) is None
    True
    """
    if len(values) == 0:
        return None
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> float:
    """Population standard deviation (ddof=0); 0.0 for an empty series.

    >>> population_std([2, 4, 4, 4, 5, 5, 7, 9])
    2.0
    >>> population_std([5, 5, 5])
    0.0
    """
    if len(values) == 0:
        return 0.0
    return float(np.std(values))


def z_score(value: float, center: float, spread: float) -> Optional[float]:
    """Absolute z-score, None when the spread is zero.

    >>> z_score(14, 10, 2)
    2.0
    >>> z_score(14, 10, 0) is None
    True
    """
    if spread == 0 or not math.isfinite(spread):
        return None
    return abs(value - center) / spread


def skewness(values: Sequence[float]) -> float:
    """Third standardized moment.

    Treated as 0 when there are fewer than three values or no spread.

    >>> skewness([3, 3, 3, 3, 3])
    0.0
    >>> skewness([1, 2]) == 0.0
    True
    >>> skewness([1, 1, 1, 1, 10]) > 1.0
    True
    """
    if len(values) < 3:
        return 0.0
    arr = np.asarray(values, dtype=float)
    std = float(np.std(arr))
    if std == 0:
        return 0.0
    return float(np.mean(((arr - arr.mean()) / std) ** 3))


def histogram(values: Sequence[float], bins: int = 10) -> Optional[list[int]]:
    """Equal-width bin counts over the value range, last bin inclusive.

    Returns None when all values are equal (no range to bin).

    >>> histogram([0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10], bins=5)
    [2, 2, 2, 2, 3]
    >>> histogram([4, 4, 4]) is None
    True
    """
    if len(values) == 0:
        return None
    arr = np.asarray(values, dtype=float)
    if arr.max() == arr.min():
        return None
    counts, _ = np.histogram(arr, bins=bins, range=(arr.min(), arr.max()))
    return [int(c) for c in counts]


def top_two_bins(counts: Sequence[int]) -> Optional[tuple[tuple[int, int], tuple[int, int]]]:
    """(index, count) of the two highest bins; lower index wins ties.

    >>> top_two_bins([5, 0, 1, 4])
    ((0, 5), (3, 4))
    >>> top_two_bins([3]) is None
    True
    """
    if len(counts) < 2:
        return None
    ranked = sorted(enumerate(counts), key=lambda pair: -pair[1])
    return (ranked[0][0], ranked[0][1]), (ranked[1][0], ranked[1][1])


def pearson(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Pearson correlation coefficient, clamped to [-1, 1].

    None when the series differ in length, have fewer than two points, or
    either has zero variance.

    >>> pearson([1, 2, 3, 4], [2, 4, 6, 8])
    1.0
    >>> pearson([1, 2, 3], [3, 2, 1])
    -1.0
    >>> pearson([1, 1, 1], [1, 2, 3]) is None
    True
    """
    if len(xs) != len(ys) or len(xs) < 2:
        return None
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    dx = x - x.mean()
    dy = y - y.mean()
    denominator = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denominator == 0:
        return None
    r = float(np.sum(dx * dy)) / denominator
    return max(-1.0, min(1.0, r))


def percent_change(current: float, previous: float) -> Optional[float]:
    """Percentage change from previous to current.

    Returns None when previous is zero.

    >>> percent_change(130, 100)
    30.0
    >>> percent_change(75, 100)
    -25.0
    >>> percent_change(5, 0) is None
    True
    """
    if previous == 0:
        return None
    return (current - previous) * 100 / abs(previous)


def strictly_increasing(values: Sequence[float]) -> bool:
    """
    >>> strictly_increasing([10, 20, 30])
    True
    >>> strictly_increasing([10, 25, 20])
    False
    """
    return len(values) >= 2 and all(b > a for a, b in zip(values, values[1:]))


def strictly_decreasing(values: Sequence[float]) -> bool:
    """
    >>> strictly_decreasing([30, 20, 10])
    True
    >>> strictly_decreasing([30, 30, 10])
    False
    """
    return len(values) >= 2 and all(b < a for a, b in zip(values, values[1:]))
