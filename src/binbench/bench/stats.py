"""Summary statistics for timing samples.

Pure Python: descriptive statistics with linear-interpolation
percentiles, and IQR-based outlier detection.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Sequence


@dataclass
class DescriptiveStats:
    """Summary statistics for a sample."""

    n: int
    mean: float
    median: float
    stdev: float
    min: float
    max: float
    q1: float  # 25th percentile
    q3: float  # 75th percentile

    @property
    def variance(self) -> float:
        return self.stdev**2

    def to_dict(self) -> dict[str, float | int]:
        """Serialize to a dict with rounded values."""
        return {
            "n": self.n,
            "mean": round(self.mean, 6),
            "median": round(self.median, 6),
            "stdev": round(self.stdev, 6),
            "min": round(self.min, 6),
            "max": round(self.max, 6),
            "q1": round(self.q1, 6),
            "q3": round(self.q3, 6),
        }


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Compute descriptive statistics for a sample.

    An empty sample gives NaN everywhere; a single value gives a stdev
    of 0.0.
    """
    if not values:
        nan = float("nan")
        return DescriptiveStats(0, nan, nan, nan, nan, nan, nan, nan)

    sorted_v = sorted(values)
    n = len(sorted_v)

    return DescriptiveStats(
        n=n,
        mean=statistics.mean(sorted_v),
        median=statistics.median(sorted_v),
        stdev=statistics.stdev(sorted_v) if n >= 2 else 0.0,
        min=sorted_v[0],
        max=sorted_v[-1],
        q1=_percentile(sorted_v, 0.25),
        q3=_percentile(sorted_v, 0.75),
    )


def _percentile(sorted_values: list[float], p: float) -> float:
    """Compute the p-th percentile using linear interpolation.

    Equivalent to numpy.percentile with interpolation='linear'.
    Assumes sorted_values is already sorted in ascending order.
    """
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if n == 1:
        return sorted_values[0]

    k = (n - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d = k - f
    return sorted_values[int(f)] * (1 - d) + sorted_values[int(c)] * d


def detect_outliers(
    values: Sequence[float],
    *,
    factor: float = 1.5,
) -> list[bool]:
    """Flag values outside ``[Q1 - factor*IQR, Q3 + factor*IQR]``.

    Samples with fewer than 4 values have no outliers.
    """
    if len(values) < 4:
        return [False] * len(values)

    sorted_v = sorted(values)
    q1 = _percentile(sorted_v, 0.25)
    q3 = _percentile(sorted_v, 0.75)
    iqr = q3 - q1

    lower = q1 - factor * iqr
    upper = q3 + factor * iqr

    return [v < lower or v > upper for v in values]
