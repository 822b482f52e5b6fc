"""Summary metrics computation.

Computes distributional statistics (mean, percentiles, histograms, tail
risk) from the raw per-iteration values of one output key.
"""

import math
from typing import Sequence

import numpy as np
from pydantic import BaseModel


class StatisticalSummary(BaseModel):
    """Distribution summary of one output key.

    Attributes:
        mean: Arithmetic mean
        median: 50th percentile
        standard_deviation: Population standard deviation (divides by N)
        percentile10: 10th percentile (linear interpolation)
        percentile25: 25th percentile
        percentile75: 75th percentile
        percentile90: 90th percentile
        min: Smallest sample
        max: Largest sample
        count: Number of samples
    """

    mean: float
    median: float
    standard_deviation: float
    percentile10: float
    percentile25: float
    percentile75: float
    percentile90: float
    min: float
    max: float
    count: int


class HistogramBin(BaseModel):
    """One equal-width histogram bin."""

    bin_start: float
    bin_end: float
    count: int
    percentage: float


class RiskMetrics(BaseModel):
    """Tail-risk figures of an outcome distribution.

    Attributes:
        probability_of_loss: Percent of samples strictly below the threshold
        value_at_risk95: Sample at the 5th percentile position
        value_at_risk99: Sample at the 1st percentile position
        expected_shortfall95: Mean of samples at or below the 95% VaR position
        expected_shortfall99: Mean of samples at or below the 99% VaR position
    """

    probability_of_loss: float
    value_at_risk95: float
    value_at_risk99: float
    expected_shortfall95: float
    expected_shortfall99: float


def _as_array(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=float)


def calculate_mean(values: Sequence[float] | np.ndarray) -> float:
    return float(np.mean(_as_array(values)))


def calculate_standard_deviation(values: Sequence[float] | np.ndarray) -> float:
    """Population standard deviation."""
    return float(np.std(_as_array(values), ddof=0))


def calculate_percentile(values: Sequence[float] | np.ndarray, percentile: float) -> float:
    """Interpolated percentile of an array.

    The position is ``percentile / 100 * (n - 1)``; values between order
    statistics are interpolated linearly (numpy's default method).

    Raises:
        ValueError: If percentile is outside [0, 100] or the input is empty
    """
    if percentile < 0 or percentile > 100:
        raise ValueError("Percentile must be between 0 and 100")
    array = _as_array(values)
    if array.size == 0:
        raise ValueError("Cannot calculate a percentile of an empty array")

    return float(np.percentile(array, percentile))


def calculate_summary(values: Sequence[float] | np.ndarray) -> StatisticalSummary:
    """Summarize a set of samples.

    Args:
        values: Samples in any order

    Returns:
        StatisticalSummary over the samples

    Raises:
        ValueError: If values is empty
    """
    array = _as_array(values)
    if array.size == 0:
        raise ValueError("Cannot calculate statistics for empty array")

    ordered = np.sort(array)
    return StatisticalSummary(
        mean=calculate_mean(ordered),
        median=calculate_percentile(ordered, 50),
        standard_deviation=calculate_standard_deviation(ordered),
        percentile10=calculate_percentile(ordered, 10),
        percentile25=calculate_percentile(ordered, 25),
        percentile75=calculate_percentile(ordered, 75),
        percentile90=calculate_percentile(ordered, 90),
        min=float(ordered[0]),
        max=float(ordered[-1]),
        count=int(ordered.size),
    )


def calculate_histogram(values: Sequence[float] | np.ndarray, bins: int = 20) -> list[HistogramBin]:
    """Equal-width histogram spanning [min, max] of the finite samples.

    The last bin is closed on both ends so the maximum is counted exactly
    once. When every sample is equal all bins collapse onto that value and
    the last bin holds every sample. Infinite and NaN samples have no bin;
    they are left out of the counts and the percentages.

    Raises:
        ValueError: If bins is less than 1
    """
    if bins < 1:
        raise ValueError("Histogram needs at least one bin")
    array = _as_array(values)
    array = array[np.isfinite(array)]
    if array.size == 0:
        return []

    low = float(array.min())
    high = float(array.max())
    total = array.size

    if high == low:
        counts = np.zeros(bins, dtype=int)
        counts[-1] = total
        edges = np.full(bins + 1, low)
    else:
        edges = np.linspace(low, high, bins + 1)
        counts, edges = np.histogram(array, bins=edges)

    return [
        HistogramBin(
            bin_start=float(edges[i]),
            bin_end=float(edges[i + 1]),
            count=int(counts[i]),
            percentage=float(counts[i]) / total * 100,
        )
        for i in range(bins)
    ]


def calculate_risk_metrics(values: Sequence[float] | np.ndarray, threshold: float = 0) -> RiskMetrics:
    """Loss probability, value at risk and expected shortfall.

    VaR is read at sorted positions ``floor(n * 0.05)`` and ``floor(n * 0.01)``
    without interpolation; expected shortfall averages the sorted samples
    from the start up to and including that position.

    Raises:
        ValueError: If values is empty
    """
    array = _as_array(values)
    if array.size == 0:
        raise ValueError("Cannot calculate risk metrics for empty array")

    ordered = np.sort(array)
    n = ordered.size

    var95_index = math.floor(n * 0.05)
    var99_index = math.floor(n * 0.01)
    tail95 = ordered[: var95_index + 1]
    tail99 = ordered[: var99_index + 1]

    return RiskMetrics(
        probability_of_loss=float(np.mean(array < threshold)) * 100,
        value_at_risk95=float(ordered[var95_index]),
        value_at_risk99=float(ordered[var99_index]),
        expected_shortfall95=float(np.mean(tail95)) if tail95.size else float(ordered[var95_index]),
        expected_shortfall99=float(np.mean(tail99)) if tail99.size else float(ordered[var99_index]),
    )
