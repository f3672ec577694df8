"""
Sample statistics for benchmark tasks.

Pure Python implementations of:
- percentile: Linear interpolation percentile calculation
- t_critical: Two-sided 95% Student t critical values
- summarize_samples: mean / dispersion / margin of error for one sample set
"""

from __future__ import annotations

import math
from typing import Sequence

from crudbench.models.bench import SampleStatistics

# Two-sided 95% critical values of Student's t distribution, by degrees of freedom.
_T_TABLE: dict[int, float] = {
    1: 12.706,
    2: 4.303,
    3: 3.182,
    4: 2.776,
    5: 2.571,
    6: 2.447,
    7: 2.365,
    8: 2.306,
    9: 2.262,
    10: 2.228,
    11: 2.201,
    12: 2.179,
    13: 2.16,
    14: 2.145,
    15: 2.131,
    16: 2.12,
    17: 2.11,
    18: 2.101,
    19: 2.093,
    20: 2.086,
    21: 2.08,
    22: 2.074,
    23: 2.069,
    24: 2.064,
    25: 2.06,
    26: 2.056,
    27: 2.052,
    28: 2.048,
    29: 2.045,
    30: 2.042,
    40: 2.021,
    50: 2.009,
    60: 2.0,
    80: 1.99,
    100: 1.984,
    120: 1.98,
}
_Z_95 = 1.96


def t_critical(df: int) -> float:
    """
    Critical value for a two-sided 95% interval.

    Degrees of freedom between table rows use the next lower row, which
    errs on the wide side.
    """
    if df < 1:
        return math.nan
    if df in _T_TABLE:
        return _T_TABLE[df]
    if df > max(_T_TABLE):
        return _Z_95
    lower = max(k for k in _T_TABLE if k < df)
    return _T_TABLE[lower]


def percentile(sorted_values: Sequence[float], p: float) -> float | None:
    """
    Calculate the p-th percentile using linear interpolation.

    Args:
        sorted_values: Pre-sorted sequence of numeric values (ascending order).
        p: Percentile to compute (0-100).

    Returns:
        The interpolated percentile value, or None if input is empty.

    Example:
        >>> percentile([1, 2, 3, 4, 5], 50)
        3.0
    """
    if not sorted_values:
        return None

    n = len(sorted_values)
    if n == 1:
        return float(sorted_values[0])

    p = max(0.0, min(100.0, p))

    idx = (p / 100.0) * (n - 1)
    lower_idx = int(math.floor(idx))
    upper_idx = int(math.ceil(idx))

    if lower_idx == upper_idx:
        return float(sorted_values[lower_idx])

    fraction = idx - lower_idx
    lower_val = sorted_values[lower_idx]
    upper_val = sorted_values[upper_idx]

    return lower_val + fraction * (upper_val - lower_val)


def summarize_samples(samples: Sequence[float]) -> SampleStatistics | None:
    """
    Aggregate one sample set.

    Returns None for an empty set. A single sample has zero variance and an
    undefined (NaN) margin of error.
    """
    if not samples:
        return None

    values = [float(v) for v in samples]
    n = len(values)
    mean = sum(values) / n

    if n > 1:
        variance = sum((v - mean) ** 2 for v in values) / (n - 1)
    else:
        variance = 0.0
    sd = math.sqrt(variance)
    sem = sd / math.sqrt(n)
    moe = sem * t_critical(n - 1)
    rme = (moe / mean) * 100.0 if mean else math.nan

    ordered = sorted(values)
    return SampleStatistics(
        samples=values,
        mean=mean,
        variance=variance,
        sd=sd,
        sem=sem,
        moe=moe,
        rme=rme,
        min=ordered[0],
        max=ordered[-1],
        p50=percentile(ordered, 50) or 0.0,
        p75=percentile(ordered, 75) or 0.0,
        p99=percentile(ordered, 99) or 0.0,
    )
