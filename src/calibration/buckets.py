"""Calibration buckets, Wilson intervals, and ECE/MCE.

Predictions are partitioned into equal-width probability buckets over [0, 1].
For each non-empty bucket we record the mean prediction, the observed hit
rate, and a Wilson score interval on the hit rate. A prediction of exactly
1.0 belongs to the last bucket.
"""

import math
from dataclasses import dataclass, asdict
from typing import Sequence

import numpy as np
from scipy.stats import norm

from .scoring import CalibrationSample, sample_arrays

# 95% two-sided normal quantile
WILSON_Z = 1.96


def z_for_confidence(confidence: float) -> float:
    """Two-sided normal quantile for a confidence level in (0, 1).

    z_for_confidence(0.95) is ~1.95996; WILSON_Z is the rounded value used
    by default.
    """
    if not 0 < confidence < 1:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    return float(norm.ppf(1 - (1 - confidence) / 2))


def wilson_interval(successes: float, n: int, z: float = WILSON_Z) -> tuple[float, float]:
    """Wilson score confidence interval for a binomial proportion.

    Handles k=0 and k=n gracefully, unlike the normal approximation.

    Args:
        successes: Number of hits (may be fractional for averaged inputs)
        n: Number of trials
        z: Normal quantile (default 1.96 for 95%)

    Returns:
        (lower, upper) bounds clamped to [0, 1]

    Examples:
        >>> wilson_interval(0, 0)
        (0.0, 1.0)
    """
    if n == 0:
        return (0.0, 1.0)

    p_hat = successes / n
    denominator = 1 + z**2 / n
    center = (p_hat + z**2 / (2 * n)) / denominator
    margin = z * math.sqrt((p_hat * (1 - p_hat) + z**2 / (4 * n)) / n) / denominator

    return (max(0.0, center - margin), min(1.0, center + margin))


@dataclass(frozen=True)
class CalibrationBucket:
    """Aggregate statistics for one probability bucket.

    Attributes:
        range_start: Inclusive lower bound of the bucket
        range_end: Exclusive upper bound (inclusive for the last bucket)
        predicted_avg: Mean predicted probability in the bucket
        actual_avg: Observed hit rate in the bucket
        count: Number of samples in the bucket
        confidence_lower: Wilson lower bound on actual_avg
        confidence_upper: Wilson upper bound on actual_avg
    """

    range_start: float
    range_end: float
    predicted_avg: float
    actual_avg: float
    count: int
    confidence_lower: float
    confidence_upper: float

    @property
    def abs_error(self) -> float:
        return abs(self.predicted_avg - self.actual_avg)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationBucket":
        return cls(**data)


def bucket_indices(predicted: np.ndarray, num_buckets: int) -> np.ndarray:
    """Assign each prediction to a bucket index in [0, num_buckets)."""
    idx = np.floor(predicted * num_buckets).astype(int)
    return np.clip(idx, 0, num_buckets - 1)


def create_calibration_buckets(
    samples: Sequence[CalibrationSample],
    num_buckets: int = 10,
    z: float = WILSON_Z,
) -> list[CalibrationBucket]:
    """Partition samples into equal-width buckets.

    Args:
        samples: Settled predictions
        num_buckets: Number of buckets over [0, 1]
        z: Normal quantile for the Wilson interval

    Returns:
        Non-empty buckets in ascending probability order

    Raises:
        ValueError: If num_buckets < 1
    """
    if num_buckets < 1:
        raise ValueError(f"num_buckets must be >= 1, got {num_buckets}")

    predicted, actual, _ = sample_arrays(samples)
    if len(predicted) == 0:
        return []

    idx = bucket_indices(predicted, num_buckets)
    buckets = []
    for i in range(num_buckets):
        mask = idx == i
        n = int(mask.sum())
        if n == 0:
            continue

        actual_avg = float(actual[mask].mean())
        lower, upper = wilson_interval(actual_avg * n, n, z)
        buckets.append(CalibrationBucket(
            range_start=i / num_buckets,
            range_end=(i + 1) / num_buckets,
            predicted_avg=float(predicted[mask].mean()),
            actual_avg=actual_avg,
            count=n,
            confidence_lower=lower,
            confidence_upper=upper,
        ))

    return buckets


def expected_calibration_error(buckets: Sequence[CalibrationBucket]) -> float:
    """Count-weighted mean |predicted_avg - actual_avg| across buckets."""
    total = sum(b.count for b in buckets)
    if total == 0:
        return 0.0
    return float(sum((b.count / total) * b.abs_error for b in buckets))


def maximum_calibration_error(buckets: Sequence[CalibrationBucket]) -> float:
    """Worst-case |predicted_avg - actual_avg| across buckets."""
    if not buckets:
        return 0.0
    return float(max(b.abs_error for b in buckets))
