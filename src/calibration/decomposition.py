"""Murphy decomposition of the Brier score.

    BS = REL - RES + UNC

- REL (reliability): count-weighted squared gap between mean forecast and
  observed rate per bucket. Lower is better.
- RES (resolution): count-weighted squared gap between each bucket's
  observed rate and the overall base rate. Higher is better.
- UNC (uncertainty): base_rate * (1 - base_rate). Property of the outcomes only.

The three-term identity is exact when every forecast inside a bucket is the
same value. With continuous forecasts binned into buckets, two extra terms
appear (Stephenson, Coelho & Jolliffe 2008):

    BS = REL - RES + UNC + WBV - WBC

    WBV = (1/N) * sum_k sum_{i in k} (p_i - pbar_k)^2
    WBC = (2/N) * sum_k sum_{i in k} (p_i - pbar_k)(o_i - obar_k)

Both are reported so the decomposition always reconciles with the score.
"""

import math
from dataclasses import dataclass, asdict
from typing import Sequence

import numpy as np

from .buckets import bucket_indices, create_calibration_buckets
from .scoring import CalibrationSample, brier_score, sample_arrays


@dataclass(frozen=True)
class BrierDecomposition:
    """Brier score and its components.

    Attributes:
        brier_score: Mean squared error
        reliability: Miscalibration term (lower is better)
        resolution: Discrimination term (higher is better)
        uncertainty: Base-rate variance
        calibration_error: sqrt(reliability)
        within_bin_variance: Forecast spread inside buckets (0 for bucket-constant forecasts)
        within_bin_covariance: Forecast/outcome covariance inside buckets
    """

    brier_score: float
    reliability: float
    resolution: float
    uncertainty: float
    calibration_error: float
    within_bin_variance: float = 0.0
    within_bin_covariance: float = 0.0

    @property
    def murphy_residual(self) -> float:
        """brier_score - (uncertainty - resolution + reliability)."""
        return self.brier_score - (self.uncertainty - self.resolution + self.reliability)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BrierDecomposition":
        return cls(**data)


EMPTY_DECOMPOSITION = BrierDecomposition(
    brier_score=0.0,
    reliability=0.0,
    resolution=0.0,
    uncertainty=0.0,
    calibration_error=0.0,
)


def decompose_brier_score(
    samples: Sequence[CalibrationSample],
    num_buckets: int = 10,
) -> BrierDecomposition:
    """Decompose the Brier score into reliability, resolution and uncertainty.

    Args:
        samples: Settled predictions
        num_buckets: Number of equal-width buckets

    Returns:
        BrierDecomposition (all zeros for empty input)
    """
    samples = list(samples)
    if not samples:
        return EMPTY_DECOMPOSITION

    predicted, actual, _ = sample_arrays(samples)
    n_total = len(predicted)

    base_rate = float(actual.mean())
    uncertainty = base_rate * (1 - base_rate)

    reliability = 0.0
    resolution = 0.0
    for bucket in create_calibration_buckets(samples, num_buckets):
        weight = bucket.count / n_total
        reliability += weight * (bucket.predicted_avg - bucket.actual_avg) ** 2
        resolution += weight * (bucket.actual_avg - base_rate) ** 2

    # Within-bucket terms, computed per sample against its own bucket means
    idx = bucket_indices(predicted, num_buckets)
    counts = np.bincount(idx, minlength=num_buckets)
    safe_counts = np.maximum(counts, 1)
    pbar = np.bincount(idx, weights=predicted, minlength=num_buckets) / safe_counts
    obar = np.bincount(idx, weights=actual, minlength=num_buckets) / safe_counts
    p_dev = predicted - pbar[idx]
    o_dev = actual - obar[idx]
    within_bin_variance = float(np.sum(p_dev**2) / n_total)
    within_bin_covariance = float(2 * np.sum(p_dev * o_dev) / n_total)

    return BrierDecomposition(
        brier_score=brier_score(samples),
        reliability=reliability,
        resolution=resolution,
        uncertainty=uncertainty,
        calibration_error=math.sqrt(reliability),
        within_bin_variance=within_bin_variance,
        within_bin_covariance=within_bin_covariance,
    )
