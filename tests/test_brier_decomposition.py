"""Tests for the Murphy decomposition of the Brier score.

Tests verify:
1. Empty input decomposes to all zeros
2. Uninformative 0.5 forecasts have zero reliability and resolution
3. BS = UNC - RES + REL for bucket-constant forecasts, at several sizes
4. BS = UNC - RES + REL + WBV - WBC for continuous forecasts
"""

import math

import numpy as np
import pytest

from src.calibration.decomposition import (
    EMPTY_DECOMPOSITION,
    BrierDecomposition,
    decompose_brier_score,
)
from src.calibration.scoring import CalibrationSample, brier_score

# Mid-points of the ten default buckets
BUCKET_CENTERS = (np.arange(10) + 0.5) / 10


def discrete_samples(n: int, seed: int = 42) -> list[CalibrationSample]:
    """Forecasts drawn from bucket centers, outcomes drawn from the forecast."""
    rng = np.random.default_rng(seed)
    predicted = rng.choice(BUCKET_CENTERS, size=n)
    actual = (rng.random(n) < predicted).astype(int)
    return [CalibrationSample(predicted=float(p), actual=int(a)) for p, a in zip(predicted, actual)]


def continuous_samples(n: int, seed: int = 7) -> list[CalibrationSample]:
    rng = np.random.default_rng(seed)
    predicted = rng.uniform(0, 1, size=n)
    # Deliberately miscalibrated: outcomes follow a shrunk probability
    actual = (rng.random(n) < 0.25 + 0.5 * predicted).astype(int)
    return [CalibrationSample(predicted=float(p), actual=int(a)) for p, a in zip(predicted, actual)]


class TestEmptyInput:
    """Empty sample sets decompose to zeros."""

    def test_all_fields_zero(self):
        result = decompose_brier_score([])
        assert result == EMPTY_DECOMPOSITION
        assert result.brier_score == 0.0
        assert result.reliability == 0.0
        assert result.resolution == 0.0
        assert result.uncertainty == 0.0
        assert result.calibration_error == 0.0


class TestUninformativeForecast:
    """Always 0.5 against a balanced outcome stream."""

    def test_coin_flip(self):
        samples = [CalibrationSample(predicted=0.5, actual=i % 2) for i in range(100)]
        result = decompose_brier_score(samples)
        assert result.brier_score == pytest.approx(0.25)
        assert result.uncertainty == pytest.approx(0.25)
        assert result.reliability == pytest.approx(0.0, abs=1e-12)
        assert result.resolution == pytest.approx(0.0, abs=1e-12)


class TestMurphyIdentity:
    """BS = UNC - RES + REL holds exactly when forecasts are constant per bucket."""

    @pytest.mark.parametrize("n", [1, 2, 100, 10000])
    def test_identity_holds(self, n):
        samples = discrete_samples(n)
        result = decompose_brier_score(samples)
        reconstructed = result.uncertainty - result.resolution + result.reliability
        assert result.brier_score == pytest.approx(reconstructed, abs=1e-9)
        assert result.murphy_residual == pytest.approx(0.0, abs=1e-9)

    def test_within_bucket_terms_vanish(self):
        result = decompose_brier_score(discrete_samples(500))
        assert result.within_bin_variance == pytest.approx(0.0, abs=1e-12)
        assert result.within_bin_covariance == pytest.approx(0.0, abs=1e-12)

    def test_single_sample(self):
        (sample,) = samples = [CalibrationSample(predicted=0.35, actual=1)]
        result = decompose_brier_score(samples)
        assert result.uncertainty == 0.0
        assert result.resolution == 0.0
        assert result.reliability == pytest.approx((sample.predicted - 1) ** 2)

    def test_brier_matches_direct_score(self):
        samples = discrete_samples(300)
        assert decompose_brier_score(samples).brier_score == pytest.approx(brier_score(samples))

    def test_calibration_error_is_sqrt_reliability(self):
        result = decompose_brier_score(discrete_samples(300))
        assert result.calibration_error == pytest.approx(math.sqrt(result.reliability))


class TestExtendedIdentity:
    """Continuous forecasts need the within-bucket variance/covariance terms."""

    @pytest.mark.parametrize("num_buckets", [1, 5, 10, 20])
    def test_five_term_identity(self, num_buckets):
        samples = continuous_samples(2000)
        r = decompose_brier_score(samples, num_buckets=num_buckets)
        reconstructed = (
            r.uncertainty - r.resolution + r.reliability
            + r.within_bin_variance - r.within_bin_covariance
        )
        assert r.brier_score == pytest.approx(reconstructed, abs=1e-9)
        assert r.murphy_residual == pytest.approx(
            r.within_bin_variance - r.within_bin_covariance, abs=1e-9
        )

    def test_miscalibration_shows_in_reliability(self):
        well = discrete_samples(5000)
        poor = [
            CalibrationSample(predicted=s.predicted, actual=1 - s.actual) for s in well
        ]
        assert (
            decompose_brier_score(poor).reliability
            > decompose_brier_score(well).reliability
        )


class TestPerfectForecaster:
    """0/1 forecasts that are always right."""

    def test_resolution_equals_uncertainty(self):
        samples = [CalibrationSample(predicted=float(a), actual=a) for a in (0, 1, 1, 0, 1)]
        result = decompose_brier_score(samples)
        assert result.brier_score == 0.0
        assert result.reliability == pytest.approx(0.0)
        assert result.resolution == pytest.approx(result.uncertainty)


class TestSerialization:
    def test_round_trip(self):
        result = decompose_brier_score(continuous_samples(100))
        assert BrierDecomposition.from_dict(result.to_dict()) == result
