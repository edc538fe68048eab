"""Isotonic recalibration of raw probabilities.

isotonic_regression fits a non-decreasing step function from raw predicted
probability to observed hit rate using the Pool Adjacent Violators
Algorithm (PAVA). The fitted blocks become control points; new raw
probabilities are mapped by linear interpolation between control points
and clamped (never extrapolated) outside the fitted range.

PAVA variant: single left-to-right pass with a stack of blocks, merging the
top two blocks while they violate monotonicity. This is O(n) amortized and
yields the same partition as the restart-from-the-beginning variant, since
the isotonic solution for a given ordering is unique.
"""

import bisect
from dataclasses import dataclass, asdict
from typing import Sequence

from .scoring import CalibrationSample


@dataclass(frozen=True)
class IsotonicPoint:
    """One control point of an isotonic mapping.

    Attributes:
        raw_probability: Mean raw prediction of the pooled block
        calibrated_probability: Weighted hit rate of the pooled block
        sample_size: Number of samples pooled into the block
    """

    raw_probability: float
    calibrated_probability: float
    sample_size: int = 1

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "IsotonicPoint":
        return cls(
            raw_probability=float(data["raw_probability"]),
            calibrated_probability=float(data["calibrated_probability"]),
            sample_size=int(data.get("sample_size", 1)),
        )


@dataclass
class _Block:
    value: float
    weight: float
    predicted_sum: float
    count: int

    def merge(self, other: "_Block") -> None:
        total = self.weight + other.weight
        self.value = (self.value * self.weight + other.value * other.weight) / total
        self.weight = total
        self.predicted_sum += other.predicted_sum
        self.count += other.count


def isotonic_regression(samples: Sequence[CalibrationSample]) -> list[IsotonicPoint]:
    """Fit a monotone raw -> calibrated probability mapping.

    Args:
        samples: Settled predictions (weights honored when pooling)

    Returns:
        Control points ordered by raw probability with non-decreasing
        calibrated probability. Empty for empty input.
    """
    if not samples:
        return []

    # Stable sort keeps tie order deterministic for equal predictions
    ordered = sorted(samples, key=lambda s: s.predicted)

    stack: list[_Block] = []
    for s in ordered:
        stack.append(_Block(
            value=float(s.actual),
            weight=float(s.weight),
            predicted_sum=float(s.predicted),
            count=1,
        ))
        while len(stack) > 1 and stack[-2].value > stack[-1].value:
            top = stack.pop()
            stack[-1].merge(top)

    return [
        IsotonicPoint(
            raw_probability=block.predicted_sum / block.count,
            calibrated_probability=block.value,
            sample_size=block.count,
        )
        for block in stack
    ]


def is_monotonic(mapping: Sequence[IsotonicPoint]) -> bool:
    """True if calibrated probability never decreases along the mapping."""
    return all(
        a.calibrated_probability <= b.calibrated_probability
        for a, b in zip(mapping, mapping[1:])
    )


def apply_calibrated_probability(raw: float, mapping: Sequence[IsotonicPoint]) -> float:
    """Map a raw probability through an isotonic mapping.

    - Empty mapping: raw is returned unchanged
    - raw <= first control point: first calibrated value
    - raw >= last control point: last calibrated value
    - otherwise: linear interpolation between the bracketing points

    Args:
        raw: Raw model probability
        mapping: Control points (any order)

    Returns:
        Calibrated probability
    """
    if not mapping:
        return raw

    points = sorted(mapping, key=lambda p: (p.raw_probability, p.calibrated_probability))

    if raw <= points[0].raw_probability:
        return points[0].calibrated_probability
    if raw >= points[-1].raw_probability:
        return points[-1].calibrated_probability

    xs = [p.raw_probability for p in points]
    # First index with xs[i] > raw; the bracket is (i - 1, i) with x0 <= raw < x1
    i = bisect.bisect_right(xs, raw)
    lo, hi = points[i - 1], points[i]
    t = (raw - lo.raw_probability) / (hi.raw_probability - lo.raw_probability)
    return lo.calibrated_probability + t * (hi.calibrated_probability - lo.calibrated_probability)


def calibrated_confidence(raw: float, mapping: Sequence[IsotonicPoint]) -> float:
    """Calibrated probability as a 0-100 confidence percentage."""
    return 100.0 * apply_calibrated_probability(raw, mapping)
