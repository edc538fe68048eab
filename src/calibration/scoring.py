"""Proper scoring rules for settled probability predictions.

Provides:
- CalibrationSample: one settled (predicted, actual) observation
- brier_score / log_loss: aggregate scoring rules
- calibration_grade: letter grade for a Brier score

Brier score:
    BS = (1/N) * sum((p_i - o_i)^2)
0 = perfect, 0.25 = coin flip on a balanced base rate, 1 = maximally wrong.

Empty inputs score 0 rather than raising: cold start (no settled history
yet) is the normal state for a new engine/sport, not an error.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

# Clamp for log loss so p=0/p=1 predictions don't produce infinite loss
LOG_LOSS_EPSILON = 1e-15


@dataclass(frozen=True)
class CalibrationSample:
    """A single settled prediction.

    Attributes:
        predicted: Predicted probability in [0, 1]
        actual: Binary outcome (1 = hit, 0 = miss)
        weight: Sample weight (> 0), used by isotonic regression
        engine: Optional engine that produced the prediction
        sport: Optional sport key
        bet_type: Optional bet type / market key
    """

    predicted: float
    actual: int
    weight: float = 1.0
    engine: Optional[str] = None
    sport: Optional[str] = None
    bet_type: Optional[str] = None

    def __post_init__(self):
        """Validate sample."""
        if not 0.0 <= self.predicted <= 1.0:
            raise ValueError(f"predicted must be in [0, 1], got {self.predicted}")
        if self.actual not in (0, 1):
            raise ValueError(f"actual must be 0 or 1, got {self.actual}")
        if not self.weight > 0:
            raise ValueError(f"weight must be > 0, got {self.weight}")


def sample_arrays(
    samples: Iterable[CalibrationSample],
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Unpack samples into (predicted, actual, weight) float arrays."""
    samples = list(samples)
    if not samples:
        empty = np.empty(0, dtype=float)
        return empty, empty.copy(), empty.copy()

    predicted = np.fromiter((s.predicted for s in samples), dtype=float, count=len(samples))
    actual = np.fromiter((s.actual for s in samples), dtype=float, count=len(samples))
    weight = np.fromiter((s.weight for s in samples), dtype=float, count=len(samples))
    return predicted, actual, weight


def brier_score(samples: Sequence[CalibrationSample]) -> float:
    """Mean squared error between predicted probability and outcome.

    Args:
        samples: Settled predictions

    Returns:
        Brier score (0 for empty input)
    """
    predicted, actual, _ = sample_arrays(samples)
    if len(predicted) == 0:
        return 0.0
    return float(np.mean((predicted - actual) ** 2))


def log_loss(samples: Sequence[CalibrationSample]) -> float:
    """Mean binary cross-entropy.

    Predictions are clamped to [eps, 1 - eps] (eps = 1e-15) so a confident
    miss costs ~34.5 nats instead of infinity.

    Args:
        samples: Settled predictions

    Returns:
        Log loss (0 for empty input)
    """
    predicted, actual, _ = sample_arrays(samples)
    if len(predicted) == 0:
        return 0.0

    clamped = np.clip(predicted, LOG_LOSS_EPSILON, 1 - LOG_LOSS_EPSILON)
    losses = -(actual * np.log(clamped) + (1 - actual) * np.log(1 - clamped))
    return float(np.mean(losses))


# =============================================================================
# GRADING
# =============================================================================

@dataclass(frozen=True)
class CalibrationGrade:
    """Letter grade for a Brier score."""
    grade: str
    label: str


# Upper bounds (inclusive), checked in order
GRADE_THRESHOLDS: tuple[tuple[float, str, str], ...] = (
    (0.10, "A+", "Excellent"),
    (0.15, "A", "Very Good"),
    (0.20, "B", "Good"),
    (0.25, "C", "Average"),
    (0.30, "D", "Below Average"),
)
FAILING_GRADE = CalibrationGrade(grade="F", label="Poor")


def calibration_grade(score: float) -> CalibrationGrade:
    """Map a Brier score to a letter grade.

    Examples:
        >>> calibration_grade(0.10).grade
        'A+'
        >>> calibration_grade(0.2001).grade
        'C'
    """
    for upper, grade, label in GRADE_THRESHOLDS:
        if score <= upper:
            return CalibrationGrade(grade=grade, label=label)
    return FAILING_GRADE
