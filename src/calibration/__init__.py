"""Probability calibration engine.

Scores how trustworthy a model's predicted probabilities are against settled
outcomes and learns a monotone remapping for new predictions.

Scoring:
- brier_score, log_loss, calibration_grade
- decompose_brier_score: Murphy decomposition (reliability/resolution/uncertainty)
- create_calibration_buckets: equal-width buckets with Wilson intervals
- expected_calibration_error / maximum_calibration_error

Recalibration:
- isotonic_regression: PAVA fit of raw -> calibrated probability
- apply_calibrated_probability: interpolate/clamp through a fitted mapping

Batch:
- run_calibration_batch: periodic per-engine/sport/bet_type recalibration
- SnapshotStore: atomic persistence and publication of batch output
"""

from .scoring import (
    CalibrationSample,
    CalibrationGrade,
    LOG_LOSS_EPSILON,
    brier_score,
    log_loss,
    calibration_grade,
)
from .buckets import (
    CalibrationBucket,
    WILSON_Z,
    z_for_confidence,
    wilson_interval,
    create_calibration_buckets,
    expected_calibration_error,
    maximum_calibration_error,
)
from .decomposition import (
    BrierDecomposition,
    decompose_brier_score,
)
from .isotonic import (
    IsotonicPoint,
    isotonic_regression,
    is_monotonic,
    apply_calibrated_probability,
    calibrated_confidence,
)
from .batch import (
    BatchConfig,
    EngineCalibration,
    CalibrationSnapshot,
    samples_from_frame,
    calibrate_group,
    run_calibration_batch,
)
from .snapshot_store import SnapshotStore

__all__ = [
    # Scoring
    "CalibrationSample",
    "CalibrationGrade",
    "LOG_LOSS_EPSILON",
    "brier_score",
    "log_loss",
    "calibration_grade",
    # Buckets
    "CalibrationBucket",
    "WILSON_Z",
    "z_for_confidence",
    "wilson_interval",
    "create_calibration_buckets",
    "expected_calibration_error",
    "maximum_calibration_error",
    # Decomposition
    "BrierDecomposition",
    "decompose_brier_score",
    # Isotonic
    "IsotonicPoint",
    "isotonic_regression",
    "is_monotonic",
    "apply_calibrated_probability",
    "calibrated_confidence",
    # Batch
    "BatchConfig",
    "EngineCalibration",
    "CalibrationSnapshot",
    "samples_from_frame",
    "calibrate_group",
    "run_calibration_batch",
    "SnapshotStore",
]
