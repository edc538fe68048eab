"""Periodic recalibration batch.

Reads a window of settled predictions, scores each engine (overall, per
sport) and fits isotonic mappings per (engine, sport, bet_type). The result
is an immutable CalibrationSnapshot that readers consult for:

- calibration-bucket table keyed by (engine, sport, window)
- isotonic-mapping table keyed by (engine, sport, bet_type)

Scheduling is external: the batch is a pure function of its inputs and can
be discarded and rerun at any time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

import pandas as pd

from .buckets import (
    CalibrationBucket,
    create_calibration_buckets,
    expected_calibration_error,
    maximum_calibration_error,
)
from .decomposition import BrierDecomposition, decompose_brier_score
from .isotonic import IsotonicPoint, isotonic_regression
from .scoring import CalibrationGrade, CalibrationSample, calibration_grade, log_loss

logger = logging.getLogger(__name__)

REQUIRED_SAMPLE_COLUMNS = ("predicted", "actual")

# Label for snapshots built from samples with no settlement timestamps
UNBOUNDED_WINDOW_LABEL = "all"

# Key types for the derived reference tables
BucketKey = tuple[str, Optional[str], str]
MappingKey = tuple[str, Optional[str], Optional[str]]


@dataclass(frozen=True)
class BatchConfig:
    """Configuration for one recalibration run.

    Attributes:
        num_buckets: Equal-width buckets for decomposition / ECE
        window_days: Trailing window length recorded on the snapshot
        min_engine_samples: Minimum samples to score an engine overall
        min_sport_samples: Minimum samples to score an (engine, sport) pair
        min_mapping_samples: Minimum samples to fit an (engine, sport, bet_type) mapping
    """

    num_buckets: int = 10
    window_days: int = 30
    min_engine_samples: int = 5
    min_sport_samples: int = 10
    min_mapping_samples: int = 10

    def __post_init__(self):
        """Validate configuration."""
        if self.num_buckets < 1:
            raise ValueError(f"num_buckets must be >= 1, got {self.num_buckets}")
        if self.window_days < 1:
            raise ValueError(f"window_days must be >= 1, got {self.window_days}")
        for name in ("min_engine_samples", "min_sport_samples", "min_mapping_samples"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")

    @property
    def window_label(self) -> str:
        return f"last_{self.window_days}d"

    @classmethod
    def from_settings(cls, settings) -> "BatchConfig":
        """Build from config.settings.Settings."""
        return cls(
            num_buckets=settings.num_buckets,
            window_days=settings.calibration_window_days,
            min_engine_samples=settings.min_engine_samples,
            min_sport_samples=settings.min_sport_samples,
            min_mapping_samples=settings.min_mapping_samples,
        )


@dataclass(frozen=True)
class EngineCalibration:
    """Calibration statistics for one (engine, sport, bet_type) group.

    sport / bet_type of None mean "all".
    """

    engine: str
    sport: Optional[str]
    bet_type: Optional[str]
    sample_size: int
    decomposition: BrierDecomposition
    log_loss: float
    grade: CalibrationGrade
    buckets: tuple[CalibrationBucket, ...]
    ece: float
    mce: float
    mapping: tuple[IsotonicPoint, ...] = ()

    def __repr__(self) -> str:
        scope = "/".join(x for x in (self.engine, self.sport, self.bet_type) if x)
        return (
            f"EngineCalibration({scope}, n={self.sample_size}, "
            f"brier={self.decomposition.brier_score:.4f}, grade={self.grade.grade}, "
            f"ece={self.ece:.4f})"
        )

    def to_dict(self) -> dict:
        return {
            "engine": self.engine,
            "sport": self.sport,
            "bet_type": self.bet_type,
            "sample_size": self.sample_size,
            "decomposition": self.decomposition.to_dict(),
            "log_loss": self.log_loss,
            "grade": {"grade": self.grade.grade, "label": self.grade.label},
            "buckets": [b.to_dict() for b in self.buckets],
            "ece": self.ece,
            "mce": self.mce,
            "mapping": [p.to_dict() for p in self.mapping],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EngineCalibration":
        return cls(
            engine=data["engine"],
            sport=data.get("sport"),
            bet_type=data.get("bet_type"),
            sample_size=int(data["sample_size"]),
            decomposition=BrierDecomposition.from_dict(data["decomposition"]),
            log_loss=float(data["log_loss"]),
            grade=CalibrationGrade(**data["grade"]),
            buckets=tuple(CalibrationBucket.from_dict(b) for b in data["buckets"]),
            ece=float(data["ece"]),
            mce=float(data["mce"]),
            mapping=tuple(IsotonicPoint.from_dict(p) for p in data.get("mapping", [])),
        )


@dataclass(frozen=True)
class CalibrationSnapshot:
    """Complete output of one recalibration run.

    Immutable once built; a new run produces a new snapshot that replaces
    the old one wholesale (see SnapshotStore).
    """

    snapshot_id: str
    created_at: str
    window_start: str
    window_end: str
    window_label: str
    total_samples: int
    calibrations: tuple[EngineCalibration, ...] = field(default_factory=tuple)

    @property
    def bucket_table(self) -> dict[BucketKey, tuple[CalibrationBucket, ...]]:
        """Buckets keyed by (engine, sport, window)."""
        return {
            (c.engine, c.sport, self.window_label): c.buckets
            for c in self.calibrations
            if c.bet_type is None
        }

    @property
    def mapping_table(self) -> dict[MappingKey, tuple[IsotonicPoint, ...]]:
        """Isotonic mappings keyed by (engine, sport, bet_type)."""
        return {
            (c.engine, c.sport, c.bet_type): c.mapping
            for c in self.calibrations
            if c.mapping
        }

    def get_calibration(
        self,
        engine: str,
        sport: Optional[str] = None,
        bet_type: Optional[str] = None,
    ) -> Optional[EngineCalibration]:
        for c in self.calibrations:
            if (c.engine, c.sport, c.bet_type) == (engine, sport, bet_type):
                return c
        return None

    def get_mapping(
        self,
        engine: str,
        sport: Optional[str] = None,
        bet_type: Optional[str] = None,
    ) -> list[IsotonicPoint]:
        """Most specific mapping available, falling back to broader scopes.

        Lookup order: (engine, sport, bet_type) -> (engine, sport, None) ->
        (engine, None, None). Returns [] when nothing has been fitted, which
        apply_calibrated_probability treats as identity.
        """
        table = self.mapping_table
        for key in ((engine, sport, bet_type), (engine, sport, None), (engine, None, None)):
            if key in table:
                return list(table[key])
        return []

    def to_dict(self) -> dict:
        return {
            "snapshot_id": self.snapshot_id,
            "created_at": self.created_at,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "window_label": self.window_label,
            "total_samples": self.total_samples,
            "calibrations": [c.to_dict() for c in self.calibrations],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationSnapshot":
        return cls(
            snapshot_id=data["snapshot_id"],
            created_at=data["created_at"],
            window_start=data["window_start"],
            window_end=data["window_end"],
            window_label=data["window_label"],
            total_samples=int(data["total_samples"]),
            calibrations=tuple(EngineCalibration.from_dict(c) for c in data["calibrations"]),
        )

    def summary_frame(self) -> pd.DataFrame:
        """One row per scored group, for reports."""
        rows = []
        for c in self.calibrations:
            rows.append({
                "engine": c.engine,
                "sport": c.sport,
                "bet_type": c.bet_type,
                "n": c.sample_size,
                "brier": c.decomposition.brier_score,
                "reliability": c.decomposition.reliability,
                "resolution": c.decomposition.resolution,
                "log_loss": c.log_loss,
                "ece": c.ece,
                "mce": c.mce,
                "grade": c.grade.grade,
                "mapping_points": len(c.mapping),
            })
        return pd.DataFrame(rows)


# =============================================================================
# INPUT CONVERSION
# =============================================================================

def _utc_timestamp(value) -> pd.Timestamp:
    """Naive datetimes are taken to be UTC."""
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def samples_from_frame(
    df: pd.DataFrame,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
    time_col: str = "settled_at",
) -> list[CalibrationSample]:
    """Convert a settled-predictions DataFrame to samples.

    Args:
        df: Columns predicted, actual and optionally weight, engine, sport,
            bet_type, settled_at
        window_start: Optional inclusive lower bound on time_col
        window_end: Optional inclusive upper bound on time_col
        time_col: Timestamp column used for window filtering

    Returns:
        List of CalibrationSample

    Raises:
        ValueError: If required columns are missing, a window is requested
            but time_col is absent, or a row is out of range
    """
    missing = set(REQUIRED_SAMPLE_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    if window_start is not None or window_end is not None:
        if time_col not in df.columns:
            raise ValueError(
                f"Window filtering requested but column '{time_col}' is missing"
            )
        ts = pd.to_datetime(df[time_col], utc=True)
        mask = pd.Series(True, index=df.index)
        if window_start is not None:
            mask &= ts >= _utc_timestamp(window_start)
        if window_end is not None:
            mask &= ts <= _utc_timestamp(window_end)
        n_dropped = int((~mask).sum())
        if n_dropped:
            logger.debug(f"Dropped {n_dropped} samples outside calibration window")
        df = df[mask]

    def _opt(row, col):
        value = row.get(col)
        return None if value is None or pd.isna(value) else str(value)

    samples = []
    for _, row in df.iterrows():
        weight = row.get("weight", 1.0)
        samples.append(CalibrationSample(
            predicted=float(row["predicted"]),
            actual=int(row["actual"]),
            weight=1.0 if weight is None or pd.isna(weight) else float(weight),
            engine=_opt(row, "engine"),
            sport=_opt(row, "sport"),
            bet_type=_opt(row, "bet_type"),
        ))
    return samples


# =============================================================================
# BATCH
# =============================================================================

def calibrate_group(
    samples: Sequence[CalibrationSample],
    engine: str,
    sport: Optional[str] = None,
    bet_type: Optional[str] = None,
    num_buckets: int = 10,
    fit_mapping: bool = True,
) -> EngineCalibration:
    """Score one group of samples and optionally fit its isotonic mapping."""
    buckets = create_calibration_buckets(samples, num_buckets)
    decomposition = decompose_brier_score(samples, num_buckets)
    return EngineCalibration(
        engine=engine,
        sport=sport,
        bet_type=bet_type,
        sample_size=len(samples),
        decomposition=decomposition,
        log_loss=log_loss(samples),
        grade=calibration_grade(decomposition.brier_score),
        buckets=tuple(buckets),
        ece=expected_calibration_error(buckets),
        mce=maximum_calibration_error(buckets),
        mapping=tuple(isotonic_regression(samples)) if fit_mapping else (),
    )


def _group_by(samples: Iterable[CalibrationSample], key) -> dict:
    groups: dict = {}
    for s in samples:
        groups.setdefault(key(s), []).append(s)
    return groups


def run_calibration_batch(
    samples: Sequence[CalibrationSample],
    config: Optional[BatchConfig] = None,
    now: Optional[datetime] = None,
    unbounded: bool = False,
) -> CalibrationSnapshot:
    """Run one recalibration pass over a window of settled predictions.

    Groups produced (each subject to its minimum sample size):
    1. engine overall: scores + buckets + engine-wide mapping
    2. (engine, sport): scores + buckets + sport mapping
    3. (engine, sport, bet_type): mapping only

    Samples without an engine are pooled under "default".

    Args:
        samples: Settled predictions already restricted to the window
        config: BatchConfig (defaults if None)
        now: Reference time for window bounds (default: current UTC time)
        unbounded: Samples were not restricted to a time window; the snapshot
            is labelled UNBOUNDED_WINDOW_LABEL with no window_start

    Returns:
        CalibrationSnapshot (empty calibrations for empty input)
    """
    config = config or BatchConfig()
    now = now or datetime.now(timezone.utc)
    window_start = now - timedelta(days=config.window_days)
    window_label = UNBOUNDED_WINDOW_LABEL if unbounded else config.window_label
    samples = list(samples)

    logger.info(f"Calibration batch: {len(samples)} samples, window {window_label}")

    calibrations: list[EngineCalibration] = []
    by_engine = _group_by(samples, lambda s: s.engine or "default")

    for engine in sorted(by_engine):
        engine_samples = by_engine[engine]
        if len(engine_samples) < config.min_engine_samples:
            logger.info(
                f"Skipping {engine}: {len(engine_samples)} samples "
                f"< {config.min_engine_samples}"
            )
            continue

        cal = calibrate_group(engine_samples, engine, num_buckets=config.num_buckets)
        calibrations.append(cal)
        logger.info(
            f"{engine}: Brier={cal.decomposition.brier_score:.4f}, "
            f"LogLoss={cal.log_loss:.4f}, n={cal.sample_size}"
        )

        by_sport = _group_by(
            (s for s in engine_samples if s.sport is not None), lambda s: s.sport
        )
        for sport in sorted(by_sport):
            sport_samples = by_sport[sport]
            if len(sport_samples) < config.min_sport_samples:
                logger.debug(f"Skipping {engine}/{sport}: {len(sport_samples)} samples")
                continue
            calibrations.append(calibrate_group(
                sport_samples, engine, sport=sport, num_buckets=config.num_buckets
            ))

            by_bet_type = _group_by(
                (s for s in sport_samples if s.bet_type is not None), lambda s: s.bet_type
            )
            for bet_type in sorted(by_bet_type):
                bt_samples = by_bet_type[bet_type]
                if len(bt_samples) < config.min_mapping_samples:
                    continue
                calibrations.append(calibrate_group(
                    bt_samples,
                    engine,
                    sport=sport,
                    bet_type=bet_type,
                    num_buckets=config.num_buckets,
                ))

    snapshot = CalibrationSnapshot(
        snapshot_id=f"cal_{now.strftime('%Y%m%d_%H%M%S_%f')}",
        created_at=now.isoformat(),
        window_start="" if unbounded else window_start.isoformat(),
        window_end=now.isoformat(),
        window_label=window_label,
        total_samples=len(samples),
        calibrations=tuple(calibrations),
    )
    logger.info(
        f"Calibration batch complete: {len(calibrations)} groups, "
        f"{len(snapshot.mapping_table)} mappings"
    )
    return snapshot
