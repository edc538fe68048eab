"""Application settings and configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


@dataclass
class Settings:
    """Application configuration settings."""

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Calibration batch
    # Number of equal-width probability buckets used for decomposition/ECE
    num_buckets: int = field(default_factory=lambda: _env_int("CALIBRATION_BUCKETS", "10"))
    # Trailing window of settled predictions fed to each recalibration run
    calibration_window_days: int = field(
        default_factory=lambda: _env_int("CALIBRATION_WINDOW_DAYS", "30")
    )
    # Minimum sample sizes before a group is scored
    min_engine_samples: int = 5
    min_sport_samples: int = 10
    min_mapping_samples: int = 10

    # Lock Mode gate thresholds
    # Production values are supplied per deployment; defaults are the
    # pre-relaxation values.
    min_first_half_minutes: float = field(
        default_factory=lambda: _env_float("LOCK_MIN_FIRST_HALF_MINUTES", "8")
    )
    max_fouls_allowed: int = field(
        default_factory=lambda: _env_int("LOCK_MAX_FOULS", "4")
    )
    edge_uncertainty_multiplier: float = field(
        default_factory=lambda: _env_float("LOCK_EDGE_UNCERTAINTY_MULTIPLIER", "1.25")
    )
    min_absolute_edge: float = field(
        default_factory=lambda: _env_float("LOCK_MIN_ABSOLUTE_EDGE", "0.5")
    )
    min_fatigue_for_under: float = field(
        default_factory=lambda: _env_float("LOCK_MIN_FATIGUE_FOR_UNDER", "40")
    )
    max_variance_ratio: float = field(
        default_factory=lambda: _env_float("LOCK_MAX_VARIANCE_RATIO", "0.4")
    )
    min_confidence: float = field(
        default_factory=lambda: _env_float("LOCK_MIN_CONFIDENCE", "55")
    )

    # Paths
    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def snapshot_dir(self) -> Path:
        return self.data_dir / "calibration" / "snapshots"

    @property
    def outputs_dir(self) -> Path:
        return self.data_dir / "outputs"

    def validate(self) -> list[str]:
        """Validate settings. Returns list of errors."""
        errors = []
        if self.num_buckets < 1:
            errors.append(f"CALIBRATION_BUCKETS must be >= 1, got {self.num_buckets}")
        if self.calibration_window_days < 1:
            errors.append(
                f"CALIBRATION_WINDOW_DAYS must be >= 1, got {self.calibration_window_days}"
            )
        if not 0 <= self.min_confidence <= 100:
            errors.append(f"LOCK_MIN_CONFIDENCE must be in [0, 100], got {self.min_confidence}")
        return errors


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
