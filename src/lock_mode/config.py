"""Immutable threshold configuration for Lock Mode.

Every threshold used by the gates and slot predicates lives here and is
passed explicitly into each call, so concurrent decision cycles (different
sports or slates) can run with different thresholds without shared state.

Defaults are the pre-relaxation values. Deployments override them via
environment (see config.settings) or by constructing a config directly.
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class LockModeConfig:
    """Thresholds for gates, slots and drivers.

    Gate 1 (participation/rotation):
        privileged_roles: Rotation roles allowed through
        min_first_half_minutes: Minimum minutes played
        max_fouls: Maximum personal fouls
        high_minute_role_fallback: If set, a subject with at least this many
            minutes counts as privileged regardless of role (None = off)

    Gate 3 (edge vs uncertainty):
        edge_uncertainty_multiplier: edge must be >= uncertainty * this
        min_absolute_edge: edge must be strictly greater than this

    Gate 4 (UNDER scrutiny):
        min_fatigue_for_under: Minimum fatigue score for an UNDER
        max_variance_ratio: Maximum uncertainty / line for an UNDER
        under_blocking_flags: Risk flags that block an UNDER

    Gate 5 (confidence floor):
        min_confidence: calibrated_confidence must exceed this (0-100)
        confidence_blocking_flags: Risk flags that block any candidate

    Slots:
        reb_min_current_stat / reb_min_minutes / reb_min_edge: rebound slot fallbacks
        assist_min_current_stat: assist slot fallback
        flex_reb_min_edge / flex_assist_min_edge: large-edge FLEX admission

    Drivers:
        fatigue_driver_threshold: Fatigue needed for the UNDER fatigue driver
        max_drivers: Drivers kept per leg
    """

    privileged_roles: frozenset = frozenset({"STARTER", "CLOSER", "BENCH_CORE"})
    min_first_half_minutes: float = 8.0
    max_fouls: int = 4
    high_minute_role_fallback: Optional[float] = None

    edge_uncertainty_multiplier: float = 1.25
    min_absolute_edge: float = 0.5

    min_fatigue_for_under: float = 40.0
    max_variance_ratio: float = 0.4
    under_blocking_flags: frozenset = frozenset({"BREAKOUT_RISK", "BLOWOUT_RISK"})

    min_confidence: float = 55.0
    confidence_blocking_flags: frozenset = frozenset({"HIGH_VARIANCE", "EARLY_PROJECTION"})

    reb_min_current_stat: float = 3.0
    reb_min_minutes: float = 10.0
    reb_min_edge: float = 1.5
    assist_min_current_stat: float = 2.0
    flex_reb_min_edge: float = 2.0
    flex_assist_min_edge: float = 1.5

    fatigue_driver_threshold: float = 65.0
    max_drivers: int = 2

    def __post_init__(self):
        """Validate configuration."""
        object.__setattr__(self, "privileged_roles", frozenset(self.privileged_roles))
        object.__setattr__(self, "under_blocking_flags", frozenset(self.under_blocking_flags))
        object.__setattr__(
            self, "confidence_blocking_flags", frozenset(self.confidence_blocking_flags)
        )

        if not self.privileged_roles:
            raise ValueError("privileged_roles must not be empty")
        if self.min_first_half_minutes < 0:
            raise ValueError(
                f"min_first_half_minutes must be >= 0, got {self.min_first_half_minutes}"
            )
        if self.max_fouls < 0:
            raise ValueError(f"max_fouls must be >= 0, got {self.max_fouls}")
        if self.edge_uncertainty_multiplier < 0:
            raise ValueError(
                f"edge_uncertainty_multiplier must be >= 0, got {self.edge_uncertainty_multiplier}"
            )
        if self.min_absolute_edge < 0:
            raise ValueError(f"min_absolute_edge must be >= 0, got {self.min_absolute_edge}")
        if self.max_variance_ratio <= 0:
            raise ValueError(f"max_variance_ratio must be > 0, got {self.max_variance_ratio}")
        if not 0 <= self.min_confidence <= 100:
            raise ValueError(f"min_confidence must be in [0, 100], got {self.min_confidence}")
        if self.max_drivers < 0:
            raise ValueError(f"max_drivers must be >= 0, got {self.max_drivers}")

    def with_overrides(self, **overrides) -> "LockModeConfig":
        """Copy with some thresholds replaced."""
        return replace(self, **overrides)

    @classmethod
    def from_settings(cls, settings) -> "LockModeConfig":
        """Build from config.settings.Settings."""
        return cls(
            min_first_half_minutes=settings.min_first_half_minutes,
            max_fouls=settings.max_fouls_allowed,
            edge_uncertainty_multiplier=settings.edge_uncertainty_multiplier,
            min_absolute_edge=settings.min_absolute_edge,
            min_fatigue_for_under=settings.min_fatigue_for_under,
            max_variance_ratio=settings.max_variance_ratio,
            min_confidence=settings.min_confidence,
        )
