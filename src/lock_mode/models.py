"""Data model for Lock Mode selection.

A Candidate is one live prop "edge" for a decision cycle. The caller joins
each candidate with its subject's LiveState before handing pairs to the gate
pipeline; the core never does name matching.

Direction / category / role values are plain strings so that callers can
pass raw feed values; the str-Enums below compare equal to those strings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Side of the line being recommended."""
    OVER = "OVER"
    UNDER = "UNDER"


class StatCategory(str, Enum):
    """Prop stat categories seen in the feed."""
    POINTS = "POINTS"
    REBOUNDS = "REBOUNDS"
    ASSISTS = "ASSISTS"
    PRA = "PRA"  # Points + Rebounds + Assists
    THREES = "THREES"
    STEALS = "STEALS"
    BLOCKS = "BLOCKS"


class RotationRole(str, Enum):
    """Rotation role from the minutes model."""
    STARTER = "STARTER"
    CLOSER = "CLOSER"
    BENCH_CORE = "BENCH_CORE"
    BENCH_FRINGE = "BENCH_FRINGE"


class PlayerRole(str, Enum):
    """On-court role from live tracking."""
    PRIMARY = "PRIMARY"  # Primary ball-handler / first option
    SECONDARY = "SECONDARY"
    BIG = "BIG"
    WING = "WING"


class RiskFlag(str, Enum):
    """Risk flags attached to a candidate upstream."""
    BREAKOUT_RISK = "BREAKOUT_RISK"
    BLOWOUT_RISK = "BLOWOUT_RISK"  # Garbage-time exposure
    HIGH_VARIANCE = "HIGH_VARIANCE"
    EARLY_PROJECTION = "EARLY_PROJECTION"


def _value(x) -> str:
    return x.value if isinstance(x, Enum) else str(x)


@dataclass(frozen=True)
class Candidate:
    """A live wager opportunity.

    Attributes:
        subject_id: Player identifier
        stat_category: e.g. "REBOUNDS"
        line: Book line
        direction: "OVER" or "UNDER"
        projected_value: Projected final stat
        uncertainty: Projection standard deviation (same units as line)
        calibrated_confidence: 0-100, from apply_calibrated_probability
        rotation_role: Minutes-model role (STARTER, CLOSER, ...)
        minutes_played: Minutes so far (None = unknown, fall back to live state)
        rotation_volatile: True if the minutes model flags an unstable rotation
        risk_flags: Upstream risk flags
        current_stat: Stat accumulated so far
    """

    subject_id: str
    stat_category: str
    line: float
    direction: str
    projected_value: float
    uncertainty: float
    calibrated_confidence: float
    rotation_role: Optional[str] = None
    minutes_played: Optional[float] = None
    rotation_volatile: bool = False
    risk_flags: frozenset = field(default_factory=frozenset)
    current_stat: Optional[float] = None

    def __post_init__(self):
        """Normalize enum-valued fields and validate."""
        object.__setattr__(self, "stat_category", _value(self.stat_category).upper())
        object.__setattr__(self, "direction", _value(self.direction).upper())
        if self.rotation_role is not None:
            object.__setattr__(self, "rotation_role", _value(self.rotation_role).upper())
        object.__setattr__(
            self, "risk_flags", frozenset(_value(f).upper() for f in self.risk_flags)
        )

        if self.direction not in (Direction.OVER.value, Direction.UNDER.value):
            raise ValueError(f"direction must be OVER or UNDER, got {self.direction!r}")
        if not 0 <= self.calibrated_confidence <= 100:
            raise ValueError(
                f"calibrated_confidence must be in [0, 100], got {self.calibrated_confidence}"
            )
        if self.uncertainty < 0:
            raise ValueError(f"uncertainty must be >= 0, got {self.uncertainty}")

    @property
    def edge(self) -> float:
        """|projected_value - line|."""
        return abs(self.projected_value - self.line)

    @property
    def label(self) -> str:
        return f"{self.subject_id} {self.stat_category} {self.direction} {self.line:g}"


@dataclass(frozen=True)
class LiveState:
    """Live tracking state for a candidate's subject.

    Attributes:
        role: On-court role (PRIMARY, SECONDARY, BIG, ...)
        fatigue_score: 0-100 derived fatigue/decline score
        foul_count: Personal fouls so far
        minutes_estimate: Minutes estimate from tracking
    """

    role: Optional[str] = None
    fatigue_score: float = 0.0
    foul_count: int = 0
    minutes_estimate: Optional[float] = None

    def __post_init__(self):
        if self.role is not None:
            object.__setattr__(self, "role", _value(self.role).upper())


@dataclass(frozen=True)
class GateResult:
    """Outcome of one gate for one candidate. reason is set on failure."""
    gate: str
    passed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class GateEvaluation:
    """All gate results for one candidate."""

    candidate: Candidate
    live_state: Optional[LiveState]
    results: tuple[GateResult, ...]

    @property
    def eligible(self) -> bool:
        """True iff every gate passed."""
        return all(r.passed for r in self.results)

    @property
    def failure_reasons(self) -> list[str]:
        return [f"{r.gate}: {r.reason}" for r in self.results if not r.passed]

    def result(self, gate: str) -> Optional[GateResult]:
        for r in self.results:
            if r.gate == gate:
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "candidate": self.candidate.label,
            "eligible": self.eligible,
            "gates": {
                r.gate: {"passed": r.passed, "reason": r.reason} for r in self.results
            },
        }
