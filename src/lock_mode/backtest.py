"""Lock Mode backtest over historical decision cycles.

Each cycle replays the candidates seen at one decision point through
build_lock_mode_slip, then grades the resulting legs against settled
results. Only valid slips carry legs, so invalid slips contribute nothing
to leg totals and are excluded from the parlay win rate denominator.

Metrics:
    leg_hit_rate     hits / (hits + misses), pushes excluded
    parlay_win_rate  slips with every leg hit / valid slips
    gate_block_stats first failing gate per blocked candidate
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional, Union

import pandas as pd

from src.calibration.buckets import wilson_interval

from .config import LockModeConfig
from .gates import GATE_ORDER
from .models import Candidate, Direction, LiveState
from .slip import Slip, build_lock_mode_slip
from .slots import SlotTable

logger = logging.getLogger(__name__)

OutcomeKey = tuple[str, str]
ActualValue = Union[float, int, str]


class LegOutcome(str, Enum):
    """Settled result of one leg."""
    HIT = "hit"
    MISS = "miss"
    PUSH = "push"


def outcome_key(candidate: Candidate) -> OutcomeKey:
    """(subject_id, stat_category) key used to look up a leg's result."""
    return (candidate.subject_id, candidate.stat_category)


def grade_leg(candidate: Candidate, actual: ActualValue) -> LegOutcome:
    """Grade one leg against its settled result.

    Args:
        candidate: The selected candidate
        actual: Final stat value, or an already graded "hit" / "miss" / "push"

    Returns:
        LegOutcome. A final value landing exactly on the line is a push.

    Raises:
        ValueError: If actual is an unknown label or not a finite number
    """
    if isinstance(actual, str):
        try:
            return LegOutcome(actual.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown outcome {actual!r} for {candidate.label}") from None

    value = float(actual)
    if not math.isfinite(value):
        raise ValueError(f"Actual value for {candidate.label} must be finite, got {actual}")
    if value == candidate.line:
        return LegOutcome.PUSH

    went_over = value > candidate.line
    if candidate.direction == Direction.OVER.value:
        return LegOutcome.HIT if went_over else LegOutcome.MISS
    return LegOutcome.MISS if went_over else LegOutcome.HIT


@dataclass(frozen=True)
class SlipGrade:
    """Graded legs of one slip. A leg with no settled result is ungraded."""

    legs_hit: int = 0
    legs_missed: int = 0
    legs_pushed: int = 0
    legs_ungraded: int = 0
    all_legs_hit: bool = False

    @property
    def legs_graded(self) -> int:
        return self.legs_hit + self.legs_missed + self.legs_pushed


def grade_slip(slip: Slip, outcomes: Mapping[OutcomeKey, ActualValue]) -> SlipGrade:
    """Grade every leg of a slip.

    Args:
        slip: Slip from build_lock_mode_slip
        outcomes: (subject_id, stat_category) -> final value or outcome label

    Returns:
        SlipGrade. An invalid slip has no legs and grades to all zeros.
    """
    if not slip.valid:
        return SlipGrade()

    graded = []
    ungraded = 0
    for leg in slip.legs:
        actual = outcomes.get(outcome_key(leg.candidate))
        if actual is None:
            ungraded += 1
            continue
        graded.append(grade_leg(leg.candidate, actual))

    hits = graded.count(LegOutcome.HIT)
    return SlipGrade(
        legs_hit=hits,
        legs_missed=graded.count(LegOutcome.MISS),
        legs_pushed=graded.count(LegOutcome.PUSH),
        legs_ungraded=ungraded,
        all_legs_hit=len(slip.legs) > 0 and hits == len(slip.legs),
    )


@dataclass(frozen=True)
class BacktestCycle:
    """Candidates and settled results for one historical decision cycle."""

    cycle_id: str
    pairs: tuple[tuple[Candidate, Optional[LiveState]], ...]
    outcomes: Mapping[OutcomeKey, ActualValue] = field(default_factory=dict)
    game_time: str = ""

    def __post_init__(self):
        object.__setattr__(self, "pairs", tuple(self.pairs))


@dataclass
class BacktestSummary:
    """Aggregate results across all cycles.

    Attributes:
        total_cycles: Cycles replayed
        slips_generated: Cycles that produced a valid slip
        slips_passed: Cycles where the slip was invalid (no action)
        total_legs: Legs across valid slips
        legs_hit, legs_missed, legs_pushed: Graded leg counts
        leg_hit_rate: hits / (hits + misses)
        leg_hit_rate_ci: 95% Wilson interval for leg_hit_rate
        parlays_won: Valid slips with every leg hit
        parlay_win_rate: parlays_won / slips_generated
        avg_edge: Mean |projected - line| across legs of valid slips
        gate_block_stats: Gate name -> candidates it blocked first
    """

    total_cycles: int
    slips_generated: int
    slips_passed: int
    total_legs: int
    legs_hit: int
    legs_missed: int
    legs_pushed: int
    leg_hit_rate: float
    leg_hit_rate_ci: tuple[float, float]
    parlays_won: int
    parlay_win_rate: float
    avg_edge: float
    gate_block_stats: dict

    def to_dict(self) -> dict:
        ci_low, ci_high = self.leg_hit_rate_ci
        return {
            "total_cycles": self.total_cycles,
            "slips_generated": self.slips_generated,
            "slips_passed": self.slips_passed,
            "total_legs": self.total_legs,
            "legs_hit": self.legs_hit,
            "legs_missed": self.legs_missed,
            "legs_pushed": self.legs_pushed,
            "leg_hit_rate": self.leg_hit_rate,
            "leg_hit_rate_ci_low": ci_low,
            "leg_hit_rate_ci_high": ci_high,
            "parlays_won": self.parlays_won,
            "parlay_win_rate": self.parlay_win_rate,
            "avg_edge": self.avg_edge,
        }


@dataclass
class BacktestResult:
    """Per-cycle slip records plus the aggregate summary."""

    slips: pd.DataFrame
    summary: BacktestSummary

    def summary_frame(self) -> pd.DataFrame:
        """One-row DataFrame of the summary metrics."""
        return pd.DataFrame([self.summary.to_dict()])

    def gate_block_frame(self) -> pd.DataFrame:
        """Blocked candidate counts by first failing gate, in gate order."""
        return pd.DataFrame(
            list(self.summary.gate_block_stats.items()), columns=["gate", "blocked"]
        )


SLIP_COLUMNS = [
    "cycle_id",
    "game_time",
    "valid",
    "n_candidates",
    "n_eligible",
    "subjects",
    "missing_slots",
    "block_reason",
    "legs",
    "legs_hit",
    "legs_missed",
    "legs_pushed",
    "legs_ungraded",
    "all_legs_hit",
    "avg_edge",
]


def _first_failing_gate(evaluation) -> Optional[str]:
    for result in evaluation.results:
        if not result.passed:
            return result.gate
    return None


def run_lock_mode_backtest(
    cycles: Iterable[BacktestCycle],
    config: Optional[LockModeConfig] = None,
    slot_table: Optional[SlotTable] = None,
) -> BacktestResult:
    """Replay historical cycles through Lock Mode and grade the slips.

    Args:
        cycles: Historical decision cycles with settled outcomes
        config: Thresholds (defaults if None)
        slot_table: Slots to fill (default slot table if None)

    Returns:
        BacktestResult with a per-cycle slips DataFrame and a summary
    """
    config = config or LockModeConfig()
    gate_block_stats = {gate: 0 for gate in GATE_ORDER}
    records = []
    edges = []

    for cycle in cycles:
        slip = build_lock_mode_slip(
            cycle.pairs, config, slot_table=slot_table, game_time=cycle.game_time
        )
        for evaluation in slip.evaluations:
            gate = _first_failing_gate(evaluation)
            if gate is not None:
                gate_block_stats[gate] = gate_block_stats.get(gate, 0) + 1

        grade = grade_slip(slip, cycle.outcomes)
        slip_edges = [leg.edge for leg in slip.legs]
        edges.extend(slip_edges)

        records.append({
            "cycle_id": cycle.cycle_id,
            "game_time": cycle.game_time,
            "valid": slip.valid,
            "n_candidates": len(slip.evaluations),
            "n_eligible": sum(1 for e in slip.evaluations if e.eligible),
            "subjects": ", ".join(slip.subject_ids),
            "missing_slots": ", ".join(slip.missing_slots),
            "block_reason": slip.block_reason,
            "legs": len(slip.legs),
            "legs_hit": grade.legs_hit,
            "legs_missed": grade.legs_missed,
            "legs_pushed": grade.legs_pushed,
            "legs_ungraded": grade.legs_ungraded,
            "all_legs_hit": grade.all_legs_hit,
            "avg_edge": sum(slip_edges) / len(slip_edges) if slip_edges else 0.0,
        })

    slips = pd.DataFrame(records, columns=SLIP_COLUMNS)
    summary = _summarize(slips, edges, gate_block_stats)

    logger.info(
        f"Lock Mode backtest: {summary.total_cycles} cycles, "
        f"{summary.slips_generated} slips generated, {summary.slips_passed} passed"
    )
    logger.info(
        f"  Legs {summary.legs_hit}-{summary.legs_missed}-{summary.legs_pushed} "
        f"(hit rate {summary.leg_hit_rate:.1%}), "
        f"parlays {summary.parlays_won}/{summary.slips_generated} "
        f"({summary.parlay_win_rate:.1%})"
    )
    return BacktestResult(slips=slips, summary=summary)


def _summarize(slips: pd.DataFrame, edges: list[float], gate_block_stats: dict) -> BacktestSummary:
    if len(slips) == 0:
        return BacktestSummary(
            total_cycles=0,
            slips_generated=0,
            slips_passed=0,
            total_legs=0,
            legs_hit=0,
            legs_missed=0,
            legs_pushed=0,
            leg_hit_rate=0.0,
            leg_hit_rate_ci=wilson_interval(0, 0),
            parlays_won=0,
            parlay_win_rate=0.0,
            avg_edge=0.0,
            gate_block_stats=gate_block_stats,
        )

    generated = int(slips["valid"].sum())
    hits = int(slips["legs_hit"].sum())
    misses = int(slips["legs_missed"].sum())
    decided = hits + misses
    parlays_won = int(slips["all_legs_hit"].sum())

    return BacktestSummary(
        total_cycles=len(slips),
        slips_generated=generated,
        slips_passed=len(slips) - generated,
        total_legs=int(slips["legs"].sum()),
        legs_hit=hits,
        legs_missed=misses,
        legs_pushed=int(slips["legs_pushed"].sum()),
        leg_hit_rate=hits / decided if decided > 0 else 0.0,
        leg_hit_rate_ci=wilson_interval(hits, decided),
        parlays_won=parlays_won,
        parlay_win_rate=parlays_won / generated if generated > 0 else 0.0,
        avg_edge=sum(edges) / len(edges) if edges else 0.0,
        gate_block_stats=gate_block_stats,
    )
