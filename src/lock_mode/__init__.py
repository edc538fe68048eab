"""Lock Mode: gated, fixed-size slip selection.

Live candidates (each carrying a calibrated confidence from
src.calibration.apply_calibrated_probability) pass through five independent
qualification gates; eligible candidates are assigned first-fit into a fixed
set of ranked slots. The slip is valid only when every slot is filled;
otherwise it names the missing slots and carries no legs.

Components:
- LockModeConfig: immutable thresholds passed into every call
- gates: participation, category, edge-vs-uncertainty, directional, confidence
- slots: slot table (BIG_REB_OVER, ASSIST_OVER, FLEX) and leg drivers
- slip: build_lock_mode_slip, the per-cycle entry point
- line_fit: live line favorability and trap detection
- backtest: replay historical cycles and grade slips against settled results
"""

from .config import LockModeConfig
from .models import (
    Candidate,
    Direction,
    GateEvaluation,
    GateResult,
    LiveState,
    PlayerRole,
    RiskFlag,
    RotationRole,
    StatCategory,
)
from .gates import (
    GATE_ORDER,
    STAT_TIERS,
    GateObserver,
    evaluate_candidate,
    evaluate_candidates,
    stat_tier,
)
from .slots import (
    DEFAULT_SLOTS,
    Slot,
    SlotTable,
    build_drivers,
    default_slot_table,
)
from .slip import Slip, SlipLeg, assign_slots, build_lock_mode_slip
from .line_fit import (
    LineFit,
    LineTimingStatus,
    calculate_line_fit_score,
    detect_trap_line,
)
from .backtest import (
    BacktestCycle,
    BacktestResult,
    BacktestSummary,
    LegOutcome,
    SlipGrade,
    grade_leg,
    grade_slip,
    run_lock_mode_backtest,
)

__all__ = [
    # Config
    "LockModeConfig",
    # Models
    "Candidate",
    "Direction",
    "GateEvaluation",
    "GateResult",
    "LiveState",
    "PlayerRole",
    "RiskFlag",
    "RotationRole",
    "StatCategory",
    # Gates
    "GATE_ORDER",
    "STAT_TIERS",
    "GateObserver",
    "evaluate_candidate",
    "evaluate_candidates",
    "stat_tier",
    # Slots
    "DEFAULT_SLOTS",
    "Slot",
    "SlotTable",
    "build_drivers",
    "default_slot_table",
    # Slip
    "Slip",
    "SlipLeg",
    "assign_slots",
    "build_lock_mode_slip",
    # Line fit
    "LineFit",
    "LineTimingStatus",
    "calculate_line_fit_score",
    "detect_trap_line",
    # Backtest
    "BacktestCycle",
    "BacktestResult",
    "BacktestSummary",
    "LegOutcome",
    "SlipGrade",
    "grade_leg",
    "grade_slip",
    "run_lock_mode_backtest",
]
