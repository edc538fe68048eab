#!/usr/bin/env python3
"""Backtest Lock Mode over historical decision cycles.

Replays each cycle's candidates through the gate pipeline and slot
assignment, grades the resulting slip against settled results, and prints
leg hit rate, parlay win rate and gate block counts.

Input JSON: a list of cycles
    {
        "cycle_id": "2026-01-15",
        "game_time": "Q2 6:00",          (optional)
        "candidates": [ ... ]
    }
Each candidate uses the run_lock_mode.py record format plus its settled
result as either "actual_value" (final stat) or "outcome" (hit/miss/push).

Usage:
    python3 scripts/run_lock_mode_backtest.py --cycles history.json
    python3 scripts/run_lock_mode_backtest.py --cycles history.json --min-confidence 60 --output slips.csv
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import get_settings
from scripts.run_lock_mode import to_pair
from src.calibration import SnapshotStore
from src.lock_mode import BacktestCycle, LockModeConfig, run_lock_mode_backtest
from src.lock_mode.backtest import outcome_key

logger = logging.getLogger(__name__)


def load_cycles(path: str, snapshot=None) -> list[BacktestCycle]:
    """Parse cycle JSON into BacktestCycles."""
    with open(path) as f:
        raw_cycles = json.load(f)

    cycles = []
    for i, raw in enumerate(raw_cycles):
        pairs = []
        outcomes = {}
        for record in raw.get("candidates", []):
            candidate, live_state = to_pair(record, snapshot)
            pairs.append((candidate, live_state))
            if record.get("outcome") is not None:
                outcomes[outcome_key(candidate)] = record["outcome"]
            elif record.get("actual_value") is not None:
                outcomes[outcome_key(candidate)] = float(record["actual_value"])
        cycles.append(BacktestCycle(
            cycle_id=str(raw.get("cycle_id", i)),
            pairs=tuple(pairs),
            outcomes=outcomes,
            game_time=raw.get("game_time", ""),
        ))
    return cycles


def print_summary(result) -> None:
    s = result.summary
    ci_low, ci_high = s.leg_hit_rate_ci

    print("\n" + "=" * 80)
    print("LOCK MODE BACKTEST")
    print("=" * 80)
    print(f"Cycles:           {s.total_cycles}")
    print(f"Slips generated:  {s.slips_generated}")
    print(f"Slips passed:     {s.slips_passed}")
    print(f"Legs:             {s.total_legs} ({s.legs_hit}-{s.legs_missed}-{s.legs_pushed})")
    print(
        f"Leg hit rate:     {s.leg_hit_rate:.1%} "
        f"[95% CI {ci_low:.1%} - {ci_high:.1%}]"
    )
    print(f"Parlay win rate:  {s.parlay_win_rate:.1%} ({s.parlays_won}/{s.slips_generated})")
    print(f"Avg edge:         {s.avg_edge:.2f}")

    print("\nGate blocks (first failing gate):\n")
    header = f"{'Gate':<20} {'Blocked':>8}"
    print(header)
    print("-" * len(header))
    for gate, blocked in s.gate_block_stats.items():
        print(f"{gate:<20} {blocked:>8}")
    print("-" * len(header))

    if len(result.slips) > 0:
        print("\nPer-cycle slips:\n")
        header = (
            f"{'Cycle':<14} {'Valid':>5} {'Legs':>4} {'H':>3} {'M':>3} {'P':>3} "
            f"{'Won':>4}  Subjects / Missing"
        )
        print(header)
        print("-" * len(header))
        for row in result.slips.itertuples(index=False):
            detail = row.subjects if row.valid else f"missing: {row.missing_slots}"
            print(
                f"{row.cycle_id:<14} {'Y' if row.valid else 'N':>5} {row.legs:>4} "
                f"{row.legs_hit:>3} {row.legs_missed:>3} {row.legs_pushed:>3} "
                f"{'Y' if row.all_legs_hit else '-':>4}  {detail}"
            )
        print("-" * len(header))


def parse_args(argv=None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Lock Mode backtest")
    parser.add_argument(
        "--cycles",
        type=str,
        required=True,
        help="JSON file with a list of historical cycles",
    )
    parser.add_argument(
        "--snapshot-dir",
        type=str,
        default=str(settings.snapshot_dir),
        help="Calibration snapshot directory for raw_probability records",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Optional CSV path for per-cycle slip records",
    )

    # Threshold overrides
    parser.add_argument("--min-confidence", type=float, default=None)
    parser.add_argument("--edge-multiplier", type=float, default=None)
    parser.add_argument("--min-edge", type=float, default=None)

    parser.add_argument("--log-level", type=str, default=settings.log_level)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    config = LockModeConfig.from_settings(get_settings())
    overrides = {
        "min_confidence": args.min_confidence,
        "edge_uncertainty_multiplier": args.edge_multiplier,
        "min_absolute_edge": args.min_edge,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        config = config.with_overrides(**overrides)

    snapshot = None
    if Path(args.snapshot_dir).exists():
        snapshot = SnapshotStore(args.snapshot_dir).load_latest()

    cycles = load_cycles(args.cycles, snapshot)
    logger.info(f"Loaded {len(cycles)} cycles from {args.cycles}")

    result = run_lock_mode_backtest(cycles, config)
    print_summary(result)

    if args.output:
        result.slips.to_csv(args.output, index=False)
        print(f"\nSlip records written to: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
