#!/usr/bin/env python3
"""Build a Lock Mode slip for one decision cycle.

Reads a JSON list of candidates (each optionally carrying a nested
"live_state" object), calibrates raw probabilities through the current
calibration snapshot, runs the gate pipeline and slot assignment, and
prints the slip as JSON.

Candidate JSON fields:
    subject_id, stat_category, line, direction, projected_value,
    uncertainty, rotation_role, minutes_played, rotation_volatile,
    risk_flags, current_stat
    calibrated_confidence (0-100)  OR  raw_probability (0-1)
    engine, sport, bet_type        (mapping lookup for raw_probability)
    live_state: {role, fatigue_score, foul_count, minutes_estimate}

Usage:
    python3 scripts/run_lock_mode.py --candidates cycle.json
    python3 scripts/run_lock_mode.py --candidates cycle.json --min-confidence 60 --show-gates
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import get_settings
from src.calibration import CalibrationSnapshot, SnapshotStore, calibrated_confidence
from src.lock_mode import Candidate, LiveState, LockModeConfig, build_lock_mode_slip

logger = logging.getLogger(__name__)

CANDIDATE_FIELDS = (
    "subject_id",
    "stat_category",
    "line",
    "direction",
    "projected_value",
    "uncertainty",
    "rotation_role",
    "minutes_played",
    "rotation_volatile",
    "current_stat",
)


def to_pair(
    record: dict,
    snapshot: Optional[CalibrationSnapshot],
) -> tuple[Candidate, Optional[LiveState]]:
    """Build a (Candidate, LiveState) pair from one JSON record."""
    if "calibrated_confidence" in record:
        confidence = float(record["calibrated_confidence"])
    elif "raw_probability" in record:
        mapping = []
        if snapshot is not None and record.get("engine"):
            mapping = snapshot.get_mapping(
                record["engine"], record.get("sport"), record.get("bet_type")
            )
        confidence = calibrated_confidence(float(record["raw_probability"]), mapping)
    else:
        raise ValueError(
            f"{record.get('subject_id')}: needs calibrated_confidence or raw_probability"
        )

    kwargs = {k: record[k] for k in CANDIDATE_FIELDS if k in record}
    candidate = Candidate(
        calibrated_confidence=confidence,
        risk_flags=frozenset(record.get("risk_flags", [])),
        **kwargs,
    )

    live = record.get("live_state")
    live_state = LiveState(**live) if live else None
    return candidate, live_state


def parse_args(argv=None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Lock Mode slip builder")
    parser.add_argument(
        "--candidates",
        type=str,
        required=True,
        help="JSON file with a list of candidates",
    )
    parser.add_argument(
        "--snapshot-dir",
        type=str,
        default=str(settings.snapshot_dir),
        help="Calibration snapshot directory",
    )
    parser.add_argument(
        "--game-time",
        type=str,
        default="",
        help="Game clock label recorded on the slip",
    )

    # Threshold overrides
    parser.add_argument("--min-confidence", type=float, default=None)
    parser.add_argument("--edge-multiplier", type=float, default=None)
    parser.add_argument("--min-edge", type=float, default=None)
    parser.add_argument("--min-fatigue-under", type=float, default=None)

    parser.add_argument(
        "--show-gates",
        action="store_true",
        help="Print per-candidate gate results",
    )
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
        "min_fatigue_for_under": args.min_fatigue_under,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        config = config.with_overrides(**overrides)

    snapshot = None
    if Path(args.snapshot_dir).exists():
        snapshot = SnapshotStore(args.snapshot_dir).current()
    if snapshot is None:
        logger.warning("No calibration snapshot available; raw probabilities pass through uncalibrated")

    with open(args.candidates) as f:
        records = json.load(f)
    pairs = [to_pair(r, snapshot) for r in records]

    def show(evaluation):
        status = "PASS" if evaluation.eligible else "BLOCKED"
        print(f"[{status}] {evaluation.candidate.label}")
        for reason in evaluation.failure_reasons:
            print(f"    - {reason}")

    slip = build_lock_mode_slip(
        pairs,
        config,
        game_time=args.game_time,
        observer=show if args.show_gates else None,
    )

    print(json.dumps(slip.to_dict(), indent=2))
    return 0 if slip.valid else 2


if __name__ == "__main__":
    sys.exit(main())
