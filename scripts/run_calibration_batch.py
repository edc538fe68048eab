#!/usr/bin/env python3
"""Periodic calibration batch runner.

Reads settled predictions, scores every engine (overall and per sport),
fits isotonic mappings per (engine, sport, bet_type), and publishes the
result as a new immutable calibration snapshot.

Input CSV columns:
    predicted, actual            (required)
    weight, engine, sport,
    bet_type, settled_at         (optional)

Usage:
    python3 scripts/run_calibration_batch.py --input data/calibration/settled.csv
    python3 scripts/run_calibration_batch.py --input settled.csv --window-days 14 --dry-run
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import get_settings
from src.calibration import (
    BatchConfig,
    SnapshotStore,
    run_calibration_batch,
    samples_from_frame,
)

logger = logging.getLogger(__name__)

TIME_COLUMN = "settled_at"


def parse_args(argv=None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Periodic calibration batch")
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="CSV of settled predictions",
    )
    parser.add_argument(
        "--snapshot-dir",
        type=str,
        default=str(settings.snapshot_dir),
        help=f"Snapshot directory (default: {settings.snapshot_dir})",
    )
    parser.add_argument(
        "--window-days",
        type=int,
        default=settings.calibration_window_days,
        help="Trailing window of settled predictions (days)",
    )
    parser.add_argument(
        "--num-buckets",
        type=int,
        default=settings.num_buckets,
        help="Equal-width probability buckets",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the summary without publishing a snapshot",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    settings = get_settings()
    errors = settings.validate()
    if errors:
        for err in errors:
            logger.error(err)
        return 1

    config = BatchConfig(
        num_buckets=args.num_buckets,
        window_days=args.window_days,
        min_engine_samples=settings.min_engine_samples,
        min_sport_samples=settings.min_sport_samples,
        min_mapping_samples=settings.min_mapping_samples,
    )

    now = datetime.now(timezone.utc)
    df = pd.read_csv(args.input)
    unbounded = TIME_COLUMN not in df.columns
    if unbounded:
        logger.warning(
            f"No '{TIME_COLUMN}' column in {args.input}; scoring every row "
            f"without a {config.window_label} window"
        )
        samples = samples_from_frame(df)
    else:
        samples = samples_from_frame(
            df,
            window_start=now - timedelta(days=config.window_days),
            window_end=now,
            time_col=TIME_COLUMN,
        )
    logger.info(f"Loaded {len(samples)} settled predictions from {args.input}")

    snapshot = run_calibration_batch(samples, config, now=now, unbounded=unbounded)

    summary = snapshot.summary_frame()
    print("\n" + "=" * 80)
    print(f"CALIBRATION SNAPSHOT {snapshot.snapshot_id} ({snapshot.window_label})")
    print("=" * 80)
    if summary.empty:
        print("No groups met the minimum sample size.")
    else:
        print(summary.to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    if args.dry_run:
        print("\nDry run - snapshot not published.")
        return 0

    store = SnapshotStore(args.snapshot_dir)
    store.publish(snapshot)
    print(f"\nPublished to: {args.snapshot_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
