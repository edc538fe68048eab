"""End-to-end tests for the batch and slip command-line entry points."""

import json

import numpy as np
import pandas as pd
import pytest

from scripts.run_calibration_batch import main as batch_main
from scripts.run_lock_mode import main as lock_main, to_pair
from src.calibration import SnapshotStore, calibrated_confidence


def cycle_records():
    return [
        {
            "subject_id": "big",
            "stat_category": "REBOUNDS",
            "line": 8.0,
            "direction": "OVER",
            "projected_value": 12.0,
            "uncertainty": 2.0,
            "raw_probability": 0.7,
            "engine": "props",
            "sport": "nba",
            "bet_type": "REBOUNDS",
            "rotation_role": "STARTER",
            "minutes_played": 12.0,
            "live_state": {"role": "BIG", "fatigue_score": 20.0, "foul_count": 1},
        },
        {
            "subject_id": "guard",
            "stat_category": "ASSISTS",
            "line": 6.0,
            "direction": "OVER",
            "projected_value": 9.0,
            "uncertainty": 2.0,
            "calibrated_confidence": 64.0,
            "rotation_role": "STARTER",
            "minutes_played": 12.0,
            "live_state": {"role": "PRIMARY"},
        },
        {
            "subject_id": "wing",
            "stat_category": "POINTS",
            "line": 20.0,
            "direction": "OVER",
            "projected_value": 25.0,
            "uncertainty": 3.0,
            "calibrated_confidence": 61.0,
            "rotation_role": "CLOSER",
            "minutes_played": 14.0,
            "risk_flags": [],
        },
    ]


class TestToPair:
    """Tests for JSON record conversion."""

    def test_calibrated_confidence_used_directly(self):
        candidate, live = to_pair(cycle_records()[1], None)
        assert candidate.calibrated_confidence == 64.0
        assert live.role == "PRIMARY"

    def test_raw_probability_without_snapshot(self):
        candidate, _ = to_pair(cycle_records()[0], None)
        assert candidate.calibrated_confidence == pytest.approx(70.0)

    def test_missing_live_state(self):
        _, live = to_pair(cycle_records()[2], None)
        assert live is None

    def test_missing_confidence_raises(self):
        record = dict(cycle_records()[2])
        del record["calibrated_confidence"]
        with pytest.raises(ValueError, match="needs calibrated_confidence or raw_probability"):
            to_pair(record, None)


class TestEndToEnd:
    """Batch publishes a snapshot; the slip builder reads it."""

    @pytest.fixture
    def settled_csv(self, tmp_path):
        rng = np.random.default_rng(5)
        n = 60
        predicted = rng.uniform(0.2, 0.9, size=n)
        df = pd.DataFrame({
            "predicted": predicted,
            "actual": (rng.random(n) < predicted).astype(int),
            "engine": "props",
            "sport": "nba",
            "bet_type": ["REBOUNDS", "ASSISTS"] * (n // 2),
        })
        path = tmp_path / "settled.csv"
        df.to_csv(path, index=False)
        return path

    def test_batch_publishes_snapshot(self, tmp_path, settled_csv):
        snapshot_dir = tmp_path / "snapshots"
        assert batch_main(["--input", str(settled_csv), "--snapshot-dir", str(snapshot_dir)]) == 0

        snapshot = SnapshotStore(snapshot_dir).load_latest()
        assert snapshot is not None
        assert snapshot.total_samples == 60
        assert ("props", "nba", "REBOUNDS") in snapshot.mapping_table

    def test_batch_without_timestamps_is_unbounded(self, tmp_path, settled_csv):
        snapshot_dir = tmp_path / "snapshots"
        batch_main(["--input", str(settled_csv), "--snapshot-dir", str(snapshot_dir)])
        snapshot = SnapshotStore(snapshot_dir).load_latest()
        assert snapshot.window_label == "all"
        assert snapshot.window_start == ""

    def test_batch_with_timestamps_applies_window(self, tmp_path):
        now = pd.Timestamp.now(tz="UTC")
        df = pd.DataFrame({
            "predicted": [0.6, 0.4, 0.7],
            "actual": [1, 0, 1],
            "engine": "props",
            "settled_at": [
                (now - pd.Timedelta(days=2)).isoformat(),
                (now - pd.Timedelta(days=3)).isoformat(),
                (now - pd.Timedelta(days=90)).isoformat(),
            ],
        })
        path = tmp_path / "settled.csv"
        df.to_csv(path, index=False)
        snapshot_dir = tmp_path / "snapshots"
        batch_main([
            "--input", str(path), "--snapshot-dir", str(snapshot_dir), "--window-days", "30",
        ])
        snapshot = SnapshotStore(snapshot_dir).load_latest()
        assert snapshot.window_label == "last_30d"
        assert snapshot.total_samples == 2

    def test_dry_run_publishes_nothing(self, tmp_path, settled_csv):
        snapshot_dir = tmp_path / "snapshots"
        assert batch_main([
            "--input", str(settled_csv), "--snapshot-dir", str(snapshot_dir), "--dry-run",
        ]) == 0
        assert not snapshot_dir.exists()

    def test_slip_uses_published_mapping(self, tmp_path, settled_csv, capsys):
        snapshot_dir = tmp_path / "snapshots"
        batch_main(["--input", str(settled_csv), "--snapshot-dir", str(snapshot_dir)])
        snapshot = SnapshotStore(snapshot_dir).load_latest()
        mapping = snapshot.get_mapping("props", "nba", "REBOUNDS")

        candidate, _ = to_pair(cycle_records()[0], snapshot)
        assert candidate.calibrated_confidence == pytest.approx(calibrated_confidence(0.7, mapping))

        cycle = tmp_path / "cycle.json"
        cycle.write_text(json.dumps(cycle_records()))
        capsys.readouterr()
        code = lock_main([
            "--candidates", str(cycle),
            "--snapshot-dir", str(snapshot_dir),
            "--min-confidence", "0",
        ])
        slip = json.loads(capsys.readouterr().out)
        assert code == 0
        assert slip["valid"] is True
        assert [leg["subject_id"] for leg in slip["legs"]] == ["big", "guard", "wing"]

    def test_slip_without_snapshot(self, tmp_path, capsys):
        cycle = tmp_path / "cycle.json"
        cycle.write_text(json.dumps(cycle_records()[1:]))
        code = lock_main([
            "--candidates", str(cycle),
            "--snapshot-dir", str(tmp_path / "none"),
        ])
        slip = json.loads(capsys.readouterr().out)
        assert code == 2
        assert slip["valid"] is False
        assert slip["missing_slots"] == ["BIG_REB_OVER"]
