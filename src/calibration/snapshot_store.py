"""Persistence and publication of calibration snapshots.

Decision cycles read the current snapshot while the periodic batch may be
writing a new one. Two guarantees:

1. On disk: snapshots are written to a temp file in the same directory and
   moved into place with os.replace, so a reader never opens a half-written
   file.
2. In memory: publish() swaps a single reference under a lock; current()
   returns whichever complete snapshot was last published.

Snapshots are immutable once saved - a rerun creates a new snapshot_id.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from .batch import CalibrationSnapshot

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_DIR = "data/calibration/snapshots"
LATEST_POINTER = "LATEST"


class SnapshotStore:
    """Storage, retrieval and atomic publication of calibration snapshots."""

    def __init__(self, snapshot_dir: str | Path = DEFAULT_SNAPSHOT_DIR):
        self.snapshot_dir = Path(snapshot_dir)
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._current: Optional[CalibrationSnapshot] = None

    def _snapshot_path(self, snapshot_id: str) -> Path:
        """Get path for snapshot file."""
        return self.snapshot_dir / f"{snapshot_id}.json"

    def _atomic_write(self, path: Path, text: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.snapshot_dir, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def save(self, snapshot: CalibrationSnapshot) -> Path:
        """Save snapshot to JSON and point LATEST at it.

        Args:
            snapshot: CalibrationSnapshot to save

        Returns:
            Path to saved file

        Raises:
            FileExistsError: If a snapshot with this id already exists
        """
        path = self._snapshot_path(snapshot.snapshot_id)
        if path.exists():
            raise FileExistsError(
                f"Snapshot already exists: {path}. "
                "Snapshots are immutable - create a new one instead."
            )

        self._atomic_write(path, json.dumps(snapshot.to_dict(), indent=2))
        self._atomic_write(self.snapshot_dir / LATEST_POINTER, snapshot.snapshot_id)

        logger.info(f"Saved calibration snapshot: {path}")
        return path

    def load(self, snapshot_id: str) -> CalibrationSnapshot:
        """Load snapshot from JSON file.

        Raises:
            FileNotFoundError: If the snapshot does not exist
        """
        path = self._snapshot_path(snapshot_id)
        if not path.exists():
            raise FileNotFoundError(f"Snapshot not found: {path}")

        with open(path) as f:
            data = json.load(f)

        snapshot = CalibrationSnapshot.from_dict(data)
        logger.info(f"Loaded calibration snapshot: {snapshot_id}")
        return snapshot

    def load_latest(self) -> Optional[CalibrationSnapshot]:
        """Load the snapshot LATEST points to, or None if nothing saved yet."""
        pointer = self.snapshot_dir / LATEST_POINTER
        if not pointer.exists():
            return None
        return self.load(pointer.read_text().strip())

    def publish(self, snapshot: CalibrationSnapshot, persist: bool = True) -> None:
        """Make snapshot the current one for readers.

        Persists first (if requested) so the in-memory swap never gets ahead
        of what is on disk.
        """
        if persist:
            self.save(snapshot)
        with self._lock:
            self._current = snapshot
        logger.info(f"Published calibration snapshot {snapshot.snapshot_id}")

    def current(self) -> Optional[CalibrationSnapshot]:
        """Currently published snapshot, loading LATEST from disk on first use."""
        with self._lock:
            if self._current is None:
                self._current = self.load_latest()
            return self._current
