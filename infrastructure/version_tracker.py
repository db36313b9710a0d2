"""Sync anchor: the version and time of the last successful reconciliation.

Both values live in one small JSON file so they are always written together.
Anything unreadable reads as "never synced" (0, 0).
"""

import json
import logging
import time
from pathlib import Path
from threading import Lock
from typing import Callable, Tuple

from application.ports import VersionTracker
from infrastructure.local_store import atomic_write_text

logger = logging.getLogger("blockout.tracker")


def _valid(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class FileVersionTracker(VersionTracker):
    def __init__(self, path: Path, clock: Callable[[], int] = lambda: int(time.time() * 1000)):
        self.path = Path(path)
        self._clock = clock
        self._lock = Lock()

    def _load(self) -> Tuple[int, int]:
        if not self.path.exists():
            return 0, 0
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            logger.warning("Sync state at %s is corrupt; treating as never synced", self.path)
            return 0, 0
        if not isinstance(data, dict):
            return 0, 0
        version = data.get("version", 0)
        synced_at = data.get("syncedAt", 0)
        if not (_valid(version) and _valid(synced_at)):
            logger.warning("Sync state at %s has invalid values; treating as never synced", self.path)
            return 0, 0
        return version, synced_at

    def record_sync(self, version: int) -> None:
        with self._lock:
            data = {"version": int(version), "syncedAt": int(self._clock())}
            try:
                atomic_write_text(self.path, json.dumps(data))
            except OSError as exc:
                logger.warning("Could not persist sync state: %s", exc)

    def last_version(self) -> int:
        with self._lock:
            return self._load()[0]

    def last_synced_at(self) -> int:
        with self._lock:
            return self._load()[1]

    def reset(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not reset sync state: %s", exc)


__all__ = ["FileVersionTracker"]
