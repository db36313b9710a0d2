import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from core import Snapshot, SnapshotFormatError
from application.ports import ConflictStore, LocalStore, LocalStoreError

logger = logging.getLogger("blockout.store")


def atomic_write_text(target: Path, text: str) -> None:
    """Write through a temp file in the same directory, then os.replace."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        os.replace(str(tmp_path), str(target))
    finally:
        if tmp_path and tmp_path.exists() and tmp_path != target:
            try:
                tmp_path.unlink()
            except OSError:
                pass


class FileSnapshotStore(LocalStore):
    """The single durable local record: one JSON file read and written wholesale."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[Snapshot]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LocalStoreError(f"cannot read {self.path}: {exc}") from exc
        try:
            return Snapshot.from_dict(raw)
        except SnapshotFormatError as exc:
            raise LocalStoreError(f"{self.path} is not a snapshot: {exc}") from exc

    def write(self, snapshot: Snapshot) -> None:
        try:
            atomic_write_text(self.path, json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2))
        except OSError as exc:
            raise LocalStoreError(f"cannot write {self.path}: {exc}") from exc
        logger.debug("Local snapshot saved (v%s, lastModified=%s)", snapshot.version, snapshot.last_modified)


class FileConflictStore(ConflictStore):
    """Pending merge review, kept on disk until the user resolves or dismisses it."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LocalStoreError(f"cannot read {self.path}: {exc}") from exc
        return data if isinstance(data, dict) else None

    def save(self, review: Dict[str, Any]) -> None:
        try:
            atomic_write_text(self.path, json.dumps(review, ensure_ascii=False, indent=2))
        except OSError as exc:
            raise LocalStoreError(f"cannot write {self.path}: {exc}") from exc

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise LocalStoreError(f"cannot remove {self.path}: {exc}") from exc


__all__ = ["atomic_write_text", "FileSnapshotStore", "FileConflictStore"]
