from enum import Enum
from typing import Final, Literal


class SyncStatus(Enum):
    IDLE = ("idle", "○")
    SYNCING = ("syncing", "◐")
    SYNCED = ("synced", "✓")
    ERROR = ("error", "!")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def icon(self) -> str:
        return self.value[1]

    @classmethod
    def from_string(cls, value: str) -> "SyncStatus":
        token = normalize_sync_status(value)
        for status in cls:
            if status.code == token:
                return status
        return cls.IDLE


SyncStatusCode = Literal["idle", "syncing", "synced", "error"]

_CANONICAL_CODES: Final[frozenset[str]] = frozenset({"idle", "syncing", "synced", "error"})


def normalize_sync_status(value: str) -> str:
    """Normalize a status token to its canonical lower-case code ("" when unknown)."""
    token = (value or "").strip().lower()
    return token if token in _CANONICAL_CODES else ""
