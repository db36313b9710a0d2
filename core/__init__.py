from .status import SyncStatus
from .snapshot import (
    POMODORO_MODES,
    SnapshotFormatError,
    now_ms,
    Task,
    Subcategory,
    Category,
    TimeBlock,
    PomodoroSession,
    StreakData,
    ChainData,
    Snapshot,
)
from .streak import calc_streak, today_str, union_dates

__all__ = [
    "SyncStatus",
    # Snapshot model
    "POMODORO_MODES",
    "SnapshotFormatError",
    "now_ms",
    "Task",
    "Subcategory",
    "Category",
    "TimeBlock",
    "PomodoroSession",
    "StreakData",
    "ChainData",
    "Snapshot",
    # Streaks
    "calc_streak",
    "today_str",
    "union_dates",
]
