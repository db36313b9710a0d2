"""Live application state: the in-memory store every UI mutation goes through.

Mutations notify subscribers (the sync orchestrator debounces them into a
local save). Replacing the whole state from a sync cycle is silent so a
cycle never feeds back into another push.
"""

import uuid
from threading import RLock
from typing import Callable, Dict, List, Optional

from core import (
    POMODORO_MODES,
    Category,
    PomodoroSession,
    Snapshot,
    StreakData,
    Subcategory,
    Task,
    TimeBlock,
    calc_streak,
    now_ms,
    today_str,
)

PALETTE_HUES = (210, 160, 280, 340, 30, 120, 50, 190, 250, 0, 90, 310)


def category_color(index: int) -> str:
    hue = PALETTE_HUES[index % len(PALETTE_HUES)]
    return f"hsl({hue}, 72%, 62%)"


def _new_id() -> str:
    return str(uuid.uuid4())


class AppState:
    def __init__(self, snapshot: Optional[Snapshot] = None, clock: Callable[[], int] = now_ms) -> None:
        self._lock = RLock()
        self._clock = clock
        self._listeners: List[Callable[[], None]] = []
        self._snapshot = snapshot.copy() if snapshot else Snapshot()

    # ------------------------------------------------------------------
    # Subscription / whole-state access
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    @property
    def version(self) -> int:
        with self._lock:
            return self._snapshot.version

    @version.setter
    def version(self, value: int) -> None:
        with self._lock:
            self._snapshot.version = int(value)

    def replace(self, snapshot: Snapshot, notify: bool = False) -> None:
        with self._lock:
            self._snapshot = snapshot.copy()
        if notify:
            self._changed()

    def to_snapshot(self, last_modified: Optional[int] = None) -> Snapshot:
        """Serializable copy of the current state, stamped with `last_modified` (default: now)."""
        with self._lock:
            return self._snapshot.stamped(self._clock() if last_modified is None else last_modified)

    def view(self) -> Snapshot:
        with self._lock:
            return self._snapshot.copy()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def add_category(self, name: str) -> str:
        category_id = _new_id()
        with self._lock:
            index = len(self._snapshot.categories)
            self._snapshot.categories[category_id] = Category(
                id=category_id, name=name, color=category_color(index)
            )
        self._changed()
        return category_id

    def add_subcategory(self, category_id: str, name: str) -> Optional[str]:
        with self._lock:
            category = self._snapshot.categories.get(category_id)
            if category is None:
                return None
            sub_id = _new_id()
            category.subcategories.append(Subcategory(id=sub_id, name=name, category_id=category_id))
        self._changed()
        return sub_id

    def delete_category(self, category_id: str) -> bool:
        with self._lock:
            if self._snapshot.categories.pop(category_id, None) is None:
                return False
            doomed = [tid for tid, task in self._snapshot.tasks.items() if task.category_id == category_id]
            for task_id in doomed:
                self._drop_task(task_id)
        self._changed()
        return True

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(
        self,
        title: str,
        category_id: str,
        weight: float = 1,
        subcategory_id: Optional[str] = None,
        notes: Optional[str] = None,
        due_date: Optional[int] = None,
        depends_on: Optional[List[str]] = None,
    ) -> str:
        task_id = _new_id()
        with self._lock:
            self._snapshot.tasks[task_id] = Task(
                id=task_id,
                title=title,
                category_id=category_id,
                subcategory_id=subcategory_id,
                weight=weight or 1,
                notes=notes,
                due_date=due_date,
                depends_on=list(depends_on or []),
                created_at=self._clock(),
            )
        self._changed()
        return task_id

    def update_task(self, task_id: str, **updates) -> bool:
        immutable = {"id", "created_at", "completed", "completed_at"}
        bad = immutable.intersection(updates)
        if bad:
            raise ValueError(f"cannot update {', '.join(sorted(bad))} directly")
        with self._lock:
            task = self._snapshot.tasks.get(task_id)
            if task is None:
                return False
            for key, value in updates.items():
                if not hasattr(task, key):
                    raise ValueError(f"unknown task field: {key}")
                setattr(task, key, value)
        self._changed()
        return True

    def toggle_task(self, task_id: str) -> Optional[bool]:
        """Flip completion. Returns the new completed flag, or None for an unknown task."""
        with self._lock:
            task = self._snapshot.tasks.get(task_id)
            if task is None:
                return None
            task.completed = not task.completed
            task.completed_at = self._clock() if task.completed else None
            if task.completed:
                streak = self._snapshot.streak
                dates = list(streak.completion_dates)
                today = today_str()
                if today not in dates:
                    dates.append(today)
                current, longest = calc_streak(dates)
                self._snapshot.streak = StreakData(
                    completion_dates=dates, current_streak=current, longest_streak=longest
                )
            completed = task.completed
        self._changed()
        return completed

    def _drop_task(self, task_id: str) -> None:
        self._snapshot.tasks.pop(task_id, None)
        for block in self._snapshot.time_blocks.values():
            if task_id in block.task_ids:
                block.task_ids.remove(task_id)

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            if task_id not in self._snapshot.tasks:
                return False
            self._drop_task(task_id)
        self._changed()
        return True

    # ------------------------------------------------------------------
    # Time blocks
    # ------------------------------------------------------------------

    def add_time_block(self, name: str, start_date: int, end_date: int) -> str:
        if end_date < start_date:
            raise ValueError("time block ends before it starts")
        block_id = _new_id()
        with self._lock:
            self._snapshot.time_blocks[block_id] = TimeBlock(
                id=block_id, name=name, start_date=start_date, end_date=end_date, created_at=self._clock()
            )
            self._snapshot.active_block_id = block_id
        self._changed()
        return block_id

    def delete_time_block(self, block_id: str) -> bool:
        with self._lock:
            if self._snapshot.time_blocks.pop(block_id, None) is None:
                return False
            if self._snapshot.active_block_id == block_id:
                self._snapshot.active_block_id = None
        self._changed()
        return True

    def assign_task_to_block(self, task_id: str, block_id: str) -> bool:
        with self._lock:
            block = self._snapshot.time_blocks.get(block_id)
            if block is None or task_id in block.task_ids:
                return False
            block.task_ids.append(task_id)
        self._changed()
        return True

    def remove_task_from_block(self, task_id: str, block_id: str) -> bool:
        with self._lock:
            block = self._snapshot.time_blocks.get(block_id)
            if block is None or task_id not in block.task_ids:
                return False
            block.task_ids.remove(task_id)
        self._changed()
        return True

    def set_active_block(self, block_id: Optional[str]) -> None:
        with self._lock:
            self._snapshot.active_block_id = block_id
        self._changed()

    # ------------------------------------------------------------------
    # Pomodoro history / chains
    # ------------------------------------------------------------------

    def record_pomodoro_session(
        self, start_time: int, end_time: int, mode: str = "work", category_id: Optional[str] = None
    ) -> str:
        if mode not in POMODORO_MODES:
            raise ValueError(f"unknown pomodoro mode: {mode!r}")
        session_id = _new_id()
        with self._lock:
            self._snapshot.pomodoro_sessions.append(
                PomodoroSession(
                    id=session_id, start_time=start_time, end_time=end_time, mode=mode, category_id=category_id
                )
            )
        self._changed()
        return session_id

    def tasks(self) -> Dict[str, Task]:
        with self._lock:
            return self._snapshot.copy().tasks


__all__ = ["AppState", "category_color", "PALETTE_HUES"]
