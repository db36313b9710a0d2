"""Snapshot model: the complete task-management state exchanged with a backend.

Everything here is plain data plus (de)serialization to the camelCase JSON
wire format. No I/O.
"""

import copy
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional


POMODORO_MODES = ("work", "break", "longBreak")


class SnapshotFormatError(ValueError):
    """Raised when a payload does not look like a snapshot."""


def now_ms() -> int:
    return int(time.time() * 1000)


def _opt_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotFormatError(f"{name} must be a number")
    return int(value)


def _int(value: Any, name: str, default: int = 0) -> int:
    parsed = _opt_int(value, name)
    return default if parsed is None else parsed


def _str(value: Any, name: str, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise SnapshotFormatError(f"{name} must be a string")
    return value


def _opt_str(value: Any, name: str) -> Optional[str]:
    if value is None:
        return None
    return _str(value, name)


def _str_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise SnapshotFormatError(f"{name} must be a list of strings")
    return list(value)


def _object(value: Any, name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise SnapshotFormatError(f"{name} must be an object")
    return value


def _keyed(value: Any, name: str) -> Dict[str, Dict[str, Any]]:
    """Accept `{id: entity}` or `[entity, ...]` and return entities keyed by id."""
    if value is None:
        return {}
    if isinstance(value, list):
        keyed: Dict[str, Dict[str, Any]] = {}
        for item in value:
            entity = _object(item, name)
            keyed[_str(entity.get("id"), f"{name}.id")] = entity
        return keyed
    if isinstance(value, dict):
        return {key: _object(item, f"{name}.{key}") for key, item in value.items()}
    raise SnapshotFormatError(f"{name} must be an object or a list")


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


@dataclass
class Task:
    id: str
    title: str
    category_id: str
    created_at: int
    completed: bool = False
    completed_at: Optional[int] = None
    weight: float = 1
    subcategory_id: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[int] = None
    depends_on: List[str] = field(default_factory=list)
    actual_duration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "id": self.id,
            "title": self.title,
            "categoryId": self.category_id,
            "subcategoryId": self.subcategory_id,
            "completed": self.completed,
            "completedAt": self.completed_at,
            "weight": self.weight,
            "notes": self.notes,
            "dueDate": self.due_date,
            "createdAt": self.created_at,
            "dependsOn": list(self.depends_on) or None,
            "actualDuration": self.actual_duration,
        }
        return _compact(payload)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        data = _object(data, "task")
        weight = data.get("weight", 1)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise SnapshotFormatError("task.weight must be a number")
        return cls(
            id=_str(data.get("id"), "task.id"),
            title=_str(data.get("title"), "task.title"),
            category_id=_str(data.get("categoryId"), "task.categoryId"),
            subcategory_id=_opt_str(data.get("subcategoryId"), "task.subcategoryId"),
            completed=bool(data.get("completed", False)),
            completed_at=_opt_int(data.get("completedAt"), "task.completedAt"),
            weight=weight,
            notes=_opt_str(data.get("notes"), "task.notes"),
            due_date=_opt_int(data.get("dueDate"), "task.dueDate"),
            created_at=_int(data.get("createdAt"), "task.createdAt"),
            depends_on=_str_list(data.get("dependsOn"), "task.dependsOn"),
            actual_duration=_opt_int(data.get("actualDuration"), "task.actualDuration"),
        )


@dataclass
class Subcategory:
    id: str
    name: str
    category_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "categoryId": self.category_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subcategory":
        data = _object(data, "subcategory")
        return cls(
            id=_str(data.get("id"), "subcategory.id"),
            name=_str(data.get("name"), "subcategory.name"),
            category_id=_str(data.get("categoryId"), "subcategory.categoryId"),
        )


@dataclass
class Category:
    id: str
    name: str
    color: str = ""
    subcategories: List[Subcategory] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "subcategories": [sub.to_dict() for sub in self.subcategories],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        data = _object(data, "category")
        raw_subs = data.get("subcategories") or []
        if not isinstance(raw_subs, list):
            raise SnapshotFormatError("category.subcategories must be a list")
        return cls(
            id=_str(data.get("id"), "category.id"),
            name=_str(data.get("name"), "category.name"),
            color=_str(data.get("color"), "category.color"),
            subcategories=[Subcategory.from_dict(sub) for sub in raw_subs],
        )


@dataclass
class TimeBlock:
    id: str
    name: str
    start_date: int
    end_date: int
    created_at: int
    task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "taskIds": list(self.task_ids),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeBlock":
        data = _object(data, "timeBlock")
        task_ids: List[str] = []
        for task_id in _str_list(data.get("taskIds"), "timeBlock.taskIds"):
            if task_id not in task_ids:
                task_ids.append(task_id)
        return cls(
            id=_str(data.get("id"), "timeBlock.id"),
            name=_str(data.get("name"), "timeBlock.name"),
            start_date=_int(data.get("startDate"), "timeBlock.startDate"),
            end_date=_int(data.get("endDate"), "timeBlock.endDate"),
            created_at=_int(data.get("createdAt"), "timeBlock.createdAt"),
            task_ids=task_ids,
        )


@dataclass(frozen=True)
class PomodoroSession:
    id: str
    start_time: int
    end_time: int
    mode: str = "work"
    category_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "startTime": self.start_time,
                "endTime": self.end_time,
                "mode": self.mode,
                "categoryId": self.category_id,
            }
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PomodoroSession":
        data = _object(data, "pomodoroSession")
        mode = _str(data.get("mode"), "pomodoroSession.mode", "work")
        if mode not in POMODORO_MODES:
            raise SnapshotFormatError(f"unknown pomodoro mode: {mode!r}")
        return cls(
            id=_str(data.get("id"), "pomodoroSession.id"),
            start_time=_int(data.get("startTime"), "pomodoroSession.startTime"),
            end_time=_int(data.get("endTime"), "pomodoroSession.endTime"),
            mode=mode,
            category_id=_opt_str(data.get("categoryId"), "pomodoroSession.categoryId"),
        )


@dataclass
class StreakData:
    completion_dates: List[str] = field(default_factory=list)  # YYYY-MM-DD
    current_streak: int = 0
    longest_streak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completionDates": list(self.completion_dates),
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StreakData":
        if data is None:
            return cls()
        data = _object(data, "streak")
        return cls(
            completion_dates=_str_list(data.get("completionDates"), "streak.completionDates"),
            current_streak=_int(data.get("currentStreak"), "streak.currentStreak"),
            longest_streak=_int(data.get("longestStreak"), "streak.longestStreak"),
        )


@dataclass
class ChainData:
    """Task-chain state. Entries stay opaque JSON objects; sync only needs their keys."""

    templates: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    chains: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # keyed by YYYY-MM-DD
    chain_tasks: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "templates": copy.deepcopy(self.templates),
            "chains": copy.deepcopy(self.chains),
            "chainTasks": copy.deepcopy(self.chain_tasks),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChainData":
        if data is None:
            return cls()
        data = _object(data, "chainData")
        return cls(
            templates=copy.deepcopy(_keyed(data.get("templates"), "chainData.templates")),
            chains={
                key: copy.deepcopy(_object(value, f"chainData.chains.{key}"))
                for key, value in _object(data.get("chains") or {}, "chainData.chains").items()
            },
            chain_tasks=copy.deepcopy(_keyed(data.get("chainTasks"), "chainData.chainTasks")),
        )


@dataclass
class Snapshot:
    tasks: Dict[str, Task] = field(default_factory=dict)
    categories: Dict[str, Category] = field(default_factory=dict)
    time_blocks: Dict[str, TimeBlock] = field(default_factory=dict)
    active_block_id: Optional[str] = None
    pomodoro_sessions: List[PomodoroSession] = field(default_factory=list)
    streak: StreakData = field(default_factory=StreakData)
    chain_data: ChainData = field(default_factory=ChainData)
    version: int = 0
    last_modified: int = 0  # epoch ms

    def has_content(self) -> bool:
        """True when the snapshot carries tasks or categories (first-connect rule)."""
        return bool(self.tasks) or bool(self.categories)

    def copy(self) -> "Snapshot":
        return copy.deepcopy(self)

    def with_version(self, version: int) -> "Snapshot":
        return replace(self.copy(), version=int(version))

    def stamped(self, last_modified: Optional[int] = None) -> "Snapshot":
        return replace(self.copy(), last_modified=now_ms() if last_modified is None else int(last_modified))

    def summary(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "lastModified": self.last_modified,
            "tasks": len(self.tasks),
            "completed": sum(1 for task in self.tasks.values() if task.completed),
            "categories": len(self.categories),
            "timeBlocks": len(self.time_blocks),
            "pomodoroSessions": len(self.pomodoro_sessions),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": {task_id: task.to_dict() for task_id, task in self.tasks.items()},
            "categories": {cat_id: cat.to_dict() for cat_id, cat in self.categories.items()},
            "timeBlocks": {block_id: block.to_dict() for block_id, block in self.time_blocks.items()},
            "activeBlockId": self.active_block_id,
            "pomodoroSessions": [session.to_dict() for session in self.pomodoro_sessions],
            "streak": self.streak.to_dict(),
            "chainData": self.chain_data.to_dict(),
            "version": self.version,
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        data = _object(data, "snapshot")
        sessions = data.get("pomodoroSessions") or []
        if not isinstance(sessions, list):
            raise SnapshotFormatError("pomodoroSessions must be a list")
        return cls(
            tasks={key: Task.from_dict(value) for key, value in _keyed(data.get("tasks"), "tasks").items()},
            categories={
                key: Category.from_dict(value) for key, value in _keyed(data.get("categories"), "categories").items()
            },
            time_blocks={
                key: TimeBlock.from_dict(value) for key, value in _keyed(data.get("timeBlocks"), "timeBlocks").items()
            },
            active_block_id=_opt_str(data.get("activeBlockId"), "activeBlockId"),
            pomodoro_sessions=[PomodoroSession.from_dict(item) for item in sessions],
            streak=StreakData.from_dict(data.get("streak")),
            chain_data=ChainData.from_dict(data.get("chainData")),
            version=_int(data.get("version"), "version"),
            last_modified=_int(data.get("lastModified"), "lastModified"),
        )


__all__ = [
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
]
