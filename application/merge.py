"""Automatic reconciliation of two diverged snapshots.

Remote is always the structural base. Local contributes only what can be
proven to be new since the last sync point (lastSyncedAt): tasks, blocks and
sessions created after it, completions made after it, and everything that is
add-only by nature (categories, block membership, completion dates, chains).

Known lossy edges:
- concurrent edits to an existing task other than completion are dropped in
  favour of remote (no per-field timestamps to arbitrate);
- nothing is ever deleted, so an entity removed on one side reappears.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core import ChainData, Snapshot, SnapshotFormatError, StreakData, calc_streak, now_ms, union_dates


@dataclass
class MergeInfo:
    tasks_added: List[str] = field(default_factory=list)
    tasks_completed: List[str] = field(default_factory=list)
    categories_added: List[str] = field(default_factory=list)
    subcategories_added: List[str] = field(default_factory=list)
    time_blocks_added: List[str] = field(default_factory=list)
    time_blocks_extended: List[str] = field(default_factory=list)
    sessions_added: List[str] = field(default_factory=list)
    completion_dates_added: List[str] = field(default_factory=list)
    chain_keys_added: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(self.to_dict().values())

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "tasksAdded": list(self.tasks_added),
            "tasksCompleted": list(self.tasks_completed),
            "categoriesAdded": list(self.categories_added),
            "subcategoriesAdded": list(self.subcategories_added),
            "timeBlocksAdded": list(self.time_blocks_added),
            "timeBlocksExtended": list(self.time_blocks_extended),
            "sessionsAdded": list(self.sessions_added),
            "completionDatesAdded": list(self.completion_dates_added),
            "chainKeysAdded": list(self.chain_keys_added),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MergeInfo":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise SnapshotFormatError("mergeInfo must be an object")

        def ids(key: str) -> List[str]:
            value = data.get(key)
            if value is None:
                return []
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise SnapshotFormatError(f"mergeInfo.{key} must be a list of strings")
            return list(value)

        return cls(
            tasks_added=ids("tasksAdded"),
            tasks_completed=ids("tasksCompleted"),
            categories_added=ids("categoriesAdded"),
            subcategories_added=ids("subcategoriesAdded"),
            time_blocks_added=ids("timeBlocksAdded"),
            time_blocks_extended=ids("timeBlocksExtended"),
            sessions_added=ids("sessionsAdded"),
            completion_dates_added=ids("completionDatesAdded"),
            chain_keys_added=ids("chainKeysAdded"),
        )

    def summary(self) -> str:
        parts = []
        labels = (
            (self.tasks_added, "new task(s)"),
            (self.tasks_completed, "completion(s)"),
            (self.categories_added, "categor(y/ies)"),
            (self.subcategories_added, "subcategor(y/ies)"),
            (self.time_blocks_added, "time block(s)"),
            (self.time_blocks_extended, "extended block(s)"),
            (self.sessions_added, "pomodoro session(s)"),
            (self.completion_dates_added, "streak day(s)"),
            (self.chain_keys_added, "chain entr(y/ies)"),
        )
        for items, label in labels:
            if items:
                parts.append(f"{len(items)} {label}")
        if not parts:
            return "Merged with remote; no local-only changes survived"
        return "Kept from this device: " + ", ".join(parts)


def _merge_tasks(local: Snapshot, remote: Snapshot, since: int, info: MergeInfo) -> Dict:
    merged = copy.deepcopy(remote.tasks)
    for task_id, local_task in local.tasks.items():
        remote_task = merged.get(task_id)
        if remote_task is None:
            if local_task.created_at > since:
                merged[task_id] = copy.deepcopy(local_task)
                info.tasks_added.append(task_id)
            continue
        if (
            local_task.completed
            and not remote_task.completed
            and local_task.completed_at is not None
            and local_task.completed_at > since
        ):
            remote_task.completed = True
            remote_task.completed_at = local_task.completed_at
            info.tasks_completed.append(task_id)
    return merged


def _merge_categories(local: Snapshot, remote: Snapshot, info: MergeInfo) -> Dict:
    merged = copy.deepcopy(remote.categories)
    for cat_id, local_cat in local.categories.items():
        remote_cat = merged.get(cat_id)
        if remote_cat is None:
            merged[cat_id] = copy.deepcopy(local_cat)
            info.categories_added.append(cat_id)
            continue
        known = {sub.id for sub in remote_cat.subcategories}
        for sub in local_cat.subcategories:
            if sub.id not in known:
                remote_cat.subcategories.append(copy.deepcopy(sub))
                known.add(sub.id)
                info.subcategories_added.append(sub.id)
    return merged


def _merge_time_blocks(local: Snapshot, remote: Snapshot, since: int, info: MergeInfo) -> Dict:
    merged = copy.deepcopy(remote.time_blocks)
    for block_id, local_block in local.time_blocks.items():
        remote_block = merged.get(block_id)
        if remote_block is None:
            if local_block.created_at > since:
                merged[block_id] = copy.deepcopy(local_block)
                info.time_blocks_added.append(block_id)
            continue
        extra = [task_id for task_id in local_block.task_ids if task_id not in remote_block.task_ids]
        if extra:
            remote_block.task_ids.extend(extra)
            info.time_blocks_extended.append(block_id)
    return merged


def _merge_sessions(local: Snapshot, remote: Snapshot, since: int, info: MergeInfo) -> List:
    merged = list(remote.pomodoro_sessions)
    known = {session.id for session in merged}
    for session in local.pomodoro_sessions:
        if session.id in known or session.start_time <= since:
            continue
        merged.append(session)
        known.add(session.id)
        info.sessions_added.append(session.id)
    return merged


def _merge_streak(local: Snapshot, remote: Snapshot, info: MergeInfo, recompute: bool) -> StreakData:
    dates = union_dates(remote.streak.completion_dates, local.streak.completion_dates)
    remote_dates = set(remote.streak.completion_dates)
    info.completion_dates_added.extend(d for d in dates if d not in remote_dates)
    if recompute:
        current, longest = calc_streak(dates)
    else:
        # Stored values, not recomputed: may under-report a streak that only
        # becomes contiguous in the union.
        current = max(local.streak.current_streak, remote.streak.current_streak)
        longest = max(local.streak.longest_streak, remote.streak.longest_streak)
    return StreakData(completion_dates=dates, current_streak=current, longest_streak=longest)


def _union_keyed(remote: Dict[str, Any], local: Dict[str, Any], prefix: str, info: MergeInfo) -> Dict[str, Any]:
    merged = copy.deepcopy(remote)
    for key, value in local.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
            info.chain_keys_added.append(f"{prefix}:{key}")
    return merged


def _merge_chains(local: Snapshot, remote: Snapshot, info: MergeInfo) -> ChainData:
    return ChainData(
        templates=_union_keyed(remote.chain_data.templates, local.chain_data.templates, "template", info),
        chains=_union_keyed(remote.chain_data.chains, local.chain_data.chains, "chain", info),
        chain_tasks=_union_keyed(remote.chain_data.chain_tasks, local.chain_data.chain_tasks, "chainTask", info),
    )


def merge_snapshots(
    local: Snapshot,
    remote: Snapshot,
    last_synced_at: int,
    last_version: int,
    now: Optional[int] = None,
    recompute_streaks: bool = False,
) -> Tuple[Snapshot, MergeInfo]:
    """Merge local into remote and return (merged snapshot, merge summary).

    Deterministic for fixed inputs and `now`: merging the same pair twice
    yields identical results.
    """
    info = MergeInfo()
    merged = Snapshot(
        tasks=_merge_tasks(local, remote, last_synced_at, info),
        categories=_merge_categories(local, remote, info),
        time_blocks=_merge_time_blocks(local, remote, last_synced_at, info),
        active_block_id=remote.active_block_id,
        pomodoro_sessions=_merge_sessions(local, remote, last_synced_at, info),
        streak=_merge_streak(local, remote, info, recompute_streaks),
        chain_data=_merge_chains(local, remote, info),
        version=max(remote.version, last_version) + 1,
        last_modified=now_ms() if now is None else int(now),
    )
    return merged, info


__all__ = ["MergeInfo", "merge_snapshots"]
