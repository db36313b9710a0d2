from core import (
    Category,
    ChainData,
    PomodoroSession,
    Snapshot,
    StreakData,
    Subcategory,
    Task,
    TimeBlock,
)
from application.merge import MergeInfo, merge_snapshots


def _task(task_id, created_at=10, completed=False, completed_at=None, title=None):
    return Task(
        id=task_id,
        title=title or task_id,
        category_id="c1",
        created_at=created_at,
        completed=completed,
        completed_at=completed_at,
    )


def _block(block_id, task_ids, created_at=10):
    return TimeBlock(id=block_id, name=block_id, start_date=0, end_date=1, created_at=created_at, task_ids=list(task_ids))


def test_local_creation_after_anchor_survives_remote_progress():
    local = Snapshot(tasks={"T1": _task("T1", created_at=100)}, version=3, last_modified=100)
    remote = Snapshot(tasks={"T2": _task("T2", created_at=80)}, version=4, last_modified=90)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=200)
    assert set(merged.tasks) == {"T1", "T2"}
    assert merged.version == 5
    assert merged.last_modified == 200
    assert info.tasks_added == ["T1"]


def test_local_task_older_than_anchor_is_treated_as_deleted_remotely():
    local = Snapshot(tasks={"OLD": _task("OLD", created_at=20)})
    remote = Snapshot(version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert "OLD" not in merged.tasks
    assert info.tasks_added == []


def test_local_completion_after_anchor_is_overlaid():
    local = Snapshot(tasks={"T3": _task("T3", completed=True, completed_at=120)})
    remote = Snapshot(tasks={"T3": _task("T3", title="renamed remotely")}, version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    task = merged.tasks["T3"]
    assert task.completed and task.completed_at == 120
    assert task.title == "renamed remotely"
    assert info.tasks_completed == ["T3"]


def test_stale_local_completion_is_not_overlaid():
    local = Snapshot(tasks={"T3": _task("T3", completed=True, completed_at=30)})
    remote = Snapshot(tasks={"T3": _task("T3")}, version=4)
    merged, _ = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert not merged.tasks["T3"].completed


def test_remote_completion_is_never_undone():
    local = Snapshot(tasks={"T": _task("T")})
    remote = Snapshot(tasks={"T": _task("T", completed=True, completed_at=70)}, version=4)
    merged, _ = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert merged.tasks["T"].completed


def test_time_block_task_ids_are_unioned():
    local = Snapshot(time_blocks={"B": _block("B", ["A"])})
    remote = Snapshot(time_blocks={"B": _block("B", ["B"])}, version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert set(merged.time_blocks["B"].task_ids) == {"A", "B"}
    assert info.time_blocks_extended == ["B"]


def test_new_local_block_added_old_one_dropped():
    local = Snapshot(time_blocks={"NEW": _block("NEW", [], created_at=60), "GONE": _block("GONE", [], created_at=5)})
    remote = Snapshot(version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert set(merged.time_blocks) == {"NEW"}
    assert info.time_blocks_added == ["NEW"]


def test_categories_and_subcategories_union():
    local_cat = Category(
        id="c1",
        name="Local name",
        subcategories=[Subcategory(id="s-local", name="x", category_id="c1")],
    )
    remote_cat = Category(
        id="c1",
        name="Remote name",
        subcategories=[Subcategory(id="s-remote", name="y", category_id="c1")],
    )
    local = Snapshot(categories={"c1": local_cat, "c2": Category(id="c2", name="Home")})
    remote = Snapshot(categories={"c1": remote_cat}, version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert merged.categories["c1"].name == "Remote name"
    assert [s.id for s in merged.categories["c1"].subcategories] == ["s-remote", "s-local"]
    assert "c2" in merged.categories
    assert info.categories_added == ["c2"]
    assert info.subcategories_added == ["s-local"]


def test_sessions_after_anchor_appended_once():
    shared = PomodoroSession(id="p0", start_time=10, end_time=20)
    fresh = PomodoroSession(id="p1", start_time=60, end_time=70)
    stale = PomodoroSession(id="p2", start_time=40, end_time=45)
    local = Snapshot(pomodoro_sessions=[shared, stale, fresh])
    remote = Snapshot(pomodoro_sessions=[shared], version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert [s.id for s in merged.pomodoro_sessions] == ["p0", "p1"]
    assert info.sessions_added == ["p1"]


def test_streak_union_takes_max_by_default():
    local = Snapshot(streak=StreakData(["2024-05-01", "2024-05-03"], current_streak=1, longest_streak=4))
    remote = Snapshot(streak=StreakData(["2024-05-02"], current_streak=2, longest_streak=2), version=4)
    merged, info = merge_snapshots(local, remote, last_synced_at=50, last_version=3, now=1)
    assert merged.streak.completion_dates == ["2024-05-01", "2024-05-02", "2024-05-03"]
    assert (merged.streak.current_streak, merged.streak.longest_streak) == (2, 4)
    assert info.completion_dates_added == ["2024-05-01", "2024-05-03"]


def test_streak_recompute_opt_in_uses_union():
    local = Snapshot(streak=StreakData(["2024-05-01", "2024-05-03"], 0, 1))
    remote = Snapshot(streak=StreakData(["2024-05-02"], 0, 1), version=4)
    merged, _ = merge_snapshots(local, remote, 50, 3, now=1, recompute_streaks=True)
    assert merged.streak.longest_streak == 3


def test_chain_entries_unioned_remote_wins_on_key_clash():
    local = Snapshot(chain_data=ChainData(templates={"t1": {"id": "t1", "name": "local"}, "t2": {"id": "t2"}}))
    remote = Snapshot(chain_data=ChainData(templates={"t1": {"id": "t1", "name": "remote"}}), version=4)
    merged, info = merge_snapshots(local, remote, 50, 3, now=1)
    assert merged.chain_data.templates["t1"]["name"] == "remote"
    assert "t2" in merged.chain_data.templates
    assert info.chain_keys_added == ["template:t2"]


def test_version_is_one_past_the_larger_of_remote_and_anchor():
    merged, _ = merge_snapshots(Snapshot(), Snapshot(version=2), 50, 7, now=1)
    assert merged.version == 8
    merged, _ = merge_snapshots(Snapshot(), Snapshot(version=9), 50, 7, now=1)
    assert merged.version == 10


def test_merge_is_idempotent_for_fixed_inputs():
    local = Snapshot(
        tasks={"T1": _task("T1", created_at=100), "T3": _task("T3", completed=True, completed_at=120)},
        time_blocks={"B": _block("B", ["T1"])},
    )
    remote = Snapshot(tasks={"T3": _task("T3")}, time_blocks={"B": _block("B", ["T3"])}, version=4)
    first = merge_snapshots(local, remote, 50, 3, now=500)
    second = merge_snapshots(local, remote, 50, 3, now=500)
    assert first[0].to_dict() == second[0].to_dict()
    assert first[1] == second[1]


def test_merge_leaves_inputs_untouched():
    local = Snapshot(time_blocks={"B": _block("B", ["A"])})
    remote = Snapshot(time_blocks={"B": _block("B", ["B"])}, version=4)
    merge_snapshots(local, remote, 50, 3, now=1)
    assert remote.time_blocks["B"].task_ids == ["B"]
    assert local.time_blocks["B"].task_ids == ["A"]


def test_merge_info_summary_and_round_trip():
    info = MergeInfo(tasks_added=["a", "b"], sessions_added=["p"])
    assert "2 new task(s)" in info.summary()
    assert MergeInfo.from_dict(info.to_dict()) == info
    assert MergeInfo().is_empty
    assert "no local-only changes" in MergeInfo().summary()
