import pytest

from core import (
    Category,
    ChainData,
    PomodoroSession,
    Snapshot,
    SnapshotFormatError,
    Subcategory,
    Task,
    TimeBlock,
)


def _wire():
    return {
        "tasks": {
            "t1": {
                "id": "t1",
                "title": "Write report",
                "categoryId": "c1",
                "completed": True,
                "completedAt": 1700000000500,
                "weight": 2,
                "createdAt": 1700000000000,
                "dependsOn": ["t0"],
            }
        },
        "categories": [
            {
                "id": "c1",
                "name": "Work",
                "color": "hsl(210, 72%, 62%)",
                "subcategories": [{"id": "s1", "name": "Docs", "categoryId": "c1"}],
            }
        ],
        "timeBlocks": {
            "b1": {
                "id": "b1",
                "name": "Sprint",
                "startDate": 1,
                "endDate": 2,
                "taskIds": ["t1", "t1", "t2"],
                "createdAt": 1,
            }
        },
        "activeBlockId": "b1",
        "pomodoroSessions": [{"id": "p1", "startTime": 10, "endTime": 20, "mode": "longBreak"}],
        "streak": {"completionDates": ["2024-05-01"], "currentStreak": 1, "longestStreak": 3},
        "chainData": {"templates": {"tpl": {"id": "tpl"}}, "chains": {"2024-05-01": {"links": []}}, "chainTasks": {}},
        "version": 7,
        "lastModified": 1700000000999,
    }


def test_from_dict_reads_camel_case_wire_format():
    snap = Snapshot.from_dict(_wire())
    task = snap.tasks["t1"]
    assert task.category_id == "c1"
    assert task.completed and task.completed_at == 1700000000500
    assert task.depends_on == ["t0"]
    assert snap.categories["c1"].subcategories == [Subcategory(id="s1", name="Docs", category_id="c1")]
    assert snap.time_blocks["b1"].task_ids == ["t1", "t2"]
    assert snap.pomodoro_sessions[0].mode == "longBreak"
    assert snap.streak.longest_streak == 3
    assert "2024-05-01" in snap.chain_data.chains
    assert (snap.version, snap.last_modified) == (7, 1700000000999)


def test_to_dict_omits_unset_optional_task_fields():
    task = Task(id="t", title="x", category_id="c", created_at=5)
    payload = task.to_dict()
    assert "completedAt" not in payload
    assert "dependsOn" not in payload
    assert payload["createdAt"] == 5


def test_missing_sections_default_to_empty():
    snap = Snapshot.from_dict({"version": 1})
    assert snap.tasks == {} and snap.categories == {}
    assert snap.chain_data == ChainData()
    assert not snap.has_content()


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"tasks": "nope"},
        {"version": "3"},
        {"tasks": {"t": {"id": "t", "title": 5}}},
        {"pomodoroSessions": [{"id": "p", "mode": "nap"}]},
        {"timeBlocks": {"b": {"id": "b", "taskIds": [1]}}},
    ],
)
def test_malformed_payload_raises_format_error(payload):
    with pytest.raises(SnapshotFormatError):
        Snapshot.from_dict(payload)


def test_has_content_counts_tasks_or_categories_only():
    assert Snapshot(categories={"c": Category(id="c", name="c")}).has_content()
    blocks_only = Snapshot(time_blocks={"b": TimeBlock(id="b", name="b", start_date=0, end_date=1, created_at=0)})
    assert not blocks_only.has_content()


def test_copy_helpers_do_not_alias():
    snap = Snapshot.from_dict(_wire())
    bumped = snap.with_version(9)
    bumped.tasks["t1"].title = "changed"
    assert snap.version == 7
    assert snap.tasks["t1"].title == "Write report"
    stamped = snap.stamped(42)
    assert stamped.last_modified == 42 and snap.last_modified == 1700000000999


def test_summary_counts():
    summary = Snapshot.from_dict(_wire()).summary()
    assert summary["tasks"] == 1
    assert summary["completed"] == 1
    assert summary["timeBlocks"] == 1
    assert summary["pomodoroSessions"] == 1


def test_pomodoro_session_is_immutable():
    session = PomodoroSession(id="p", start_time=1, end_time=2)
    with pytest.raises(Exception):
        session.mode = "break"
