import pytest

from core import Snapshot, today_str
from application.state import AppState, PALETTE_HUES, category_color


class Clock:
    def __init__(self, start=1000):
        self.now = start

    def __call__(self):
        self.now += 1
        return self.now


def _state():
    return AppState(clock=Clock())


def test_mutations_notify_subscribers_until_unsubscribed():
    state = _state()
    calls = []
    unsubscribe = state.subscribe(lambda: calls.append(1))
    state.add_category("Work")
    assert calls == [1]
    unsubscribe()
    state.add_category("Home")
    assert calls == [1]


def test_replace_is_silent_unless_asked():
    state = _state()
    calls = []
    state.subscribe(lambda: calls.append(1))
    state.replace(Snapshot(version=4))
    assert calls == []
    assert state.version == 4
    state.replace(Snapshot(version=5), notify=True)
    assert calls == [1]


def test_category_colors_cycle_through_palette():
    state = _state()
    ids = [state.add_category(f"c{i}") for i in range(len(PALETTE_HUES) + 1)]
    view = state.view()
    assert view.categories[ids[0]].color == category_color(0)
    assert view.categories[ids[-1]].color == view.categories[ids[0]].color
    assert category_color(1) == "hsl(160, 72%, 62%)"


def test_subcategory_requires_known_category():
    state = _state()
    assert state.add_subcategory("missing", "x") is None
    cat = state.add_category("Work")
    sub = state.add_subcategory(cat, "Docs")
    assert state.view().categories[cat].subcategories[0].id == sub


def test_add_task_stamps_created_at_from_clock():
    state = _state()
    cat = state.add_category("Work")
    task_id = state.add_task("Write", cat, weight=3)
    task = state.view().tasks[task_id]
    assert task.created_at > 1000
    assert task.weight == 3
    assert not task.completed


def test_toggle_task_maintains_completed_at_and_streak():
    state = _state()
    cat = state.add_category("Work")
    task_id = state.add_task("Write", cat)
    assert state.toggle_task(task_id) is True
    view = state.view()
    assert view.tasks[task_id].completed_at is not None
    assert view.streak.completion_dates == [today_str()]
    assert view.streak.current_streak == 1
    assert state.toggle_task(task_id) is False
    assert state.view().tasks[task_id].completed_at is None
    assert state.toggle_task("missing") is None


def test_update_task_rejects_protected_fields():
    state = _state()
    task_id = state.add_task("Write", state.add_category("Work"))
    with pytest.raises(ValueError):
        state.update_task(task_id, completed=True)
    with pytest.raises(ValueError):
        state.update_task(task_id, colour="red")
    assert state.update_task(task_id, title="Rewrite", notes="n")
    assert state.view().tasks[task_id].title == "Rewrite"
    assert not state.update_task("missing", title="x")


def test_delete_task_removes_block_membership():
    state = _state()
    task_id = state.add_task("Write", state.add_category("Work"))
    block = state.add_time_block("Sprint", 0, 10)
    assert state.assign_task_to_block(task_id, block)
    assert not state.assign_task_to_block(task_id, block)
    assert state.delete_task(task_id)
    assert state.view().time_blocks[block].task_ids == []


def test_delete_category_cascades_to_its_tasks():
    state = _state()
    cat = state.add_category("Work")
    state.add_task("Write", cat)
    assert state.delete_category(cat)
    assert state.view().tasks == {}


def test_time_block_lifecycle_tracks_active_block():
    state = _state()
    block = state.add_time_block("Sprint", 0, 10)
    assert state.view().active_block_id == block
    with pytest.raises(ValueError):
        state.add_time_block("Bad", 10, 0)
    assert state.remove_task_from_block("x", block) is False
    assert state.delete_time_block(block)
    assert state.view().active_block_id is None


def test_record_pomodoro_session_validates_mode():
    state = _state()
    with pytest.raises(ValueError):
        state.record_pomodoro_session(0, 1, mode="nap")
    session_id = state.record_pomodoro_session(0, 1, mode="break")
    assert state.view().pomodoro_sessions[0].id == session_id


def test_to_snapshot_stamps_last_modified_without_touching_live_state():
    state = _state()
    state.add_category("Work")
    snap = state.to_snapshot(last_modified=77)
    assert snap.last_modified == 77
    assert state.view().last_modified == 0
    snap.categories.clear()
    assert state.view().categories
