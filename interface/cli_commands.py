import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from application.ports import TransportError, VersionTracker
from application.sync_service import SyncOrchestrator
from infrastructure.transports.oauth_pkce import DropboxAuth
from interface.cli_io import format_timestamp, parse_timestamp, structured_error, structured_response
from util.sync_status import sync_status_label


OrchestratorFactory = Callable[[bool], SyncOrchestrator]


@dataclass
class CliDeps:
    orchestrator_factory: OrchestratorFactory
    tracker_factory: Callable[[], VersionTracker]
    dropbox_auth_factory: Callable[[], DropboxAuth]
    configure_backend: Callable[[str, Dict[str, str]], None]
    sync_settings: Callable[[], Dict[str, Any]]
    update_sync_setting: Callable[[str, Optional[str]], None]
    clock: Callable[[], int]
    wait_forever: Callable[[Optional[float]], None] = lambda seconds: threading.Event().wait(seconds)


def _resolve_id(ids: Iterable[str], ref: str) -> Optional[str]:
    """Exact id, or the single id starting with `ref`."""
    ids = list(ids)
    if ref in ids:
        return ref
    matches = [item for item in ids if item.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _open(deps: CliDeps, command: str, remote: bool):
    """Orchestrator with the local snapshot loaded; (None, rc) when the backend cannot be built."""
    try:
        orchestrator = deps.orchestrator_factory(remote)
    except (TransportError, ValueError) as exc:
        return None, structured_error(command, f"backend unavailable: {exc}")
    orchestrator.open_local()
    return orchestrator, 0


def _task_row(task, categories) -> Dict[str, Any]:
    category = categories.get(task.category_id)
    return {
        "id": task.id,
        "title": task.title,
        "category": category.name if category else task.category_id,
        "completed": task.completed,
        "completedAt": format_timestamp(task.completed_at),
        "dueDate": format_timestamp(task.due_date),
        "weight": task.weight,
    }


# ----------------------------------------------------------------------
# Sync commands
# ----------------------------------------------------------------------

def cmd_status(args, deps: CliDeps) -> int:
    orchestrator, rc = _open(deps, "status", remote=True)
    if orchestrator is None:
        return rc
    try:
        payload = orchestrator.status_payload()
        payload["local"] = orchestrator.state.view().summary()
        if orchestrator.conflict is not None:
            payload["mergeSummary"] = orchestrator.conflict.merge_info.summary()
    finally:
        orchestrator.close()
    return structured_response("status", message="sync status", payload=payload, summary=sync_status_label(payload))


def cmd_sync(args, deps: CliDeps) -> int:
    orchestrator, rc = _open(deps, "sync", remote=True)
    if orchestrator is None:
        return rc
    try:
        if orchestrator.transport is None:
            return structured_error("sync", "no backend configured; run `blockout backend ...` first")
        result = orchestrator.sync_now(wait=True)
        payload = result.to_dict()
        payload["status_line"] = sync_status_label(orchestrator.status_payload())
    finally:
        orchestrator.close()
    if not result.ok:
        return structured_error("sync", result.error or result.message, payload=payload)
    message = result.message or f"sync finished: {result.action.value if result.action else 'none'}"
    return structured_response("sync", message=message, payload=payload, summary=payload["status_line"])


def cmd_run(args, deps: CliDeps) -> int:
    orchestrator, rc = _open(deps, "run", remote=True)
    if orchestrator is None:
        return rc
    first = orchestrator.start()
    try:
        deps.wait_forever(getattr(args, "duration", None))
    except KeyboardInterrupt:
        pass
    finally:
        exit_push = orchestrator.push_on_exit()
        orchestrator.close()
        if exit_push is not None:
            exit_push.join(timeout=2.0)
    payload = {"first_cycle": first.to_dict(), "status": orchestrator.status_payload()}
    return structured_response("run", message="client stopped", payload=payload)


def cmd_resolve(args, deps: CliDeps) -> int:
    orchestrator, rc = _open(deps, "resolve", remote=True)
    if orchestrator is None:
        return rc
    try:
        resolved = orchestrator.resolve_conflict(args.choice)
        payload = orchestrator.status_payload()
    finally:
        orchestrator.close()
    if not resolved:
        return structured_error("resolve", "no merge review pending")
    return structured_response("resolve", message=f"kept {args.choice} version", payload=payload)


def cmd_backend(args, deps: CliDeps) -> int:
    name = args.name
    options = {
        key: value
        for key, value in {
            "url": getattr(args, "url", None),
            "token": getattr(args, "token", None),
            "client_id": getattr(args, "client_id", None),
            "redirect_uri": getattr(args, "redirect_uri", None),
            "api_key": getattr(args, "api_key", None),
            "project_id": getattr(args, "project_id", None),
            "refresh_token": getattr(args, "refresh_token", None),
        }.items()
        if value
    }
    if name == "http" and not options.get("url"):
        return structured_error("backend", "http backend needs --url")
    try:
        deps.configure_backend(name, options)
    except ValueError as exc:
        return structured_error("backend", str(exc))
    # a new remote has its own version counter
    deps.tracker_factory().reset()
    payload = {"backend": None if name == "off" else name, "options": sorted(options)}
    return structured_response("backend", message=f"backend set to {name}", payload=payload)


def cmd_dropbox_auth(args, deps: CliDeps) -> int:
    try:
        auth = deps.dropbox_auth_factory()
        if args.step == "url":
            url = auth.authorization_url()
            return structured_response(
                "dropbox-auth",
                message="open the URL, approve access, then run `blockout dropbox-auth code <CODE>`",
                payload={"url": url},
            )
        if not getattr(args, "code", None):
            return structured_error("dropbox-auth", "authorization code is required")
        body = auth.exchange_code(args.code)
    except TransportError as exc:
        return structured_error("dropbox-auth", str(exc))
    payload = {"account_id": body.get("account_id"), "expires_in": body.get("expires_in")}
    return structured_response("dropbox-auth", message="dropbox connected", payload=payload)


def cmd_settings(args, deps: CliDeps) -> int:
    key = getattr(args, "key", None)
    value = getattr(args, "value", None)
    reset = getattr(args, "reset", False)
    if key and (value is not None or reset):
        try:
            deps.update_sync_setting(key, None if reset else value)
        except ValueError as exc:
            return structured_error("settings", str(exc))
    settings = deps.sync_settings()
    if not key:
        return structured_response("settings", message="sync settings", payload=settings)
    if key not in settings:
        return structured_error("settings", f"unknown sync setting: {key}")
    return structured_response("settings", message=f"{key} = {settings[key]}", payload={key: settings[key]})


# ----------------------------------------------------------------------
# Local mutations
# ----------------------------------------------------------------------

def cmd_task(args, deps: CliDeps) -> int:
    command = f"task {args.action}"
    orchestrator, rc = _open(deps, command, remote=False)
    if orchestrator is None:
        return rc
    state = orchestrator.state
    try:
        view = state.view()
        if args.action == "list":
            tasks = sorted(view.tasks.values(), key=lambda t: t.created_at)
            if getattr(args, "open", False):
                tasks = [t for t in tasks if not t.completed]
            rows = [_task_row(task, view.categories) for task in tasks]
            return structured_response(command, message="tasks", payload={"total": len(rows), "tasks": rows})

        if args.action == "add":
            category_id = _resolve_id(view.categories, args.category)
            if category_id is None:
                return structured_error(command, f"category {args.category!r} not found")
            due = parse_timestamp(args.due) if getattr(args, "due", None) else None
            task_id = state.add_task(
                args.title,
                category_id,
                weight=getattr(args, "weight", None) or 1,
                notes=getattr(args, "notes", None),
                due_date=due,
            )
            return structured_response(command, message="task added", payload={"id": task_id})

        task_id = _resolve_id(view.tasks, args.task_id)
        if task_id is None:
            return structured_error(command, f"task {args.task_id!r} not found")
        if args.action == "done":
            completed = state.toggle_task(task_id)
            return structured_response(
                command,
                message="task completed" if completed else "task reopened",
                payload={"id": task_id, "completed": completed, "streak": state.view().streak.to_dict()},
            )
        state.delete_task(task_id)
        return structured_response(command, message="task deleted", payload={"id": task_id})
    except ValueError as exc:
        return structured_error(command, str(exc))
    finally:
        orchestrator.close()


def cmd_category(args, deps: CliDeps) -> int:
    orchestrator, rc = _open(deps, "category add", remote=False)
    if orchestrator is None:
        return rc
    state = orchestrator.state
    try:
        parent = getattr(args, "sub_of", None)
        if parent:
            category_id = _resolve_id(state.view().categories, parent)
            sub_id = state.add_subcategory(category_id, args.name) if category_id else None
            if sub_id is None:
                return structured_error("category add", f"category {parent!r} not found")
            return structured_response(
                "category add", message="subcategory added", payload={"id": sub_id, "categoryId": category_id}
            )
        category_id = state.add_category(args.name)
        color = state.view().categories[category_id].color
        return structured_response("category add", message="category added", payload={"id": category_id, "color": color})
    finally:
        orchestrator.close()


def cmd_block(args, deps: CliDeps) -> int:
    command = f"block {args.action}"
    orchestrator, rc = _open(deps, command, remote=False)
    if orchestrator is None:
        return rc
    state = orchestrator.state
    try:
        view = state.view()
        if args.action == "add":
            start, end = parse_timestamp(args.start), parse_timestamp(args.end)
            if end < start:
                return structured_error(command, "block ends before it starts")
            block_id = state.add_time_block(args.name, start, end)
            return structured_response(command, message="time block added", payload={"id": block_id})
        task_id = _resolve_id(view.tasks, args.task_id)
        block_id = _resolve_id(view.time_blocks, args.block_id)
        if task_id is None or block_id is None:
            return structured_error(command, "task or block not found")
        state.assign_task_to_block(task_id, block_id)
        task_ids = state.view().time_blocks[block_id].task_ids
        return structured_response(command, message="task assigned", payload={"block": block_id, "taskIds": task_ids})
    except ValueError as exc:
        return structured_error(command, str(exc))
    finally:
        orchestrator.close()


def cmd_session(args, deps: CliDeps) -> int:
    orchestrator, rc = _open(deps, "session add", remote=False)
    if orchestrator is None:
        return rc
    state = orchestrator.state
    try:
        end = deps.clock()
        start = end - int(args.minutes * 60_000)
        category_id = None
        if getattr(args, "category", None):
            category_id = _resolve_id(state.view().categories, args.category)
            if category_id is None:
                return structured_error("session add", f"category {args.category!r} not found")
        session_id = state.record_pomodoro_session(start, end, mode=args.mode, category_id=category_id)
        return structured_response(
            "session add", message="pomodoro session recorded", payload={"id": session_id, "mode": args.mode}
        )
    except ValueError as exc:
        return structured_error("session add", str(exc))
    finally:
        orchestrator.close()


__all__ = [
    "CliDeps",
    "cmd_status",
    "cmd_sync",
    "cmd_run",
    "cmd_resolve",
    "cmd_backend",
    "cmd_dropbox_auth",
    "cmd_settings",
    "cmd_task",
    "cmd_category",
    "cmd_block",
    "cmd_session",
]
