"""CLI parser construction for the blockout sync client."""

import argparse
from typing import Any

from application.sync_service import RESOLVE_CHOICES
from config import SYNC_DEFAULTS
from core import POMODORO_MODES


def build_parser(commands: Any) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockout",
        description="blockout: offline-first task data with cloud sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")

    sub = parser.add_subparsers(dest="command", help="Commands")

    # sync
    st = sub.add_parser("status", help="Tracker anchor, backend and local snapshot summary")
    st.set_defaults(func=commands.cmd_status)

    sy = sub.add_parser("sync", help="Run one reconciliation cycle now")
    sy.set_defaults(func=commands.cmd_sync)

    rn = sub.add_parser("run", help="Long-running client: load, periodic push, push on exit")
    rn.add_argument("--duration", type=float, metavar="SECONDS", help="stop after N seconds (default: until Ctrl-C)")
    rn.set_defaults(func=commands.cmd_run)

    rs = sub.add_parser("resolve", help="Replace the automatic merge with one side")
    rs.add_argument("choice", choices=list(RESOLVE_CHOICES))
    rs.set_defaults(func=commands.cmd_resolve)

    # backend selection
    bp = sub.add_parser("backend", help="Choose the remote backend and store its credentials")
    bp.add_argument("name", choices=["http", "dropbox", "firestore", "off"])
    bp.add_argument("--url", help="self-hosted server base URL")
    bp.add_argument("--token", help="self-hosted bearer token")
    bp.add_argument("--client-id", dest="client_id", help="Dropbox app key")
    bp.add_argument("--redirect-uri", dest="redirect_uri", help="Dropbox OAuth redirect URI")
    bp.add_argument("--api-key", dest="api_key", help="Firebase web API key")
    bp.add_argument("--project-id", dest="project_id", help="Firebase project id")
    bp.add_argument("--refresh-token", dest="refresh_token", help="Firebase refresh token")
    bp.set_defaults(func=commands.cmd_backend)

    dp = sub.add_parser("dropbox-auth", help="Dropbox OAuth2 PKCE: print URL, then exchange the code")
    dp.add_argument("step", choices=["url", "code"])
    dp.add_argument("code", nargs="?", help="authorization code shown by Dropbox")
    dp.set_defaults(func=commands.cmd_dropbox_auth)

    se = sub.add_parser("settings", help="Show or change sync tuning (debounce, push interval, streaks)")
    se.add_argument("key", nargs="?", choices=sorted(SYNC_DEFAULTS))
    se.add_argument("value", nargs="?", help="new value, e.g. 250 or true")
    se.add_argument("--reset", action="store_true", help="restore the default for KEY")
    se.set_defaults(func=commands.cmd_settings)

    # local data
    tp = sub.add_parser("task", help="Tasks")
    task_sub = tp.add_subparsers(dest="action", required=True)
    ta = task_sub.add_parser("add", help="Add a task")
    ta.add_argument("title")
    ta.add_argument("--category", "-c", required=True, help="category id (or unique prefix)")
    ta.add_argument("--weight", type=float)
    ta.add_argument("--notes")
    ta.add_argument("--due", help="due date (YYYY-MM-DD or epoch ms)")
    td = task_sub.add_parser("done", help="Toggle completion")
    td.add_argument("task_id")
    tx = task_sub.add_parser("delete", help="Delete a task")
    tx.add_argument("task_id")
    tl = task_sub.add_parser("list", help="List tasks")
    tl.add_argument("--open", action="store_true", help="only incomplete tasks")
    tp.set_defaults(func=commands.cmd_task)

    cp = sub.add_parser("category", help="Categories")
    cat_sub = cp.add_subparsers(dest="action", required=True)
    ca = cat_sub.add_parser("add", help="Add a category (or a subcategory with --sub-of)")
    ca.add_argument("name")
    ca.add_argument("--sub-of", dest="sub_of", help="parent category id")
    cp.set_defaults(func=commands.cmd_category)

    blp = sub.add_parser("block", help="Time blocks")
    block_sub = blp.add_subparsers(dest="action", required=True)
    ba = block_sub.add_parser("add", help="Add a time block and make it active")
    ba.add_argument("name")
    ba.add_argument("--start", required=True, help="YYYY-MM-DD or epoch ms")
    ba.add_argument("--end", required=True, help="YYYY-MM-DD or epoch ms")
    bs = block_sub.add_parser("assign", help="Assign a task to a block")
    bs.add_argument("task_id")
    bs.add_argument("block_id")
    blp.set_defaults(func=commands.cmd_block)

    sp = sub.add_parser("session", help="Pomodoro sessions")
    session_sub = sp.add_subparsers(dest="action", required=True)
    sa = session_sub.add_parser("add", help="Record a finished session ending now")
    sa.add_argument("--minutes", type=float, default=25)
    sa.add_argument("--mode", choices=list(POMODORO_MODES), default="work")
    sa.add_argument("--category", help="category id")
    sp.set_defaults(func=commands.cmd_session)

    return parser


__all__ = ["build_parser"]
