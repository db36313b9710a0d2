#!/usr/bin/env python3
"""
blockout: sync client for the offline-first task data.

Wires the config, the file stores and the selected backend into a
SyncOrchestrator and exposes the CLI commands.
"""

import argparse
import logging
import sys
from typing import Dict, Optional

import yaml

import config
from application.state import AppState
from application.sync_service import SyncOrchestrator
from core import now_ms
from infrastructure.local_store import FileConflictStore, FileSnapshotStore
from infrastructure.transports import DropboxAuth, build_transport
from infrastructure.version_tracker import FileVersionTracker
from interface import cli_commands as _commands
from interface.cli_parser import build_parser as build_cli_parser


def make_tracker() -> FileVersionTracker:
    return FileVersionTracker(config.tracker_path())


def make_orchestrator(remote: bool = True) -> SyncOrchestrator:
    settings = config.get_sync_settings()
    transport = build_transport() if remote else None
    return SyncOrchestrator(
        AppState(),
        FileSnapshotStore(config.snapshot_path()),
        make_tracker(),
        transport,
        FileConflictStore(config.conflict_path()),
        debounce_seconds=settings["debounce_ms"] / 1000,
        push_interval_seconds=float(settings["push_interval_seconds"]),
        recompute_streaks=settings["recompute_streaks"],
    )


def make_dropbox_auth() -> DropboxAuth:
    settings = config.get_dropbox_settings()
    return DropboxAuth(
        settings.get("client_id", ""),
        settings.get("redirect_uri", ""),
        timeout=config.get_sync_settings()["timeout_seconds"],
    )


def configure_backend(name: str, options: Dict[str, str]) -> None:
    if name == "off":
        config.set_backend("")
        return
    if name == "http":
        config.set_cloud_config(options.get("url", ""), options.get("token", ""))
    elif name == "dropbox":
        changes = {key: options[key] for key in ("client_id", "redirect_uri") if key in options}
        current = config.get_dropbox_settings().get("client_id")
        if not changes.get("client_id") and not current:
            raise ValueError("dropbox backend needs --client-id")
        if current and changes.get("client_id", current) != current:
            # tokens were issued to the previous app key
            config.clear_dropbox_tokens()
        config.set_dropbox_settings(**changes)
    elif name == "firestore":
        changes = {key: options[key] for key in ("api_key", "project_id", "refresh_token") if key in options}
        merged = {**config.get_firebase_settings(), **changes}
        missing = [key for key in ("api_key", "project_id", "refresh_token") if not merged.get(key)]
        if missing:
            raise ValueError(f"firestore backend needs: {', '.join(missing)}")
        config.set_firebase_settings(**changes)
    config.set_backend(name)


def update_sync_setting(key: str, raw: Optional[str]) -> None:
    """Parse a CLI value as YAML scalar (`250`, `true`) and store it; None resets."""
    value = None
    if raw is not None:
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValueError(f"cannot parse value for {key}: {raw!r}") from exc
    config.set_sync_setting(key, value)


CLI_DEPS = _commands.CliDeps(
    orchestrator_factory=make_orchestrator,
    tracker_factory=make_tracker,
    dropbox_auth_factory=make_dropbox_auth,
    configure_backend=configure_backend,
    sync_settings=config.get_sync_settings,
    update_sync_setting=update_sync_setting,
    clock=now_ms,
)


def cmd_status(args: argparse.Namespace) -> int:
    return _commands.cmd_status(args, CLI_DEPS)


def cmd_sync(args: argparse.Namespace) -> int:
    return _commands.cmd_sync(args, CLI_DEPS)


def cmd_run(args: argparse.Namespace) -> int:
    return _commands.cmd_run(args, CLI_DEPS)


def cmd_resolve(args: argparse.Namespace) -> int:
    return _commands.cmd_resolve(args, CLI_DEPS)


def cmd_backend(args: argparse.Namespace) -> int:
    return _commands.cmd_backend(args, CLI_DEPS)


def cmd_dropbox_auth(args: argparse.Namespace) -> int:
    return _commands.cmd_dropbox_auth(args, CLI_DEPS)


def cmd_settings(args: argparse.Namespace) -> int:
    return _commands.cmd_settings(args, CLI_DEPS)


def cmd_task(args: argparse.Namespace) -> int:
    return _commands.cmd_task(args, CLI_DEPS)


def cmd_category(args: argparse.Namespace) -> int:
    return _commands.cmd_category(args, CLI_DEPS)


def cmd_block(args: argparse.Namespace) -> int:
    return _commands.cmd_block(args, CLI_DEPS)


def cmd_session(args: argparse.Namespace) -> int:
    return _commands.cmd_session(args, CLI_DEPS)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    return build_cli_parser(commands=sys.modules[__name__])


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(getattr(args, "verbose", False))
    if not getattr(args, "command", None):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
