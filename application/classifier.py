"""Divergence classification between the local and remote snapshot.

Pure logic: receives both snapshots and the tracker anchor as parameters.
"""

from enum import Enum
from typing import Optional

from core import Snapshot


class SyncAction(Enum):
    NOOP = "noop"
    UPLOAD_ONLY = "upload_only"
    TAKE_REMOTE = "take_remote"
    MERGE = "merge"


def classify(
    local: Optional[Snapshot],
    remote: Optional[Snapshot],
    last_version: int,
    last_synced_at: int,
) -> SyncAction:
    """Map (local, remote, tracker anchor) to exactly one sync action.

    Rules are evaluated in order:
    1. no remote: upload local if there is one, else nothing to do
    2. no local: take remote
    3. never synced against a remote that already holds data: take remote
    4. both sides moved since the anchor: merge
    5. only remote moved: take remote
    6. keep the side with the newer lastModified (equal stamps: nothing to do)
    """
    if remote is None:
        return SyncAction.UPLOAD_ONLY if local is not None else SyncAction.NOOP
    if local is None:
        return SyncAction.TAKE_REMOTE

    # lastVersion is checked on its own: lastSyncedAt == 0 with lastVersion > 0
    # is an inconsistent tracker, not a first connect.
    if last_version == 0 and remote.version > 0 and remote.has_content():
        return SyncAction.TAKE_REMOTE

    remote_moved = remote.version > last_version
    local_moved = last_synced_at > 0 and local.last_modified > last_synced_at
    if remote_moved and local_moved:
        return SyncAction.MERGE
    if remote_moved:
        return SyncAction.TAKE_REMOTE

    if local.last_modified > remote.last_modified:
        return SyncAction.UPLOAD_ONLY
    if remote.last_modified > local.last_modified:
        return SyncAction.TAKE_REMOTE
    return SyncAction.NOOP


__all__ = ["SyncAction", "classify"]
