"""Sync orchestration: local saves, reconciliation cycles, conflict review.

One orchestrator per running client. Its state is explicit: a status enum,
a pending-push flag and an in-flight mutex. Only one cycle runs at a time;
concurrent triggers are no-ops unless the caller asks to wait.
"""

import atexit
import logging
import threading
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Optional

from core import Snapshot, SyncStatus, now_ms
from application.classifier import SyncAction, classify
from application.merge import MergeInfo, merge_snapshots
from application.ports import (
    ConflictStore,
    LocalStore,
    LocalStoreError,
    RemoteTransport,
    TransportError,
    TransportPayloadError,
    VersionTracker,
)
from application.state import AppState
from util.timers import Debouncer, PeriodicTimer

logger = logging.getLogger("blockout.sync")

DEFAULT_DEBOUNCE_SECONDS = 0.8
DEFAULT_PUSH_INTERVAL_SECONDS = 300.0
RESOLVE_CHOICES = ("local", "remote")


@dataclass
class ConflictReview:
    """What the review UI gets after an automatic merge."""

    local: Snapshot
    remote: Snapshot
    merged: Snapshot
    merge_info: MergeInfo

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local": self.local.to_dict(),
            "remote": self.remote.to_dict(),
            "merged": self.merged.to_dict(),
            "mergeInfo": self.merge_info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConflictReview":
        return cls(
            local=Snapshot.from_dict(data.get("local")),
            remote=Snapshot.from_dict(data.get("remote")),
            merged=Snapshot.from_dict(data.get("merged")),
            merge_info=MergeInfo.from_dict(data.get("mergeInfo")),
        )


@dataclass
class CycleResult:
    action: Optional[SyncAction] = None
    status: SyncStatus = SyncStatus.IDLE
    version: Optional[int] = None
    merge_info: Optional[MergeInfo] = None
    error: Optional[str] = None
    message: str = ""
    skipped: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "action": self.action.value if self.action else None,
            "status": self.status.code,
            "version": self.version,
            "skipped": self.skipped,
        }
        if self.message:
            payload["message"] = self.message
        if self.error:
            payload["error"] = self.error
        if self.merge_info is not None:
            payload["mergeInfo"] = self.merge_info.to_dict()
            payload["mergeSummary"] = self.merge_info.summary()
        payload.update(self.details)
        return payload


class SyncOrchestrator:
    def __init__(
        self,
        state: AppState,
        store: LocalStore,
        tracker: VersionTracker,
        transport: Optional[RemoteTransport] = None,
        conflict_store: Optional[ConflictStore] = None,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        push_interval_seconds: float = DEFAULT_PUSH_INTERVAL_SECONDS,
        recompute_streaks: bool = False,
        on_conflict: Optional[Callable[[ConflictReview], None]] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.state = state
        self.store = store
        self.tracker = tracker
        self.transport = transport
        self.conflict_store = conflict_store
        self.recompute_streaks = recompute_streaks
        self.on_conflict = on_conflict
        self._clock = clock

        self.status = SyncStatus.IDLE
        self.pending_push = False
        self.last_error: Optional[str] = None
        self.last_result: Optional[CycleResult] = None
        self.conflict: Optional[ConflictReview] = None

        self._in_flight = Lock()
        self._last_saved: Optional[Snapshot] = None
        self._debouncer = Debouncer(debounce_seconds, self.save_local, name="blockout-local-save")
        self._ticker = PeriodicTimer(push_interval_seconds, self.tick, name="blockout-cloud-push")
        self._unsubscribe = state.subscribe(self.notify_mutation)
        self._exit_hook_registered = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    @property
    def backend(self) -> str:
        return getattr(self.transport, "name", "") if self.transport is not None else ""

    # ------------------------------------------------------------------
    # Local side: mutation -> debounce -> durable write -> pending flag
    # ------------------------------------------------------------------

    def notify_mutation(self) -> None:
        self._debouncer.trigger()

    def flush(self) -> bool:
        """Run a debounced local save immediately if one is waiting."""
        return self._debouncer.flush()

    def save_local(self) -> Snapshot:
        snapshot = self.state.to_snapshot(self._clock())
        self._last_saved = snapshot
        try:
            self.store.write(snapshot)
        except LocalStoreError as exc:
            logger.warning("Local save failed, keeping in-memory state: %s", exc)
        if self.in_flight:
            logger.debug("Local save during sync cycle; pending flag not raised")
        else:
            self.pending_push = True
        return snapshot

    def _read_local(self) -> Optional[Snapshot]:
        try:
            local = self.store.read()
        except LocalStoreError as exc:
            logger.warning("Local store unreadable, using in-memory copy: %s", exc)
            local = None
        if local is None and self._last_saved is not None:
            return self._last_saved.copy()
        return local

    def _persist(self, snapshot: Snapshot) -> None:
        self._last_saved = snapshot.copy()
        try:
            self.store.write(snapshot)
        except LocalStoreError as exc:
            logger.warning("Could not persist resolved snapshot locally: %s", exc)

    def open_local(self) -> Optional[Snapshot]:
        """Load the persisted local snapshot into the live state, without network."""
        local = self._read_local()
        if local is not None:
            self.state.replace(local)
        return local

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def load(self) -> CycleResult:
        """App start: local copy first, then one reconciliation pass."""
        self.open_local()
        self._load_pending_conflict()
        return self.sync_now(wait=True)

    def tick(self) -> Optional[CycleResult]:
        """Periodic push check. Clears the pending flag up front, re-raises it on failure."""
        if not self.pending_push or self.in_flight or self.transport is None:
            return None
        self.pending_push = False
        result = self.sync_now()
        if not result.ok:
            self.pending_push = True
        return result

    def sync_now(self, wait: bool = False) -> CycleResult:
        if self.transport is None:
            return CycleResult(status=self.status, message="no remote backend configured")
        if not self._in_flight.acquire(blocking=wait):
            return CycleResult(status=self.status, skipped=True, message="sync already in progress")
        result = CycleResult()
        try:
            self.status = SyncStatus.SYNCING
            self._run_cycle(result)
            self.status = SyncStatus.SYNCED
            self.last_error = None
        except TransportError as exc:
            self.status = SyncStatus.ERROR
            self.last_error = str(exc)
            result.error = str(exc)
            # the next tick retries a failed cycle
            self.pending_push = True
            logger.warning("Sync with %s failed: %s", self.backend, exc)
        finally:
            self._in_flight.release()
        result.status = self.status
        self.last_result = result
        return result

    def _fetch_remote(self) -> Optional[Snapshot]:
        try:
            return self.transport.fetch_remote()
        except TransportPayloadError as exc:
            logger.warning("Remote payload malformed, treating remote as absent: %s", exc)
            return None

    def _run_cycle(self, result: CycleResult) -> None:
        local = self._read_local()
        remote = self._fetch_remote()
        last_version = self.tracker.last_version()
        last_synced_at = self.tracker.last_synced_at()
        action = classify(local, remote, last_version, last_synced_at)
        result.action = action
        logger.info(
            "Sync decision %s (local v%s, remote v%s, anchor v%s@%s)",
            action.value,
            local.version if local else None,
            remote.version if remote else None,
            last_version,
            last_synced_at,
        )
        if action is SyncAction.NOOP:
            return
        if action is SyncAction.UPLOAD_ONLY:
            result.version = self._upload(local, last_version)
        elif action is SyncAction.TAKE_REMOTE:
            self._adopt(remote)
            result.version = remote.version
        else:
            self._merge(local, remote, last_version, last_synced_at, result)

    def _upload(self, snapshot: Snapshot, last_version: int) -> int:
        outgoing = snapshot.with_version(max(snapshot.version, last_version) + 1)
        pushed = self.transport.push_remote(outgoing)
        self.tracker.record_sync(pushed.version)
        self.state.version = pushed.version
        return pushed.version

    def _adopt(self, remote: Snapshot) -> None:
        self.state.replace(remote)
        self._persist(remote)
        if remote.version > 0:
            self.tracker.record_sync(remote.version)

    def _merge(
        self, local: Snapshot, remote: Snapshot, last_version: int, last_synced_at: int, result: CycleResult
    ) -> None:
        merged, info = merge_snapshots(
            local,
            remote,
            last_synced_at,
            last_version,
            now=self._clock(),
            recompute_streaks=self.recompute_streaks,
        )
        floor = max(remote.version, last_version)
        if merged.version <= floor:
            logger.error("Merge produced version %s, expected more than %s; not pushing", merged.version, floor)
            result.message = "merge discarded: version did not advance"
            return
        result.merge_info = info
        self.state.replace(merged)
        self._persist(merged)
        self._publish_conflict(ConflictReview(local=local, remote=remote, merged=merged, merge_info=info))
        pushed = self.transport.push_remote(merged)
        self.tracker.record_sync(pushed.version)
        self.state.version = pushed.version
        result.version = pushed.version

    # ------------------------------------------------------------------
    # Conflict review escape hatches
    # ------------------------------------------------------------------

    def _publish_conflict(self, review: ConflictReview) -> None:
        self.conflict = review
        logger.warning("Automatic merge applied: %s", review.merge_info.summary())
        if self.conflict_store is not None:
            try:
                self.conflict_store.save(review.to_dict())
            except LocalStoreError as exc:
                logger.warning("Could not persist merge review: %s", exc)
        if self.on_conflict is not None:
            self.on_conflict(review)

    def _load_pending_conflict(self) -> Optional[ConflictReview]:
        if self.conflict is not None or self.conflict_store is None:
            return self.conflict
        try:
            raw = self.conflict_store.load()
        except LocalStoreError as exc:
            logger.warning("Pending merge review unreadable: %s", exc)
            return None
        if not raw:
            return None
        try:
            self.conflict = ConflictReview.from_dict(raw)
        except ValueError as exc:
            logger.warning("Discarding malformed merge review: %s", exc)
            return None
        return self.conflict

    def _clear_conflict(self) -> None:
        self.conflict = None
        if self.conflict_store is not None:
            try:
                self.conflict_store.clear()
            except LocalStoreError as exc:
                logger.warning("Could not clear merge review: %s", exc)

    def resolve_conflict(self, choice: str) -> bool:
        """Discard the automatic merge in favour of one pre-merge side.

        `local` is persisted and pushed as a new version; `remote` is persisted
        and re-anchors the tracker without pushing. Returns False when there is
        no merge to review.
        """
        if choice not in RESOLVE_CHOICES:
            raise ValueError(f"choice must be one of {RESOLVE_CHOICES}, got {choice!r}")
        with self._in_flight:
            review = self._load_pending_conflict()
            if review is None:
                return False
            if choice == "remote":
                winner = review.remote.copy()
                self.state.replace(winner)
                self._persist(winner)
                if winner.version > 0:
                    self.tracker.record_sync(winner.version)
                self._clear_conflict()
                return True

            winner = review.local.stamped(self._clock())
            self.state.replace(winner)
            self._persist(winner)
            self._clear_conflict()
            if self.transport is None:
                self.pending_push = True
                return True
            try:
                self._upload(winner, self.tracker.last_version())
                self.status = SyncStatus.SYNCED
                self.last_error = None
            except TransportError as exc:
                logger.warning("Could not push local conflict resolution: %s", exc)
                self.status = SyncStatus.ERROR
                self.last_error = str(exc)
                self.pending_push = True
            return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def push_on_exit(self) -> Optional[threading.Thread]:
        """Fire-and-forget push of unsynced live state straight to the transport.

        Bypasses the mutex and the tracker; a lost push is accepted.
        """
        if self.transport is None or not (self.pending_push or self._debouncer.pending):
            return None
        snapshot = self.state.to_snapshot(self._clock())
        outgoing = snapshot.with_version(max(snapshot.version, self.tracker.last_version()) + 1)
        transport = self.transport

        def _push() -> None:
            try:
                transport.push_remote(outgoing)
            except TransportError as exc:
                logger.debug("Exit push failed: %s", exc)

        thread = threading.Thread(target=_push, name="blockout-exit-push", daemon=True)
        thread.start()
        return thread

    def _on_exit(self) -> None:
        thread = self.push_on_exit()
        self.stop()
        if thread is not None:
            thread.join(timeout=2.0)

    def start(self) -> CycleResult:
        result = self.load()
        self._ticker.start()
        if not self._exit_hook_registered:
            atexit.register(self._on_exit)
            self._exit_hook_registered = True
        return result

    def stop(self) -> None:
        self._ticker.stop()
        self.flush()

    def close(self) -> None:
        self.stop()
        self._unsubscribe()
        if self._exit_hook_registered:
            atexit.unregister(self._on_exit)
            self._exit_hook_registered = False

    def status_payload(self) -> Dict[str, Any]:
        return {
            "status": self.status.code,
            "backend": self.backend or None,
            "pending_push": self.pending_push,
            "in_flight": self.in_flight,
            "last_error": self.last_error,
            "last_version": self.tracker.last_version(),
            "last_synced_at": self.tracker.last_synced_at() or None,
            "conflict_pending": self._load_pending_conflict() is not None,
        }


__all__ = [
    "ConflictReview",
    "CycleResult",
    "SyncOrchestrator",
    "DEFAULT_DEBOUNCE_SECONDS",
    "DEFAULT_PUSH_INTERVAL_SECONDS",
    "RESOLVE_CHOICES",
]
