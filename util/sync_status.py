from datetime import datetime
from typing import Any, Dict, List, Tuple

from core import SyncStatus


def _clock_label(epoch_ms: Any) -> str:
    if not isinstance(epoch_ms, int) or epoch_ms <= 0:
        return "—"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%H:%M")


def sync_status_fragments(payload: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Unified status label for the cloud backend, as (style, text) fragments."""
    backend = payload.get("backend")
    if not backend:
        return [("class:text.dim", "Cloud □ off")]

    status = SyncStatus.from_string(str(payload.get("status") or ""))
    label = f"Cloud {status.icon} {backend} {status.code}"
    if status is SyncStatus.ERROR and payload.get("last_error"):
        label = f"{label}: {payload['last_error']}"
    elif payload.get("last_version"):
        label = f"{label} v{payload['last_version']} at {_clock_label(payload.get('last_synced_at'))}"

    entries: List[Tuple[str, str]] = [(f"class:status.{status.code}", label)]
    if payload.get("pending_push"):
        entries.append(("class:icon.warn", "● unsynced"))
    if payload.get("conflict_pending"):
        entries.append(("class:icon.warn", "⚠ merge review"))
    return entries


def sync_status_label(payload: Dict[str, Any]) -> str:
    return " ".join(text for _, text in sync_status_fragments(payload))


__all__ = ["sync_status_fragments", "sync_status_label"]
