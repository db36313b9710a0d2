from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from core import Snapshot


class TransportError(RuntimeError):
    """Remote backend unreachable or failing (network, server, auth)."""


class TransportAuthError(TransportError):
    pass


class TransportPayloadError(TransportError):
    """Remote answered with something that is not a snapshot."""


class LocalStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class PushResult:
    version: int


class LocalStore(Protocol):
    def read(self) -> Optional[Snapshot]:
        ...

    def write(self, snapshot: Snapshot) -> None:
        ...


class ConflictStore(Protocol):
    def load(self) -> Optional[Dict[str, Any]]:
        ...

    def save(self, review: Dict[str, Any]) -> None:
        ...

    def clear(self) -> None:
        ...


class VersionTracker(Protocol):
    def record_sync(self, version: int) -> None:
        ...

    def last_version(self) -> int:
        ...

    def last_synced_at(self) -> int:
        ...

    def reset(self) -> None:
        ...


class RemoteTransport(Protocol):
    name: str

    def fetch_remote(self) -> Optional[Snapshot]:
        ...

    def push_remote(self, snapshot: Snapshot) -> PushResult:
        ...
