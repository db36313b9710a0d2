import json
import logging
from typing import Callable, Optional

import requests

from core import Snapshot, SnapshotFormatError
from application.ports import PushResult, RemoteTransport, TransportError, TransportPayloadError
from .http_client import HttpClient

logger = logging.getLogger("blockout.transport.dropbox")

CONTENT_URL = "https://content.dropboxapi.com/2"
DEFAULT_PATH = "/blockout-data.json"


class DropboxTransport(RemoteTransport):
    """Whole snapshot as one JSON file in the user's Dropbox."""

    name = "dropbox"

    def __init__(
        self,
        token_provider: Callable[[], Optional[str]],
        path: str = DEFAULT_PATH,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        max_attempts: int = 3,
    ) -> None:
        self.path = path
        self.client = HttpClient(session, token_provider, timeout=timeout, max_attempts=max_attempts)

    def fetch_remote(self) -> Optional[Snapshot]:
        response = self.client.request(
            "POST",
            f"{CONTENT_URL}/files/download",
            headers={"Dropbox-API-Arg": json.dumps({"path": self.path})},
            allow_status=(409,),
            require_token=True,
        )
        if response.status_code == 409:
            if "not_found" in (response.text or ""):
                return None
            raise TransportError(f"dropbox download failed: {response.text[:200]}")
        try:
            body = json.loads(response.content or b"null")
        except ValueError as exc:
            raise TransportPayloadError(f"{self.path} is not JSON: {exc}") from exc
        if body is None:
            return None
        try:
            return Snapshot.from_dict(body)
        except SnapshotFormatError as exc:
            raise TransportPayloadError(f"{self.path} is not a snapshot: {exc}") from exc

    def push_remote(self, snapshot: Snapshot) -> PushResult:
        arg = {"path": self.path, "mode": "overwrite", "autorename": False, "mute": True}
        self.client.request(
            "POST",
            f"{CONTENT_URL}/files/upload",
            headers={"Dropbox-API-Arg": json.dumps(arg), "Content-Type": "application/octet-stream"},
            data=json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2).encode("utf-8"),
            require_token=True,
        )
        logger.debug("Uploaded %s (v%s)", self.path, snapshot.version)
        return PushResult(version=snapshot.version)


__all__ = ["DropboxTransport", "DEFAULT_PATH"]
