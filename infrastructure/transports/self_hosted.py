import logging
from typing import Optional

import requests

from core import Snapshot, SnapshotFormatError
from application.ports import PushResult, RemoteTransport, TransportPayloadError
from .http_client import HttpClient

logger = logging.getLogger("blockout.transport.http")


class SelfHostedTransport(RemoteTransport):
    """`GET/PUT <base>/api/data` on a self-hosted server, optional bearer token."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        max_attempts: int = 3,
    ) -> None:
        if not base_url:
            raise ValueError("self-hosted backend needs a base URL")
        self.base_url = base_url.rstrip("/")
        self.client = HttpClient(session, lambda: token or None, timeout=timeout, max_attempts=max_attempts)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/data"

    def fetch_remote(self) -> Optional[Snapshot]:
        response = self.client.request("GET", self.endpoint, allow_status=(404,))
        if response.status_code == 404:
            return None
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportPayloadError(f"server returned non-JSON body: {exc}") from exc
        if body is None:
            return None
        try:
            return Snapshot.from_dict(body)
        except SnapshotFormatError as exc:
            raise TransportPayloadError(f"server returned malformed snapshot: {exc}") from exc

    def push_remote(self, snapshot: Snapshot) -> PushResult:
        response = self.client.request(
            "PUT",
            self.endpoint,
            json=snapshot.to_dict(),
            headers={"Content-Type": "application/json"},
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        version = body.get("version") if isinstance(body, dict) else None
        if isinstance(version, bool) or not isinstance(version, int):
            logger.warning("Server did not report a version; assuming v%s", snapshot.version)
            version = snapshot.version
        return PushResult(version=version)


__all__ = ["SelfHostedTransport"]
