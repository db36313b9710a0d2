"""Cloud Firestore REST backend: one document per user at users/{uid}/data/main."""

import json
import logging
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from core import Snapshot, SnapshotFormatError
from application.ports import (
    PushResult,
    RemoteTransport,
    TransportAuthError,
    TransportError,
    TransportPayloadError,
)
from .http_client import HttpClient

logger = logging.getLogger("blockout.transport.firestore")

SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
FIRESTORE_URL = "https://firestore.googleapis.com/v1"


class FirebaseIdentity:
    """Exchanges a Firebase refresh token for a short-lived ID token and the user's uid."""

    def __init__(
        self,
        api_key: str,
        refresh_token: str,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30,
    ) -> None:
        if not api_key or not refresh_token:
            raise TransportAuthError("firebase api_key and refresh_token are required")
        self.api_key = api_key
        self.refresh_token = refresh_token
        self.session = session or requests.Session()
        self._clock = clock
        self.timeout = timeout
        self._lock = Lock()
        self._uid = ""
        self._id_token = ""
        self._expires_at = 0.0

    def credentials(self) -> Tuple[str, str]:
        with self._lock:
            if self._id_token and self._clock() < self._expires_at - 60:
                return self._uid, self._id_token
            self._refresh()
            return self._uid, self._id_token

    def _refresh(self) -> None:
        try:
            response = self.session.post(
                SECURE_TOKEN_URL,
                params={"key": self.api_key},
                data={"grant_type": "refresh_token", "refresh_token": self.refresh_token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"secure token endpoint unreachable: {exc}") from exc
        if response.status_code in (400, 401, 403):
            raise TransportAuthError(f"firebase refresh token rejected (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise TransportError(f"secure token request failed: HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportAuthError(f"secure token endpoint returned non-JSON body: {exc}") from exc
        uid = body.get("user_id") if isinstance(body, dict) else None
        id_token = body.get("id_token") if isinstance(body, dict) else None
        if not uid or not id_token:
            raise TransportAuthError("secure token response lacks user_id/id_token")
        try:
            expires_in = float(body.get("expires_in") or 3600)
        except (TypeError, ValueError):
            expires_in = 3600.0
        self._uid = uid
        self._id_token = id_token
        self._expires_at = self._clock() + expires_in
        if body.get("refresh_token"):
            self.refresh_token = body["refresh_token"]
        logger.debug("Firebase ID token refreshed for uid=%s", uid)


def _field_value(fields: Dict[str, Any], name: str, kind: str) -> Any:
    value = fields.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise TransportPayloadError(f"document field {name} is not a value map: {value!r}")
    return value.get(kind)


def _integer_field(fields: Dict[str, Any], name: str) -> int:
    raw = _field_value(fields, name, "integerValue")
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        raise TransportPayloadError(f"document field {name} is not an integer: {raw!r}")


class FirestoreTransport(RemoteTransport):
    name = "firestore"

    def __init__(
        self,
        identity: FirebaseIdentity,
        project_id: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        max_attempts: int = 3,
    ) -> None:
        if not project_id:
            raise ValueError("firestore backend needs a project_id")
        self.identity = identity
        self.project_id = project_id
        self.client = HttpClient(session, self._token, timeout=timeout, max_attempts=max_attempts)

    def _token(self) -> Optional[str]:
        return self.identity.credentials()[1]

    def document_url(self) -> str:
        uid, _ = self.identity.credentials()
        return (
            f"{FIRESTORE_URL}/projects/{self.project_id}/databases/(default)/documents"
            f"/users/{uid}/data/main"
        )

    def fetch_remote(self) -> Optional[Snapshot]:
        response = self.client.request("GET", self.document_url(), allow_status=(404,), require_token=True)
        if response.status_code == 404:
            return None
        try:
            document = response.json()
        except ValueError as exc:
            raise TransportPayloadError(f"firestore returned non-JSON body: {exc}") from exc
        fields = document.get("fields") if isinstance(document, dict) else None
        if not isinstance(fields, dict):
            raise TransportPayloadError("firestore document has no fields")
        payload = _field_value(fields, "payload", "stringValue")
        if not payload:
            return None
        if not isinstance(payload, str):
            raise TransportPayloadError("firestore payload field is not a string")
        try:
            snapshot = Snapshot.from_dict(json.loads(payload))
        except (ValueError, SnapshotFormatError) as exc:
            raise TransportPayloadError(f"firestore payload is not a snapshot: {exc}") from exc
        # document-level counters are authoritative over the embedded copy
        snapshot.version = _integer_field(fields, "version") or snapshot.version
        snapshot.last_modified = _integer_field(fields, "lastModified") or snapshot.last_modified
        return snapshot

    def push_remote(self, snapshot: Snapshot) -> PushResult:
        document = {
            "fields": {
                "payload": {"stringValue": json.dumps(snapshot.to_dict(), ensure_ascii=False)},
                "version": {"integerValue": str(snapshot.version)},
                "lastModified": {"integerValue": str(snapshot.last_modified)},
            }
        }
        self.client.request(
            "PATCH",
            self.document_url(),
            json=document,
            headers={"Content-Type": "application/json"},
            require_token=True,
        )
        logger.debug("Firestore document written (v%s)", snapshot.version)
        return PushResult(version=snapshot.version)


__all__ = ["FirebaseIdentity", "FirestoreTransport"]
