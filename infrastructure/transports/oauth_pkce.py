"""OAuth2 authorization-code flow with PKCE for the Dropbox backend.

The code verifier is written to the user config before the browser leaves,
so `exchange_code` can finish the flow from a separate CLI invocation.
"""

import base64
import hashlib
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import requests

from application.ports import TransportAuthError, TransportError
from config import get_dropbox_settings, set_dropbox_settings

logger = logging.getLogger("blockout.transport.dropbox")

AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
SCOPES = "files.content.write files.content.read"
# refresh a little before the provider-side expiry
EXPIRY_MARGIN_SECONDS = 60


def generate_code_verifier(length: int = 64) -> str:
    if not 43 <= length <= 128:
        raise ValueError("code verifier length must be within 43..128")
    return secrets.token_urlsafe(length)[:length]


def code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class DropboxAuth:
    def __init__(
        self,
        client_id: str,
        redirect_uri: str = "",
        session: Optional[requests.Session] = None,
        load_settings: Callable[[], Dict[str, Any]] = get_dropbox_settings,
        save_settings: Callable[..., None] = set_dropbox_settings,
        clock: Callable[[], float] = time.time,
        timeout: float = 30,
    ) -> None:
        if not client_id:
            raise TransportAuthError("dropbox client_id is not configured")
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.session = session or requests.Session()
        self._load = load_settings
        self._save = save_settings
        self._clock = clock
        self.timeout = timeout

    def authorization_url(self) -> str:
        verifier = generate_code_verifier()
        self._save(code_verifier=verifier)
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "code_challenge": code_challenge(verifier),
            "code_challenge_method": "S256",
            "token_access_type": "offline",
            "scope": SCOPES,
        }
        if self.redirect_uri:
            params["redirect_uri"] = self.redirect_uri
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> Dict[str, Any]:
        verifier = self._load().get("code_verifier")
        if not verifier:
            raise TransportAuthError("no pending authorization; request a new URL first")
        data = {
            "code": code.strip(),
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "code_verifier": verifier,
        }
        if self.redirect_uri:
            data["redirect_uri"] = self.redirect_uri
        body = self._token_request(data)
        self._store_tokens(body, clear_verifier=True)
        return body

    def access_token(self) -> str:
        settings = self._load()
        token = settings.get("access_token") or ""
        try:
            expires_at = float(settings.get("expires_at") or 0)
        except (TypeError, ValueError):
            logger.warning("Unreadable Dropbox token expiry %r; treating token as expired", settings.get("expires_at"))
            expires_at = -1.0
        if token and (not expires_at or self._clock() < expires_at - EXPIRY_MARGIN_SECONDS):
            return token
        refresh = settings.get("refresh_token")
        if not refresh:
            if token:
                return token
            raise TransportAuthError("dropbox is not authorized; run dropbox-auth first")
        logger.info("Refreshing Dropbox access token")
        body = self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh, "client_id": self.client_id}
        )
        return self._store_tokens(body)

    def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = self.session.post(TOKEN_URL, data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"token endpoint unreachable: {exc}") from exc
        if response.status_code in (400, 401, 403):
            raise TransportAuthError(f"token request rejected (HTTP {response.status_code}): {response.text[:200]}")
        if response.status_code >= 400:
            raise TransportError(f"token request failed: HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportAuthError(f"token endpoint returned non-JSON body: {exc}") from exc
        if not isinstance(body, dict) or not body.get("access_token"):
            raise TransportAuthError("token endpoint returned no access_token")
        return body

    def _store_tokens(self, body: Dict[str, Any], clear_verifier: bool = False) -> str:
        changes: Dict[str, Any] = {"access_token": body["access_token"]}
        expires_in = body.get("expires_in")
        if isinstance(expires_in, (int, float)):
            changes["expires_at"] = int(self._clock() + expires_in)
        if body.get("refresh_token"):
            changes["refresh_token"] = body["refresh_token"]
        if clear_verifier:
            changes["code_verifier"] = None
        self._save(**changes)
        return body["access_token"]


__all__ = ["DropboxAuth", "generate_code_verifier", "code_challenge", "AUTHORIZE_URL", "TOKEN_URL"]
