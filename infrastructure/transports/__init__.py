"""Remote backends. One is active at a time, chosen by the user config."""

from typing import Optional

import requests

import config
from application.ports import RemoteTransport
from .http_client import HttpClient
from .self_hosted import SelfHostedTransport
from .dropbox import DropboxTransport
from .oauth_pkce import DropboxAuth
from .firestore import FirebaseIdentity, FirestoreTransport


def build_transport(backend: Optional[str] = None, session: Optional[requests.Session] = None) -> Optional[RemoteTransport]:
    """Backend from config (or the explicit name); None when sync is off.

    Missing credentials raise TransportAuthError / ValueError from the
    backend constructors so the caller can report them.
    """
    backend = config.get_backend() if backend is None else backend
    timeout = config.get_sync_settings()["timeout_seconds"]
    session = session or requests.Session()
    if backend == "http":
        cloud = config.get_cloud_config()
        return SelfHostedTransport(cloud["url"], cloud["token"], session=session, timeout=timeout)
    if backend == "dropbox":
        settings = config.get_dropbox_settings()
        auth = DropboxAuth(settings.get("client_id", ""), settings.get("redirect_uri", ""), session=session, timeout=timeout)
        return DropboxTransport(auth.access_token, session=session, timeout=timeout)
    if backend == "firestore":
        settings = config.get_firebase_settings()
        identity = FirebaseIdentity(
            settings.get("api_key", ""),
            settings.get("refresh_token", ""),
            session=session,
            timeout=timeout,
        )
        return FirestoreTransport(identity, settings.get("project_id", ""), session=session, timeout=timeout)
    return None


__all__ = [
    "HttpClient",
    "SelfHostedTransport",
    "DropboxTransport",
    "DropboxAuth",
    "FirebaseIdentity",
    "FirestoreTransport",
    "build_transport",
]
