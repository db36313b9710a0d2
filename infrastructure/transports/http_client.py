import logging
import random
import time
from typing import Any, Callable, Dict, Iterable, Optional

import requests

from application.ports import TransportAuthError, TransportError

logger = logging.getLogger("blockout.transport")


class HttpClient:
    """Shared request plumbing: auth header, timeout, retry with jittered backoff.

    Network errors and 5xx answers are retried up to `max_attempts`; 401/403
    raise TransportAuthError; any other status >= 400 that the caller did not
    list in `allow_status` raises TransportError.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 30,
        max_attempts: int = 3,
        auth_scheme: str = "Bearer",
    ) -> None:
        self.session = session or requests.Session()
        self.token_provider = token_provider
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.auth_scheme = auth_scheme

    def _headers(self, extra: Optional[Dict[str, str]], require_token: bool) -> Dict[str, str]:
        headers = {"User-Agent": "blockout-sync/0.1"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"{self.auth_scheme} {token}"
        elif require_token:
            raise TransportAuthError("access token missing")
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        allow_status: Iterable[int] = (),
        require_token: bool = False,
        **kwargs: Any,
    ) -> requests.Response:
        allowed = set(allow_status)
        request_headers = self._headers(headers, require_token)
        attempt = 0
        delay = 1.0
        while True:
            attempt += 1
            try:
                response = self.session.request(method, url, headers=request_headers, timeout=self.timeout, **kwargs)
            except requests.RequestException as exc:
                if attempt >= self.max_attempts:
                    raise TransportError(f"{method} {url} failed: {exc}") from exc
                logger.warning("%s %s retry #%s after network error: %s", method, url, attempt, exc)
                self._sleep(delay)
                delay *= 2
                continue
            status = response.status_code
            if status >= 500 and attempt < self.max_attempts:
                logger.warning("%s %s retry #%s due to HTTP %s", method, url, attempt, status)
                self._sleep(delay)
                delay *= 2
                continue
            if status in allowed:
                return response
            if status in (401, 403):
                raise TransportAuthError(f"{method} {url} rejected credentials (HTTP {status})")
            if status >= 400:
                raise TransportError(f"{method} {url} failed: HTTP {status} {response.text[:200]}")
            return response

    def _sleep(self, base_delay: float) -> None:
        time.sleep(base_delay + random.uniform(0, base_delay))


__all__ = ["HttpClient"]
