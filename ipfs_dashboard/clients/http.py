"""Shared plumbing for the JSON-over-HTTP upstream clients."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional

import requests

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    """Raised when an upstream daemon cannot be reached or answers badly."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    return session


@dataclass
class JSONHTTPClient:
    """Base client; ``http_client`` overrides the per-thread ``requests`` sessions.

    Polls fan out across a thread pool and ``requests.Session`` is not
    documented as thread-safe, so each worker thread lazily gets its own.
    """

    base_url: str
    timeout: float = 5.0
    http_client: Any = None
    _local: threading.local = field(default_factory=threading.local, init=False, repr=False)
    _sessions: List[requests.Session] = field(default_factory=list, init=False, repr=False)
    _sessions_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def session(self) -> Any:
        if self.http_client is not None:
            return self.http_client
        session = getattr(self._local, "session", None)
        if session is None:
            session = build_session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, *, allow_statuses: tuple = (), **kwargs: Any) -> Any:
        url = self._url(path)
        sender = getattr(self.session, method.lower())
        try:
            response = sender(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise UpstreamError(f"{method} {url} failed: {exc}", url) from exc
        if response.status_code in allow_statuses:
            return response
        if not response.ok:
            raise UpstreamError(
                f"{method} {url} returned {response.status_code}",
                url,
                status_code=response.status_code,
            )
        return response

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._request(method, path, **kwargs)
        url = self._url(path)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"{method} {url} returned invalid JSON", url) from exc

    def close(self) -> None:
        if self.http_client is not None:
            closer = getattr(self.http_client, "close", None)
            if callable(closer):
                closer()
            return
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
