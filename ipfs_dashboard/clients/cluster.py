"""Client for the IPFS Cluster REST API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..formatting import parse_json_or_ndjson, parse_ndjson
from .http import JSONHTTPClient, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class ClusterClient(JSONHTTPClient):
    def health(self) -> bool:
        try:
            self._request("GET", "/health")
        except UpstreamError as exc:
            logger.debug("Cluster health check failed: %s", exc)
            return False
        return True

    def identity(self) -> Dict[str, Any]:
        return self._json("GET", "/id")

    def peers(self) -> List[Dict[str, Any]]:
        response = self._request("GET", "/peers")
        return parse_json_or_ndjson(response.text)

    def pins(self) -> List[Dict[str, Any]]:
        response = self._request("GET", "/pins")
        return parse_json_or_ndjson(response.text)

    def pin(self, cid: str) -> Optional[Dict[str, Any]]:
        response = self._request("GET", f"/pins/{cid}", allow_statuses=(404,))
        if response.status_code == 404:
            return None
        return response.json()

    def unpin(self, cid: str) -> None:
        self._request("DELETE", f"/pins/{cid}", allow_statuses=(404,))

    def add(self, name: str, content: bytes, metadata: Optional[Mapping[str, str]] = None, timeout: float = 30.0) -> Dict[str, Any]:
        """Upload ``content`` through ``/add`` and return the final add event."""
        fields = {f"meta-{key}": (None, value) for key, value in (metadata or {}).items()}
        fields["file"] = (name, content)
        url = self._url("/add")
        try:
            response = self.session.post(url, files=fields, timeout=timeout)
        except requests.RequestException as exc:
            raise UpstreamError(f"POST {url} failed: {exc}", url) from exc
        if not response.ok:
            raise UpstreamError(f"POST {url} returned {response.status_code}: {response.text}", url, response.status_code)
        return _last_add_event(response.text, url)


def extract_cid(event: Mapping[str, Any]) -> Optional[str]:
    for key in ("cid", "Cid", "hash", "Hash"):
        value = event.get(key)
        if isinstance(value, dict):
            value = value.get("/")
        if value:
            return str(value)
    return None


def _last_add_event(text: str, url: str) -> Dict[str, Any]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        events = parse_ndjson(text)
        if not events:
            raise UpstreamError(f"No valid JSON in add response: {text[:200]}", url)
        return events[-1]
    if isinstance(payload, list):
        if not payload:
            raise UpstreamError("Empty add response", url)
        return payload[-1]
    return payload
