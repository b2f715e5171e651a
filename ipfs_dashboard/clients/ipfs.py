"""Client for the Kubo (go-ipfs) RPC API exposed on ``/api/v0``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .http import JSONHTTPClient


@dataclass
class IPFSNodeClient(JSONHTTPClient):
    """The RPC API only accepts POST, even for read-only calls."""

    def _call(self, endpoint: str) -> Dict[str, Any]:
        payload = self._json("POST", f"/api/v0/{endpoint}")
        return payload if isinstance(payload, dict) else {}

    def node_id(self) -> Dict[str, Any]:
        return self._call("id")

    def swarm_peers(self) -> List[Dict[str, Any]]:
        return self._call("swarm/peers").get("Peers") or []

    def repo_stat(self) -> Dict[str, Any]:
        return self._call("repo/stat")

    def bitswap_stat(self) -> Dict[str, Any]:
        return self._call("bitswap/stat")

    def stats_repo(self) -> Dict[str, Any]:
        return self._call("stats/repo")
