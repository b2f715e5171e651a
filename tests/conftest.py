from __future__ import annotations

import json

import pytest
import requests

from ipfs_dashboard.config import DashboardConfig, StorageMetricsConfig
from ipfs_dashboard.runtime import DashboardRuntime

CLUSTER = "http://localhost:9094"
PROMETHEUS_QUERY = "http://localhost:9090/api/v1/query"


def node_url(port: int, endpoint: str) -> str:
    return f"http://localhost:{port}/api/v0/{endpoint}"


class StubResponse:
    def __init__(self, payload=None, status_code: int = 200, text: str | None = None, url: str = ""):
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)
        self.url = url

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is not None:
            return self._payload
        return json.loads(self.text)


class StubHTTP:
    """Route table keyed by ``(method, url)``; unknown routes refuse the connection."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def add(self, method: str, url: str, response) -> None:
        self.routes[(method, url)] = response

    def _dispatch(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        handler = self.routes.get((method, url))
        if handler is None:
            raise requests.ConnectionError(f"connection refused: {url}")
        if callable(handler):
            handler = handler(**kwargs)
        if isinstance(handler, Exception):
            raise handler
        return handler

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._dispatch("DELETE", url, **kwargs)

    def close(self) -> None:
        self.closed = True

    def called(self, method: str, url: str) -> int:
        return sum(1 for m, u, _ in self.calls if m == method and u == url)


def add_online_node(
    http: StubHTTP,
    port: int,
    *,
    peer_id: str = "12D3KooWExamplePeerIdentifier",
    peers: int = 2,
    repo_size=1024,
    num_objects=10,
    bitswap=None,
) -> None:
    http.add("POST", node_url(port, "id"), StubResponse({"ID": peer_id}))
    http.add("POST", node_url(port, "swarm/peers"), StubResponse({"Peers": [{"Peer": f"p{i}"} for i in range(peers)]}))
    http.add("POST", node_url(port, "repo/stat"), StubResponse({"RepoSize": repo_size, "NumObjects": num_objects}))
    http.add(
        "POST",
        node_url(port, "bitswap/stat"),
        StubResponse(bitswap or {"DataReceived": 100, "DataSent": 50, "BlocksReceived": 3, "BlocksSent": 1, "Peers": []}),
    )
    http.add(
        "POST",
        node_url(port, "stats/repo"),
        StubResponse({"RepoSize": str(repo_size), "StorageMax": "10000", "NumObjects": str(num_objects), "RepoPath": "/data/ipfs", "Version": "fs-repo@15"}),
    )


def prometheus_handler(values):
    def handler(params=None, **_):
        query = (params or {}).get("query")
        result = []
        if query in values:
            result = [{"metric": {}, "value": [1700000000.0, str(values[query])]}]
        return StubResponse({"status": "success", "data": {"resultType": "vector", "result": result}})

    return handler


@pytest.fixture
def config() -> DashboardConfig:
    cfg = DashboardConfig(storage_metrics=StorageMetricsConfig(state_path=None))
    cfg.cluster.health_cache_seconds = 0
    return cfg


@pytest.fixture
def stub_http() -> StubHTTP:
    return StubHTTP()


@pytest.fixture
def runtime(config: DashboardConfig, stub_http: StubHTTP) -> DashboardRuntime:
    return DashboardRuntime.bootstrap(config, http_client=stub_http)
