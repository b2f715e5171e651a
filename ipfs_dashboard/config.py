"""Configuration primitives for the IPFS node dashboard."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional


@dataclass
class NodeEndpoint:
    name: str
    api_port: int
    gateway_port: int
    host: str = "localhost"
    scheme: str = "http"

    @property
    def api_address(self) -> str:
        return f"{self.host}:{self.api_port}"

    @property
    def gateway_address(self) -> str:
        return f"{self.host}:{self.gateway_port}"

    @property
    def api_url(self) -> str:
        return f"{self.scheme}://{self.api_address}"


@dataclass
class ClusterConfig:
    api_url: str = "http://localhost:9094"
    recent_pins_limit: int = 5
    health_cache_seconds: float = 5.0

    @property
    def api_address(self) -> str:
        return self.api_url.split("://", 1)[-1].rstrip("/")


@dataclass
class PrometheusConfig:
    endpoint: str = "http://localhost:9090"
    base_path: str = "/api/v1"
    scrape_port: int = 5001


@dataclass
class PollingConfig:
    timeout_seconds: float = 5.0
    max_workers: int = 8


@dataclass
class StorageMetricsConfig:
    state_path: Optional[str] = field(
        default_factory=lambda: str(Path.home() / ".ipfs_dashboard" / "storage_activity.json")
    )
    activity_limit: int = 5000


@dataclass
class AuthConfig:
    admin_roles: List[str] = field(default_factory=lambda: ["admin"])


@dataclass
class ObservabilityConfig:
    log_level: str = "INFO"
    alert_rules: List[Dict[str, object]] = field(default_factory=list)


def _default_nodes() -> List[NodeEndpoint]:
    return [
        NodeEndpoint(name=f"storage-node-{idx}", api_port=5000 + idx, gateway_port=8079 + idx)
        for idx in range(1, 5)
    ]


@dataclass
class DashboardConfig:
    nodes: List[NodeEndpoint] = field(default_factory=_default_nodes)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    prometheus: PrometheusConfig = field(default_factory=PrometheusConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage_metrics: StorageMetricsConfig = field(default_factory=StorageMetricsConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @staticmethod
    def default() -> "DashboardConfig":
        return DashboardConfig()

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "DashboardConfig":
        env = os.environ if environ is None else environ
        cfg = DashboardConfig.default()

        declared_nodes = env.get("IPFS_NODES")
        if declared_nodes:
            cfg.nodes = parse_nodes(declared_nodes)
        cluster_url = env.get("IPFS_CLUSTER_API_URL")
        if cluster_url:
            cfg.cluster.api_url = cluster_url.rstrip("/")
        prometheus_url = env.get("PROMETHEUS_URL")
        if prometheus_url:
            cfg.prometheus.endpoint = prometheus_url.rstrip("/")
        timeout = env.get("IPFS_POLL_TIMEOUT")
        if timeout:
            cfg.polling.timeout_seconds = float(timeout)
        workers = env.get("IPFS_POLL_WORKERS")
        if workers:
            cfg.polling.max_workers = max(1, int(workers))
        if "IPFS_DASHBOARD_STATE" in env:
            state_path = env["IPFS_DASHBOARD_STATE"].strip()
            cfg.storage_metrics.state_path = None if state_path.lower() in {"", "off", "none"} else state_path
        log_level = env.get("IPFS_DASHBOARD_LOG_LEVEL")
        if log_level:
            cfg.observability.log_level = log_level.upper()
        admin_roles = env.get("IPFS_DASHBOARD_ADMIN_ROLES")
        if admin_roles:
            cfg.auth.admin_roles = [role for role in admin_roles.replace(",", " ").split() if role]
        return cfg


def parse_nodes(value: str) -> List[NodeEndpoint]:
    """Parse ``name=host:api_port:gateway_port`` entries separated by commas.

    The host part is optional (``name=api_port:gateway_port``).
    """
    nodes: List[NodeEndpoint] = []
    for raw in value.split(","):
        entry = raw.strip()
        if not entry:
            continue
        name, sep, target = entry.partition("=")
        parts = target.split(":")
        if not sep or not name.strip() or len(parts) not in (2, 3):
            raise ValueError(f"Invalid IPFS_NODES entry: {entry!r}")
        host = parts[0].strip() if len(parts) == 3 else "localhost"
        try:
            api_port = int(parts[-2])
            gateway_port = int(parts[-1])
        except ValueError as exc:
            raise ValueError(f"Invalid port in IPFS_NODES entry: {entry!r}") from exc
        nodes.append(NodeEndpoint(name=name.strip(), api_port=api_port, gateway_port=gateway_port, host=host or "localhost"))
    if not nodes:
        raise ValueError("IPFS_NODES did not declare any nodes")
    return nodes
