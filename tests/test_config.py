from __future__ import annotations

import pytest

from ipfs_dashboard.config import DashboardConfig, parse_nodes


def test_default_config_declares_four_local_nodes():
    cfg = DashboardConfig.default()
    assert [node.name for node in cfg.nodes] == [f"storage-node-{i}" for i in range(1, 5)]
    assert [node.api_port for node in cfg.nodes] == [5001, 5002, 5003, 5004]
    assert [node.gateway_port for node in cfg.nodes] == [8080, 8081, 8082, 8083]
    assert cfg.nodes[0].api_url == "http://localhost:5001"
    assert cfg.cluster.api_address == "localhost:9094"


def test_from_env_overrides():
    cfg = DashboardConfig.from_env(
        {
            "IPFS_NODES": "alpha=ipfs-a:5001:8080, beta=6001:9090",
            "IPFS_CLUSTER_API_URL": "http://cluster:9094/",
            "PROMETHEUS_URL": "http://prom:9090",
            "IPFS_POLL_TIMEOUT": "2.5",
            "IPFS_POLL_WORKERS": "0",
            "IPFS_DASHBOARD_STATE": "off",
            "IPFS_DASHBOARD_LOG_LEVEL": "debug",
            "IPFS_DASHBOARD_ADMIN_ROLES": "admin, ops",
        }
    )
    assert [(n.name, n.host, n.api_port, n.gateway_port) for n in cfg.nodes] == [
        ("alpha", "ipfs-a", 5001, 8080),
        ("beta", "localhost", 6001, 9090),
    ]
    assert cfg.cluster.api_url == "http://cluster:9094"
    assert cfg.prometheus.endpoint == "http://prom:9090"
    assert cfg.polling.timeout_seconds == 2.5
    assert cfg.polling.max_workers == 1
    assert cfg.storage_metrics.state_path is None
    assert cfg.observability.log_level == "DEBUG"
    assert cfg.auth.admin_roles == ["admin", "ops"]


def test_from_env_without_overrides_matches_defaults():
    assert DashboardConfig.from_env({}).nodes == DashboardConfig.default().nodes


@pytest.mark.parametrize("value", ["alpha", "alpha=5001", "=host:1:2", "alpha=host:x:2", " , "])
def test_parse_nodes_rejects_malformed_entries(value):
    with pytest.raises(ValueError):
        parse_nodes(value)
