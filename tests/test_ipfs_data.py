from __future__ import annotations

import pytest

from conftest import CLUSTER, StubResponse, add_online_node
from ipfs_dashboard.clients import UpstreamError
from ipfs_dashboard.services.ipfs_data import ClusterUnavailableError


def test_get_all_node_stats_coerces_strings_and_marks_unavailable(runtime, stub_http):
    add_online_node(stub_http, 5001, repo_size=2048, num_objects=12)

    stats = runtime.ipfs_data.get_all_node_stats()

    assert set(stats) == {"storage-node-1", "storage-node-2", "storage-node-3", "storage-node-4"}
    first = stats["storage-node-1"]
    assert first.repo_size == 2048
    assert first.storage_max == 10000
    assert first.num_objects == 12
    assert first.repo_path == "/data/ipfs"
    assert first.version == "fs-repo@15"
    assert stats["storage-node-2"].version == "unavailable"
    assert stats["storage-node-2"].repo_size == 0


def test_pin_file_refuses_when_cluster_unhealthy(runtime, stub_http):
    with pytest.raises(ClusterUnavailableError):
        runtime.ipfs_data.pin_file("a.txt", b"hello")
    assert stub_http.called("POST", f"{CLUSTER}/add") == 0


def test_pin_file_returns_cid_name_and_size(runtime, stub_http):
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}))
    stub_http.add("POST", f"{CLUSTER}/add", StubResponse(text='{"name": "a.txt", "cid": "bafyadded"}\n'))

    result = runtime.ipfs_data.pin_file("a.txt", b"hello", {"owner": "u1"})

    assert result == {"cid": "bafyadded", "name": "a.txt", "size": 5}
    assert any(event.message == "pin_added" for event in runtime.telemetry.events)


def test_pin_file_requires_a_cid(runtime, stub_http):
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}))
    stub_http.add("POST", f"{CLUSTER}/add", StubResponse({"name": "a.txt"}))
    with pytest.raises(UpstreamError):
        runtime.ipfs_data.pin_file("a.txt", b"hello")


def test_pin_status_lookup(runtime, stub_http):
    stub_http.add("GET", f"{CLUSTER}/pins/bafy1", StubResponse({"cid": "bafy1", "name": "doc.pdf"}))
    stub_http.add("GET", f"{CLUSTER}/pins/missing", StubResponse({}, status_code=404))

    pin = runtime.ipfs_data.get_pin_status("bafy1")
    assert pin.cid == "bafy1"
    assert pin.name == "doc.pdf"
    assert runtime.ipfs_data.get_pin_status("missing") is None


def test_unpin_file(runtime, stub_http):
    stub_http.add("DELETE", f"{CLUSTER}/pins/bafy1", StubResponse({}))
    runtime.ipfs_data.unpin_file("bafy1")
    assert stub_http.called("DELETE", f"{CLUSTER}/pins/bafy1") == 1


def test_health_check_reports_cluster_and_each_node(runtime, stub_http):
    add_online_node(stub_http, 5003)
    assert runtime.ipfs_data.health_check() == {
        "cluster": False,
        "nodes": {
            "storage-node-1": False,
            "storage-node-2": False,
            "storage-node-3": True,
            "storage-node-4": False,
        },
    }

    stub_http.add("GET", f"{CLUSTER}/id", StubResponse({"id": "cluster-1"}))
    assert runtime.ipfs_data.health_check()["cluster"] is True
