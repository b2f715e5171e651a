from __future__ import annotations

import json

from conftest import CLUSTER, StubResponse
from ipfs_dashboard.services.cluster_monitor import parse_pin, recent_pins


def _ndjson(items):
    return "\n".join(json.dumps(item) for item in items) + "\n"


def test_check_health_offline_when_cluster_unreachable(runtime):
    health = runtime.cluster_monitor.check_health()
    assert health.status == "offline"
    assert health.api == "localhost:9094"
    assert health.to_dict().keys() == {"status", "api", "last_checked"}


def test_non_ok_health_response_is_offline(runtime, stub_http):
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}, status_code=500))
    assert runtime.cluster_monitor.check_health().status == "offline"


def test_get_status_includes_peers_and_recent_pins(runtime, stub_http):
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}))
    stub_http.add(
        "GET",
        f"{CLUSTER}/peers",
        StubResponse(
            text=_ndjson(
                [
                    {"id": "cluster-1", "peername": "node-1", "ipfs": {"id": "12D3A"}, "addresses": ["/ip4/10.0.0.1"]},
                    {"id": "cluster-2", "peername": "node-2"},
                ]
            )
        ),
    )
    pins = [
        {"cid": f"bafy{i}", "name": f"file-{i}", "allocations": [], "created": f"2024-05-0{i}T10:00:00.123456789Z"}
        for i in range(1, 8)
    ]
    stub_http.add("GET", f"{CLUSTER}/pins", StubResponse(text=_ndjson(pins)))

    status = runtime.cluster_monitor.get_status()

    assert status.status == "healthy"
    assert [peer.id for peer in status.peers] == ["cluster-1", "cluster-2"]
    assert status.peers[0].ipfs_peer_id == "12D3A"
    assert status.peers[1].ipfs_peer_id == ""
    assert status.total_pins == 7
    assert [pin.cid for pin in status.recent_pins] == ["bafy7", "bafy6", "bafy5", "bafy4", "bafy3"]


def test_get_status_survives_pin_listing_failure(runtime, stub_http):
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}))
    stub_http.add("GET", f"{CLUSTER}/peers", StubResponse(text='{"id": "cluster-1"}'))
    stub_http.add("GET", f"{CLUSTER}/pins", StubResponse({}, status_code=502))

    status = runtime.cluster_monitor.get_status()

    assert status.healthy
    assert len(status.peers) == 1
    assert status.total_pins == 0
    assert status.recent_pins == []


def test_health_is_cached(runtime, stub_http):
    runtime.config.cluster.health_cache_seconds = 60
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}))

    assert runtime.cluster_monitor.is_healthy()
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}, status_code=500))
    assert runtime.cluster_monitor.is_healthy()
    assert stub_http.called("GET", f"{CLUSTER}/health") == 1
    assert runtime.cluster_monitor.is_healthy(use_cache=False) is False


def test_cluster_transitions_are_published(runtime, stub_http):
    received = []
    runtime.bus.subscribe("cluster.status_changed", lambda envelope: received.append(envelope.payload["status"]))
    runtime.cluster_monitor.check_health()
    stub_http.add("GET", f"{CLUSTER}/health", StubResponse({}))
    runtime.cluster_monitor.check_health()
    assert received == ["healthy"]


def test_parse_pin_reads_peer_map():
    pin = parse_pin(
        {
            "cid": {"/": "bafyx"},
            "peer_map": {
                "peer-a": {"peername": "a", "status": "pinned", "timestamp": "t1"},
                "peer-b": {"peername": "b", "status": "pin_error", "timestamp": "t2", "error": "disk full"},
            },
        }
    )
    assert pin.cid == "bafyx"
    assert pin.peer_map["peer-a"].error is None
    assert pin.peer_map["peer-b"].error == "disk full"


def test_recent_pins_puts_unparseable_dates_last():
    pins = [parse_pin({"cid": "old", "created": "2023-01-01T00:00:00Z"}), parse_pin({"cid": "bad", "created": "??"})]
    assert [pin.cid for pin in recent_pins(pins, 5)] == ["old", "bad"]


def test_recent_pins_handles_trimmed_fractions():
    pins = [
        parse_pin({"cid": "older", "created": "2024-01-01T00:00:00.123456789Z"}),
        parse_pin({"cid": "newest", "created": "2024-06-01T00:00:00.5Z"}),
        parse_pin({"cid": "middle", "created": "2024-03-01T00:00:00.12Z"}),
    ]
    assert [pin.cid for pin in recent_pins(pins, 5)] == ["newest", "middle", "older"]
