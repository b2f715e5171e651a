from __future__ import annotations

import threading

import pytest
import requests

from conftest import CLUSTER, PROMETHEUS_QUERY, StubHTTP, StubResponse, node_url, prometheus_handler
from ipfs_dashboard.clients import ClusterClient, IPFSNodeClient, PrometheusClient, UpstreamError
from ipfs_dashboard.clients.cluster import extract_cid


def test_ipfs_client_posts_to_rpc_api():
    http = StubHTTP({("POST", node_url(5001, "id")): StubResponse({"ID": "12D3Koo"})})
    client = IPFSNodeClient("http://localhost:5001", timeout=1.0, http_client=http)
    assert client.node_id() == {"ID": "12D3Koo"}
    method, url, kwargs = http.calls[0]
    assert (method, url) == ("POST", node_url(5001, "id"))
    assert kwargs["timeout"] == 1.0


def test_ipfs_swarm_peers_handles_null_list():
    http = StubHTTP({("POST", node_url(5001, "swarm/peers")): StubResponse({"Peers": None})})
    client = IPFSNodeClient("http://localhost:5001", http_client=http)
    assert client.swarm_peers() == []


def test_ipfs_client_raises_upstream_error_on_failures():
    http = StubHTTP(
        {
            ("POST", node_url(5001, "repo/stat")): StubResponse({"Message": "boom"}, status_code=500),
            ("POST", node_url(5001, "bitswap/stat")): StubResponse(text="<html>"),
        }
    )
    client = IPFSNodeClient("http://localhost:5001", http_client=http)
    with pytest.raises(UpstreamError) as excinfo:
        client.repo_stat()
    assert excinfo.value.status_code == 500
    with pytest.raises(UpstreamError):
        client.bitswap_stat()
    with pytest.raises(UpstreamError):
        client.node_id()


def test_cluster_health_is_false_when_unreachable_or_failing():
    http = StubHTTP()
    client = ClusterClient(CLUSTER, http_client=http)
    assert client.health() is False
    http.add("GET", f"{CLUSTER}/health", StubResponse({}, status_code=503))
    assert client.health() is False
    http.add("GET", f"{CLUSTER}/health", StubResponse({}, status_code=204))
    assert client.health() is True


def test_cluster_peers_and_pins_parse_ndjson():
    http = StubHTTP(
        {
            ("GET", f"{CLUSTER}/peers"): StubResponse(text='{"id": "p1"}\n{"id": "p2"}\n'),
            ("GET", f"{CLUSTER}/pins"): StubResponse(text='[{"cid": "bafy1"}]'),
        }
    )
    client = ClusterClient(CLUSTER, http_client=http)
    assert [peer["id"] for peer in client.peers()] == ["p1", "p2"]
    assert client.pins() == [{"cid": "bafy1"}]


def test_cluster_pin_lookup_and_unpin_tolerate_404():
    http = StubHTTP(
        {
            ("GET", f"{CLUSTER}/pins/missing"): StubResponse({"message": "not found"}, status_code=404),
            ("GET", f"{CLUSTER}/pins/bafy1"): StubResponse({"cid": "bafy1"}),
            ("DELETE", f"{CLUSTER}/pins/missing"): StubResponse({}, status_code=404),
            ("DELETE", f"{CLUSTER}/pins/broken"): StubResponse({}, status_code=500),
        }
    )
    client = ClusterClient(CLUSTER, http_client=http)
    assert client.pin("missing") is None
    assert client.pin("bafy1") == {"cid": "bafy1"}
    client.unpin("missing")
    with pytest.raises(UpstreamError):
        client.unpin("broken")


def test_cluster_add_uses_last_ndjson_event_and_meta_fields():
    captured = {}

    def handler(files=None, timeout=None):
        captured.update(files)
        return StubResponse(text='{"name": "a.txt", "bytes": 4}\n{"name": "a.txt", "cid": "bafyfinal"}\n')

    http = StubHTTP({("POST", f"{CLUSTER}/add"): handler})
    client = ClusterClient(CLUSTER, http_client=http)
    event = client.add("a.txt", b"data", {"owner": "u1"})
    assert extract_cid(event) == "bafyfinal"
    assert captured["file"] == ("a.txt", b"data")
    assert captured["meta-owner"] == (None, "u1")


def test_cluster_add_rejects_unparseable_response():
    http = StubHTTP({("POST", f"{CLUSTER}/add"): StubResponse(text="garbage")})
    client = ClusterClient(CLUSTER, http_client=http)
    with pytest.raises(UpstreamError):
        client.add("a.txt", b"data")


@pytest.mark.parametrize(
    "event, cid",
    [
        ({"cid": "bafy"}, "bafy"),
        ({"Cid": {"/": "bafyobj"}}, "bafyobj"),
        ({"Hash": "Qm123"}, "Qm123"),
        ({"name": "x"}, None),
    ],
)
def test_extract_cid(event, cid):
    assert extract_cid(event) == cid


def test_prometheus_metric_value():
    http = StubHTTP({("GET", PROMETHEUS_QUERY): prometheus_handler({"up": 1, "go_goroutines": "42.5"})})
    client = PrometheusClient("http://localhost:9090", http_client=http)
    assert client.metric_value("up") == 1.0
    assert client.metric_value("go_goroutines") == 42.5
    assert client.metric_value("missing") is None


def test_prometheus_metric_value_swallows_errors():
    http = StubHTTP(
        {("GET", PROMETHEUS_QUERY): StubResponse({"status": "error", "error": "parse error"}, status_code=200)}
    )
    client = PrometheusClient("http://localhost:9090", http_client=http)
    assert client.metric_value("bad{") is None
    with pytest.raises(UpstreamError):
        client.instant_query("bad{")
    assert PrometheusClient("http://localhost:9999", http_client=StubHTTP()).metric_value("up") is None


@pytest.mark.parametrize("sample", ["NaN", "+Inf", "-Inf"])
def test_prometheus_metric_value_rejects_non_finite_samples(sample):
    http = StubHTTP({("GET", PROMETHEUS_QUERY): prometheus_handler({"go_goroutines": sample})})
    client = PrometheusClient("http://localhost:9090", http_client=http)
    assert client.metric_value("go_goroutines") is None


def test_clients_without_injected_http_get_a_session_per_thread():
    client = IPFSNodeClient("http://localhost:5001")
    main_session = client.session
    assert client.session is main_session

    seen = []
    worker = threading.Thread(target=lambda: seen.append(client.session))
    worker.start()
    worker.join()

    assert isinstance(seen[0], requests.Session)
    assert seen[0] is not main_session
    client.close()
    assert client._sessions == []


def test_injected_http_client_is_shared_and_closed():
    http = StubHTTP()
    client = ClusterClient(CLUSTER, http_client=http)
    assert client.session is http
    client.close()
    assert http.closed
