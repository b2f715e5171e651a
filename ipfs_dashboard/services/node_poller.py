"""Concurrent polling of the IPFS storage nodes."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..clients.http import UpstreamError
from ..clients.ipfs import IPFSNodeClient
from ..clients.prometheus import PrometheusClient
from ..config import NodeEndpoint
from ..formatting import as_int, format_bytes
from ..messaging import InMemoryBus, MessageEnvelope
from ..models import NodeMetrics, NodeReport, NodeSnapshot
from .base import BaseService

logger = logging.getLogger(__name__)

PROMETHEUS_QUERIES = {
    "peers": "ipfs_p2p_peers_total",
    "go_routines": "go_goroutines",
    "memory_usage": "go_memstats_alloc_bytes",
    "start_time": "process_start_time_seconds",
}


def settle(future: Future) -> Tuple[Any, Optional[BaseException]]:
    """Return ``(value, error)`` for a finished future without raising."""
    try:
        return future.result(), None
    except Exception as exc:
        return None, exc


@dataclass
class NodePoller(BaseService):
    bus: InMemoryBus
    clients: Dict[str, IPFSNodeClient] = field(default_factory=dict)
    http_client: Any = None
    _last_status: Dict[str, Dict[str, str]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        timeout = self.config.polling.timeout_seconds
        for node in self.config.nodes:
            if node.name not in self.clients:
                self.clients[node.name] = IPFSNodeClient(
                    node.api_url,
                    timeout=timeout,
                    http_client=self.http_client,
                )

    @property
    def nodes(self) -> List[NodeEndpoint]:
        return list(self.config.nodes)

    def poll_nodes(self) -> List[NodeSnapshot]:
        nodes = self.nodes
        with self.timed("nodes.poll_seconds", view="snapshot"), self.executor(len(nodes)) as pool:
            futures = [pool.submit(self._snapshot_node, node) for node in nodes]
            snapshots = []
            for node, future in zip(nodes, futures):
                snapshot, error = settle(future)
                if error is not None:
                    logger.error("Unexpected failure polling %s: %s", node.name, error)
                    snapshot = self._offline_snapshot(node)
                snapshots.append(snapshot)
        self._record_poll("snapshot", ((s.name, s.status) for s in snapshots))
        return snapshots

    def collect_reports(self, prometheus: Optional[PrometheusClient] = None) -> List[NodeReport]:
        """Gather repo, bitswap and Prometheus data for every node in one fan-out."""
        nodes = self.nodes
        scrape_port = self.config.prometheus.scrape_port
        pending: Dict[Tuple[str, str], Future] = {}
        task_count = len(nodes) * (2 + len(PROMETHEUS_QUERIES))
        with self.timed("nodes.poll_seconds", view="report"), self.executor(task_count) as pool:
            for node in nodes:
                client = self.clients[node.name]
                pending[(node.name, "repo")] = pool.submit(client.repo_stat)
                pending[(node.name, "bitswap")] = pool.submit(client.bitswap_stat)
                if prometheus is None:
                    continue
                instance = f"{node.name}:{scrape_port}"
                for key, metric in PROMETHEUS_QUERIES.items():
                    query = f'{metric}{{instance="{instance}"}}'
                    pending[(node.name, key)] = pool.submit(prometheus.metric_value, query)
            settled = {key: settle(future) for key, future in pending.items()}

        reports = []
        for node in nodes:
            try:
                reports.append(self._build_report(node, settled))
            except (TypeError, ValueError, OverflowError) as exc:
                logger.error("Discarding malformed metrics for %s: %s", node.name, exc)
                reports.append(NodeReport(node=node.name, port=node.api_port, status="offline"))
        self._record_poll("report", ((r.node, r.status) for r in reports))
        return reports

    # Per-node helpers ---------------------------------------------------

    def _snapshot_node(self, node: NodeEndpoint) -> NodeSnapshot:
        client = self.clients[node.name]
        try:
            info = client.node_id()
        except UpstreamError as exc:
            logger.warning("IPFS node %s offline: %s", node.name, exc)
            return self._offline_snapshot(node)

        try:
            peer_count = len(client.swarm_peers())
        except UpstreamError as exc:
            logger.warning("Unable to list peers for %s: %s", node.name, exc)
            peer_count = 0

        try:
            repo_size = format_bytes(as_int(client.repo_stat().get("RepoSize")))
        except UpstreamError as exc:
            logger.warning("Unable to read repo stats for %s: %s", node.name, exc)
            repo_size = "Unknown"

        peer_id = str(info.get("ID") or "")
        return NodeSnapshot(
            id=f"{peer_id[:12]}...",
            name=node.name,
            status="online",
            peers=peer_count,
            repo_size=repo_size,
            api=node.api_address,
            gateway=node.gateway_address,
        )

    @staticmethod
    def _offline_snapshot(node: NodeEndpoint) -> NodeSnapshot:
        return NodeSnapshot(
            id="unknown",
            name=node.name,
            status="offline",
            peers=0,
            repo_size="N/A",
            api=node.api_address,
            gateway=node.gateway_address,
        )

    def _build_report(self, node: NodeEndpoint, settled: Dict[Tuple[str, str], Tuple[Any, Optional[BaseException]]]) -> NodeReport:
        def value(key: str) -> Any:
            result, error = settled.get((node.name, key), (None, None))
            if error is not None:
                level = logging.WARNING if isinstance(error, UpstreamError) else logging.ERROR
                logger.log(level, "%s lookup failed for %s: %s", key, node.name, error)
                return None
            return result

        repo = value("repo")
        if repo is None:
            return NodeReport(node=node.name, port=node.api_port, status="offline")

        bitswap = value("bitswap") or {}
        peers = value("peers")
        if peers is None:
            peers = len(bitswap.get("Peers") or [])
        start_time = value("start_time") or 0.0
        uptime = max(0.0, time.time() - start_time) if start_time > 0 else 0.0

        metrics = NodeMetrics(
            peers=int(peers),
            repo_size=as_int(repo.get("RepoSize")),
            repo_objects=as_int(repo.get("NumObjects")),
            bitswap_data_received=as_int(bitswap.get("DataReceived")),
            bitswap_data_sent=as_int(bitswap.get("DataSent")),
            bitswap_blocks_received=as_int(bitswap.get("BlocksReceived")),
            bitswap_blocks_sent=as_int(bitswap.get("BlocksSent")),
            go_routines=int(value("go_routines") or 0),
            memory_usage=int(value("memory_usage") or 0),
            uptime_seconds=uptime,
        )
        return NodeReport(node=node.name, port=node.api_port, status="online", metrics=metrics)

    # Bookkeeping -------------------------------------------------------

    def executor(self, task_count: int) -> ThreadPoolExecutor:
        workers = max(1, min(self.config.polling.max_workers, task_count))
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ipfs-poll")

    def _record_poll(self, view: str, statuses) -> None:
        # "snapshot" judges a node by its id call, "report" by repo/stat, so
        # each view only compares against its own previous poll.
        statuses = list(statuses)
        online = sum(1 for _, status in statuses if status == "online")
        self.emit_metric("nodes.online", online, view=view)
        self.emit_metric("nodes.offline", len(statuses) - online, view=view)
        changes = []
        with self._lock:
            last_status = self._last_status.setdefault(view, {})
            for name, status in statuses:
                previous = last_status.get(name)
                last_status[name] = status
                if previous is not None and previous != status:
                    changes.append({"node": name, "previous": previous, "status": status})
        for change in changes:
            logger.info("Node %s changed status %s -> %s", change["node"], change["previous"], change["status"])
            self.bus.publish(MessageEnvelope(topic="nodes.status_changed", payload=change))

    def close(self) -> None:
        for client in self.clients.values():
            client.close()
