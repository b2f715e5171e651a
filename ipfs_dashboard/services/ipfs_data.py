"""Pin management and per-node repository statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..clients.cluster import extract_cid
from ..clients.http import UpstreamError
from ..config import NodeEndpoint
from ..formatting import as_int
from ..models import ClusterPin, NodeStats
from .base import BaseService
from .cluster_monitor import ClusterMonitor, parse_pin
from .node_poller import NodePoller, settle

logger = logging.getLogger(__name__)


class ClusterUnavailableError(UpstreamError):
    """The cluster failed its health check, so writes are refused."""


@dataclass
class IPFSDataService(BaseService):
    node_poller: NodePoller
    cluster_monitor: ClusterMonitor

    @property
    def cluster(self):
        return self.cluster_monitor.client

    def get_cluster_pins(self) -> List[ClusterPin]:
        return [parse_pin(item) for item in self.cluster.pins()]

    def get_pin_status(self, cid: str) -> Optional[ClusterPin]:
        payload = self.cluster.pin(cid)
        return parse_pin(payload) if payload else None

    def get_cluster_identity(self) -> Dict[str, Any]:
        return self.cluster.identity()

    def get_node_stats(self, node: NodeEndpoint) -> NodeStats:
        data = self.node_poller.clients[node.name].stats_repo()
        return NodeStats(
            repo_size=as_int(data.get("RepoSize")),
            storage_max=as_int(data.get("StorageMax")),
            num_objects=as_int(data.get("NumObjects")),
            repo_path=str(data.get("RepoPath") or ""),
            version=str(data.get("Version") or ""),
        )

    def get_all_node_stats(self) -> Dict[str, NodeStats]:
        stats: Dict[str, NodeStats] = {}
        for name, (value, error) in self._settled_node_stats().items():
            if error is not None:
                logger.warning("Node %s unavailable: %s", name, error)
                value = NodeStats(version="unavailable")
            stats[name] = value
        return stats

    def pin_file(self, name: str, content: bytes, metadata: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        if not self.cluster_monitor.is_healthy(use_cache=False):
            raise ClusterUnavailableError("IPFS cluster is not healthy", self.cluster.base_url)
        event = self.cluster.add(name, content, metadata)
        cid = extract_cid(event)
        if not cid:
            raise UpstreamError(f"Cluster add response carried no CID: {event}", self.cluster.base_url)
        self.emit_event("pin_added", cid=cid, name=name)
        return {"cid": cid, "name": name, "size": len(content)}

    def unpin_file(self, cid: str) -> None:
        self.cluster.unpin(cid)
        self.emit_event("pin_removed", cid=cid)

    def health_check(self) -> Dict[str, Any]:
        cluster_ok = True
        try:
            self.get_cluster_identity()
        except UpstreamError as exc:
            logger.warning("Cluster identity check failed: %s", exc)
            cluster_ok = False

        settled = self._settled_node_stats()
        return {
            "cluster": cluster_ok,
            "nodes": {name: error is None for name, (_, error) in settled.items()},
        }

    def _settled_node_stats(self) -> Dict[str, Tuple[Optional[NodeStats], Optional[BaseException]]]:
        nodes = self.node_poller.nodes
        with self.node_poller.executor(len(nodes)) as pool:
            futures = {node.name: pool.submit(self.get_node_stats, node) for node in nodes}
            return {name: settle(future) for name, future in futures.items()}
