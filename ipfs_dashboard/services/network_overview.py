"""Network-wide view combining node reports, cluster status and totals."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional

from ..clients.prometheus import PrometheusClient
from ..formatting import format_bytes
from ..models import DashboardSnapshot, NetworkSummary, NodeReport, isoformat
from .base import BaseService
from .cluster_monitor import ClusterMonitor
from .node_poller import NodePoller, settle

logger = logging.getLogger(__name__)


def summarize(reports: Iterable[NodeReport]) -> NetworkSummary:
    reports = list(reports)
    online = sum(1 for report in reports if report.online)
    repo_size = sum(report.metrics.repo_size for report in reports)
    transferred = sum(
        report.metrics.bitswap_data_received + report.metrics.bitswap_data_sent for report in reports
    )
    return NetworkSummary(
        total_nodes=len(reports),
        online_nodes=online,
        offline_nodes=len(reports) - online,
        total_peers=sum(report.metrics.peers for report in reports),
        total_repo_size=repo_size,
        total_repo_size_formatted=format_bytes(repo_size),
        total_objects=sum(report.metrics.repo_objects for report in reports),
        total_data_transferred=transferred,
        total_data_transferred_formatted=format_bytes(transferred),
    )


@dataclass
class NetworkOverviewService(BaseService):
    node_poller: NodePoller
    cluster_monitor: ClusterMonitor
    prometheus: Optional[PrometheusClient] = None

    def fetch_dashboard(self) -> DashboardSnapshot:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dashboard") as pool:
            nodes_future = pool.submit(self.node_poller.collect_reports, self.prometheus)
            cluster_future = pool.submit(self.cluster_monitor.get_status)
            reports, nodes_error = settle(nodes_future)
            cluster, cluster_error = settle(cluster_future)

        if nodes_error is not None:
            logger.error("Node fan-out failed: %s", nodes_error)
            reports = []
        if cluster_error is not None:
            logger.error("Cluster status check failed: %s", cluster_error)
            cluster = self.cluster_monitor.offline()

        summary = summarize(reports)
        self.emit_metric("network.peers", summary.total_peers)
        self.emit_metric("network.repo_bytes", summary.total_repo_size)
        return DashboardSnapshot(nodes=reports, cluster=cluster, summary=summary)

    def fetch_nodes(self) -> dict:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="nodes") as pool:
            nodes_future = pool.submit(self.node_poller.poll_nodes)
            cluster_future = pool.submit(self.cluster_monitor.check_health)
            snapshots, nodes_error = settle(nodes_future)
            cluster, cluster_error = settle(cluster_future)

        if nodes_error is not None:
            raise nodes_error
        if cluster_error is not None:
            logger.error("Cluster health check failed: %s", cluster_error)
            cluster = self.cluster_monitor.offline()
        return {
            "nodes": [snapshot.to_dict() for snapshot in snapshots],
            "cluster": cluster.to_dict(),
            "timestamp": isoformat(),
        }
