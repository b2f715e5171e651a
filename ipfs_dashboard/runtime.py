"""Runtime wiring for the node dashboard services."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .clients.cluster import ClusterClient
from .clients.prometheus import PrometheusClient
from .config import DashboardConfig
from .messaging import InMemoryBus, build_bus
from .models import DashboardSnapshot
from .services.activity_feed import ActivityFeed
from .services.alerting import AlertManager
from .services.cluster_monitor import ClusterMonitor
from .services.ipfs_data import IPFSDataService
from .services.network_overview import NetworkOverviewService
from .services.node_poller import NodePoller
from .services.storage_metrics import StorageMetricsService
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)


@dataclass
class DashboardRuntime:
    config: DashboardConfig
    bus: InMemoryBus
    telemetry: TelemetryCollector
    prometheus: PrometheusClient
    node_poller: NodePoller
    cluster_monitor: ClusterMonitor
    network_overview: NetworkOverviewService
    ipfs_data: IPFSDataService
    storage_metrics: StorageMetricsService
    alert_manager: AlertManager
    activity_feed: ActivityFeed
    last_snapshot: Optional[DashboardSnapshot] = None
    _refresh_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def bootstrap(cls, config: Optional[DashboardConfig] = None, http_client: Any = None) -> "DashboardRuntime":
        """Build every service; ``http_client`` replaces the per-thread sessions (tests)."""
        cfg = config or DashboardConfig.from_env()
        bus = build_bus()
        telemetry = TelemetryCollector(cfg.observability)
        timeout = cfg.polling.timeout_seconds

        prometheus = PrometheusClient(
            cfg.prometheus.endpoint,
            timeout=timeout,
            http_client=http_client,
            base_path=cfg.prometheus.base_path,
        )
        cluster_client = ClusterClient(cfg.cluster.api_url, timeout=timeout, http_client=http_client)

        activity_feed = ActivityFeed(bus=bus, telemetry=telemetry)
        node_poller = NodePoller(config=cfg, telemetry=telemetry, bus=bus, http_client=http_client)
        cluster_monitor = ClusterMonitor(config=cfg, telemetry=telemetry, bus=bus, client=cluster_client)
        network_overview = NetworkOverviewService(
            config=cfg,
            telemetry=telemetry,
            node_poller=node_poller,
            cluster_monitor=cluster_monitor,
            prometheus=prometheus,
        )
        ipfs_data = IPFSDataService(
            config=cfg,
            telemetry=telemetry,
            node_poller=node_poller,
            cluster_monitor=cluster_monitor,
        )
        storage_metrics = StorageMetricsService(
            config=cfg,
            telemetry=telemetry,
            bus=bus,
            cluster_monitor=cluster_monitor,
        )
        alert_manager = AlertManager(config=cfg, telemetry=telemetry, bus=bus)

        return cls(
            config=cfg,
            bus=bus,
            telemetry=telemetry,
            prometheus=prometheus,
            node_poller=node_poller,
            cluster_monitor=cluster_monitor,
            network_overview=network_overview,
            ipfs_data=ipfs_data,
            storage_metrics=storage_metrics,
            alert_manager=alert_manager,
            activity_feed=activity_feed,
        )

    def refresh(self) -> DashboardSnapshot:
        snapshot = self.network_overview.fetch_dashboard()
        snapshot.alerts = self.alert_manager.evaluate(snapshot)
        self.last_snapshot = snapshot
        logger.debug(
            "Dashboard refreshed: %d/%d nodes online, cluster %s",
            snapshot.summary.online_nodes,
            snapshot.summary.total_nodes,
            snapshot.cluster.status,
        )
        return snapshot

    def get_dashboard(self, max_age_seconds: float = 0.0) -> DashboardSnapshot:
        with self._refresh_lock:
            snapshot = self.last_snapshot
            if snapshot is not None and max_age_seconds > 0:
                age = (datetime.now(timezone.utc) - snapshot.captured_at).total_seconds()
                if age < max_age_seconds:
                    return snapshot
            return self.refresh()

    def close(self) -> None:
        self.node_poller.close()
        self.cluster_monitor.client.close()
        self.prometheus.close()
