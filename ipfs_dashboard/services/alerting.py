"""Threshold alerts evaluated over each dashboard snapshot."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

from ..messaging import InMemoryBus, MessageEnvelope
from ..models import DashboardSnapshot
from .base import BaseService

logger = logging.getLogger(__name__)

COMPARATORS = (">=", ">", "<=", "<", "==")


@dataclass
class AlertRule:
    name: str
    metric: str
    threshold: float
    comparator: str = ">="
    severity: str = "warning"

    def __post_init__(self) -> None:
        if self.comparator not in COMPARATORS:
            raise ValueError(f"Unsupported comparator {self.comparator!r}")


DEFAULT_RULES = (
    AlertRule(name="node_offline", metric="nodes.offline", threshold=1, comparator=">="),
    AlertRule(name="network_degraded", metric="nodes.online_ratio", threshold=0.5, comparator="<", severity="critical"),
    AlertRule(name="cluster_unhealthy", metric="cluster.healthy", threshold=0, comparator="==", severity="critical"),
)


def snapshot_metrics(snapshot: DashboardSnapshot) -> Dict[str, float]:
    summary = snapshot.summary
    ratio = summary.online_nodes / summary.total_nodes if summary.total_nodes else 0.0
    return {
        "nodes.total": float(summary.total_nodes),
        "nodes.offline": float(summary.offline_nodes),
        "nodes.online_ratio": ratio,
        "cluster.healthy": 1.0 if snapshot.cluster.healthy else 0.0,
        "network.peers": float(summary.total_peers),
        "network.repo_bytes": float(summary.total_repo_size),
    }


@dataclass
class AlertManager(BaseService):
    bus: Optional[InMemoryBus] = None
    rules: List[AlertRule] = field(default_factory=list)
    recent_alerts: Deque[dict] = field(default_factory=lambda: deque(maxlen=100))

    def __post_init__(self) -> None:
        for rule in DEFAULT_RULES:
            if not self._has_rule(rule.name):
                self.rules.append(AlertRule(**asdict(rule)))
        for rule_data in self.config.observability.alert_rules:
            try:
                self.upsert_rule(AlertRule(**rule_data))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping invalid alert rule %s: %s", rule_data, exc)

    def upsert_rule(self, rule: AlertRule) -> AlertRule:
        for idx, existing in enumerate(self.rules):
            if existing.name == rule.name:
                self.rules[idx] = rule
                return rule
        self.rules.append(rule)
        return rule

    def remove_rule(self, name: str) -> bool:
        for idx, existing in enumerate(self.rules):
            if existing.name == name:
                self.rules.pop(idx)
                return True
        return False

    def evaluate(self, snapshot: DashboardSnapshot) -> List[dict]:
        metrics = snapshot_metrics(snapshot)
        alerts: List[dict] = []
        for rule in list(self.rules):
            value = metrics.get(rule.metric)
            if value is None:
                continue
            if self._compare(value, rule.threshold, rule.comparator):
                alert = {
                    "rule": rule.name,
                    "metric": rule.metric,
                    "value": value,
                    "threshold": rule.threshold,
                    "severity": rule.severity,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
                alerts.append(alert)
                self.recent_alerts.append(alert)
                self.telemetry.emit_event("alert_fired", alert)
                if self.bus is not None:
                    self.bus.publish(MessageEnvelope(topic="alerts.fired", payload=alert))
        if alerts:
            logger.warning("%d dashboard alert(s) fired: %s", len(alerts), ", ".join(a["rule"] for a in alerts))
        return alerts

    @staticmethod
    def _compare(lhs: float, rhs: float, comparator: str) -> bool:
        if comparator == ">=":
            return lhs >= rhs
        if comparator == ">":
            return lhs > rhs
        if comparator == "<=":
            return lhs <= rhs
        if comparator == "<":
            return lhs < rhs
        if comparator == "==":
            return lhs == rhs
        return False

    def _has_rule(self, name: str) -> bool:
        return any(existing.name == name for existing in self.rules)
