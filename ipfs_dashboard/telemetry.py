"""Observability scaffolding."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List

from .config import ObservabilityConfig

logger = logging.getLogger(__name__)


@dataclass
class TelemetryEvent:
    event_type: str
    message: str
    attributes: Dict[str, object] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class TelemetryCollector:
    config: ObservabilityConfig
    max_samples: int = 1000
    metrics: Deque[Dict[str, object]] = field(init=False)
    events: Deque[TelemetryEvent] = field(init=False)

    def __post_init__(self) -> None:
        self.metrics = deque(maxlen=self.max_samples)
        self.events = deque(maxlen=self.max_samples)

    def emit_metric(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        payload = {
            "name": name,
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(labels or {}),
        }
        self.metrics.append(payload)

    def emit_event(self, message: str, attributes: Dict[str, object] | None = None) -> None:
        logger.debug("telemetry event %s %s", message, attributes or {})
        self.events.append(TelemetryEvent(event_type="custom", message=message, attributes=dict(attributes or {})))

    def metric_history(self, name: str, limit: int = 20) -> List[float]:
        values = [float(entry["value"]) for entry in self.metrics if entry.get("name") == name]
        return values[-limit:]
