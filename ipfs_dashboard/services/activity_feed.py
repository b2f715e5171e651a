"""Activity feed collecting bus notifications for the dashboard."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List

from ..messaging import TOPICS, InMemoryBus, MessageEnvelope
from ..telemetry import TelemetryCollector


@dataclass
class ActivityFeed:
    bus: InMemoryBus
    telemetry: TelemetryCollector
    events: Deque[MessageEnvelope] = field(default_factory=lambda: deque(maxlen=200))

    def __post_init__(self) -> None:
        for topic in TOPICS:
            self.bus.subscribe(topic, self._handle_event)

    def _handle_event(self, envelope: MessageEnvelope) -> None:
        self.events.append(envelope)
        self.telemetry.emit_event(f"activity_{envelope.topic}", envelope.payload)

    def recent(self, limit: int = 25) -> List[dict]:
        items = list(self.events)[-limit:]
        return [
            {"topic": envelope.topic, "payload": envelope.payload, "published_at": envelope.published_at}
            for envelope in reversed(items)
        ]
