"""Simple message bus for status-change and activity notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, DefaultDict, Dict, List

logger = logging.getLogger(__name__)

TOPICS = (
    "nodes.status_changed",
    "cluster.status_changed",
    "storage.activity",
    "alerts.fired",
)


@dataclass
class MessageEnvelope:
    topic: str
    payload: Dict[str, Any]
    published_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class InMemoryBus:
    """Naive pub/sub bus; handlers run synchronously on the publishing thread."""

    def __init__(self) -> None:
        self._subscribers: DefaultDict[str, List[Callable[[MessageEnvelope], None]]] = defaultdict(list)

    def publish(self, envelope: MessageEnvelope) -> None:
        for callback in list(self._subscribers[envelope.topic]):
            try:
                callback(envelope)
            except Exception:
                logger.exception("Subscriber failed for topic %s", envelope.topic)

    def subscribe(self, topic: str, handler: Callable[[MessageEnvelope], None]) -> None:
        self._subscribers[topic].append(handler)


def build_bus() -> InMemoryBus:
    return InMemoryBus()
