"""Base class for dashboard services."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from ..config import DashboardConfig
from ..telemetry import TelemetryCollector


@dataclass
class BaseService:
    config: DashboardConfig
    telemetry: TelemetryCollector

    def emit_metric(self, name: str, value: float, **labels: str) -> None:
        self.telemetry.emit_metric(name, value, labels)

    def emit_event(self, message: str, **attrs: object) -> None:
        self.telemetry.emit_event(message, attrs)

    @contextmanager
    def timed(self, name: str, **labels: str) -> Iterator[None]:
        """Record the wall-clock duration of the block as metric ``name`` (seconds)."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.emit_metric(name, time.perf_counter() - started, **labels)
