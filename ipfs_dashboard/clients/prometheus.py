"""Minimal Prometheus HTTP API client (instant queries only)."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .http import JSONHTTPClient, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class PrometheusClient(JSONHTTPClient):
    base_path: str = "/api/v1"

    def instant_query(self, query: str) -> List[Dict[str, Any]]:
        payload = self._json("GET", f"{self.base_path}/query", params={"query": query})
        if not isinstance(payload, dict) or payload.get("status") != "success":
            error = payload.get("error", "unknown error") if isinstance(payload, dict) else "unexpected payload"
            raise UpstreamError(f"Prometheus query failed: {error}", self._url(f"{self.base_path}/query"))
        return payload.get("data", {}).get("result", []) or []

    def metric_value(self, query: str) -> Optional[float]:
        """First sample of ``query`` as a float, or ``None`` when unavailable."""
        try:
            result = self.instant_query(query)
        except UpstreamError as exc:
            logger.debug("Prometheus query %s unavailable: %s", query, exc)
            return None
        if not result:
            return None
        sample = result[0].get("value") or []
        if len(sample) < 2:
            return None
        try:
            value = float(sample[1])
        except (TypeError, ValueError):
            return None
        # Prometheus encodes missing data as "NaN" and overflow as "+Inf".
        return value if math.isfinite(value) else None
