"""IPFS Cluster health, peer and pin reporting."""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..clients.cluster import ClusterClient
from ..messaging import InMemoryBus, MessageEnvelope
from ..models import ClusterHealth, ClusterPeer, ClusterPin, PinPeerStatus
from .base import BaseService
from .node_poller import settle

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.\d+")


@dataclass
class ClusterMonitor(BaseService):
    bus: InMemoryBus
    client: Optional[ClusterClient] = None
    _cached_health: Optional[Tuple[float, bool]] = field(default=None, init=False, repr=False)
    _last_status: Optional[str] = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = ClusterClient(
                self.config.cluster.api_url,
                timeout=self.config.polling.timeout_seconds,
            )

    @property
    def api(self) -> str:
        return self.config.cluster.api_address

    def is_healthy(self, use_cache: bool = True) -> bool:
        ttl = self.config.cluster.health_cache_seconds
        now = time.monotonic()
        with self._lock:
            cached = self._cached_health
        if use_cache and cached and now - cached[0] < ttl:
            return cached[1]
        healthy = self.client.health()
        with self._lock:
            self._cached_health = (now, healthy)
        self._track_status("healthy" if healthy else "offline")
        return healthy

    def check_health(self) -> ClusterHealth:
        status = "healthy" if self.is_healthy() else "offline"
        return ClusterHealth(status=status, api=self.api)

    def offline(self) -> ClusterHealth:
        return ClusterHealth(status="offline", api=self.api)

    def get_status(self) -> ClusterHealth:
        if not self.is_healthy():
            return self.offline()

        with self.timed("cluster.poll_seconds"), ThreadPoolExecutor(max_workers=2, thread_name_prefix="cluster-poll") as pool:
            peers_future = pool.submit(self.client.peers)
            pins_future = pool.submit(self.client.pins)
            raw_peers, peers_error = settle(peers_future)
            raw_pins, pins_error = settle(pins_future)

        if peers_error is not None:
            logger.warning("Unable to list cluster peers: %s", peers_error)
        if pins_error is not None:
            logger.warning("Unable to list cluster pins: %s", pins_error)

        peers = [parse_peer(item) for item in raw_peers or []]
        pins = [parse_pin(item) for item in raw_pins or []]
        self.emit_metric("cluster.peers", len(peers))
        self.emit_metric("cluster.pins", len(pins))
        return ClusterHealth(
            status="healthy",
            api=self.api,
            peers=peers,
            total_pins=len(pins),
            recent_pins=recent_pins(pins, self.config.cluster.recent_pins_limit),
        )

    def _track_status(self, status: str) -> None:
        with self._lock:
            previous, self._last_status = self._last_status, status
        if previous is not None and previous != status:
            logger.info("Cluster changed status %s -> %s", previous, status)
            self.bus.publish(
                MessageEnvelope(
                    topic="cluster.status_changed",
                    payload={"api": self.api, "previous": previous, "status": status},
                )
            )


def parse_peer(payload: Dict[str, Any]) -> ClusterPeer:
    ipfs = payload.get("ipfs") or {}
    return ClusterPeer(
        id=str(payload.get("id", "")),
        peername=str(payload.get("peername", "")),
        ipfs_peer_id=str(ipfs.get("id", "")),
        addresses=list(payload.get("addresses") or []),
    )


def parse_pin(payload: Dict[str, Any]) -> ClusterPin:
    cid = payload.get("cid", "")
    if isinstance(cid, dict):
        cid = cid.get("/", "")
    peer_map = {
        peer_id: PinPeerStatus(
            peername=str(data.get("peername", "")),
            status=str(data.get("status", "")),
            timestamp=str(data.get("timestamp", "")),
            error=data.get("error") or None,
        )
        for peer_id, data in (payload.get("peer_map") or {}).items()
    }
    return ClusterPin(
        cid=str(cid),
        name=payload.get("name") or "",
        allocations=list(payload.get("allocations") or []),
        created=str(payload.get("created", "")),
        peer_map=peer_map,
    )


def recent_pins(pins: List[ClusterPin], limit: int) -> List[ClusterPin]:
    return sorted(pins, key=_created_at, reverse=True)[:limit]


def _created_at(pin: ClusterPin) -> datetime:
    # Go trims trailing zeros from nanosecond fractions; fromisoformat on 3.10
    # only takes exactly 3 or 6 digits.
    text = _FRACTION.sub(lambda match: "." + match.group(0)[1:7].ljust(6, "0"), pin.created.replace("Z", "+00:00"))
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment
