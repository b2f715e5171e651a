"""Data models shared across dashboard services."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime] = None) -> str:
    return (value or utc_now()).isoformat()


@dataclass
class NodeSnapshot:
    """Lightweight node view backing ``/api/nodes``."""

    id: str
    name: str
    status: str
    peers: int
    repo_size: str
    api: str
    gateway: str
    last_updated: str = field(default_factory=isoformat)

    @property
    def online(self) -> bool:
        return self.status == "online"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class NodeMetrics:
    peers: int = 0
    repo_size: int = 0
    repo_objects: int = 0
    bitswap_data_received: int = 0
    bitswap_data_sent: int = 0
    bitswap_blocks_received: int = 0
    bitswap_blocks_sent: int = 0
    go_routines: int = 0
    memory_usage: int = 0
    uptime_seconds: float = 0.0


@dataclass
class NodeReport:
    node: str
    port: int
    status: str
    metrics: NodeMetrics = field(default_factory=NodeMetrics)
    timestamp: str = field(default_factory=isoformat)

    @property
    def online(self) -> bool:
        return self.status == "online"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClusterPeer:
    id: str
    peername: str
    ipfs_peer_id: str
    addresses: List[str] = field(default_factory=list)


@dataclass
class PinPeerStatus:
    peername: str
    status: str
    timestamp: str
    error: Optional[str] = None


@dataclass
class ClusterPin:
    cid: str
    name: str = ""
    allocations: List[str] = field(default_factory=list)
    created: str = ""
    peer_map: Dict[str, PinPeerStatus] = field(default_factory=dict)


@dataclass
class ClusterHealth:
    status: str
    api: str
    last_checked: str = field(default_factory=isoformat)
    peers: Optional[List[ClusterPeer]] = None
    total_pins: Optional[int] = None
    recent_pins: Optional[List[ClusterPin]] = None

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict:
        payload = asdict(self)
        # Offline clusters only report the health check itself.
        return {key: value for key, value in payload.items() if value is not None}


@dataclass
class NetworkSummary:
    total_nodes: int
    online_nodes: int
    offline_nodes: int
    total_peers: int
    total_repo_size: int
    total_repo_size_formatted: str
    total_objects: int
    total_data_transferred: int
    total_data_transferred_formatted: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DashboardSnapshot:
    nodes: List[NodeReport]
    cluster: ClusterHealth
    summary: NetworkSummary
    timestamp: str = field(default_factory=isoformat)
    alerts: List[dict] = field(default_factory=list)
    captured_at: datetime = field(default_factory=utc_now, repr=False)

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "cluster": self.cluster.to_dict(),
            "summary": self.summary.to_dict(),
            "alerts": list(self.alerts),
            "timestamp": self.timestamp,
        }


@dataclass
class NodeStats:
    repo_size: int = 0
    storage_max: int = 0
    num_objects: int = 0
    repo_path: str = ""
    version: str = ""


@dataclass
class StorageActivity:
    user_id: str
    action: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    ipfs_hash: Optional[str] = None
    response_time: Optional[int] = None
    success: bool = True
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "StorageActivity":
        data = dict(payload)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


@dataclass
class StorageMetricsSummary:
    total_files: int = 0
    total_size: int = 0
    pinned_files: int = 0
    pinned_size: int = 0
    upload_count: int = 0
    download_count: int = 0
    delete_count: int = 0
    document_files: int = 0
    image_files: int = 0
    video_files: int = 0
    archive_files: int = 0
    other_files: int = 0
    avg_response_time: int = 0
    availability_rate: float = 100.0
    day: Optional[date] = None

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["day"] = self.day.isoformat() if self.day else None
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "StorageMetricsSummary":
        data = dict(payload)
        if data.get("day"):
            data["day"] = date.fromisoformat(data["day"])
        return cls(**data)
