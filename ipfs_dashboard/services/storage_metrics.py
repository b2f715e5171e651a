"""Per-user storage activity log with daily rollups, persisted to a flat file."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..formatting import classify_file
from ..messaging import InMemoryBus, MessageEnvelope
from ..models import StorageActivity, StorageMetricsSummary
from .base import BaseService
from .cluster_monitor import ClusterMonitor

logger = logging.getLogger(__name__)

ACTIONS = ("upload", "download", "delete", "sync")


@dataclass
class StorageMetricsService(BaseService):
    bus: Optional[InMemoryBus] = None
    cluster_monitor: Optional[ClusterMonitor] = None
    activities: List[StorageActivity] = field(default_factory=list)
    daily_metrics: Dict[Tuple[str, date], StorageMetricsSummary] = field(default_factory=dict)
    _state_path: Optional[Path] = field(default=None, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        state_path = self.config.storage_metrics.state_path
        if state_path:
            self._state_path = Path(state_path).expanduser()
        self._load_state()

    def log_activity(
        self,
        user_id: str,
        action: str,
        *,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        ipfs_hash: Optional[str] = None,
        response_time: Optional[int] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> StorageActivity:
        if action not in ACTIONS:
            raise ValueError(f"Unknown storage action {action!r}; expected one of {', '.join(ACTIONS)}")
        activity = StorageActivity(
            user_id=user_id,
            action=action,
            file_name=file_name,
            file_size=file_size,
            ipfs_hash=ipfs_hash,
            response_time=response_time,
            success=success,
            error_message=error_message,
        )
        limit = self.config.storage_metrics.activity_limit
        with self._lock:
            self.activities.append(activity)
            if limit and len(self.activities) > limit:
                del self.activities[: len(self.activities) - limit]
            self._persist_state()
        self.emit_metric("storage.activity", 1, action=action, success=str(success).lower())
        if self.bus is not None:
            self.bus.publish(MessageEnvelope(topic="storage.activity", payload=activity.to_dict()))
        return activity

    def aggregate_daily_metrics(self, user_id: str, day: date) -> StorageMetricsSummary:
        with self._lock:
            activities = [a for a in self._activities_for(user_id) if a.timestamp.astimezone(timezone.utc).date() == day]
            summary = summarize_activities(activities)
            summary.day = day
            self.daily_metrics[(user_id, day)] = summary
            self._persist_state()
        return summary

    def get_user_metrics(self, user_id: str, days: int = 30) -> List[StorageMetricsSummary]:
        today = datetime.now(timezone.utc).date()
        start = today - timedelta(days=days)
        with self._lock:
            rollups = [
                summary
                for (owner, day), summary in self.daily_metrics.items()
                if owner == user_id and start <= day <= today
            ]
        return sorted(rollups, key=lambda summary: summary.day)

    def get_user_current_metrics(self, user_id: str) -> StorageMetricsSummary:
        with self._lock:
            rollups = [summary for (owner, _), summary in self.daily_metrics.items() if owner == user_id]
            if rollups:
                return max(rollups, key=lambda summary: summary.day)
            return summarize_activities(self._activities_for(user_id))

    def get_recent_activity(self, user_id: str, limit: int = 50) -> List[StorageActivity]:
        with self._lock:
            activities = self._activities_for(user_id)
        return sorted(activities, key=lambda activity: activity.timestamp, reverse=True)[:limit]

    def sync_with_cluster(self, user_id: str) -> StorageActivity:
        if self.cluster_monitor is None:
            return self.log_activity(
                user_id, "sync", file_name="cluster-sync", success=False, error_message="No cluster configured"
            )
        started = time.perf_counter()
        healthy = self.cluster_monitor.is_healthy(use_cache=False)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if not healthy:
            logger.warning("Cluster sync for %s failed: cluster offline", user_id)
        return self.log_activity(
            user_id,
            "sync",
            file_name="cluster-sync",
            response_time=elapsed_ms,
            success=healthy,
            error_message=None if healthy else "Cluster communication failed",
        )

    def _activities_for(self, user_id: str) -> List[StorageActivity]:
        return [activity for activity in self.activities if activity.user_id == user_id]

    # Persistence helpers -------------------------------------------------

    def _load_state(self) -> None:
        if not self._state_path or not self._state_path.exists():
            return
        try:
            payload = json.loads(self._state_path.read_text(encoding="utf-8"))
            activities = [StorageActivity.from_dict(item) for item in payload.get("activities", [])]
            rollups = [_rollup_from_dict(item) for item in payload.get("daily_metrics", [])]
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.error("Ignoring unreadable storage metrics state %s: %s", self._state_path, exc)
            self.emit_event("storage_metrics_state_corrupt", detail=str(exc))
            return
        self.activities.extend(activities)
        self.daily_metrics.update({(user_id, summary.day): summary for user_id, summary in rollups})

    def _persist_state(self) -> None:
        if not self._state_path:
            return
        payload = {
            "activities": [activity.to_dict() for activity in self.activities],
            "daily_metrics": [
                {"user_id": user_id, **summary.to_dict()} for (user_id, _), summary in self.daily_metrics.items()
            ],
        }
        try:
            self._state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._state_path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._state_path)
        except OSError as exc:
            logger.error("Failed to persist storage metrics to %s: %s", self._state_path, exc)


def summarize_activities(activities: Iterable[StorageActivity]) -> StorageMetricsSummary:
    activities = list(activities)
    uploads = [a for a in activities if a.action == "upload"]
    file_types = {"document": 0, "image": 0, "video": 0, "archive": 0, "other": 0}
    for upload in uploads:
        if upload.file_name:
            file_types[classify_file(upload.file_name)] += 1

    timed = [a.response_time for a in activities if a.success and a.response_time]
    avg_response = round(sum(timed) / len(timed)) if timed else 0
    availability = (sum(1 for a in activities if a.success) / len(activities) * 100) if activities else 100.0
    total_size = sum(a.file_size or 0 for a in uploads)

    return StorageMetricsSummary(
        total_files=len(uploads),
        total_size=total_size,
        pinned_files=len(uploads),
        pinned_size=total_size,
        upload_count=len(uploads),
        download_count=sum(1 for a in activities if a.action == "download"),
        delete_count=sum(1 for a in activities if a.action == "delete"),
        document_files=file_types["document"],
        image_files=file_types["image"],
        video_files=file_types["video"],
        archive_files=file_types["archive"],
        other_files=file_types["other"],
        avg_response_time=avg_response,
        availability_rate=availability,
    )


def _rollup_from_dict(payload: dict) -> Tuple[str, StorageMetricsSummary]:
    data = dict(payload)
    user_id = str(data.pop("user_id"))
    summary = StorageMetricsSummary.from_dict(data)
    if summary.day is None:
        raise ValueError(f"Rollup for {user_id} has no day")
    return user_id, summary
