"""Formatting and parsing helpers used by the dashboard views."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]

_FILE_TYPES = {
    "document": {"pdf", "doc", "docx", "txt", "rtf", "odt"},
    "image": {"jpg", "jpeg", "png", "gif", "svg", "webp", "bmp"},
    "video": {"mp4", "avi", "mov", "mkv", "wmv", "flv", "webm"},
    "archive": {"zip", "rar", "7z", "tar", "gz", "bz2"},
}


def format_bytes(num_bytes: Union[int, float]) -> str:
    if not num_bytes or num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exponent]}"


def format_uptime(seconds: float) -> str:
    if not seconds or seconds <= 0:
        return "N/A"
    total_minutes = int(seconds // 60)
    days, rem_minutes = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem_minutes, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_time_ago(timestamp: Union[str, datetime], now: Optional[datetime] = None) -> str:
    moment = datetime.fromisoformat(timestamp) if isinstance(timestamp, str) else timestamp
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    reference = now or datetime.now(timezone.utc)
    diff_minutes = int((reference - moment).total_seconds() // 60)
    if diff_minutes < 1:
        return "just now"
    if diff_minutes < 60:
        return f"{diff_minutes}m ago"
    diff_hours = diff_minutes // 60
    if diff_hours < 24:
        return f"{diff_hours}h ago"
    return f"{diff_hours // 24}d ago"


def classify_file(file_name: str) -> str:
    extension = PurePosixPath(file_name or "").suffix.lstrip(".").lower()
    for kind, extensions in _FILE_TYPES.items():
        if extension in extensions:
            return kind
    return "other"


def parse_ndjson(text: str) -> List[dict]:
    """Decode newline-delimited JSON, skipping blank and malformed lines."""
    items: List[dict] = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            items.append(json.loads(line))
        except json.JSONDecodeError:
            logger.warning("Skipping malformed NDJSON line: %.80s", line)
    return items


def parse_json_or_ndjson(text: str) -> List[dict]:
    """Accept a JSON array, a single JSON object or NDJSON."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return parse_ndjson(text)
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return [payload]
    return []


def as_int(value: Any) -> int:
    """Coerce daemon-reported counters (often strings or null) to ``int``."""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
