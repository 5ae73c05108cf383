"""Timestamp parsing and elapsed-time formatting for flag queues."""

from __future__ import annotations

import datetime
from typing import Any, Optional


def parse_iso(value: Any) -> Optional[datetime.datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def format_elapsed(value: Any, now: Optional[datetime.datetime] = None) -> str:
    """Render time since ``value`` as ``"1d 2h 3m"``; ``"-"`` when unparseable."""
    start = parse_iso(value)
    if start is None:
        return "-"
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    diff = now - start
    if diff.total_seconds() <= 0:
        return "0m"
    total_minutes = int(diff.total_seconds() // 60)
    days, rem = divmod(total_minutes, 1440)
    hours, minutes = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)
