"""Wall-clock helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_local_time(now: datetime, tz_name: str) -> str:
    """Render ``now`` in ``tz_name`` like ``Sun Oct 18 2026 14:31:00 GMT+0800 (+08)``."""
    local = now.astimezone(ZoneInfo(tz_name))
    return f"{local.strftime('%a %b %d %Y %H:%M:%S')} GMT{local.strftime('%z')} ({local.tzname()})"


def time_grounding_text(now: datetime, tz_name: str) -> str:
    return f"Current time in {tz_name}: {format_local_time(now, tz_name)}"
