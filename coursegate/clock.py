from datetime import datetime, timezone
from typing import Callable

# Timestamps are stored as naive UTC.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    """Whole seconds between two timestamps, never negative."""
    if started_at.tzinfo is not None:
        started_at = started_at.astimezone(timezone.utc).replace(tzinfo=None)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return max(0, int((now - started_at).total_seconds()))
