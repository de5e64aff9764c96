# taskflow/core/clock.py
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_seconds(start: datetime, now: datetime) -> int:
    """Whole seconds between two instants, floored, never negative."""
    delta = as_utc(now) - as_utc(start)
    return max(int(delta.total_seconds()), 0)
