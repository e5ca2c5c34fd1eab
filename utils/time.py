from datetime import datetime, timezone
from typing import Optional


def get_current_utc_time() -> datetime:
    """Server-assigned timestamp for new records"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """MongoDB hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def timestamp_sort_key(value: Optional[datetime]) -> float:
    # A missing timestamp sorts as the oldest possible value
    if value is None:
        return float("-inf")
    return as_utc(value).timestamp()
