"""Time helpers. All stored timestamps are naive UTC."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Normalise a datetime or ISO-8601 string to naive UTC. Unparseable input gives None."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def day_bounds(value: datetime):
    """Return the [start, end) UTC calendar day containing `value`."""
    start = start_of_day(value)
    return start, start + timedelta(days=1)
