from datetime import datetime, timezone
from typing import Optional, Union


def now_std() -> datetime:
    """Return the current time as naive UTC truncated to milliseconds.

    This is the single source of truth for timestamps written to MongoDB.
    BSON dates keep millisecond precision, so truncating here keeps the value
    handed back to callers identical to the value read back from the store.
    """
    return truncate_ms(datetime.now(timezone.utc).replace(tzinfo=None))


def truncate_ms(dt: datetime) -> datetime:
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Format a stored (naive UTC) datetime as an ISO-8601 string with a Z suffix."""
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat(timespec='milliseconds') + 'Z'


def parse_iso_or_epoch(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """Parse ISO datetime or epoch seconds into naive UTC, or return None.

    Accepts the 'Z' suffix that JavaScript clients send.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc).replace(tzinfo=None)
    s = str(value).strip()
    try:
        return to_naive_utc(datetime.fromisoformat(s.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return datetime.fromtimestamp(float(s), tz=timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError, OSError):
        return None
