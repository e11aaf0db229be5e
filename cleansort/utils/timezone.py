from datetime import datetime, timezone as dt_timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Accept datetimes or ISO-8601 strings (with 'Z' or an offset) and return UTC-aware."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc_aware(value)
    return to_utc_aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def isoformat_utc(dt: Optional[datetime]) -> str:
    if dt is None:
        return ""
    return to_utc_aware(dt).isoformat().replace("+00:00", "Z")
