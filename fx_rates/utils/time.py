from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def as_of_datetime(value: Optional[Union[date, datetime, str]]) -> Optional[datetime]:
    """
    Turn an optional as-of value into an aware UTC datetime.
    Plain dates (and YYYY-MM-DD strings) map to the start of that UTC day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    s = str(value).strip()
    try:
        if len(s) == 10:
            return datetime.combine(date.fromisoformat(s), time.min, tzinfo=timezone.utc)
        return ensure_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except ValueError:
        raise ValueError(f"invalid date: {value!r}") from None
