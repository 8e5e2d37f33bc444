"""
Trading-day clock utilities for Indian index options.

All "HH:MM" times are interpreted in IST and converted to UTC for database queries.
Sessions are Mon-Fri only (no holiday calendar).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Union

import pandas as pd

IST = timezone(timedelta(hours=5, minutes=30))
UTC = timezone.utc


def parse_hhmm(value: Union[str, time]) -> time:
    """
    Parse "HH:MM" (or "HH:MM:SS") into a time object.

    Raises:
        ValueError: If the string is not a valid clock time
    """
    if isinstance(value, time):
        return value
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time: {value!r}. Expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def to_date(value: Union[str, date, datetime]) -> date:
    """Coerce 'YYYY-MM-DD' strings and datetimes to a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()


def trading_datetime(day: Union[str, date], clock: Union[str, time], tz: timezone = IST) -> datetime:
    """
    Combine a trading day and an IST clock time into a UTC datetime.

    Example:
        >>> trading_datetime(date(2025, 10, 1), "09:20")
        datetime.datetime(2025, 10, 1, 3, 50, tzinfo=datetime.timezone.utc)
    """
    local = datetime.combine(to_date(day), parse_hhmm(clock)).replace(tzinfo=tz)
    return local.astimezone(UTC)


def to_ist(ts: datetime) -> datetime:
    """Convert a timestamp to IST (naive timestamps are assumed UTC)"""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(IST)


def weekdays_between(start: Union[str, date], end: Union[str, date]) -> List[date]:
    """Mon-Fri dates in [start, end], ascending"""
    start_d, end_d = to_date(start), to_date(end)
    if end_d < start_d:
        return []
    return [ts.date() for ts in pd.bdate_range(start=start_d, end=end_d)]


def last_n_weekdays(n: int, today: Optional[date] = None) -> List[date]:
    """
    The last n Mon-Fri dates ending at `today` (inclusive), most recent first.
    """
    current = today or datetime.now(IST).date()
    result: List[date] = []
    while len(result) < n:
        if current.weekday() < 5:
            result.append(current)
        current -= timedelta(days=1)
    return result
