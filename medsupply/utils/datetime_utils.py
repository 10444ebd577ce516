"""
Date helpers for report queries.

Supply tables store naive local timestamps (hospital wall-clock time), so
"today" is computed in the configured report timezone and day filters are
half-open ranges over naive datetimes.
"""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def local_today(tz_name: str) -> date:
    """
    Current calendar date in the given IANA timezone.

    Args:
        tz_name: e.g. "Asia/Bangkok"

    Returns:
        Today's date as seen in that timezone
    """
    return datetime.now(ZoneInfo(tz_name)).date()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """
    Naive [start, end) datetimes covering one calendar day.

    Args:
        day: the calendar day

    Returns:
        (midnight of day, midnight of the next day)
    """
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def format_report_date(day: date) -> str:
    return day.strftime("%Y-%m-%d")
