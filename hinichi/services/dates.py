"""Date handling for listing lookups.

Dates travel through the system as YYYYMMDD strings, the same shape the
upstream uses in its listing URLs.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

DATE_FORMAT = "%Y%m%d"
JST_OFFSET = timedelta(hours=9)


def parse_yyyymmdd(value: str) -> datetime:
    return datetime.strptime(value, DATE_FORMAT)


def subtract_days(yyyymmdd: str, days: int) -> str:
    """Calendar-correct subtraction, e.g. subtract_days("20260301", 1) == "20260228"."""
    return (parse_yyyymmdd(yyyymmdd) - timedelta(days=days)).strftime(DATE_FORMAT)


def yesterday_jst(now: Optional[datetime] = None) -> str:
    """Default listing date: now shifted to UTC+9, minus one day.

    The upstream publishes each day's listing once, so "today" in Japan is
    usually not available yet.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    yesterday = now + JST_OFFSET - timedelta(hours=24)
    return yesterday.strftime(DATE_FORMAT)


def candidate_dates(requested: str, allow_retry: bool, lookback_days: int = 2) -> List[str]:
    """Dates to probe, in priority order.

    A pinned date is probed alone; otherwise the requested date is followed by
    up to `lookback_days` earlier days.
    """
    if not allow_retry:
        return [requested]
    return [subtract_days(requested, offset) for offset in range(lookback_days + 1)]


def format_date_for_display(yyyymmdd: str) -> str:
    """20260210 -> 2026-02-10"""
    return f"{yyyymmdd[0:4]}-{yyyymmdd[4:6]}-{yyyymmdd[6:8]}"
