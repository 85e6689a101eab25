"""
Local-date helpers.

The server clock may run in UTC while learners study in their own timezone,
so "today" for daily progress and streaks is derived from the client's
offset when one is supplied. The offset follows the browser's
``Date.getTimezoneOffset()`` convention: minutes to add to local time to get
UTC (UTC+2 is ``-120``).
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def local_now(timezone_offset_minutes: Optional[int] = None) -> datetime:
    if timezone_offset_minutes is None:
        return datetime.now().astimezone()
    return datetime.now(timezone.utc) - timedelta(minutes=timezone_offset_minutes)


def local_today(timezone_offset_minutes: Optional[int] = None) -> date:
    return local_now(timezone_offset_minutes).date()


def local_hour(timezone_offset_minutes: Optional[int] = None) -> int:
    return local_now(timezone_offset_minutes).hour
