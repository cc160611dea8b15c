"""
Time helpers with timezone awareness

All day-based rules (streaks, weekly goals, time-of-day badges) use the
learner's local calendar, not UTC.
"""
from datetime import datetime, date, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Invalid timezone {name}, falling back to UTC: {e}")
        return ZoneInfo("UTC")


def make_clock(timezone_name: str) -> Clock:
    """Clock returning the current time in the given IANA timezone"""
    zone = get_zone(timezone_name)

    def now() -> datetime:
        return datetime.now(zone)

    return now


def local_day(moment: datetime, reference: Optional[datetime] = None) -> date:
    """
    Calendar day of `moment` in the timezone of `reference`.

    Naive datetimes are treated as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if reference is not None and reference.tzinfo is not None:
        moment = moment.astimezone(reference.tzinfo)
    return moment.date()
