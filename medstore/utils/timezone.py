# FILE: medstore/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date
from zoneinfo import ZoneInfo

from medstore.core.config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """
    Returns a *naive* datetime in the configured store timezone.
    DateTime columns are naive, so we never hand them aware values.
    """
    return datetime.now(local_tz()).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def period_key(dt: datetime | date) -> int:
    """YYYYMM as an int, used to scope monthly number series."""
    return dt.year * 100 + dt.month
