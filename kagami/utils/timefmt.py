"""Wall-clock timestamps in the gateway's configured timezone."""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Shanghai"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], str]


def format_timestamp(moment: datetime, tz: str = DEFAULT_TIMEZONE) -> str:
    """Render ``moment`` as 'YYYY-MM-DD HH:MM:SS' in ``tz``.

    Naive datetimes are taken as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=ZoneInfo("UTC"))
    return moment.astimezone(ZoneInfo(tz)).strftime(TIMESTAMP_FORMAT)


def now_str(tz: str = DEFAULT_TIMEZONE) -> str:
    return datetime.now(ZoneInfo(tz)).strftime(TIMESTAMP_FORMAT)


def make_clock(tz: str = DEFAULT_TIMEZONE) -> Clock:
    """A zero-argument callable returning the current timestamp in ``tz``."""
    ZoneInfo(tz)  # fail fast on an unknown zone
    return lambda: now_str(tz)
