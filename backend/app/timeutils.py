"""Helpers for the practice-local wall clock used by scheduling and reports."""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

LOGGER = logging.getLogger(__name__)

PRACTICE_TIMEZONE_ENV = "PRACTICE_TIMEZONE"
DEFAULT_PRACTICE_TIMEZONE = "Europe/Moscow"

END_OF_DAY = time(23, 59, 59, 999999)


@lru_cache(maxsize=1)
def practice_timezone() -> ZoneInfo:
    name = os.getenv(PRACTICE_TIMEZONE_ENV, DEFAULT_PRACTICE_TIMEZONE).strip()
    try:
        return ZoneInfo(name or DEFAULT_PRACTICE_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning(
            "Unknown %s=%s; falling back to %s",
            PRACTICE_TIMEZONE_ENV,
            name,
            DEFAULT_PRACTICE_TIMEZONE,
        )
        return ZoneInfo(DEFAULT_PRACTICE_TIMEZONE)


def to_practice_local(value: datetime) -> datetime:
    """Return ``value`` as a naive datetime on the practice wall clock.

    Naive values are assumed to already be practice-local.
    """

    if value.tzinfo is None:
        return value
    return value.astimezone(practice_timezone()).replace(tzinfo=None)


def practice_now() -> datetime:
    return datetime.now(practice_timezone()).replace(tzinfo=None)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, END_OF_DAY)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    return start_of_day(day), end_of_day(day)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    first = date(year, month, 1)
    if month == 12:
        following = date(year + 1, 1, 1)
    else:
        following = date(year, month + 1, 1)
    return first, following - timedelta(days=1)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
