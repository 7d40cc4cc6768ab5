from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

CURRENT_MONTH = "current-month"
LAST_3_MONTHS = "last-3-months"
CUSTOM = "custom"
ALL_TIME = "all-time"


@dataclass(frozen=True)
class Period:
    """Inclusive ``[start, end]`` window over naive local date-times."""

    slug: str
    start: datetime
    end: datetime

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return self.end.date()


def local_now() -> datetime:
    """Current wall-clock time in the configured timezone, without tzinfo."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = d.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)


def parse_bound(value: str, *, end: bool = False) -> datetime:
    """Parse a ``YYYY-MM-DD`` date or an ISO date-time.

    A date-only upper bound covers the whole day. Offset-aware values are
    converted to the configured timezone and made naive. Raises ``ValueError``
    for anything unparseable.
    """
    value = value.strip()
    if len(value) == 10:
        day = date.fromisoformat(value)
        return end_of_day(day) if end else start_of_day(day)
    return to_local_naive(datetime.fromisoformat(value))


def current_month_period(now: Optional[datetime] = None) -> Period:
    now = now or local_now()
    today = now.date()
    return Period(
        CURRENT_MONTH,
        start_of_day(month_start(today)),
        end_of_day(month_end(today)),
    )


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> Optional[Period]:
    """Turn a period tag and optional bounds into a concrete window.

    Returns ``None`` when no date filter applies (``all-time``, no tag, an
    unknown tag, or ``custom`` without both bounds). ``custom`` does not check
    ``start <= end``; a reversed range simply matches nothing.
    """
    now = now or local_now()
    if not period or period == ALL_TIME:
        return None
    if period == CURRENT_MONTH:
        return current_month_period(now)
    if period == LAST_3_MONTHS:
        first = add_months(month_start(now.date()), -2)
        return Period(LAST_3_MONTHS, start_of_day(first), now)
    if period == CUSTOM:
        if not start or not end:
            return None
        return Period(CUSTOM, parse_bound(start), parse_bound(end, end=True))
    return None
