"""Resolve the parser's relative time phrases into concrete date ranges."""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

_DAYS_AGO_RE = re.compile(r"(\d+)\s+days?\s+ago")

# Northern-hemisphere meteorological seasons: (first month, last month).
_SEASONS = {
    "spring": (3, 5),
    "summer": (6, 8),
    "fall": (9, 11),
    "autumn": (9, 11),
    "winter": (12, 2),
}


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date  # inclusive

    def contains(self, moment: datetime | date | None) -> bool:
        if moment is None:
            return False
        day = moment.date() if isinstance(moment, datetime) else moment
        return self.start <= day <= self.end

    def bounds(self) -> tuple[datetime, datetime]:
        """(start of first day, end of last day) as naive datetimes."""
        return datetime.combine(self.start, time.min), datetime.combine(self.end, time.max)


def _month_range(year: int, month: int) -> DateRange:
    last = calendar.monthrange(year, month)[1]
    return DateRange(date(year, month, 1), date(year, month, last))


def _season_range(name: str, today: date) -> DateRange:
    """Most recent occurrence of the season that has already started."""
    first, last = _SEASONS[name]
    if first <= last:
        year = today.year if today.month >= first else today.year - 1
        return DateRange(date(year, first, 1), _month_range(year, last).end)

    # Winter spans the year boundary: Dec of year N to Feb of year N+1.
    start_year = today.year if today.month >= first else today.year - 1
    return DateRange(date(start_year, first, 1), _month_range(start_year + 1, last).end)


def resolve_time_period(text: str | None, today: date | None = None) -> DateRange | None:
    """Turn "last week", "yesterday", "3 days ago", "summer" ... into a DateRange.

    Returns None for text it does not understand.
    """
    if not text:
        return None
    phrase = " ".join(text.lower().split())
    today = today or date.today()

    if phrase == "today":
        return DateRange(today, today)
    if phrase == "yesterday":
        day = today - timedelta(days=1)
        return DateRange(day, day)

    m = _DAYS_AGO_RE.fullmatch(phrase)
    if m:
        try:
            day = today - timedelta(days=int(m.group(1)))
        except (OverflowError, ValueError):
            # Before the first representable day: nothing was taken then.
            day = date.min
        return DateRange(day, day)

    if phrase == "this week":
        monday = today - timedelta(days=today.weekday())
        return DateRange(monday, today)
    if phrase == "last week":
        monday = today - timedelta(days=today.weekday() + 7)
        return DateRange(monday, monday + timedelta(days=6))

    if phrase == "this month":
        return DateRange(date(today.year, today.month, 1), today)
    if phrase == "last month":
        first_of_month = date(today.year, today.month, 1)
        previous = first_of_month - timedelta(days=1)
        return _month_range(previous.year, previous.month)

    if phrase == "this year":
        return DateRange(date(today.year, 1, 1), today)
    if phrase == "last year":
        return DateRange(date(today.year - 1, 1, 1), date(today.year - 1, 12, 31))

    if phrase in _SEASONS:
        return _season_range(phrase, today)

    return None
