# Utility functions for reservation input handling
import re
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional
from .error_utils import (InvalidDate, InvalidDateFormat, MissingDateRange, MissingDates,
                          RangeInverted, RangeTooLong)

MAX_CALENDAR_DAYS = 500

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def parse_date(raw) -> date:
    """
    Parses a YYYY-MM-DD string into a date.

    Raises InvalidDate if the input is not exactly in that format, e.g. 2019-1-5, or does not describe
    an existing calendar day, e.g. 2019-13-01.
    """
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not DATE_PATTERN.fullmatch(raw):
        raise InvalidDate()
    try:
        return datetime.strptime(raw, '%Y-%m-%d').date()
    except ValueError:
        raise InvalidDate()


def parse_reservation_dates(raw_dates) -> List[date]:
    """
    Validates the dates given to a reserve or release call.

    Input: list of YYYY-MM-DD strings, or a comma separated string (query parameter form).
    Returns: sorted list of distinct dates.

    Raises MissingDates when nothing usable was given and InvalidDateFormat when any entry is not a YYYY-MM-DD date.
    """
    if isinstance(raw_dates, str):
        raw_dates = [part for part in raw_dates.split(',') if part.strip()]
    elif not isinstance(raw_dates, (list, tuple, set, frozenset)):
        raise MissingDates()
    if not raw_dates:
        raise MissingDates()

    dates = set()
    for raw in raw_dates:
        if isinstance(raw, date):
            dates.add(raw)
            continue
        if not isinstance(raw, str) or not DATE_PATTERN.fullmatch(raw.strip()):
            raise InvalidDateFormat()
        try:
            dates.add(datetime.strptime(raw.strip(), '%Y-%m-%d').date())
        except ValueError:
            raise InvalidDateFormat()
    return sorted(dates)


def validate_calendar_range(raw_start, raw_end) -> tuple:
    """
    Checks the calendar query in the order the client expects the errors:
      1. both dates present
      2. both dates valid
      3. start not after end
      4. at most 500 days, both ends included
    """
    if not raw_start or not raw_end:
        raise MissingDateRange()
    start = parse_date(raw_start)
    end = parse_date(raw_end)
    if start > end:
        raise RangeInverted()
    if (end - start).days + 1 > MAX_CALENDAR_DAYS:
        raise RangeTooLong()
    return start, end


def resolve_listing_range(raw_start, raw_end, today: Optional[date] = None) -> tuple:
    """
    Listing views are open ended: startDate defaults to today and endDate may be left out.
    """
    start = parse_date(raw_start) if raw_start else (today or date.today())
    end = parse_date(raw_end) if raw_end else None
    if end is not None and start > end:
        raise RangeInverted()
    return start, end


def iterate_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)
