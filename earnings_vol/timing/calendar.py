"""
US Equity Trading Calendar
==========================

Trading-day arithmetic over the NYSE holiday table.

Features:
- Holiday rules via pandas.tseries.holiday (observed dates)
- Business-day counting/offsetting via numpy busday functions
- Module-level default calendar for pure-function use
"""

from datetime import date, datetime, timedelta
from typing import Dict, Tuple, Union

import numpy as np
import pandas as pd
from pandas.tseries.holiday import (
    AbstractHolidayCalendar,
    GoodFriday,
    Holiday,
    USLaborDay,
    USMartinLutherKingJr,
    USMemorialDay,
    USPresidentsDay,
    USThanksgivingDay,
    nearest_workday,
)

DateLike = Union[date, datetime, pd.Timestamp]


class NYSEHolidayCalendar(AbstractHolidayCalendar):
    """NYSE full-day closures. Weekend fixed-date holidays move to the nearest weekday."""
    rules = [
        Holiday("New Year's Day", month=1, day=1, observance=nearest_workday),
        USMartinLutherKingJr,
        USPresidentsDay,
        GoodFriday,
        USMemorialDay,
        Holiday("Juneteenth", month=6, day=19, start_date="2021-06-18", observance=nearest_workday),
        Holiday("Independence Day", month=7, day=4, observance=nearest_workday),
        USLaborDay,
        USThanksgivingDay,
        Holiday("Christmas Day", month=12, day=25, observance=nearest_workday),
    ]


def to_date(value: DateLike) -> date:
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    return value


class TradingCalendar:
    """
    Trading-day calculator.

    Holidays are materialised once per year range and cached on the
    instance.
    """

    def __init__(self, holiday_calendar: AbstractHolidayCalendar = None):
        self.holiday_calendar = holiday_calendar or NYSEHolidayCalendar()
        self._busday_cache: Dict[Tuple[int, int], np.busdaycalendar] = {}

    def _busday_calendar(self, first_year: int, last_year: int) -> np.busdaycalendar:
        key = (first_year, last_year)
        cached = self._busday_cache.get(key)
        if cached is None:
            holidays = self.holiday_calendar.holidays(
                start=f"{first_year - 1}-12-01", end=f"{last_year + 1}-01-31"
            )
            cached = np.busdaycalendar(
                weekmask="1111100",
                holidays=holidays.values.astype("datetime64[D]"),
            )
            self._busday_cache[key] = cached
        return cached

    def _calendar_for(self, *dates: date) -> np.busdaycalendar:
        years = [d.year for d in dates]
        # Pad one year either side so offsets that cross a year boundary resolve
        return self._busday_calendar(min(years) - 1, max(years) + 1)

    def is_holiday(self, day: DateLike) -> bool:
        """True for an observed exchange holiday that falls on a weekday."""
        d = to_date(day)
        return d.weekday() < 5 and not self.is_trading_day(d)

    def is_trading_day(self, day: DateLike) -> bool:
        d = to_date(day)
        return bool(np.is_busday(np.datetime64(d, "D"), busdaycal=self._calendar_for(d)))

    def get_trading_days(self, start: DateLike, end: DateLike, include_end: bool = False) -> int:
        """
        Count trading days in [start, end), or [start, end] with include_end.

        Returns 0 when start >= end.
        """
        s, e = to_date(start), to_date(end)
        if s >= e:
            return 0
        stop = e + timedelta(days=1) if include_end else e
        return int(np.busday_count(
            np.datetime64(s, "D"), np.datetime64(stop, "D"), busdaycal=self._calendar_for(s, stop)
        ))

    def add_trading_days(self, day: DateLike, n: int) -> date:
        """
        Move n trading days forward (or backward for negative n).

        The starting date itself need not be a trading day; it is never
        counted.
        """
        d = to_date(day)
        if n == 0:
            return d
        # Roll away from the direction of travel so a non-trading start is not counted
        roll = "backward" if n > 0 else "forward"
        span = abs(n) * 2 + 30
        cal = self._calendar_for(d - timedelta(days=span), d + timedelta(days=span))
        result = np.busday_offset(np.datetime64(d, "D"), n, roll=roll, busdaycal=cal)
        return pd.Timestamp(result).date()

    def next_trading_day(self, day: DateLike) -> date:
        return self.add_trading_days(day, 1)

    def previous_trading_day(self, day: DateLike) -> date:
        return self.add_trading_days(day, -1)


DEFAULT_CALENDAR = TradingCalendar()
