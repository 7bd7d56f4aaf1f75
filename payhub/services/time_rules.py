"""
Time rules service.
Handles overtime tiering of worked intervals, week boundaries, working-day
counting and timezone conversions.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

import pytz

from ..config import settings

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
HOUR_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class HoursSplit:
    normal: Decimal
    ot1_5: Decimal
    ot2_0: Decimal
    total: Decimal


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def utc_to_local(utc_datetime: datetime, timezone_str: Optional[str] = None) -> datetime:
    """
    Convert UTC datetime to local timezone.

    Args:
        utc_datetime: UTC datetime (timezone-aware or naive)
        timezone_str: Timezone string (defaults to settings.tz_default)

    Returns:
        Local datetime (timezone-aware)
    """
    tz = pytz.timezone(timezone_str or settings.tz_default)
    return ensure_utc(utc_datetime).astimezone(tz)


def local_date(dt: datetime, timezone_str: Optional[str] = None) -> date:
    return utc_to_local(dt, timezone_str).date()


def _round_hours(value: Decimal) -> Decimal:
    return value.quantize(HOUR_PLACES, rounding=ROUND_HALF_UP)


def worked_hours(
    clock_in: datetime,
    clock_out: datetime,
    lunch_out: Optional[datetime] = None,
    lunch_in: Optional[datetime] = None,
) -> Decimal:
    """Hours between clock in and out, minus the lunch break when both ends are recorded."""
    seconds = (ensure_utc(clock_out) - ensure_utc(clock_in)).total_seconds()
    if lunch_out is not None and lunch_in is not None:
        seconds -= (ensure_utc(lunch_in) - ensure_utc(lunch_out)).total_seconds()
    if seconds <= 0:
        return Decimal("0.00")
    return _round_hours(Decimal(str(seconds)) / Decimal("3600"))


def split_hours(total_hours) -> HoursSplit:
    """
    Tier a day's worked hours.

    The first ``standard_work_hours`` are normal, the next ``ot1_5_hours_cap``
    hours are paid at OT 1.5 and anything beyond that at OT 2.0.
    """
    total = _round_hours(Decimal(str(total_hours)))
    standard = Decimal(str(settings.standard_work_hours))
    ot1_5_cap = Decimal(str(settings.ot1_5_hours_cap))

    normal = min(total, standard)
    ot1_5 = min(max(total - standard, Decimal("0")), ot1_5_cap)
    ot2_0 = max(total - standard - ot1_5_cap, Decimal("0"))
    return HoursSplit(
        normal=_round_hours(normal),
        ot1_5=_round_hours(ot1_5),
        ot2_0=_round_hours(ot2_0),
        total=total,
    )


def week_bounds(day: date) -> Tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def day_name(day: date) -> str:
    return DAY_NAMES[day.weekday()]


def iter_days(start: date, end: date):
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=1)


def count_weekdays(start: date, end: date) -> int:
    return sum(1 for d in iter_days(start, end) if d.weekday() < 5)


def count_working_days(start: date, end: date, holidays: Iterable[date] = ()) -> int:
    """Weekdays in [start, end] that are not holidays."""
    holiday_set = set(holidays)
    return sum(1 for d in iter_days(start, end) if d.weekday() < 5 and d not in holiday_set)


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]
