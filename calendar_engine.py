import datetime
import logging

import numpy as np
import pandas as pd
import dateutil.parser

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
DEFAULT_WORKING_DAYS = DAY_NAMES[:5]

# numpy weekmask for the generic Mon-Fri calendar
BUSINESS_WEEKMASK = '1111100'


def to_date(value):
    """
    Coerces a date-ish value into datetime.date.
    Accepts date, datetime, pandas Timestamp, numpy datetime64 and ISO strings.
    None / NaN / NaT / empty string -> None.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, np.datetime64):
        if np.isnat(value):
            return None
        return pd.Timestamp(value).date()
    if isinstance(value, float) and pd.isna(value):
        return None

    text = str(value).strip()
    if not text or text.lower() in ("nan", "nat", "none"):
        return None
    return dateutil.parser.isoparse(text).date()


def _np_day(d):
    return np.datetime64(d, 'D')


def _from_np(d):
    return pd.Timestamp(d).date()


# --- Resource calendars ---

def _parse_working_days(raw):
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return None
    if isinstance(raw, str):
        # CSV friendly: "monday;tuesday" or "mon,tue"
        sep = ";" if ";" in raw else ","
        raw = [p for p in raw.split(sep)]
    days = []
    for item in raw:
        name = str(item).strip().lower()
        if not name:
            continue
        match = [d for d in DAY_NAMES if d.startswith(name[:3])]
        if match:
            days.append(match[0])
    return days


def _parse_exceptions(raw):
    """
    Returns the list of exception dates.
    Accepts [{date, type, note}, ...], a list of dates, or "2024-12-25:holiday;2024-12-26".
    """
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return []
    if isinstance(raw, str):
        sep = ";" if ";" in raw else ","
        raw = [p.split(":")[0] for p in raw.split(sep) if p.strip()]

    dates = []
    for item in raw:
        value = item.get("date") if isinstance(item, dict) else item
        d = to_date(value)
        if d is not None:
            dates.append(d)
    return dates


def working_days_for(resource):
    if not resource:
        return list(DEFAULT_WORKING_DAYS)
    days = _parse_working_days(resource.get("working_days"))
    if not days:
        if days is not None:
            # An empty calendar would never finish any work
            logger.warning(f"Resource {resource.get('id')} has no working days, using Mon-Fri")
        return list(DEFAULT_WORKING_DAYS)
    return days


def weekmask_for(resource):
    days = set(working_days_for(resource))
    return "".join("1" if name in days else "0" for name in DAY_NAMES)


def resource_calendar(resource):
    """numpy business-day calendar for a resource (Mon-Fri, no holidays when resource is None)."""
    if not resource:
        return np.busdaycalendar(weekmask=BUSINESS_WEEKMASK)
    holidays = [_np_day(d) for d in _parse_exceptions(resource.get("calendar_exceptions"))]
    return np.busdaycalendar(weekmask=weekmask_for(resource), holidays=holidays)


# --- Working day predicates ---

def is_working_day(date, resource=None):
    """
    True if the weekday is in the resource's working days (Mon-Fri by default)
    and the date is not a calendar exception (holiday, leave...).
    """
    return bool(np.is_busday(_np_day(to_date(date)), busdaycal=resource_calendar(resource)))


def next_working_day(date, resource=None):
    """Smallest working day strictly after `date`."""
    # roll='backward' first lands on the last working day <= date,
    # so +1 is always the first working day after date.
    d = np.busday_offset(_np_day(to_date(date)), 1, roll='backward', busdaycal=resource_calendar(resource))
    return _from_np(d)


def add_calendar_days(start_date, days, resource=None):
    """
    Advances `days` working days from start_date on the resource's calendar.
    Negative values walk backwards (leads). Zero returns start_date unchanged.
    """
    start = to_date(start_date)
    days = int(days or 0)
    if days == 0:
        return start

    cal = resource_calendar(resource)
    roll = 'backward' if days > 0 else 'forward'
    return _from_np(np.busday_offset(_np_day(start), days, roll=roll, busdaycal=cal))


# --- Generic Mon-Fri arithmetic (dependency lags, float) ---

def add_business_days(start_date, days):
    """
    Adds Mon-Fri business days. add_business_days(Fri, 1) -> Mon,
    add_business_days(Sat, 1) -> Mon. Negative values are subtracted.
    """
    start = to_date(start_date)
    days = int(days or 0)
    if days == 0:
        return start
    if days < 0:
        return subtract_business_days(start, -days)
    d = np.busday_offset(_np_day(start), days, roll='backward', weekmask=BUSINESS_WEEKMASK)
    return _from_np(d)


def subtract_business_days(end_date, days):
    """subtract_business_days(Mon, 1) -> Fri, subtract_business_days(Sun, 1) -> Fri."""
    end = to_date(end_date)
    days = int(days or 0)
    if days == 0:
        return end
    if days < 0:
        return add_business_days(end, -days)
    d = np.busday_offset(_np_day(end), -days, roll='forward', weekmask=BUSINESS_WEEKMASK)
    return _from_np(d)


def business_days_between(start_date, end_date):
    """
    Counts Mon-Fri days in (start, end]. Same day -> 0, Mon -> Tue -> 1.
    Returns 0 when end is not after start.
    """
    start = to_date(start_date)
    end = to_date(end_date)
    if start is None or end is None or end <= start:
        return 0

    # busday_count is exclusive of end, so shift both bounds by a day
    one = np.timedelta64(1, 'D')
    return int(np.busday_count(_np_day(start) + one, _np_day(end) + one, weekmask=BUSINESS_WEEKMASK))
