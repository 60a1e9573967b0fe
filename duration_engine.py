import datetime
import logging
import math

import numpy as np
import pandas as pd

import config
from calendar_engine import to_date, resource_calendar
from models import WorkMode

logger = logging.getLogger(__name__)

# Float residue left after splitting effort (e.g. 40h / 3 resources)
EFFORT_EPSILON = 1e-9


def to_number(value):
    """Lenient float conversion: None, NaN, '' and garbage -> None."""
    if value is None:
        return None
    try:
        num = float(value)
    except (ValueError, TypeError):
        return None
    if pd.isna(num):
        return None
    return num


def _positive(value, default):
    num = to_number(value)
    if num is None or num <= 0:
        return default
    return num


def calculate_duration(estimated_hours, hours_per_day=None):
    """
    Simple duration estimate in business days: ceil(hours / hours_per_day).
    Used by the full CPM scan where assignments are not resolved.
    Minimum 1 day.
    """
    hours_per_day = _positive(hours_per_day, config.DEFAULT_HOURS_PER_DAY)
    hours = to_number(estimated_hours)
    if not hours or hours <= 0:
        return 1
    return max(1, math.ceil(hours / hours_per_day))


def calculate_resource_duration(effort_hours, resource, allocation, start_date):
    """
    Simulates one resource burning through `effort_hours` day by day.

    - Non-working days (weekends per the resource calendar, exceptions) are skipped.
    - Daily capacity = max_hours_per_day * allocation / 100.
    - Capacity is also capped by max_hours_per_week, tracked in consecutive
      7 calendar day windows anchored at start_date (NOT Mon-Sun weeks).
    - Every working day counts, even if the weekly cap left no hours for it.

    Returns the number of working days consumed (minimum 1).
    """
    effort = to_number(effort_hours)
    if effort is None or effort <= 0:
        return 1

    resource = resource or {}
    max_per_day = _positive(resource.get("max_hours_per_day"), config.DEFAULT_HOURS_PER_DAY)
    max_per_week = _positive(resource.get("max_hours_per_week"), config.DEFAULT_MAX_HOURS_PER_WEEK)
    effective_per_day = max_per_day * _positive(allocation, 100) / 100

    cal = resource_calendar(resource)
    start = np.datetime64(to_date(start_date), 'D')
    one_day = np.timedelta64(1, 'D')

    remaining = effort
    current = start
    working_days = 0
    window = 0
    hours_in_window = 0.0

    while remaining > EFFORT_EPSILON:
        if not np.is_busday(current, busdaycal=cal):
            current += one_day
            continue

        current_window = int((current - start) // np.timedelta64(7, 'D'))
        if current_window != window:
            window = current_window
            hours_in_window = 0.0

        available_today = min(effective_per_day, max_per_week - hours_in_window)
        if available_today > 0:
            used = min(remaining, available_today)
            remaining -= used
            hours_in_window += used

        working_days += 1
        current += one_day

    return max(1, working_days)


def calculate_task_duration(task, assignments, work_mode=None, today=None):
    """
    Calendar-aware duration of a task given its resolved assignments
    (each assignment dict carries its resource under 'resource').

    Args:
        task (dict): task record.
        assignments (list): resolved resource assignments.
        work_mode: 'parallel' (slowest resource gates finish) or
                   'sequential' (resources work one after the other).
                   Defaults to the task's own work_mode.
        today (date): simulation anchor when the task has no start date.

    Returns:
        int: duration >= 1.
    """
    # Completed work is historical fact
    if to_number(task.get("progress")) == 100:
        stored = to_number(task.get("actual_duration")) or to_number(task.get("computed_duration"))
        return int(stored) if stored else 1

    estimated_hours = to_number(task.get("estimated_hours"))
    if not estimated_hours or estimated_hours <= 0:
        return 1

    assignments = assignments or []
    if not assignments:
        return max(1, math.ceil(estimated_hours / config.DEFAULT_HOURS_PER_DAY))

    mode = WorkMode.parse(work_mode if work_mode is not None else task.get("work_mode"))
    start_date = to_date(task.get("start_date")) or today or datetime.date.today()

    resource_durations = []
    for assignment in assignments:
        effort = to_number(assignment.get("effort_hours"))
        if effort is None:
            effort = estimated_hours / len(assignments)

        duration = calculate_resource_duration(
            effort,
            assignment.get("resource"),
            assignment.get("allocation"),
            start_date
        )
        resource_durations.append(duration)

    if mode == WorkMode.SEQUENTIAL:
        total = sum(resource_durations)
    else:
        total = max(resource_durations)

    logger.debug(f"Task {task.get('id')}: {mode.value} durations {resource_durations} -> {total}")
    return max(1, total)
