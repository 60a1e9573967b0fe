import logging
import math

from calendar_engine import to_date
from models import ConstraintType

logger = logging.getLogger(__name__)

FINISH_CONSTRAINTS = (ConstraintType.MFO, ConstraintType.FNLT)
START_CONSTRAINTS = (ConstraintType.MSO, ConstraintType.SNLT)


def _safe_date(value):
    try:
        return to_date(value)
    except (ValueError, OverflowError):
        logger.warning(f"Unparseable date {value!r}, treating as no date")
        return None


def _days_late(computed, constraint):
    return math.ceil((computed - constraint).total_seconds() / 86400)


def detect_constraint_conflict(task, computed_end_date, assignments=None):
    """
    Compares a task's computed dates against its hard constraint.

    - mfo / fnlt: conflict when the computed end is after the constraint date.
    - mso / snlt: conflict when the task's start is after the constraint date.
    - asap / alap / snet / fnet or no constraint date: never a conflict.

    `assignments` are accepted for symmetry with the leveling advisor and
    are not needed for the check itself.

    Returns a dict:
        has_conflict, constraint_type, constraint_date, computed_end_date,
        conflict_days (None when no conflict), message
    """
    try:
        constraint_type = ConstraintType.parse(task.get("constraint_type"))
    except ValueError:
        logger.warning(f"Task {task.get('id')}: unknown constraint type {task.get('constraint_type')!r}")
        constraint_type = ConstraintType.ASAP

    constraint_date = _safe_date(task.get("constraint_date"))
    computed_end_date = _safe_date(computed_end_date)

    report = {
        "has_conflict": False,
        "constraint_type": constraint_type.value,
        "constraint_date": constraint_date,
        "computed_end_date": computed_end_date,
        "conflict_days": None,
        "message": "",
    }

    if constraint_date is None or not constraint_type.has_date:
        return report

    if constraint_type in FINISH_CONSTRAINTS:
        label, computed = "finish", computed_end_date
    elif constraint_type in START_CONSTRAINTS:
        label, computed = "start", _safe_date(task.get("start_date"))
    else:
        return report

    if computed is None or computed <= constraint_date:
        return report

    conflict_days = _days_late(computed, constraint_date)
    report["has_conflict"] = True
    report["conflict_days"] = conflict_days
    report["message"] = (
        f"Computed {label} date ({computed.isoformat()}) is {conflict_days} days "
        f"after constraint date ({constraint_date.isoformat()})"
    )
    return report
