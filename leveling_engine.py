import datetime
import logging
import math

import config
from calendar_engine import to_date, add_calendar_days
from constraint_engine import detect_constraint_conflict
from duration_engine import calculate_task_duration, to_number
from models import WorkMode, frame_records
from propagation_engine import primary_resource

logger = logging.getLogger(__name__)

# Suggestion options
OPTION_ADD_RESOURCES = "add_resources"
OPTION_ADD_DUPLICATE = "add_duplicate_resource"
OPTION_ALLOCATION = "increase_allocation"
OPTION_HOURS = "increase_hours"

FEASIBILITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _allocation_feasibility(allocation):
    if allocation <= 150:
        return "high"
    if allocation <= 175:
        return "medium"
    return "low"


def _hours_feasibility(hours):
    return "high" if hours <= 10 else "medium"


def _resource_name(assignment):
    resource = assignment.get("resource") or {}
    return resource.get("name") or f"Resource {assignment.get('resource_id')}"


def _preview(task, assignments, work_mode, start_date, today, calendar_resource):
    duration = calculate_task_duration(task, assignments, work_mode, today=today)
    return duration, add_calendar_days(start_date, duration, calendar_resource)


def suggest_resource_leveling(task, assignments, conflict_days, constraint_date, constraint_type, today=None):
    """
    Proposes ways to pull a conflicting task back to its constraint date.

    Each suggestion re-runs the duration calculator with one hypothetical change:
      1. raise one resource's allocation (scaled to the conflict, capped at 200%)
      2. add a duplicate of the first assigned resource
      3. raise one resource's max hours per day by 2 (capped at 12)

    Suggestions are ranked by feasibility (high, medium, low) then by the
    resulting duration (shorter first). A task without resources only gets
    the advice to assign some.

    Returns a list of dicts:
        option, description, changes, preview_end_date, preview_duration, feasibility
    """
    assignments = assignments or []
    if not assignments:
        return [{
            "option": OPTION_ADD_RESOURCES,
            "description": "Assign resources to this task to enable duration calculation",
            "changes": [],
            "preview_end_date": None,
            "preview_duration": 0,
            "feasibility": "medium",
        }]

    today = today or datetime.date.today()
    conflict_days = to_number(conflict_days) or 0
    try:
        work_mode = WorkMode.parse(task.get("work_mode"))
    except ValueError:
        work_mode = WorkMode.PARALLEL
    start_date = to_date(task.get("start_date")) or today
    calendar_resource = primary_resource(assignments)

    suggestions = []

    # --- Option 1: Raise allocation ---
    # Rough scaling: every 10 days late asks for another 100% of the current allocation
    for idx, assignment in enumerate(assignments):
        current_allocation = to_number(assignment.get("allocation")) or 100
        target_allocation = min(config.MAX_ALLOCATION, math.ceil(current_allocation * (1 + conflict_days / 10)))
        if target_allocation <= current_allocation:
            continue

        trial = list(assignments)
        trial[idx] = dict(assignment, allocation=target_allocation)
        duration, end_date = _preview(task, trial, work_mode, start_date, today, calendar_resource)

        name = _resource_name(assignment)
        suggestions.append({
            "option": f"{OPTION_ALLOCATION}_{assignment.get('resource_id')}",
            "description": f"Increase {name}'s allocation from {current_allocation:g}% to {target_allocation}%",
            "changes": [{
                "type": "allocation",
                "resource_id": assignment.get("resource_id"),
                "resource_name": name,
                "current_value": current_allocation,
                "new_value": target_allocation,
            }],
            "preview_end_date": end_date,
            "preview_duration": duration,
            "feasibility": _allocation_feasibility(target_allocation),
        })

    # --- Option 2: Duplicate the first resource ---
    first = assignments[0]
    duplicate = dict(first, id=None, resource_id=None)
    duration, end_date = _preview(task, assignments + [duplicate], work_mode, start_date, today, calendar_resource)
    first_name = _resource_name(first)
    suggestions.append({
        "option": OPTION_ADD_DUPLICATE,
        "description": f"Add another {first_name} to work in parallel",
        "changes": [{
            "type": "add_resource",
            "resource_name": first_name,
            "current_value": len(assignments),
            "new_value": len(assignments) + 1,
        }],
        "preview_end_date": end_date,
        "preview_duration": duration,
        "feasibility": "medium",
    })

    # --- Option 3: Longer working days ---
    for idx, assignment in enumerate(assignments):
        resource = assignment.get("resource") or {}
        current_hours = to_number(resource.get("max_hours_per_day")) or config.DEFAULT_HOURS_PER_DAY
        new_hours = min(config.MAX_HOURS_PER_DAY_CAP, current_hours + 2)
        if new_hours <= current_hours:
            continue

        modified_resource = dict(resource, max_hours_per_day=new_hours)
        trial = list(assignments)
        trial[idx] = dict(assignment, resource=modified_resource)
        calendar = modified_resource if idx == 0 else calendar_resource
        duration, end_date = _preview(task, trial, work_mode, start_date, today, calendar)

        name = _resource_name(assignment)
        suggestions.append({
            "option": f"{OPTION_HOURS}_{assignment.get('resource_id')}",
            "description": f"Increase {name}'s max hours per day from {current_hours:g} to {new_hours:g}",
            "changes": [{
                "type": "max_hours_per_day",
                "resource_id": assignment.get("resource_id"),
                "resource_name": name,
                "current_value": current_hours,
                "new_value": new_hours,
            }],
            "preview_end_date": end_date,
            "preview_duration": duration,
            "feasibility": _hours_feasibility(new_hours),
        })

    logger.debug(
        f"Task {task.get('id')}: {len(suggestions)} leveling options for {conflict_days:g} days "
        f"late against {constraint_type} {constraint_date}"
    )
    return sorted(suggestions, key=lambda s: (FEASIBILITY_ORDER[s["feasibility"]], s["preview_duration"] or 0))


def diagnose_task(snapshot, task_id, today=None):
    """
    Computes a task's resource-driven duration and end date, checks its
    constraint and, when violated, proposes leveling options.

    Returns a dict: task_id, computed_duration, computed_end_date, conflict, suggestions
    """
    today = today or datetime.date.today()
    tasks = {t["id"]: t for t in frame_records(snapshot.tasks)}
    task = tasks.get(task_id)
    if task is None:
        raise KeyError(f"Task {task_id} not found")

    assignments = snapshot.resolved_assignments().get(task_id, [])
    duration = calculate_task_duration(task, assignments, today=today)

    start_date = to_date(task.get("start_date"))
    end_date = add_calendar_days(start_date, duration, primary_resource(assignments)) if start_date else None

    conflict = detect_constraint_conflict(task, end_date, assignments)
    suggestions = []
    if conflict["has_conflict"]:
        suggestions = suggest_resource_leveling(
            task,
            assignments,
            conflict["conflict_days"],
            conflict["constraint_date"],
            conflict["constraint_type"],
            today=today
        )

    return {
        "task_id": task_id,
        "computed_duration": duration,
        "computed_end_date": end_date,
        "conflict": conflict,
        "suggestions": suggestions,
    }
