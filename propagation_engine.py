import datetime
import logging
from collections import deque

from calendar_engine import to_date, add_calendar_days, subtract_business_days
from dag_engine import build_dependency_graph, successor_edges
from duration_engine import calculate_task_duration
from models import DependencyType, WorkMode, frame_records
from cpm_engine import is_completed, check_rules

logger = logging.getLogger(__name__)


def primary_resource(assignments):
    """The first assignment's resource drives calendar arithmetic for a task."""
    if assignments:
        return assignments[0].get("resource")
    return None


# Seed rules: which recomputed predecessor date the lag is counted from, and
# whether the seeded date is the successor's start or its finish.
SEED_RULES = {
    DependencyType.FS: ("end", "start"),
    DependencyType.SS: ("start", "start"),
    DependencyType.FF: ("end", "finish"),
    DependencyType.SF: ("start", "finish"),
}

check_rules(SEED_RULES, "SEED_RULES")


def _successor_start(dep_type, lag, start_date, end_date, successor, successor_assignments, today):
    """
    Candidate start date for a successor, seeded from the predecessor's
    freshly recomputed start/end. Lags are counted on the successor's calendar.
    """
    calendar = primary_resource(successor_assignments)
    anchor, seeds = SEED_RULES[dep_type]
    seeded = add_calendar_days(end_date if anchor == "end" else start_date, lag, calendar)
    if seeds == "start":
        return seeded

    # The successor's finish is anchored, so work back from it
    successor_duration = calculate_task_duration(
        successor, successor_assignments, WorkMode.parse(successor.get("work_mode")), today=today
    )
    return subtract_business_days(seeded, successor_duration)



def propagate(snapshot, changed_task_id, today=None, now=None):
    """
    Incremental re-scheduling after one task changed.

    Walks the changed task and every successor whose start moved, breadth first.
    Each task is processed at most once, which also bounds the walk on cyclic data.
    Start dates only ever move later.

    Args:
        snapshot (ProjectSnapshot): consistent read of the project.
        changed_task_id: the edited task.
        today (date): anchor for tasks without a start date.
        now (datetime): value written to updated_at.

    Returns:
        list of (task_id, fields) updates, in the order they were produced.
    """
    today = today or datetime.date.today()
    now = now or datetime.datetime.now()

    tasks = {t["id"]: dict(t) for t in frame_records(snapshot.tasks)}
    if changed_task_id not in tasks:
        logger.warning(f"Task {changed_task_id} not found, nothing to propagate")
        return []

    G, _ = build_dependency_graph(snapshot.tasks, snapshot.dependencies)
    assignments_by_task = snapshot.resolved_assignments()

    updates = []
    processed = set()
    queue = deque([changed_task_id])

    while queue:
        task_id = queue.popleft()
        if task_id in processed:
            continue
        processed.add(task_id)

        task = tasks[task_id]
        successors = successor_edges(G, task_id)

        if is_completed(task):
            logger.debug(f"Task {task_id} is completed, keeping its dates")
            for succ in successors:
                if not is_completed(tasks[succ["task_id"]]):
                    queue.append(succ["task_id"])
            continue

        assignments = assignments_by_task.get(task_id, [])
        computed_duration = calculate_task_duration(
            task, assignments, WorkMode.parse(task.get("work_mode")), today=today
        )

        start_date = to_date(task.get("start_date"))
        end_date = None
        if start_date is not None:
            end_date = add_calendar_days(start_date, computed_duration, primary_resource(assignments))

        task["computed_duration"] = computed_duration
        task["end_date"] = end_date
        updates.append((task_id, {
            "computed_duration": computed_duration,
            "end_date": end_date,
            "updated_at": now,
        }))
        logger.debug(f"Task {task_id}: duration {computed_duration}, {start_date} -> {end_date}")

        if start_date is None:
            continue

        for succ in successors:
            successor = tasks[succ["task_id"]]
            if is_completed(successor):
                continue

            candidate = _successor_start(
                succ["type"],
                succ["lag_days"],
                start_date,
                end_date,
                successor,
                assignments_by_task.get(succ["task_id"], []),
                today
            )

            current_start = to_date(successor.get("start_date"))
            if current_start is not None and candidate <= current_start:
                continue

            successor["start_date"] = candidate
            updates.append((succ["task_id"], {"start_date": candidate, "updated_at": now}))
            logger.debug(f"Task {succ['task_id']} start moved {current_start} -> {candidate}")

            if succ["task_id"] not in processed and succ["task_id"] not in queue:
                queue.append(succ["task_id"])

    logger.info(f"Propagated change of task {changed_task_id}: {len(updates)} updates")
    return updates
