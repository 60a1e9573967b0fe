import logging

import networkx as nx

from calendar_engine import (
    to_date,
    add_business_days,
    subtract_business_days,
    business_days_between,
)
from dag_engine import build_dependency_graph, topological_order, predecessor_edges, successor_edges
from duration_engine import calculate_duration, to_number
from models import ConstraintType, DependencyType, frame_records

logger = logging.getLogger(__name__)


# --- Dependency rules ---
# Forward: candidate early start of the successor, given the predecessor.
# Backward: candidate late finish of the predecessor, given the successor.
# `duration` is always the duration of the task being computed.

FORWARD_RULES = {
    DependencyType.FS: lambda pred, duration, lag: add_business_days(pred["early_finish"], 1 + lag),
    DependencyType.SS: lambda pred, duration, lag: add_business_days(pred["early_start"], lag),
    DependencyType.FF: lambda pred, duration, lag: add_business_days(
        subtract_business_days(pred["early_finish"], duration - 1), lag),
    DependencyType.SF: lambda pred, duration, lag: add_business_days(
        subtract_business_days(pred["early_start"], duration - 1), lag),
}

BACKWARD_RULES = {
    DependencyType.FS: lambda succ, duration, lag: subtract_business_days(succ["late_start"], 1 + lag),
    DependencyType.SS: lambda succ, duration, lag: add_business_days(
        subtract_business_days(succ["late_start"], lag), duration),
    DependencyType.FF: lambda succ, duration, lag: subtract_business_days(succ["late_finish"], lag),
    DependencyType.SF: lambda succ, duration, lag: add_business_days(succ["late_start"], duration - 1 - lag),
}


def check_rules(rules, name):
    missing = set(DependencyType) - set(rules)
    if missing:
        raise NotImplementedError(f"{name} has no rule for {sorted(m.value for m in missing)}")


check_rules(FORWARD_RULES, "FORWARD_RULES")
check_rules(BACKWARD_RULES, "BACKWARD_RULES")


# --- Schedule task map ---

def is_completed(task):
    return to_number(task.get("progress")) == 100


def _scan_duration(task):
    """Duration used by the full CPM scan (no assignment resolution)."""
    if is_completed(task):
        stored = to_number(task.get("actual_duration")) or to_number(task.get("duration"))
        if stored:
            return max(1, int(stored))
    return calculate_duration(task.get("estimated_hours"))


def build_schedule_tasks(snapshot, G=None):
    """
    Builds the ephemeral ScheduleTask map {task_id: dict} for a project.
    Returns (schedule, G).
    """
    if G is None:
        G, _ = build_dependency_graph(snapshot.tasks, snapshot.dependencies)

    schedule = {}
    for task in frame_records(snapshot.tasks):
        task_id = task["id"]
        schedule[task_id] = {
            "id": task_id,
            "name": task.get("name"),
            "wbs_code": task.get("wbs_code"),
            "duration": _scan_duration(task),
            "early_start": None,
            "early_finish": None,
            "late_start": None,
            "late_finish": None,
            "total_float": None,
            "free_float": None,
            "is_critical_path": False,
            "predecessors": predecessor_edges(G, task_id),
            "successors": successor_edges(G, task_id),
            "constraint_type": ConstraintType.parse(task.get("constraint_type")),
            "constraint_date": to_date(task.get("constraint_date")),
            "estimated_hours": to_number(task.get("estimated_hours")),
            "is_completed": is_completed(task),
            "start_date": to_date(task.get("start_date")),
        }
    return schedule, G


def _apply_start_constraint(task, early_start):
    constraint_date = task["constraint_date"]
    if constraint_date is None:
        return early_start

    if task["constraint_type"] == ConstraintType.SNET:
        return max(early_start, constraint_date)
    if task["constraint_type"] == ConstraintType.MSO:
        return constraint_date
    return early_start


def _apply_finish_constraint(task, late_finish):
    constraint_date = task["constraint_date"]
    if constraint_date is None:
        return late_finish

    if task["constraint_type"] == ConstraintType.FNET:
        return min(late_finish, constraint_date)
    if task["constraint_type"] == ConstraintType.MFO:
        return constraint_date
    return late_finish


# --- Forward Pass ---

def forward_pass(snapshot, project_start_date, G=None):
    """
    Early Start / Early Finish for every task.
    ES = max over predecessors of the dependency-type candidate (see FORWARD_RULES),
    project start for tasks without predecessors; then snet/mso constraints.
    EF = ES + duration - 1 business days (a 1 day task starts and finishes the same day).

    Returns (schedule, G).
    """
    project_start = to_date(project_start_date)
    schedule, G = build_schedule_tasks(snapshot, G)

    for task_id in topological_order(G):
        task = schedule[task_id]
        duration = task["duration"]

        if task["is_completed"] and task["start_date"] is not None:
            # Completed work keeps its recorded start
            early_start = task["start_date"]
        elif not task["predecessors"]:
            early_start = _apply_start_constraint(task, project_start)
        else:
            candidates = []
            for pred in task["predecessors"]:
                pred_task = schedule.get(pred["task_id"])
                if pred_task is None or pred_task["early_finish"] is None:
                    continue
                rule = FORWARD_RULES[pred["type"]]
                candidates.append(rule(pred_task, duration, pred["lag_days"]))

            early_start = max(candidates) if candidates else project_start
            early_start = _apply_start_constraint(task, early_start)

        task["early_start"] = early_start
        task["early_finish"] = early_start if duration <= 1 else add_business_days(early_start, duration - 1)

    return schedule, G


# --- Backward Pass ---

def _schedule_graph(schedule):
    G = nx.DiGraph()
    G.add_nodes_from(schedule)
    for task_id, task in schedule.items():
        for succ in task["successors"]:
            if succ["task_id"] in schedule:
                G.add_edge(task_id, succ["task_id"])
    return G


def backward_pass(schedule, project_end_date):
    """
    Late Start / Late Finish for every task, walking successors first.
    LF = min over successors of the dependency-type candidate (see BACKWARD_RULES),
    project end for tasks without successors; then fnet/mfo constraints.
    LS = LF - (duration - 1) business days.
    Mutates and returns the schedule map.
    """
    project_end = to_date(project_end_date)
    order = topological_order(_schedule_graph(schedule))

    for task_id in reversed(order):
        task = schedule[task_id]
        duration = task["duration"]

        if not task["successors"]:
            late_finish = _apply_finish_constraint(task, project_end)
        else:
            candidates = []
            for succ in task["successors"]:
                succ_task = schedule.get(succ["task_id"])
                if succ_task is None or succ_task["late_start"] is None:
                    continue
                rule = BACKWARD_RULES[succ["type"]]
                candidates.append(rule(succ_task, duration, succ["lag_days"]))

            late_finish = min(candidates) if candidates else project_end
            late_finish = _apply_finish_constraint(task, late_finish)

        task["late_finish"] = late_finish
        task["late_start"] = late_finish if duration <= 1 else subtract_business_days(late_finish, duration - 1)

    return schedule


# --- Float & Critical Path ---

def calculate_float_and_critical_path(schedule):
    """
    Total Float = business days from EF to LF.
    Free Float = business days from EF to the earliest successor ES (total float for sinks).
    Critical = total float of zero.

    Returns the list of critical task ids in schedule order.
    """
    critical_tasks = []

    for task_id, task in schedule.items():
        if None in (task["early_start"], task["early_finish"], task["late_start"], task["late_finish"]):
            continue

        task["total_float"] = business_days_between(task["early_finish"], task["late_finish"])

        successor_starts = [
            schedule[s["task_id"]]["early_start"]
            for s in task["successors"]
            if s["task_id"] in schedule and schedule[s["task_id"]]["early_start"] is not None
        ]
        if successor_starts:
            task["free_float"] = max(0, business_days_between(task["early_finish"], min(successor_starts)))
        else:
            task["free_float"] = task["total_float"]

        task["is_critical_path"] = task["total_float"] == 0
        if task["is_critical_path"]:
            critical_tasks.append(task_id)

    return critical_tasks


def critical_path_length(schedule, critical_tasks):
    """Sum of durations of every zero-float task (not the longest single chain)."""
    return sum(schedule[t]["duration"] for t in critical_tasks if t in schedule)


def run_cpm(snapshot, project_start_date):
    """
    Forward pass, backward pass and float analysis over one project snapshot.

    Returns:
        dict: {"schedule", "project_end_date", "critical_tasks", "critical_path_length"}
              schedule is empty (and project_end_date None) for a project with no tasks.
    """
    schedule, _ = forward_pass(snapshot, project_start_date)
    if not schedule:
        return {"schedule": {}, "project_end_date": None, "critical_tasks": [], "critical_path_length": 0}

    project_end_date = max(t["early_finish"] for t in schedule.values())
    backward_pass(schedule, project_end_date)
    critical_tasks = calculate_float_and_critical_path(schedule)

    logger.info(
        f"CPM: {len(schedule)} tasks, project end {project_end_date}, "
        f"{len(critical_tasks)} critical"
    )
    return {
        "schedule": schedule,
        "project_end_date": project_end_date,
        "critical_tasks": critical_tasks,
        "critical_path_length": critical_path_length(schedule, critical_tasks),
    }
