import datetime
import logging
import threading
from contextlib import contextmanager

import cpm_engine
import propagation_engine
from calendar_engine import to_date
from dag_engine import build_dependency_graph, predecessor_edges, successor_edges
from duration_engine import calculate_duration, to_number
from models import ConstraintType, frame_records

logger = logging.getLogger(__name__)

# One in-flight run per project id; different projects run concurrently.
# project_id -> [lock, number of callers holding or waiting on it]
_project_locks = {}
_registry_lock = threading.Lock()


@contextmanager
def project_lock(project_id):
    with _registry_lock:
        entry = _project_locks.setdefault(project_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del _project_locks[project_id]



def _result(success, message, tasks_updated=0, critical_path_length=0, project_end_date=None, critical_tasks=None):
    return {
        "success": success,
        "message": message,
        "tasks_updated": tasks_updated,
        "critical_path_length": critical_path_length,
        "project_end_date": project_end_date,
        "critical_tasks": critical_tasks or [],
    }


def schedule_fields(task):
    """Fields written back for a task after a full CPM run."""
    fields = {
        "duration": task["duration"],
        "early_start": task["early_start"],
        "early_finish": task["early_finish"],
        "late_start": task["late_start"],
        "late_finish": task["late_finish"],
        "total_float": task["total_float"],
        "free_float": task["free_float"],
        "is_critical_path": task["is_critical_path"],
    }
    # Completed tasks keep their recorded start/end
    if not task["is_completed"]:
        fields["start_date"] = task["early_start"]
        fields["end_date"] = task["early_finish"]
    return fields


def run_schedule(store, project_id, project_start_date=None):
    """
    Full CPM recompute of every task in a project.

    Never raises: any failure (cyclic dependencies included) is reported as
    {"success": False, "message": ...}. Callers must check `success`.

    Returns:
        dict: success, message, tasks_updated, critical_path_length,
              project_end_date, critical_tasks
    """
    try:
        with project_lock(project_id):
            snapshot = store.load_snapshot(project_id)
            if snapshot.tasks.empty:
                logger.info(f"Project {project_id}: no tasks to schedule")
                return _result(True, "No tasks to schedule")

            start_date = to_date(project_start_date) or datetime.date.today()
            cpm = cpm_engine.run_cpm(snapshot, start_date)
            schedule = cpm["schedule"]

            tasks_updated = 0
            for task_id, task in schedule.items():
                if store.update_task(task_id, schedule_fields(task)):
                    tasks_updated += 1

            logger.info(
                f"Project {project_id}: scheduled {tasks_updated} tasks from {start_date}, "
                f"end {cpm['project_end_date']}, critical path length {cpm['critical_path_length']}"
            )
            return _result(
                True,
                f"Successfully scheduled {tasks_updated} tasks",
                tasks_updated=tasks_updated,
                critical_path_length=cpm["critical_path_length"],
                project_end_date=cpm["project_end_date"],
                critical_tasks=cpm["critical_tasks"],
            )
    except Exception as e:
        logger.exception(f"Scheduling error for project {project_id}")
        return _result(False, str(e) or "Unknown scheduling error")


def propagate_dates(store, project_id, changed_task_id, today=None):
    """
    Incremental re-scheduling after `changed_task_id` was edited.
    Writes computed_duration / end_date for recomputed tasks and start_date
    for successors whose start moved later.
    """
    with project_lock(project_id):
        snapshot = store.load_snapshot(project_id)
        updates = propagation_engine.propagate(snapshot, changed_task_id, today=today)
        store.update_tasks(updates)


def get_schedule_data(store, project_id):
    """Read-only view of the stored schedule fields with resolved predecessor/successor lists."""
    snapshot = store.load_snapshot(project_id)
    G, _ = build_dependency_graph(snapshot.tasks, snapshot.dependencies)

    data = []
    for task in frame_records(snapshot.tasks):
        task_id = task["id"]
        duration = to_number(task.get("duration"))
        data.append({
            "id": task_id,
            "name": task.get("name"),
            "wbs_code": task.get("wbs_code"),
            "duration": int(duration) if duration else calculate_duration(task.get("estimated_hours")),
            "early_start": to_date(task.get("early_start")),
            "early_finish": to_date(task.get("early_finish")),
            "late_start": to_date(task.get("late_start")),
            "late_finish": to_date(task.get("late_finish")),
            "total_float": task.get("total_float"),
            "free_float": task.get("free_float"),
            "is_critical_path": bool(task.get("is_critical_path") or False),
            "predecessors": predecessor_edges(G, task_id),
            "successors": successor_edges(G, task_id),
            "constraint_type": ConstraintType.parse(task.get("constraint_type")).value,
            "constraint_date": to_date(task.get("constraint_date")),
            "estimated_hours": to_number(task.get("estimated_hours")),
        })
    return data
