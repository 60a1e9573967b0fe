from dataclasses import dataclass, field
from enum import Enum

import pandas as pd


class DependencyType(str, Enum):
    FS = "FS"  # Finish-to-Start
    SS = "SS"  # Start-to-Start
    FF = "FF"  # Finish-to-Finish
    SF = "SF"  # Start-to-Finish

    @classmethod
    def parse(cls, value):
        """Accepts 'FS', 'fs', DependencyType.FS. Empty values default to FS."""
        if isinstance(value, cls):
            return value
        if value is None or (isinstance(value, float) and pd.isna(value)) or str(value).strip() == "":
            return cls.FS
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown dependency type: '{value}'")


class ConstraintType(str, Enum):
    ASAP = "asap"  # As Soon As Possible
    ALAP = "alap"  # As Late As Possible
    SNET = "snet"  # Start No Earlier Than
    MSO = "mso"    # Must Start On
    FNET = "fnet"  # Finish No Earlier Than
    MFO = "mfo"    # Must Finish On
    SNLT = "snlt"  # Start No Later Than
    FNLT = "fnlt"  # Finish No Later Than

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if value is None or (isinstance(value, float) and pd.isna(value)) or str(value).strip() == "":
            return cls.ASAP
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown constraint type: '{value}'")

    @property
    def has_date(self):
        return self not in (ConstraintType.ASAP, ConstraintType.ALAP)


class WorkMode(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if value is None or (isinstance(value, float) and pd.isna(value)) or str(value).strip() == "":
            return cls.PARALLEL
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown work mode: '{value}'")


# --- Errors ---

class ScheduleError(Exception):
    """Base error for the scheduling engines."""


class CyclicDependencyError(ScheduleError):
    """
    Raised when the dependency graph of a project is not a DAG.
    `edge` is one (predecessor_id, successor_id) pair on the cycle,
    `cycle` the full list of edges found.
    """

    def __init__(self, edge, cycle=None):
        self.edge = edge
        self.cycle = cycle or [edge]
        path = " -> ".join(str(u) for u, _ in self.cycle)
        super().__init__(
            f"Cyclic dependency detected on edge {edge[0]} -> {edge[1]} (cycle: {path} -> {self.cycle[0][0]})"
        )


# --- Snapshot ---

TASK_COLUMNS = [
    "id", "project_id", "name", "wbs_code", "estimated_hours", "actual_hours",
    "progress", "start_date", "end_date", "duration", "computed_duration",
    "actual_duration", "early_start", "early_finish", "late_start", "late_finish",
    "total_float", "free_float", "is_critical_path", "constraint_type",
    "constraint_date", "work_mode", "parent_id", "updated_at",
]

DEPENDENCY_COLUMNS = ["project_id", "predecessor_id", "successor_id", "type", "lag_days"]

RESOURCE_COLUMNS = [
    "id", "project_id", "name", "working_days", "calendar_exceptions",
    "max_hours_per_day", "max_hours_per_week",
]

ASSIGNMENT_COLUMNS = ["id", "task_id", "resource_id", "allocation", "effort_hours"]


def _empty_frame(columns):
    return pd.DataFrame(columns=columns, dtype=object)


def frame_records(df):
    """DataFrame -> list of dicts with NaN/NaT replaced by None."""
    if df is None or df.empty:
        return []
    clean = df.astype(object).where(pd.notna(df), None)
    return clean.to_dict("records")


@dataclass
class ProjectSnapshot:
    """
    Consistent read of one project's records. Engines never mutate it;
    they return computed values that the caller writes back through the store.
    """
    project_id: object = None
    tasks: pd.DataFrame = field(default_factory=lambda: _empty_frame(TASK_COLUMNS))
    dependencies: pd.DataFrame = field(default_factory=lambda: _empty_frame(DEPENDENCY_COLUMNS))
    resources: pd.DataFrame = field(default_factory=lambda: _empty_frame(RESOURCE_COLUMNS))
    assignments: pd.DataFrame = field(default_factory=lambda: _empty_frame(ASSIGNMENT_COLUMNS))

    def task_records(self):
        return frame_records(self.tasks)

    def dependency_records(self):
        return frame_records(self.dependencies)

    def resource_records(self):
        return frame_records(self.resources)

    def assignment_records(self):
        return frame_records(self.assignments)

    def resolved_assignments(self):
        """
        Joins assignments to their resources.
        Returns {task_id: [assignment dict with 'resource' key, ...]}.
        Assignments pointing at unknown resources are dropped.
        """
        resource_map = {r["id"]: r for r in self.resource_records()}
        by_task = {}
        for assignment in self.assignment_records():
            resource = resource_map.get(assignment.get("resource_id"))
            if resource is None:
                continue
            resolved = dict(assignment)
            resolved["resource"] = resource
            by_task.setdefault(assignment.get("task_id"), []).append(resolved)
        return by_task
