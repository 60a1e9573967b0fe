import logging
import os

import pandas as pd

import utils
from dag_engine import dependencies_from_tasks
from models import (
    ProjectSnapshot,
    ConstraintType,
    DependencyType,
    WorkMode,
    TASK_COLUMNS,
    DEPENDENCY_COLUMNS,
    RESOURCE_COLUMNS,
    ASSIGNMENT_COLUMNS,
    frame_records,
)

logger = logging.getLogger(__name__)

TASKS_FILE = "tasks.csv"
DEPENDENCIES_FILE = "dependencies.csv"
RESOURCES_FILE = "resources.csv"
ASSIGNMENTS_FILE = "assignments.csv"


def _frame(data, columns):
    """DataFrame from a DataFrame / list of dicts, with every expected column present (object dtype)."""
    if data is None:
        df = pd.DataFrame(columns=columns)
    elif isinstance(data, pd.DataFrame):
        df = data.copy()
    else:
        df = pd.DataFrame(list(data))

    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df.astype(object)


class ScheduleStore:
    """
    In-memory record store for tasks, dependencies, resources and assignments.

    This is the read/write collaborator of the scheduling service: it hands out
    consistent per-project snapshots and accepts per-task field updates.
    Tables are pandas DataFrames so they can be loaded from / shown as CSV.
    """

    def __init__(self, tasks=None, dependencies=None, resources=None, assignments=None):
        self.tasks = _frame(tasks, TASK_COLUMNS)
        self.dependencies = _frame(dependencies, DEPENDENCY_COLUMNS)
        self.resources = _frame(resources, RESOURCE_COLUMNS)
        self.assignments = _frame(assignments, ASSIGNMENT_COLUMNS)

    # --- Reads ---

    @staticmethod
    def _for_project(df, project_id):
        if project_id is None:
            return df.copy()
        return df[df["project_id"] == project_id].copy()

    def load_snapshot(self, project_id):
        """Consistent copy of one project's records."""
        tasks = self._for_project(self.tasks, project_id)
        task_ids = set(tasks["id"])

        # Dependencies without a project id are matched through their tasks
        deps = self.dependencies
        if project_id is not None:
            in_project = (deps["project_id"] == project_id) | (
                deps["project_id"].isna() & deps["successor_id"].isin(task_ids)
            )
            deps = deps[in_project]

        resources = self.resources
        if project_id is not None:
            resources = resources[(resources["project_id"] == project_id) | resources["project_id"].isna()]

        assignments = self.assignments[self.assignments["task_id"].isin(task_ids)]

        return ProjectSnapshot(
            project_id=project_id,
            tasks=tasks.reset_index(drop=True),
            dependencies=deps.copy().reset_index(drop=True),
            resources=resources.copy().reset_index(drop=True),
            assignments=assignments.copy().reset_index(drop=True),
        )

    def get_task(self, task_id):
        rows = frame_records(self.tasks[self.tasks["id"] == task_id])
        return rows[0] if rows else None

    # --- Writes ---

    def update_task(self, task_id, fields):
        """Writes `fields` onto the task row. Unknown task ids are ignored (logged)."""
        mask = self.tasks["id"] == task_id
        if not mask.any():
            logger.warning(f"update_task: task {task_id} not found")
            return False

        for col, value in fields.items():
            if col not in self.tasks.columns:
                self.tasks[col] = None
            if self.tasks[col].dtype != object:
                self.tasks[col] = self.tasks[col].astype(object)
            for idx in self.tasks.index[mask]:
                self.tasks.at[idx, col] = value
        return True

    def update_tasks(self, updates):
        """Applies a list of (task_id, fields) updates in order."""
        written = 0
        for task_id, fields in updates:
            if self.update_task(task_id, fields):
                written += 1
        return written

    # --- Loading ---

    @classmethod
    def from_csv(cls, tasks_file, dependencies_file=None, resources_file=None, assignments_file=None):
        """
        Loads the four tables from CSV files (paths or file-like objects).
        When no dependency file is given, a compact 'predecessors' column on
        the task table ('3FS;5SS+2d') is expanded instead.

        Returns:
            (store, errors): errors is a list of validation messages; the
            store is None when the task table could not be used.
        """
        errors = []

        df_tasks = pd.read_csv(tasks_file)
        errors.extend(utils.validate_columns(df_tasks, utils.REQUIRED_COLUMNS_TASKS, TASKS_FILE))
        errors.extend(utils.validate_iso_dates(df_tasks, utils.TASK_DATE_COLUMNS, TASKS_FILE))
        errors.extend(utils.validate_numeric(df_tasks, utils.TASK_NUMERIC_COLUMNS, TASKS_FILE))
        errors.extend(utils.validate_range(df_tasks, "progress", 0, 100, TASKS_FILE))
        errors.extend(utils.validate_choices(df_tasks, "constraint_type", [c.value for c in ConstraintType], TASKS_FILE))
        errors.extend(utils.validate_choices(df_tasks, "work_mode", [m.value for m in WorkMode], TASKS_FILE))
        if "id" not in df_tasks.columns:
            return None, errors

        if dependencies_file is not None:
            df_deps = pd.read_csv(dependencies_file)
            errors.extend(utils.validate_columns(df_deps, utils.REQUIRED_COLUMNS_DEPENDENCIES, DEPENDENCIES_FILE))
            errors.extend(utils.validate_numeric(df_deps, utils.DEPENDENCY_NUMERIC_COLUMNS, DEPENDENCIES_FILE))
            errors.extend(utils.validate_choices(df_deps, "type", [t.value for t in DependencyType], DEPENDENCIES_FILE))
        else:
            try:
                df_deps = dependencies_from_tasks(df_tasks)
            except ValueError as e:
                errors.append(f"{TASKS_FILE}: {e}")
                df_deps = None

        df_resources = None
        if resources_file is not None:
            df_resources = pd.read_csv(resources_file)
            errors.extend(utils.validate_columns(df_resources, utils.REQUIRED_COLUMNS_RESOURCES, RESOURCES_FILE))
            errors.extend(utils.validate_numeric(df_resources, utils.RESOURCE_NUMERIC_COLUMNS, RESOURCES_FILE))

        df_assignments = None
        if assignments_file is not None:
            df_assignments = pd.read_csv(assignments_file)
            errors.extend(utils.validate_columns(df_assignments, utils.REQUIRED_COLUMNS_ASSIGNMENTS, ASSIGNMENTS_FILE))
            errors.extend(utils.validate_numeric(df_assignments, utils.ASSIGNMENT_NUMERIC_COLUMNS, ASSIGNMENTS_FILE))
            errors.extend(utils.validate_range(df_assignments, "allocation", 1, 200, ASSIGNMENTS_FILE))

        store = cls(df_tasks, df_deps, df_resources, df_assignments)
        logger.info(
            f"Loaded {len(store.tasks)} tasks, {len(store.dependencies)} dependencies, "
            f"{len(store.resources)} resources, {len(store.assignments)} assignments"
        )
        return store, errors

    @classmethod
    def from_csv_dir(cls, path):
        """Loads tasks.csv (+ optional dependencies/resources/assignments.csv) from a folder."""
        def optional(name):
            full = os.path.join(path, name)
            return full if os.path.exists(full) else None

        return cls.from_csv(
            os.path.join(path, TASKS_FILE),
            optional(DEPENDENCIES_FILE),
            optional(RESOURCES_FILE),
            optional(ASSIGNMENTS_FILE),
        )
