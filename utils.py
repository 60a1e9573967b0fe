import pandas as pd
import dateutil.parser

# --- Constants ---

REQUIRED_COLUMNS_TASKS = [
    "id",
    "name",
    "estimated_hours",
]

REQUIRED_COLUMNS_DEPENDENCIES = [
    "predecessor_id",
    "successor_id",
    "type",
]

REQUIRED_COLUMNS_RESOURCES = [
    "id",
    "name",
]

REQUIRED_COLUMNS_ASSIGNMENTS = [
    "task_id",
    "resource_id",
]

TASK_DATE_COLUMNS = ["start_date", "end_date", "constraint_date"]
TASK_NUMERIC_COLUMNS = ["estimated_hours", "actual_hours", "progress", "duration", "actual_duration"]
RESOURCE_NUMERIC_COLUMNS = ["max_hours_per_day", "max_hours_per_week"]
ASSIGNMENT_NUMERIC_COLUMNS = ["allocation", "effort_hours"]
DEPENDENCY_NUMERIC_COLUMNS = ["lag_days"]

# Cap per check to avoid flooding the UI
MAX_REPORTED_ERRORS = 10

# --- Validation Functions ---


def _cap(errors, kind):
    if len(errors) > MAX_REPORTED_ERRORS:
        errors = errors[:MAX_REPORTED_ERRORS] + [f"... and {len(errors) - MAX_REPORTED_ERRORS} more {kind} errors."]
    return errors


def validate_columns(df, required_columns, filename):
    """
    Checks if all required columns are present in the dataframe.
    Returns a list of error strings.
    """
    errors = []
    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        errors.append(f"{filename}: Missing required columns: {', '.join(missing)}")
    return errors


def validate_iso_dates(df, date_cols, filename):
    """
    Checks if specified columns contain valid ISO dates.
    Returns a list of error strings.
    """
    errors = []
    for col in date_cols:
        if col not in df.columns:
            continue
        for idx, val in df[col].dropna().items():
            try:
                dateutil.parser.isoparse(str(val))
            except (ValueError, OverflowError):
                # Row number as seen in a spreadsheet (header is row 1)
                errors.append(f"{filename} (Row {idx+2}): Invalid ISO date in '{col}': '{val}'")
    return _cap(errors, "date")


def validate_numeric(df, num_cols, filename):
    """
    Checks if specified columns are numeric.
    Returns a list of errors.
    """
    errors = []
    for col in num_cols:
        if col not in df.columns:
            continue
        non_null_values = df[col].dropna()
        # read_csv already inferred numbers for clean columns
        if pd.api.types.is_numeric_dtype(non_null_values):
            continue
        for idx, val in non_null_values.items():
            try:
                float(val)
            except (ValueError, TypeError):
                errors.append(f"{filename} (Row {idx+2}): Non-numeric value in '{col}': '{val}'")
    return _cap(errors, "numeric")


def validate_choices(df, col, choices, filename):
    """
    Checks that a text column only holds one of `choices` (case-insensitive).
    Blank cells are allowed (engine defaults apply).
    """
    errors = []
    if col not in df.columns:
        return errors
    allowed = {str(c).lower() for c in choices}
    for idx, val in df[col].dropna().items():
        text = str(val).strip()
        if text and text.lower() not in allowed:
            errors.append(f"{filename} (Row {idx+2}): Invalid value in '{col}': '{val}'")
    return _cap(errors, "value")


def validate_range(df, col, low, high, filename):
    """Checks numeric values of `col` fall inside [low, high]."""
    errors = []
    if col not in df.columns:
        return errors
    values = pd.to_numeric(df[col], errors='coerce').dropna()
    for idx, val in values.items():
        if val < low or val > high:
            errors.append(f"{filename} (Row {idx+2}): '{col}' must be between {low} and {high}, got {val:g}")
    return _cap(errors, "range")
