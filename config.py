import os
from dotenv import load_dotenv

# Load overrides from a local .env file if present
load_dotenv()

# Default capacity used when a task has no resources or a resource leaves it unset
DEFAULT_HOURS_PER_DAY = float(os.getenv("DEFAULT_HOURS_PER_DAY", "8"))
DEFAULT_MAX_HOURS_PER_WEEK = float(os.getenv("DEFAULT_MAX_HOURS_PER_WEEK", "40"))

# Leveling advisor bounds
MAX_ALLOCATION = int(os.getenv("MAX_ALLOCATION", "200"))
MAX_HOURS_PER_DAY_CAP = float(os.getenv("MAX_HOURS_PER_DAY_CAP", "12"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")

# Folder the dashboard reads sample CSVs from
DATA_DIR = os.getenv("DATA_DIR", "data")
