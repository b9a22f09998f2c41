import os

# Base paths
# PROJECT_ROOT assumes this file is in the repository root
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))

# Folder holding extracted .xob files - can be overridden by env var
ASSETS_PATH = os.environ.get("XOB_ASSETS_PATH", os.path.join(PROJECT_ROOT, "assets"))

# Output paths
OUTPUT_DIR = os.environ.get("XOB_OUTPUT_DIR", os.path.join(PROJECT_ROOT, "output"))
DUMPS_DIR = os.path.join(OUTPUT_DIR, "dumps")

# Logging level used by scripts when run with --verbose
LOG_LEVEL = os.environ.get("XOB_LOG_LEVEL", "DEBUG")
