from pathlib import Path

import migrator

#
# Filesystem
#

PACKAGE_DIR = Path(migrator.__file__).parent
PROJECT_DIR = PACKAGE_DIR.parent
MIGRATIONS_DIR = PROJECT_DIR / "migrations"
ARTIFACTS_DIR = PROJECT_DIR / "artifacts"

# <id>_<name>.py, e.g. 1_wallet_infra.py
STEP_FILENAME_PATTERN = r"^(?P<id>\d+)_(?P<name>\w+)\.py$"
STEP_ENTRYPOINT = "migrate"

#
# Networks
#

LOCAL_NETWORK_NAMES = ["local", "test"]

#
# Bookkeeping program
#

MIGRATIONS_CONTRACT_NAME = "Migrations"
NO_COMPLETED_STEP = 0

#
# Execution
#

DEFAULT_CONFIRMATION_TIMEOUT = 120  # seconds
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_INTERVAL = 5  # seconds

STANDARD_ARTIFACT_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}

#
# Exit codes
#

EXIT_FAILED = 1
EXIT_INDETERMINATE = 3
EXIT_CANCELLED = 4
