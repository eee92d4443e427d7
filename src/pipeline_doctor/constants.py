"""
Default values shared across Pipeline Doctor.
"""

DEFAULT_MAX_RETRIES = 2

# Fixed ceiling applied by BUMP_TIMEOUT_AND_RETRY
DEFAULT_TIMEOUT_CEILING_MINUTES = 25

# Delay held by BACKOFF_AND_RETRY before re-triggering
DEFAULT_BACKOFF_SECONDS = 30

DEFAULT_STAGE_RETRY_MODE = "FAILED_ACTIONS"

DEFAULT_SQLITE_PATH = "pipeline_doctor.db"

VALID_STORE_BACKENDS = ("dynamodb", "sqlite", "memory")

VALID_STAGE_RETRY_MODES = ("FAILED_ACTIONS", "ALL_ACTIONS")

CACHE_BUSTER_VARIABLE = "CACHE_BUSTER"
