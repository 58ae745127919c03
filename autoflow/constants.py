"""Default values shared across the engine."""

DEFAULT_MAX_WORKFLOWS = 100
DEFAULT_MAX_STEPS_PER_WORKFLOW = 50
DEFAULT_MAX_CONCURRENT_EXECUTIONS = 10
DEFAULT_EXECUTION_TIMEOUT_MS = 300_000
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_MAX_STEP_TRANSITIONS = 1000
DEFAULT_EXECUTION_RETENTION_SECONDS = 3600.0
DEFAULT_POLL_INTERVAL_SECONDS = 60.0
DEFAULT_SCHEDULE_TRIGGER_TYPES = ("time_based",)

LOOP_INDEX_KEY = "loop_index"
BRANCH_INDEX_KEY = "branch_index"
