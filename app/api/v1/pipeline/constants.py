"""Constants for pipeline routes."""

DEFAULT_LOG_LIMIT = 50
MAX_LOG_LIMIT = 200

WORK_ITEM_NOT_FOUND_DETAIL = "Work item not found"
WORK_ITEM_NOT_RETRIABLE_DETAIL = "Work item cannot be retried"
WORK_ITEM_NOT_FAILED_DETAIL = "Only failed work items can be retried"
UNKNOWN_IMAGE_TASK_DETAIL = "Unknown image task; retry the callback later"
UNKNOWN_IMAGE_TASK_RETRY_AFTER_SECONDS = 30
