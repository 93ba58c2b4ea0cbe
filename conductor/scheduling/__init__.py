"""Cron scheduling with retry."""

from .cron import (
    SCHEDULES,
    create_cron_expression,
    cron_to_readable,
    next_run_after,
    validate_cron_expression,
)
from .scheduler import (
    InvalidCronExpressionError,
    ScheduledTask,
    Scheduler,
    SchedulerError,
    SchedulerNotInitializedError,
    SchedulerStats,
    TaskNotFoundError,
    TaskState,
    ensure_valid_cron,
)

__all__ = [
    "Scheduler",
    "ScheduledTask",
    "SchedulerStats",
    "TaskState",
    "SchedulerError",
    "InvalidCronExpressionError",
    "SchedulerNotInitializedError",
    "TaskNotFoundError",
    "ensure_valid_cron",
    "SCHEDULES",
    "validate_cron_expression",
    "cron_to_readable",
    "create_cron_expression",
    "next_run_after",
]
