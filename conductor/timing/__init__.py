"""Timeout budgets and polling wait primitives."""

from .timeouts import (
    BASE_TIMEOUTS_MS,
    NETWORK_MULTIPLIERS,
    WORKFLOW_MULTIPLIERS,
    WORKFLOW_TIMEOUTS_MS,
    NetworkCondition,
    TimeoutPolicy,
    WorkflowType,
    calculate_timeout,
)
from .waits import LoadStrategy, WaitStrategy, WaitTimeoutError

__all__ = [
    "TimeoutPolicy",
    "NetworkCondition",
    "WorkflowType",
    "NETWORK_MULTIPLIERS",
    "WORKFLOW_MULTIPLIERS",
    "BASE_TIMEOUTS_MS",
    "WORKFLOW_TIMEOUTS_MS",
    "calculate_timeout",
    "WaitStrategy",
    "WaitTimeoutError",
    "LoadStrategy",
]
