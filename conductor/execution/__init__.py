"""Test case execution against browser environments."""

from .engine import ExecutionEngine
from .models import (
    ExecutionError,
    NetworkActivity,
    PerformanceMetrics,
    StepAction,
    StepExecutionError,
    TestCase,
    TestResult,
    TestStatus,
    TestStep,
)

__all__ = [
    "ExecutionEngine",
    "TestCase",
    "TestStep",
    "TestResult",
    "TestStatus",
    "StepAction",
    "NetworkActivity",
    "PerformanceMetrics",
    "ExecutionError",
    "StepExecutionError",
]
