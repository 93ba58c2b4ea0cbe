"""Utility modules for the orchestration engine.

Provides:
- Structured logging configuration
"""

from .logging import ExecutionLogger, LogContext, configure_logging, get_logger, log_operation

__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "log_operation",
    "ExecutionLogger",
]
