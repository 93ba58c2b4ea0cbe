"""Structured logging configuration for the orchestration engine.

Provides:
- Structured logging with structlog
- Context-aware logging
- Operation start/end logging
- Per-execution logger for test and step events
"""

import logging
import sys
from contextlib import contextmanager
from typing import Optional

import structlog


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Output logs as JSON
        include_timestamp: Include timestamps in logs
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
    ]
    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None, **context) -> structlog.BoundLogger:
    """Get a configured logger with optional context.

    Args:
        name: Logger name
        **context: Additional context to bind

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


class LogContext:
    """Context manager for scoped logging context.

    Usage:
        with LogContext(pipeline_id="pipeline-123", suite="smoke"):
            logger.info("Running suite")
            # Every log inside the block carries pipeline_id and suite
    """

    def __init__(self, **context):
        self.context = context
        self._tokens = None

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._tokens:
            structlog.contextvars.reset_contextvars(**self._tokens)
            self._tokens = None


@contextmanager
def log_operation(
    operation: str,
    logger: Optional[structlog.BoundLogger] = None,
    **context,
):
    """Context manager for logging operation start/end.

    Args:
        operation: Name of the operation
        logger: Optional logger to use
        **context: Additional context

    Yields:
        Dict to store operation results

    Example:
        with log_operation("initialize_pipeline", project="cityguide") as op:
            await create_dirs()
            op["dirs"] = 5
    """
    log = logger or get_logger()
    log = log.bind(operation=operation, **context)

    log.info(f"{operation} started")
    result = {"success": False, "error": None}

    try:
        yield result
        result["success"] = True
        log.info(f"{operation} completed", **result)
    except Exception as e:
        result["error"] = str(e)
        log.error(f"{operation} failed", **result)
        raise


class ExecutionLogger:
    """Logger for one (test case, environment) execution.

    Keeps the human-readable step log that ends up in the TestResult, and
    mirrors every entry to structlog.
    """

    def __init__(self, test_id: str, test_name: str, environment: str):
        self.log = get_logger().bind(
            test_id=test_id,
            test_name=test_name,
            environment=environment,
        )
        self.entries: list[str] = []
        self.step_count = 0

    def add(self, message: str) -> None:
        """Record a line in the execution log."""
        self.entries.append(message)
        self.log.debug("Execution log", message=message)

    def test_started(self) -> None:
        self.log.info("Test started")

    def test_completed(self, status: str, duration_ms: int) -> None:
        self.log.info(
            "Test completed",
            status=status,
            duration_ms=duration_ms,
            steps_executed=self.step_count,
        )

    def step_started(self, step_index: int, action: str, target: Optional[str] = None) -> None:
        self.step_count = step_index + 1
        self.add(f"Executing step {step_index}: {action}" + (f" {target}" if target else ""))

    def step_failed(self, step_index: int, action: str, error: str) -> None:
        self.entries.append(f"Step {step_index} ({action}) failed: {error}")
        self.log.error(
            "Step failed",
            step_index=step_index,
            action=action,
            error=error,
        )

    def screenshot_taken(self, path: str) -> None:
        self.add(f"Screenshot saved: {path}")
