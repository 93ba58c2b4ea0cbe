"""
Retry handling for recoverable browser and network errors.

Operations are retried with exponential backoff while their errors match the
retryable vocabulary. A terminal failure (non-retryable, or out of attempts)
captures diagnostics, appends them to the in-memory log and to a per-day JSON
lines error log, then re-raises the original error.

Diagnostic capture is best effort: a failing screenshot or log write is
logged as a warning and never replaces the original error.
"""

import asyncio
import json
import traceback
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from ..browser import BrowserPage
from ..config import RetryConfig
from .models import EnvironmentInfo, ErrorContext, ErrorSummary, RetryContext

logger = structlog.get_logger()

T = TypeVar("T")

CONSOLE_ERRORS_SCRIPT = "() => window.consoleErrors || []"
NETWORK_ERRORS_SCRIPT = "() => window.networkErrors || []"
ENVIRONMENT_SCRIPT = """() => ({
    userAgent: navigator.userAgent,
    viewport: { width: window.innerWidth, height: window.innerHeight },
    platform: navigator.platform,
})"""

# Checked in order; first match wins
ERROR_TYPES = (
    ("target closed", "TargetClosed"),
    ("element not found", "ElementNotFound"),
    ("timeout", "TimeoutError"),
    ("network", "NetworkError"),
    ("protocol", "ProtocolError"),
)

RECENT_ERRORS = 10


def describe_error(error: BaseException) -> str:
    """``TypeName: message``, the text that classification runs against."""
    return f"{type(error).__name__}: {error}"


def classify_error(error: BaseException) -> str:
    text = describe_error(error).lower()
    for fragment, error_type in ERROR_TYPES:
        if fragment in text:
            return error_type
    return "UnknownError"


class RetryableErrorHandler:
    """Bounded retry with backoff and diagnostic capture.

    Example:
        handler = RetryableErrorHandler(error_log_dir="./test-results/error-logs")
        context = RetryContext(test_id="login-flow", environment="Chrome Desktop", page=page)
        await handler.execute_with_retry(lambda: page.click("#submit"), context)
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        error_log_dir: str | Path = "./test-results/error-logs",
        screenshot_dir: str | Path = "./test-results/error-screenshots",
    ):
        self.config = config or RetryConfig()
        self.error_log_dir = Path(error_log_dir)
        self.screenshot_dir = Path(screenshot_dir)
        self.error_log: list[ErrorContext] = []
        self.log = logger.bind(component="error_handler")

    def is_retryable(self, error: BaseException) -> bool:
        text = describe_error(error).lower()
        return any(fragment.lower() in text for fragment in self.config.retryable_errors)

    def backoff_delay_ms(self, attempt: int) -> float:
        return self.config.delay_ms * self.config.backoff_multiplier ** (attempt - 1)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[RetryContext] = None,
    ) -> T:
        """Run ``operation``, retrying retryable errors.

        Args:
            operation: Zero-argument coroutine function
            context: Identifies the test and environment; receives diagnostics

        Raises:
            Exception: The operation's last error, after diagnostics are captured
        """
        context = context or RetryContext()
        attempt = 0

        while True:
            attempt += 1
            context.attempts = attempt
            try:
                return await operation()
            except Exception as e:
                retryable = self.is_retryable(e)
                if not retryable or attempt >= self.config.max_attempts:
                    self.log.error(
                        "Operation failed",
                        test_id=context.test_id,
                        environment=context.environment,
                        operation=context.operation,
                        attempt=attempt,
                        retryable=retryable,
                        error=str(e),
                    )
                    try:
                        context.diagnostics = await self._diagnose(context, e)
                    except Exception as capture_error:
                        self.log.warning("Diagnostic capture failed", error=str(capture_error))
                    raise

                delay = self.backoff_delay_ms(attempt)
                self.log.warning(
                    "Attempt failed, retrying",
                    test_id=context.test_id,
                    operation=context.operation,
                    attempt=attempt,
                    delay_ms=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay / 1000)

    async def capture_error_context(
        self,
        page: BrowserPage,
        error: BaseException,
        test_id: str,
        environment: str,
    ) -> ErrorContext:
        """Collect URL, screenshot, page error buffers and environment info, then log it."""
        context = self._build_context(error, test_id, environment, url=None)

        try:
            context.url = await page.current_url()
        except Exception as e:
            self.log.warning("Failed to read page URL", error=str(e))

        context.screenshot = await self._capture_screenshot(page, test_id, context.timestamp)
        context.console_errors = await self._evaluate_list(page, CONSOLE_ERRORS_SCRIPT)
        context.network_errors = await self._evaluate_list(page, NETWORK_ERRORS_SCRIPT)
        context.environment_info = await self._environment_info(page)

        await self._record(context)
        return context

    async def handle_common_failure(self, page: BrowserPage, error: BaseException) -> bool:
        """Try a cheap recovery for well-known failures.

        Returns:
            True if a recovery action ran and the operation may be retried
        """
        message = str(error).lower()
        try:
            if "target closed" in message or "page closed" in message:
                # Needs a new page; the caller has to handle it
                self.log.info("Page closed, cannot recover in place")
                return False

            if "timeout" in message or "waiting for" in message:
                self.log.info("Timeout, reloading page")
                await page.reload(wait_until="networkidle")
                return True

            if "element not found" in message or "selector" in message:
                self.log.info("Element not found, waiting for page to settle")
                await asyncio.sleep(2)
                return True

            if "network" in message or "connection" in message:
                self.log.info("Network error, waiting before retry")
                await asyncio.sleep(5)
                return True
        except Exception as recovery_error:
            self.log.warning("Recovery failed", error=str(recovery_error))

        return False

    def get_error_summary(self) -> ErrorSummary:
        return ErrorSummary(
            total_errors=len(self.error_log),
            errors_by_type=dict(Counter(e.error_type for e in self.error_log)),
            errors_by_environment=dict(Counter(e.environment for e in self.error_log)),
            recent_errors=self.error_log[-RECENT_ERRORS:],
        )

    def clear_error_log(self) -> None:
        self.error_log = []

    def update_retry_config(self, **changes) -> RetryConfig:
        """Replace fields of the retry policy. Values are validated."""
        self.config = RetryConfig.model_validate({**self.config.model_dump(), **changes})
        return self.config

    # =========================================================================
    # Internals
    # =========================================================================

    def _build_context(
        self,
        error: BaseException,
        test_id: str,
        environment: str,
        url: Optional[str],
    ) -> ErrorContext:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return ErrorContext(
            test_id=test_id,
            environment=environment,
            url=url or "unknown",
            timestamp=datetime.now(UTC).isoformat(),
            error_type=classify_error(error),
            message=str(error),
            stack_trace=stack or describe_error(error),
        )

    async def _diagnose(self, context: RetryContext, error: BaseException) -> ErrorContext:
        if context.page is not None:
            return await self.capture_error_context(context.page, error, context.test_id, context.environment)
        diagnostics = self._build_context(error, context.test_id, context.environment, context.url)
        await self._record(diagnostics)
        return diagnostics

    async def _record(self, context: ErrorContext) -> None:
        self.error_log.append(context)
        try:
            line = json.dumps(context.to_dict(), default=str)
            await asyncio.to_thread(self._append_line, context.timestamp.split("T")[0], line)
        except (OSError, TypeError, ValueError) as e:
            self.log.warning("Failed to write error log", error=str(e))

    def _append_line(self, day: str, line: str) -> None:
        self.error_log_dir.mkdir(parents=True, exist_ok=True)
        path = self.error_log_dir / f"error-log-{day}.jsonl"
        with path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def _capture_screenshot(self, page: BrowserPage, test_id: str, timestamp: str) -> Optional[str]:
        try:
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            safe_ts = timestamp.replace(":", "-").replace(".", "-").replace("+", "-")
            path = self.screenshot_dir / f"{test_id}-{safe_ts}.png"
            await page.screenshot(path=str(path), full_page=True)
            return str(path)
        except Exception as e:
            self.log.warning("Failed to capture error screenshot", test_id=test_id, error=str(e))
            return None

    async def _evaluate_list(self, page: BrowserPage, script: str) -> list[str]:
        try:
            result = await page.evaluate(script)
            return [str(item) for item in result or []]
        except Exception as e:
            self.log.debug("Page error buffer unavailable", error=str(e))
            return []

    async def _environment_info(self, page: BrowserPage) -> EnvironmentInfo:
        try:
            info = await page.evaluate(ENVIRONMENT_SCRIPT)
            return EnvironmentInfo(
                user_agent=info.get("userAgent", "unknown"),
                viewport=info.get("viewport", {"width": 0, "height": 0}),
                platform=info.get("platform", "unknown"),
            )
        except Exception as e:
            self.log.warning("Failed to read environment info", error=str(e))
            return EnvironmentInfo()
