"""
Execution engine: one test case against one browser environment.

Steps run strictly in order. Network steps go through the rate limiter,
synchronization steps through WaitStrategy, and every step attempt through
the RetryableErrorHandler. The first failing step aborts the rest and yields
a ``failed`` TestResult with diagnostics. Step failures never raise; the
page is always released.

Architecture:
    run_case(case, environments)
        └─► run(case, env)  (bounded by max_workers, parallel or sequential)
                ├─► PageProvider.open_page(env)
                ├─► steps ─► RateLimiter / WaitStrategy / RetryableErrorHandler
                └─► PageProvider.close_page(page)
"""

import asyncio
import re
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import structlog

from ..browser import BrowserEnvironment, BrowserPage, NetworkEvent, PageProvider
from ..config import EnvironmentConfig, ExecutionConfig, RetryConfig
from ..http import ApiClient, ApiRequest
from ..ratelimit import RateLimiter, api_call
from ..recovery import RetryableErrorHandler, RetryContext
from ..timing import LoadStrategy, TimeoutPolicy, WaitStrategy
from ..utils.logging import ExecutionLogger
from .models import (
    NetworkActivity,
    PerformanceMetrics,
    StepAction,
    StepExecutionError,
    TestCase,
    TestResult,
    TestStatus,
    TestStep,
)

logger = structlog.get_logger()

PERFORMANCE_SCRIPT = """() => {
    const nav = performance.getEntriesByType('navigation')[0] || {};
    const paint = performance.getEntriesByName('first-contentful-paint')[0];
    const lcp = performance.getEntriesByType('largest-contentful-paint').pop();
    return {
        pageLoadTime: nav.loadEventEnd ? nav.loadEventEnd - nav.startTime : 0,
        firstContentfulPaint: paint ? paint.startTime : 0,
        largestContentfulPaint: lcp ? lcp.startTime : 0,
        timeToInteractive: nav.domInteractive || 0,
        memoryUsage: performance.memory ? performance.memory.usedJSHeapSize : 0,
    };
}"""


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class _NetworkRecorder:
    """Collects NetworkActivity from page events."""

    def __init__(self):
        self.activity: list[NetworkActivity] = []
        self._open: dict[str, NetworkActivity] = {}

    def on_request(self, event: NetworkEvent) -> None:
        entry = NetworkActivity(url=event.url, method=event.method, timestamp=time.time())
        self.activity.append(entry)
        self._open[event.url] = entry

    def on_response(self, event: NetworkEvent) -> None:
        entry = self._open.pop(event.url, None)
        if entry is None:
            return
        entry.status = event.status or 0
        entry.size = event.size
        entry.response_time_ms = int((time.time() - entry.timestamp) * 1000)

    def attach(self, page: BrowserPage) -> None:
        page.on("request", self.on_request)
        page.on("response", self.on_response)
        page.on("requestfailed", self.on_response)

    def detach(self, page: BrowserPage) -> None:
        page.off("request", self.on_request)
        page.off("response", self.on_response)
        page.off("requestfailed", self.on_response)


class ExecutionEngine:
    """Runs test cases against browser environments.

    Args:
        page_provider: Opens and releases pages
        config: Fan-out, retry and artifact policy
        limiter: Throttles navigations and API calls; None runs unthrottled
        api_client: Needed by ``api_call`` steps
        waits: Wait primitives
        error_handler: Per-step retry handler
        screenshot_dir: Where screenshots are written
        video_dir: Where failure recordings are saved, beside screenshots by default
        trace_dir: Where failure traces are saved, beside screenshots by default
        base_url: Prefix for relative navigation and API targets
    """

    def __init__(
        self,
        page_provider: PageProvider,
        config: Optional[ExecutionConfig] = None,
        limiter: Optional[RateLimiter] = None,
        api_client: Optional[ApiClient] = None,
        waits: Optional[WaitStrategy] = None,
        error_handler: Optional[RetryableErrorHandler] = None,
        screenshot_dir: str | Path = "./test-results/screenshots",
        video_dir: Optional[str | Path] = None,
        trace_dir: Optional[str | Path] = None,
        base_url: str = "",
    ):
        self.page_provider = page_provider
        self.config = config or ExecutionConfig()
        self.limiter = limiter
        self.api_client = api_client
        self.waits = waits or WaitStrategy(TimeoutPolicy())
        self.error_handler = error_handler or RetryableErrorHandler(
            RetryConfig(max_attempts=self.config.retry_attempts)
        )
        self.screenshot_dir = Path(screenshot_dir)
        self.video_dir = Path(video_dir) if video_dir else self.screenshot_dir.parent / "videos"
        self.trace_dir = Path(trace_dir) if trace_dir else self.screenshot_dir.parent / "traces"
        self.base_url = base_url.rstrip("/")
        self._semaphore = asyncio.Semaphore(self.config.max_workers)
        self.log = logger.bind(component="execution_engine")

        self._actions: dict[StepAction, Callable[..., Awaitable[None]]] = {
            StepAction.NAVIGATE: self._navigate,
            StepAction.CLICK: self._click,
            StepAction.FILL: self._fill,
            StepAction.WAIT: self._wait,
            StepAction.SCREENSHOT: self._screenshot_step,
            StepAction.API_CALL: self._api_call,
            StepAction.WAIT_FOR_TEXT: self._wait_for_text,
            StepAction.WAIT_FOR_COUNT: self._wait_for_count,
            StepAction.WAIT_FOR_NETWORK_IDLE: self._wait_for_network_idle,
            StepAction.WAIT_FOR_STABILITY: self._wait_for_stability,
        }

    @classmethod
    def from_environment(
        cls,
        page_provider: PageProvider,
        environment: EnvironmentConfig,
        config: Optional[ExecutionConfig] = None,
        **kwargs,
    ) -> "ExecutionEngine":
        """Engine whose limiter, workers, timeout and retries follow an environment profile."""
        return cls(
            page_provider,
            config=config or ExecutionConfig.for_environment(environment),
            limiter=kwargs.pop("limiter", None) or RateLimiter.from_environment(environment),
            **kwargs,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def run_case(
        self,
        case: TestCase,
        environments: list[BrowserEnvironment],
    ) -> dict[str, TestResult]:
        """Run one case on every environment.

        Returns:
            Results keyed by environment name
        """
        if self.config.parallel:
            outcomes = await asyncio.gather(
                *(self.run(case, env) for env in environments),
                return_exceptions=True,
            )
        else:
            outcomes = [await self.run(case, env) for env in environments]

        results: dict[str, TestResult] = {}
        for env, outcome in zip(environments, outcomes):
            if isinstance(outcome, BaseException):
                self.log.error("Execution crashed", test_id=case.id, environment=env.name, error=str(outcome))
                outcome = TestResult.failure(case.id, env.name, outcome)
            results[env.name] = outcome
        return results

    async def run(self, case: TestCase, environment: BrowserEnvironment) -> TestResult:
        """Execute a case on one environment. Failures become a failed result."""
        async with self._semaphore:
            return await self._run(case, environment)

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run(self, case: TestCase, environment: BrowserEnvironment) -> TestResult:
        started = time.monotonic()
        exec_log = ExecutionLogger(case.id, case.name, environment.name)
        recorder = _NetworkRecorder()
        screenshots: list[str] = []
        page: Optional[BrowserPage] = None
        timeout_ms = case.timeout_ms or self.config.timeout_ms

        exec_log.test_started()
        try:
            page = await self.page_provider.open_page(environment)
            recorder.attach(page)
            if self.config.trace_on_failure:
                await self._best_effort("start tracing", page.start_tracing())

            await asyncio.wait_for(
                self._execute_steps(page, case, environment, exec_log, screenshots),
                timeout=timeout_ms / 1000,
            )

            metrics = await self._collect_metrics(page)
            final = await self._safe_screenshot(page, self._artifact_name(case, environment, "final"))
            if final:
                screenshots.insert(0, final)
                exec_log.screenshot_taken(final)
            if self.config.trace_on_failure:
                await self._best_effort("stop tracing", page.stop_tracing(None))

            result = TestResult(
                test_id=case.id,
                environment=environment.name,
                status=TestStatus.PASSED,
                duration_ms=self._elapsed_ms(started),
                screenshots=tuple(screenshots),
                logs=tuple(exec_log.entries),
                network_activity=tuple(recorder.activity),
                performance_metrics=metrics,
            )
        except Exception as e:
            if isinstance(e, StepExecutionError):
                error_text = str(e.cause)
            elif isinstance(e, asyncio.TimeoutError):
                error_text = f"Test case timed out after {timeout_ms}ms"
                exec_log.add(error_text)
            else:
                error_text = str(e)

            failure_shots: list[str] = []
            if page is not None and self.config.screenshot_on_failure:
                shot = await self._safe_screenshot(page, self._artifact_name(case, environment, "failure"))
                if shot:
                    failure_shots.append(shot)
            videos, traces = await self._failure_recordings(page, case, environment)

            step_error = e if isinstance(e, StepExecutionError) else None
            result = TestResult(
                test_id=case.id,
                environment=environment.name,
                status=TestStatus.FAILED,
                duration_ms=self._elapsed_ms(started),
                error=error_text,
                error_type=type(step_error.cause if step_error else e).__name__,
                failed_step=step_error.step_index if step_error else None,
                screenshots=tuple(failure_shots),
                videos=videos,
                traces=traces,
                logs=tuple(exec_log.entries),
                network_activity=tuple(recorder.activity),
                diagnostics=step_error.diagnostics if step_error else None,
            )
        finally:
            if page is not None:
                recorder.detach(page)
                try:
                    await self.page_provider.close_page(page)
                except Exception as e:
                    self.log.warning("Failed to close page", environment=environment.name, error=str(e))

        exec_log.test_completed(result.status.value, result.duration_ms)
        return result

    async def _execute_steps(
        self,
        page: BrowserPage,
        case: TestCase,
        environment: BrowserEnvironment,
        exec_log: ExecutionLogger,
        screenshots: list[str],
    ) -> None:
        for index, step in enumerate(case.steps):
            exec_log.step_started(index, step.action, step.target)
            context = RetryContext(
                test_id=case.id,
                environment=environment.name,
                page=page,
                operation=step.action,
            )
            try:
                await self.error_handler.execute_with_retry(
                    lambda: self._execute_step(page, case, environment, index, step, screenshots),
                    context,
                )
            except Exception as e:
                exec_log.step_failed(index, step.action, str(e))
                raise StepExecutionError(index, step.action, e, context.diagnostics) from e

            if step.screenshot:
                path = await self._take_screenshot(page, self._artifact_name(case, environment, f"step-{index}-{step.action}"))
                screenshots.append(path)
                exec_log.screenshot_taken(path)

    async def _execute_step(
        self,
        page: BrowserPage,
        case: TestCase,
        environment: BrowserEnvironment,
        index: int,
        step: TestStep,
        screenshots: list[str],
    ) -> None:
        try:
            action = StepAction(step.action)
        except ValueError:
            raise ValueError(f"Unknown test step action: {step.action}") from None

        handler = self._actions[action]
        await handler(page=page, case=case, environment=environment, index=index, step=step, screenshots=screenshots)

    # =========================================================================
    # Step actions
    # =========================================================================

    async def _navigate(self, page: BrowserPage, case: TestCase, step: TestStep, **_) -> None:
        url = self._resolve_url(self._require(step, "target"))
        strategy = LoadStrategy(step.wait_strategy or LoadStrategy.NETWORK_IDLE)

        async def goto() -> bool:
            await self.waits.wait_for_navigation(page, url, strategy)
            return True

        if self.limiter is None:
            await goto()
        else:
            await self.limiter.execute(
                f"navigate:{url}",
                goto,
                skip_cache=True,
                priority=case.priority,
                endpoint=url,
                method="GET",
            )

    async def _click(self, page: BrowserPage, step: TestStep, **_) -> None:
        selector = self._require(step, "target")
        await self.waits.wait_for_element(page, selector)
        await page.click(selector)

    async def _fill(self, page: BrowserPage, step: TestStep, **_) -> None:
        selector = self._require(step, "target")
        await self.waits.wait_for_element(page, selector)
        await page.fill(selector, step.value or "")

    async def _wait(self, page: BrowserPage, step: TestStep, **_) -> None:
        if step.custom_wait_ms:
            await asyncio.sleep(step.custom_wait_ms / 1000)
        else:
            await self.waits.wait_for_load_state(page, step.wait_strategy or LoadStrategy.NETWORK_IDLE)

    async def _screenshot_step(
        self,
        page: BrowserPage,
        case: TestCase,
        environment: BrowserEnvironment,
        index: int,
        screenshots: list[str],
        **_,
    ) -> None:
        path = await self._take_screenshot(page, self._artifact_name(case, environment, f"screenshot-{index}"))
        screenshots.append(path)

    async def _api_call(self, case: TestCase, step: TestStep, **_) -> None:
        if self.api_client is None:
            raise ValueError("api_call step requires an API client")
        url = self._resolve_url(self._require(step, "target"))

        if self.limiter is None:
            response = await self.api_client.request(
                ApiRequest(url=url, method=step.method.upper(), body=step.body)
            )
            response.raise_for_status()
        else:
            await api_call(
                self.limiter,
                self.api_client,
                url,
                method=step.method,
                body=step.body,
                priority=case.priority,
            )

    async def _wait_for_text(self, page: BrowserPage, step: TestStep, **_) -> None:
        text = step.value or self._require(step, "target")
        await self.waits.wait_for_text(page, text)

    async def _wait_for_count(self, page: BrowserPage, step: TestStep, **_) -> None:
        selector = self._require(step, "target")
        try:
            count = int(self._require(step, "value"))
        except ValueError:
            raise ValueError(f"wait_for_count needs an integer value, got {step.value!r}") from None
        await self.waits.wait_for_element_count(page, selector, count)

    async def _wait_for_network_idle(self, page: BrowserPage, step: TestStep, **_) -> None:
        ignore = [part.strip() for part in (step.value or "").split(",") if part.strip()]
        await self.waits.wait_for_network_idle(page, ignore_urls=ignore)

    async def _wait_for_stability(self, page: BrowserPage, step: TestStep, **_) -> None:
        if step.target:
            await self.waits.wait_for_element_to_stop_moving(page, step.target)
        else:
            await self.waits.wait_for_page_stability(page)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _require(step: TestStep, attribute: str) -> str:
        value = getattr(step, attribute)
        if not value:
            raise ValueError(f"{step.action} step requires a {attribute}")
        return value

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _resolve_url(self, target: str) -> str:
        if target.startswith(("http://", "https://")) or not self.base_url:
            return target
        return f"{self.base_url}/{target.lstrip('/')}"

    @staticmethod
    def _artifact_name(case: TestCase, environment: BrowserEnvironment, suffix: str) -> str:
        return f"{case.id}-{_slug(environment.name)}-{suffix}"

    async def _take_screenshot(self, page: BrowserPage, name: str) -> str:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = self.screenshot_dir / f"{name}.png"
        await page.screenshot(path=str(path), full_page=True)
        return str(path)

    async def _safe_screenshot(self, page: BrowserPage, name: str) -> Optional[str]:
        try:
            return await self._take_screenshot(page, name)
        except Exception as e:
            self.log.warning("Screenshot failed", name=name, error=str(e))
            return None

    async def _failure_recordings(
        self,
        page: Optional[BrowserPage],
        case: TestCase,
        environment: BrowserEnvironment,
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        if page is None:
            return (), ()
        name = self._artifact_name(case, environment, "failure")
        videos: list[str] = []
        traces: list[str] = []
        if self.config.video_on_failure:
            self.video_dir.mkdir(parents=True, exist_ok=True)
            video = await self._best_effort("save video", page.save_video(str(self.video_dir / f"{name}.webm")))
            if video:
                videos.append(video)
        if self.config.trace_on_failure:
            self.trace_dir.mkdir(parents=True, exist_ok=True)
            trace = await self._best_effort("save trace", page.stop_tracing(str(self.trace_dir / f"{name}.zip")))
            if trace:
                traces.append(trace)
        return tuple(videos), tuple(traces)

    async def _best_effort(self, what: str, call: Awaitable[Optional[str]]) -> Optional[str]:
        try:
            return await call
        except Exception as e:
            self.log.warning(f"Failed to {what}", error=str(e))
            return None

    async def _collect_metrics(self, page: BrowserPage) -> PerformanceMetrics:
        try:
            return PerformanceMetrics.from_page(await page.evaluate(PERFORMANCE_SCRIPT))
        except Exception as e:
            self.log.debug("Performance metrics unavailable", error=str(e))
            return PerformanceMetrics()
