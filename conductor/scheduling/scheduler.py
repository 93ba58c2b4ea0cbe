"""
Cron scheduler for pipeline runs.

Tasks fire on their cron schedule while enabled. A failing callback is
retried with exponential backoff, independent of the next natural firing.

Task state machine:
    SCHEDULED -> RUNNING -> SUCCEEDED
                         -> RETRYING -> SUCCEEDED | FAILED
                         -> FAILED (retries disabled)

Each task gets an asyncio timer task while ``run_timers`` is on. ``stop()``
cancels and awaits every timer. With ``run_timers=False`` the owner drives
firing explicitly through ``run_pending(now)``.
"""

import asyncio
import inspect
import secrets
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from ..config import SchedulingConfig
from .cron import next_run_after, validate_cron_expression

logger = structlog.get_logger()

TaskCallback = Callable[[], Union[Awaitable[Any], Any]]


class SchedulerError(Exception):
    """Base exception for scheduler errors."""
    pass


class InvalidCronExpressionError(SchedulerError):
    def __init__(self, expression: str, reason: Optional[str] = None):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression: {expression}" + (f" ({reason})" if reason else ""))


class SchedulerNotInitializedError(SchedulerError):
    def __init__(self):
        super().__init__("Scheduler not initialized. Call initialize() first.")


class TaskNotFoundError(SchedulerError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskState(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass
class ScheduledTask:
    id: str
    name: str
    cron_expression: str
    callback: TaskCallback
    enabled: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    run_count: int = 0
    state: TaskState = TaskState.SCHEDULED
    retry_count: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cron_expression": self.cron_expression,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "run_count": self.run_count,
            "state": self.state.value,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }


@dataclass
class SchedulerStats:
    total_tasks: int
    active_tasks: int
    total_runs: int
    last_run_time: Optional[datetime]
    uptime_s: float

    def to_dict(self) -> dict:
        return {
            "total_tasks": self.total_tasks,
            "active_tasks": self.active_tasks,
            "total_runs": self.total_runs,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "uptime_s": round(self.uptime_s, 3),
        }


def generate_task_id() -> str:
    return f"task-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def ensure_valid_cron(expression: str) -> None:
    """Raise InvalidCronExpressionError unless ``expression`` is valid."""
    is_valid, error = validate_cron_expression(expression)
    if not is_valid:
        raise InvalidCronExpressionError(expression, error)


class Scheduler:
    """Cron-driven task runner with retry.

    Usage:
        scheduler = Scheduler(SchedulingConfig(enabled=True, cron="0 2 * * *"))
        await scheduler.initialize()
        task_id = scheduler.schedule(SCHEDULES["DAILY_AT_MIDNIGHT"], run_nightly, "nightly")
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        config: Optional[SchedulingConfig] = None,
        run_timers: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or SchedulingConfig()
        self.run_timers = run_timers
        self._clock = clock or (lambda: datetime.now(UTC))
        self.tasks: dict[str, ScheduledTask] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._started = time.monotonic()
        self.is_initialized = False
        self.log = logger.bind(component="scheduler")

    async def initialize(self) -> None:
        """Validate the configured cron and accept registrations.

        Raises:
            InvalidCronExpressionError: If the configured cron is invalid
        """
        if self.is_initialized:
            self.log.warning("Scheduler already initialized")
            return

        if self.config.cron:
            ensure_valid_cron(self.config.cron)

        self.is_initialized = True
        self.log.info("Scheduler initialized", cron=self.config.cron, timezone=self.config.timezone)

    def schedule(self, cron_expression: str, callback: TaskCallback, name: str = "default") -> str:
        """Register a callback on a cron schedule.

        Returns:
            The new task id

        Raises:
            SchedulerNotInitializedError: If initialize() has not run
            InvalidCronExpressionError: If the expression is invalid
        """
        if not self.is_initialized:
            raise SchedulerNotInitializedError()
        ensure_valid_cron(cron_expression)

        task = ScheduledTask(
            id=generate_task_id(),
            name=name,
            cron_expression=cron_expression,
            callback=callback,
        )
        task.next_run = self._next_run(cron_expression, self._clock())
        self.tasks[task.id] = task

        if self.run_timers:
            self._timers[task.id] = asyncio.get_running_loop().create_task(self._timer_loop(task))

        self.log.info(
            "Task scheduled",
            task_id=task.id,
            task_name=name,
            cron=cron_expression,
            next_run=task.next_run.isoformat(),
        )
        return task.id

    def unschedule(self, task_id: str) -> bool:
        task = self.tasks.pop(task_id, None)
        if task is None:
            self.log.warning("Task not found", task_id=task_id)
            return False

        timer = self._timers.pop(task_id, None)
        if timer is not None:
            timer.cancel()

        self.log.info("Task unscheduled", task_id=task_id, task_name=task.name)
        return True

    def enable_task(self, task_id: str) -> bool:
        return self._set_enabled(task_id, True)

    def disable_task(self, task_id: str) -> bool:
        return self._set_enabled(task_id, False)

    def _set_enabled(self, task_id: str, enabled: bool) -> bool:
        task = self.tasks.get(task_id)
        if task is None:
            self.log.warning("Task not found", task_id=task_id)
            return False
        task.enabled = enabled
        self.log.info("Task enabled" if enabled else "Task disabled", task_id=task_id, task_name=task.name)
        return True

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self.tasks.get(task_id)

    def get_all_tasks(self) -> list[ScheduledTask]:
        return list(self.tasks.values())

    def get_active_tasks(self) -> list[ScheduledTask]:
        return [t for t in self.tasks.values() if t.enabled]

    def get_stats(self) -> SchedulerStats:
        tasks = self.get_all_tasks()
        last_runs = [t.last_run for t in tasks if t.last_run is not None]
        return SchedulerStats(
            total_tasks=len(tasks),
            active_tasks=len(self.get_active_tasks()),
            total_runs=sum(t.run_count for t in tasks),
            last_run_time=max(last_runs) if last_runs else None,
            uptime_s=time.monotonic() - self._started,
        )

    async def run_task_now(self, task_id: str) -> None:
        """Run a task immediately, without retries.

        Raises:
            TaskNotFoundError: If the task is unknown
            Exception: Whatever the callback raised
        """
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        self.log.info("Running task manually", task_id=task_id, task_name=task.name)
        task.last_run = self._clock()
        task.run_count += 1
        task.state = TaskState.RUNNING
        try:
            await self._invoke(task)
        except Exception as e:
            task.state = TaskState.FAILED
            task.last_error = str(e)
            self.log.error("Manual task run failed", task_id=task_id, error=str(e))
            raise
        task.state = TaskState.SUCCEEDED

    async def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """Fire every task whose next run is due at ``now``.

        Disabled tasks skip the firing; their schedule still advances.

        Returns:
            Ids of the tasks whose callbacks ran
        """
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        fired = []
        for task in list(self.tasks.values()):
            if task.next_run is None or task.next_run > now:
                continue
            due_at = task.next_run
            task.next_run = self._next_run(task.cron_expression, now)
            if await self._fire(task, due_at):
                fired.append(task.id)
        return fired

    async def stop(self) -> None:
        """Cancel and await every timer, then forget all tasks."""
        timers = list(self._timers.values())
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        self._timers.clear()
        self.tasks.clear()
        self.is_initialized = False
        self.log.info("Scheduler stopped", timers_cancelled=len(timers))

    def update_config(self, config: SchedulingConfig) -> None:
        """Swap the config. Disabling scheduling disables every task."""
        self.config = config
        if not config.enabled:
            for task in self.tasks.values():
                task.enabled = False
            self.log.info("Scheduling disabled, all tasks disabled", tasks=len(self.tasks))

    # =========================================================================
    # Firing
    # =========================================================================

    def _next_run(self, cron_expression: str, after: datetime) -> datetime:
        return next_run_after(cron_expression, after, self.config.timezone)

    def retry_delay_ms(self, retry: int) -> float:
        return self.config.retry_delay_ms * self.config.backoff_multiplier ** (retry - 1)

    async def _invoke(self, task: ScheduledTask) -> None:
        result = task.callback()
        if inspect.isawaitable(result):
            await result

    async def _fire(self, task: ScheduledTask, fired_at: datetime) -> bool:
        if not task.enabled:
            self.log.debug("Skipping disabled task", task_id=task.id)
            return False

        log = self.log.bind(task_id=task.id, task_name=task.name)
        log.info("Executing scheduled task")

        task.state = TaskState.RUNNING
        task.last_run = fired_at
        task.run_count += 1
        task.retry_count = 0

        try:
            await self._invoke(task)
        except Exception as e:
            task.last_error = str(e)
            log.error("Scheduled task failed", error=str(e))
            if self.config.retry_on_failure and self.config.max_retries > 0:
                await self._retry(task)
            else:
                task.state = TaskState.FAILED
            return True

        task.state = TaskState.SUCCEEDED
        task.last_error = None
        log.info("Scheduled task completed")
        return True

    async def _retry(self, task: ScheduledTask) -> None:
        task.state = TaskState.RETRYING
        for retry in range(1, self.config.max_retries + 1):
            delay = self.retry_delay_ms(retry)
            self.log.info(
                "Retrying task",
                task_id=task.id,
                retry=retry,
                max_retries=self.config.max_retries,
                delay_ms=delay,
            )
            await asyncio.sleep(delay / 1000)
            task.retry_count = retry
            try:
                await self._invoke(task)
            except Exception as e:
                task.last_error = str(e)
                self.log.warning("Retry failed", task_id=task.id, retry=retry, error=str(e))
                continue

            task.state = TaskState.SUCCEEDED
            task.last_error = None
            self.log.info("Task succeeded on retry", task_id=task.id, retry=retry)
            return

        task.state = TaskState.FAILED
        self.log.error("All retries exhausted", task_id=task.id, last_error=task.last_error)

    async def _timer_loop(self, task: ScheduledTask) -> None:
        while True:
            delay = (task.next_run - self._clock()).total_seconds()
            await asyncio.sleep(max(delay, 0))
            due_at = task.next_run
            task.next_run = self._next_run(task.cron_expression, max(self._clock(), due_at))
            await self._fire(task, due_at)
