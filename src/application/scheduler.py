import asyncio
import contextlib
import enum
import logging
import time
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from src.domain.exceptions import TimerError

module_logger = logging.getLogger(__name__)

SUNDAY = 6  # datetime.weekday() numbering


def delay_until_weekday(weekday: int, now: Optional[datetime] = None) -> timedelta:
    """
    Time left until the next midnight (UTC) that falls on `weekday`.

    Returns zero when today already is that weekday, so the first run
    starts immediately.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    days_ahead = (weekday - now.weekday()) % 7
    if days_ahead == 0:
        return timedelta(0)
    target = datetime.combine(now.date() + timedelta(days=days_ahead), dt_time.min, tzinfo=timezone.utc)
    return target - now


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class RecurringTask:
    """
    Runs an async task after `initial_delay`, then every `interval`.

    Runs are anchored to their scheduled time rather than to completion, so
    a slow run shortens the following wait instead of pushing the whole
    schedule back. A task error is logged and the task is always
    rescheduled; a failure of the timer itself ends the loop for good.
    """

    def __init__(
        self,
        name: str,
        task: Callable[[], Awaitable[Any]],
        initial_delay: timedelta,
        interval: timedelta,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if interval.total_seconds() <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.task = task
        self.initial_delay = initial_delay
        self.interval = interval
        self.logger = logger or module_logger
        self.state = SchedulerState.IDLE
        self.runs = 0
        self.error: Optional[TimerError] = None
        self._clock = clock
        self._sleep = sleep
        self._loop_task: Optional[asyncio.Task] = None
        self._stopping = False

    def start(self) -> asyncio.Task:
        if self._loop_task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._loop_task = asyncio.create_task(self._run_forever(), name=f"recurring:{self.name}")
        return self._loop_task

    async def stop(self) -> None:
        """
        Stops the timer. A pending wait is cancelled; a run already in
        progress is left to finish (or fail) before this returns.
        """
        self._stopping = True
        if self._loop_task is None:
            return
        if self.state is SchedulerState.IDLE and not self._loop_task.done():
            self._loop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._loop_task
        self.logger.info(f"[{self.name}] stopped after {self.runs} run(s).")

    async def _run_forever(self) -> None:
        scheduled = self._clock() + self.initial_delay.total_seconds()
        try:
            while not self._stopping:
                try:
                    await self._wait(max(0.0, scheduled - self._clock()))
                except TimerError as e:
                    self.logger.error(f"[{self.name}] Timer error: {e}")
                    self.error = e
                    return
                if self._stopping:
                    return
                await self._run_once()
                scheduled += self.interval.total_seconds()
        finally:
            self.state = SchedulerState.STOPPED

    async def _wait(self, delay: float) -> None:
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise TimerError(str(e) or type(e).__name__) from e

    async def _run_once(self) -> None:
        self.state = SchedulerState.RUNNING
        self.logger.info(f"[{self.name}]: Starting...")
        start = self._clock()
        try:
            await self.task()
        except Exception as e:
            self.logger.exception(f"[{self.name}] failed: {e}")
        finally:
            elapsed_ms = (self._clock() - start) * 1000
            self.runs += 1
            self.state = SchedulerState.IDLE
            self.logger.info(f"[{self.name}] completed in {elapsed_ms:.0f}ms.")
