import asyncio
import unittest
from datetime import datetime, timedelta, timezone

from src.application.scheduler import SUNDAY, RecurringTask, SchedulerState, delay_until_weekday
from src.domain.exceptions import TimerError


class _FakeTime:
    """Manual clock; `sleep` advances it and raises CancelledError after `limit` calls."""

    def __init__(self, limit=None, error=None) -> None:
        self.now = 0.0
        self.delays = []
        self.limit = limit
        self.error = error

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        if self.error is not None:
            raise self.error
        if self.limit is not None and len(self.delays) >= self.limit:
            raise asyncio.CancelledError()
        self.now += delay


class TestDelayUntilWeekday(unittest.TestCase):
    def test_midweek_waits_for_next_sunday_midnight(self) -> None:
        wednesday_noon = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)

        self.assertEqual(delay_until_weekday(SUNDAY, wednesday_noon), timedelta(days=3, hours=12))

    def test_on_the_weekday_runs_immediately(self) -> None:
        sunday = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)

        self.assertEqual(delay_until_weekday(SUNDAY, sunday), timedelta(0))

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        saturday = datetime(2026, 10, 17, 18, 0)

        self.assertEqual(delay_until_weekday(SUNDAY, saturday), timedelta(hours=6))


class TestRecurringTask(unittest.IsolatedAsyncioTestCase):
    async def test_task_error_is_logged_and_rescheduled(self) -> None:
        fake = _FakeTime(limit=3)
        calls = []

        async def flaky() -> None:
            calls.append(1)
            raise RuntimeError("upstream exploded")

        scheduler = RecurringTask(
            "sync", flaky, timedelta(0), timedelta(days=14), clock=fake.clock, sleep=fake.sleep,
        )

        with self.assertLogs("src.application.scheduler", level="ERROR") as logs:
            with self.assertRaises(asyncio.CancelledError):
                await scheduler._run_forever()

        self.assertEqual(len(calls), 2)
        self.assertEqual(scheduler.runs, 2)
        self.assertIsNone(scheduler.error)
        self.assertTrue(any("upstream exploded" in line for line in logs.output))

    async def test_runs_are_anchored_to_the_schedule(self) -> None:
        fake = _FakeTime(limit=3)

        async def slow() -> None:
            fake.now += 5

        scheduler = RecurringTask(
            "sync", slow, timedelta(seconds=10), timedelta(seconds=100), clock=fake.clock, sleep=fake.sleep,
        )

        with self.assertRaises(asyncio.CancelledError):
            await scheduler._run_forever()

        self.assertEqual(fake.delays, [10, 95, 95])

    async def test_timer_error_stops_the_loop(self) -> None:
        fake = _FakeTime(error=OSError("timer fd closed"))
        calls = []

        async def task() -> None:
            calls.append(1)

        scheduler = RecurringTask("sync", task, timedelta(0), timedelta(days=1), clock=fake.clock, sleep=fake.sleep)

        with self.assertLogs("src.application.scheduler", level="ERROR"):
            await scheduler._run_forever()

        self.assertEqual(calls, [])
        self.assertIsInstance(scheduler.error, TimerError)
        self.assertIs(scheduler.state, SchedulerState.STOPPED)

    def test_interval_must_be_positive(self) -> None:
        async def task() -> None:
            pass

        with self.assertRaises(ValueError):
            RecurringTask("sync", task, timedelta(0), timedelta(0))

    async def test_stop_while_idle_cancels_the_wait(self) -> None:
        async def task() -> None:
            pass

        scheduler = RecurringTask("sync", task, timedelta(hours=1), timedelta(days=1))
        scheduler.start()
        await asyncio.sleep(0)

        await scheduler.stop()

        self.assertEqual(scheduler.runs, 0)
        self.assertIs(scheduler.state, SchedulerState.STOPPED)

    async def test_stop_waits_for_the_run_in_progress(self) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def task() -> None:
            started.set()
            await release.wait()

        scheduler = RecurringTask("sync", task, timedelta(0), timedelta(days=1))
        scheduler.start()
        await started.wait()

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0)
        self.assertFalse(stopping.done())
        self.assertIs(scheduler.state, SchedulerState.RUNNING)

        release.set()
        await stopping

        self.assertEqual(scheduler.runs, 1)
        self.assertIs(scheduler.state, SchedulerState.STOPPED)

    async def test_start_twice_is_rejected(self) -> None:
        async def task() -> None:
            pass

        scheduler = RecurringTask("sync", task, timedelta(hours=1), timedelta(days=1))
        scheduler.start()
        try:
            with self.assertRaises(RuntimeError):
                scheduler.start()
        finally:
            await scheduler.stop()
