# training/tests/test_scheduler.py

from unittest import mock

from django.test import SimpleTestCase

from training.processor import QueueRunResult
from training.scheduler import (
    IntervalTicker,
    TrainingScheduler,
    scheduled_tick,
    trigger_training,
)


class VirtualClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def ticker(self, interval=300):
        return IntervalTicker(interval, clock=self, sleep=self.sleep)


class IntervalTickerTests(SimpleTestCase):
    def test_rejects_non_positive_interval(self):
        with self.assertRaises(ValueError):
            IntervalTicker(0)

    def test_waits_for_remaining_interval(self):
        clock = VirtualClock()
        ticker = clock.ticker(300)
        clock.now = 40.0

        ticker.wait_until_next(started=0.0)

        self.assertEqual(clock.sleeps, [260.0])

    def test_overrun_does_not_sleep(self):
        clock = VirtualClock()
        ticker = clock.ticker(300)
        clock.now = 450.0

        ticker.wait_until_next(started=0.0)

        self.assertEqual(clock.sleeps, [])


class TrainingSchedulerTests(SimpleTestCase):
    def test_ticks_on_fixed_period(self):
        clock = VirtualClock()
        fired_at = []

        def _tick():
            fired_at.append(clock.now)
            clock.now += 10

        scheduler = TrainingScheduler(tick=_tick, ticker=clock.ticker(300))
        ticks = scheduler.run(max_ticks=3)

        self.assertEqual(ticks, 3)
        self.assertEqual(fired_at, [0.0, 300.0, 600.0])
        self.assertEqual(clock.sleeps, [290.0, 290.0])

    def test_failing_tick_does_not_stop_loop(self):
        clock = VirtualClock()
        calls = []

        def _tick():
            calls.append(1)
            raise RuntimeError("tick blew up")

        scheduler = TrainingScheduler(tick=_tick, ticker=clock.ticker(60))
        with self.assertLogs("training.scheduler", level="ERROR"):
            ticks = scheduler.run(max_ticks=3)

        self.assertEqual(ticks, 3)
        self.assertEqual(len(calls), 3)

    def test_stop_ends_loop(self):
        clock = VirtualClock()
        scheduler = None

        def _tick():
            scheduler.stop()

        scheduler = TrainingScheduler(tick=_tick, ticker=clock.ticker(60))

        self.assertEqual(scheduler.run(), 1)
        self.assertTrue(scheduler.stopped)
        self.assertEqual(clock.sleeps, [])

    def test_background_thread(self):
        clock = VirtualClock()
        tick = mock.Mock()
        scheduler = TrainingScheduler(tick=tick, ticker=clock.ticker(60))

        thread = scheduler.start_in_background(max_ticks=2)
        thread.join(timeout=5)

        self.assertFalse(thread.is_alive())
        self.assertEqual(tick.call_count, 2)

    def test_default_interval_from_settings(self):
        with self.settings(TRAINING_SCHEDULE_INTERVAL_SECONDS=120):
            scheduler = TrainingScheduler(tick=mock.Mock())
        self.assertEqual(scheduler.interval, 120.0)


class EntryPointTests(SimpleTestCase):
    def test_scheduled_tick_swallows_errors(self):
        with mock.patch(
            "training.scheduler.process_queue", side_effect=RuntimeError("db gone")
        ):
            with self.assertLogs("training.scheduler", level="ERROR"):
                self.assertIsNone(scheduled_tick())

    def test_trigger_reports_success(self):
        with mock.patch(
            "training.scheduler.process_queue",
            return_value=QueueRunResult("failed", "abc", "insufficient training data"),
        ):
            outcome = trigger_training()

        self.assertTrue(outcome["success"])
        self.assertTrue(outcome["message"].startswith("Training triggered successfully"))
        self.assertIn("insufficient training data", outcome["message"])

    def test_trigger_reports_idle_queue_as_success(self):
        with mock.patch(
            "training.scheduler.process_queue", return_value=QueueRunResult("idle")
        ):
            outcome = trigger_training()

        self.assertEqual(outcome["success"], True)

    def test_trigger_reports_store_outage(self):
        with mock.patch(
            "training.scheduler.process_queue",
            return_value=QueueRunResult("aborted", None, "Task store unavailable"),
        ):
            outcome = trigger_training()

        self.assertEqual(outcome, {"success": False, "error": "Task store unavailable"})

    def test_trigger_reports_unexpected_error(self):
        with mock.patch(
            "training.scheduler.process_queue", side_effect=RuntimeError("boom")
        ):
            with self.assertLogs("training.scheduler", level="ERROR"):
                outcome = trigger_training()

        self.assertEqual(outcome, {"success": False, "error": "boom"})
