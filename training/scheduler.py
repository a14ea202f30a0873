"""
Periodic and on-demand entry points for the queue processor.

Both entry points run :func:`training.processor.process_queue` to
completion and never let an error escape: a failing tick is logged and the
next tick runs as usual.

There is no cross-process lock. Two schedulers (or a scheduler and a manual
trigger) may fire at the same time; the conditional claim in the task store
guarantees that only one of them runs any given task.

The loop's notion of time comes from an :class:`IntervalTicker`, whose
clock and sleep functions can be replaced so tests can run many ticks
without waiting.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from django.conf import settings

from .processor import QueueRunResult, process_queue

logger = logging.getLogger(__name__)


def _default_interval() -> float:
    return float(getattr(settings, "TRAINING_SCHEDULE_INTERVAL_SECONDS", 300))


def scheduled_tick() -> None:
    """Periodic entry point: one processor run, all errors swallowed."""
    try:
        result = process_queue()
    except Exception:
        logger.exception("Scheduled training run failed.")
        return
    logger.info("Scheduled training run: %s", result.describe())


def trigger_training() -> Dict[str, object]:
    """Manual, synchronous entry point.

    Returns ``{"success": True, "message": ...}`` once the processor ran,
    whatever happened to the task it picked, or
    ``{"success": False, "error": ...}`` when the run could not take place.
    """
    try:
        result: QueueRunResult = process_queue()
    except Exception as exc:
        logger.exception("Manual training trigger failed.")
        return {"success": False, "error": str(exc) or exc.__class__.__name__}

    if result.outcome == "aborted":
        logger.error("Manual training trigger aborted: %s", result.detail)
        return {"success": False, "error": result.detail or "task store unavailable"}

    return {
        "success": True,
        "message": f"Training triggered successfully: {result.describe()}",
    }


class IntervalTicker:
    """Fixed-rate timing for the scheduler loop.

    ``wait_until_next(started)`` sleeps for whatever is left of the interval
    since ``started``; a tick that overran the interval is followed
    immediately by the next one.
    """

    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("Scheduler interval must be positive.")
        self.interval = float(interval)
        self._clock = clock
        self._sleep = sleep

    def now(self) -> float:
        return self._clock()

    def wait_until_next(self, started: float) -> None:
        remaining = self.interval - (self._clock() - started)
        if remaining > 0:
            self._sleep(remaining)


class TrainingScheduler:
    def __init__(
        self,
        interval: Optional[float] = None,
        tick: Callable[[], object] = scheduled_tick,
        ticker: Optional[IntervalTicker] = None,
    ) -> None:
        self._stop = threading.Event()
        self.tick = tick
        if ticker is None:
            ticker = IntervalTicker(
                interval if interval is not None else _default_interval(),
                sleep=self._stop.wait,
            )
        self.ticker = ticker
        self.ticks = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def interval(self) -> float:
        return self.ticker.interval

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Tick until stopped or ``max_ticks`` ticks ran. Returns the tick count."""
        logger.info("Training scheduler started (interval=%ss).", self.interval)
        while not self._stop.is_set():
            started = self.ticker.now()
            try:
                self.tick()
            except Exception:
                logger.exception("Training scheduler tick raised; continuing.")
            self.ticks += 1

            if max_ticks is not None and self.ticks >= max_ticks:
                break
            if self._stop.is_set():
                break
            self.ticker.wait_until_next(started)

        logger.info("Training scheduler stopped after %d tick(s).", self.ticks)
        return self.ticks

    def start_in_background(self, max_ticks: Optional[int] = None) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Training scheduler is already running.")

        def _run() -> None:
            try:
                self.run(max_ticks=max_ticks)
            except Exception:
                logger.exception("Background training scheduler crashed.")

        self._thread = threading.Thread(target=_run, name="training-scheduler", daemon=True)
        self._thread.start()
        return self._thread
