"""
Timers for the highlight lifecycle and the pre-relocation stability wait.

Everything runs on the host's own loop: callbacks only fire from sleep(),
advance() or run_pending(), never from a background thread, so the document is
only ever mutated by the caller's thread.
"""
import heapq
import itertools
import logging
import time

import schedule

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, due_ms: float, callback):
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class VirtualScheduler:
    """Deterministic clock for tests: time only moves when advance() or sleep() is called."""

    def __init__(self, start_ms: float = 0):
        self._now = start_ms
        self._timers = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback) -> TimerHandle:
        handle = TimerHandle(self._now + delay_ms, callback)
        heapq.heappush(self._timers, (handle.due_ms, next(self._seq), handle))
        return handle

    def advance(self, ms: float):
        target = self._now + ms
        while self._timers and self._timers[0][0] <= target:
            due, _, handle = heapq.heappop(self._timers)
            self._now = max(self._now, due)
            if not handle.cancelled:
                handle.callback()
        self._now = target

    def sleep(self, ms: float):
        self.advance(ms)

    def run_pending(self):
        self.advance(0)

    def pending(self) -> int:
        return sum(1 for _, _, handle in self._timers if not handle.cancelled)


class _JobHandle:
    def __init__(self, scheduler: schedule.Scheduler, job: schedule.Job):
        self._scheduler = scheduler
        self._job = job
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        self._scheduler.cancel_job(self._job)


class PumpedScheduler:
    """
    Wall-clock scheduler backed by the schedule library.

    One-shot callbacks are jobs that cancel themselves after their first run.
    The host must call run_pending() from its loop for them to fire.
    """

    def __init__(self):
        self._scheduler = schedule.Scheduler()

    def now(self) -> float:
        return time.monotonic() * 1000

    def call_later(self, delay_ms: float, callback) -> _JobHandle:
        def _run_once():
            try:
                callback()
            except Exception as e:
                logger.error(f"❌ Scheduled callback failed: {e}")
            return schedule.CancelJob

        # at least 1ms, so the job always has a positive period
        job = self._scheduler.every(max(delay_ms, 1) / 1000.0).seconds.do(_run_once)
        return _JobHandle(self._scheduler, job)

    def sleep(self, ms: float):
        time.sleep(ms / 1000.0)
        self.run_pending()

    def run_pending(self):
        self._scheduler.run_pending()

    def pending(self) -> int:
        return len(self._scheduler.get_jobs())


def wait_for_page_stable(viewport, scheduler, initial_delay_ms: float = 200,
                         poll_ms: float = 150, timeout_ms: float = 1500) -> bool:
    """
    Wait for lazy-loaded content to settle before relocating.

    Polls viewport.document_height(); the page counts as stable after two
    consecutive unchanged polls. Returns False when the timeout ended the wait
    instead. A viewport that cannot be measured is treated as stable.
    """
    start = scheduler.now()
    try:
        last_height = viewport.document_height()
    except Exception as e:
        logger.debug(f"Document height unavailable, skipping stability wait: {e}")
        return True

    stable_count = 0
    scheduler.sleep(initial_delay_ms)

    while True:
        try:
            current_height = viewport.document_height()
        except Exception as e:
            logger.debug(f"Document height unavailable during stability wait: {e}")
            return True

        if current_height == last_height:
            stable_count += 1
        else:
            stable_count = 0
            last_height = current_height

        if stable_count >= 2:
            return True
        if scheduler.now() - start > timeout_ms:
            logger.debug(f"Page still changing after {timeout_ms}ms, relocating anyway")
            return False

        scheduler.sleep(poll_ms)
