"""Shared timer that drives every scheduled collector.

One daemon thread keeps a heap of due times and hands each due run to a
worker pool, so collectors tick independently of each other and of any
caller scraping manually.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 5


class ScheduledTask:
    """Handle of a fixed-rate task registered with a :class:`Scheduler`."""

    def __init__(self, scheduler: Scheduler, name: str, func: Callable[[], None], interval: float) -> None:
        self.name = name
        self.interval = interval
        self._scheduler = scheduler
        self._func = func
        self._cancelled = False
        self._running = False
        self.next_run = 0.0
        self.last_run: float | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop future runs; a run already in progress completes."""
        self._scheduler._cancel(self)

    def _run(self) -> None:
        with self._scheduler._condition:
            if self._cancelled:
                self._running = False
                return
        try:
            self._func()
        except Exception:
            logger.exception("Scheduled task %s failed", self.name)
        finally:
            with self._scheduler._condition:
                self._running = False

    def __repr__(self) -> str:
        return f"ScheduledTask({self.name}, interval={self.interval}s)"


class Scheduler:
    """Runs fixed-rate tasks on a worker pool.

    A due run is skipped when the previous run of the same task is still in
    progress, so a slow task never piles up behind itself.
    """

    _shared: Scheduler | None = None
    _shared_lock = threading.Lock()

    def __init__(self, max_workers: int = DEFAULT_WORKERS, name: str = "usage-metrics") -> None:
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"{name}-worker")
        self._condition = threading.Condition()
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._sequence = itertools.count()
        self._thread: threading.Thread | None = None
        self._shutdown = False

    @classmethod
    def shared(cls) -> Scheduler:
        """Return the process-wide scheduler, creating it on first use."""
        with cls._shared_lock:
            if cls._shared is None or cls._shared._shutdown:
                cls._shared = Scheduler()
            return cls._shared

    def schedule_at_fixed_rate(
        self,
        func: Callable[[], None],
        interval: float,
        initial_delay: float = 0.0,
        name: str = "task",
    ) -> ScheduledTask:
        """Run *func* after *initial_delay* seconds, then every *interval* seconds."""
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        task = ScheduledTask(self, name, func, interval)
        with self._condition:
            if self._shutdown:
                raise RuntimeError("Scheduler is shut down")
            self._push(task, time.monotonic() + max(0.0, initial_delay))
            self._ensure_thread()
        return task

    def reschedule(self, task: ScheduledTask, interval: float) -> ScheduledTask:
        """Replace *task* with one running every *interval* seconds.

        The old task is cancelled and the new one is installed under the
        same lock, its first run placed one new interval after the last
        run of the old task (or immediately if that is already past), so
        the pending tick is neither dropped nor duplicated.
        """
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        with self._condition:
            if self._shutdown:
                raise RuntimeError("Scheduler is shut down")
            now = time.monotonic()
            anchor = task.last_run if task.last_run is not None else now
            self._cancel(task)
            replacement = ScheduledTask(self, task.name, task._func, interval)
            self._push(replacement, max(now, anchor + interval))
            self._ensure_thread()
        return replacement

    def shutdown(self, wait: bool = True) -> None:
        with self._condition:
            self._shutdown = True
            self._queue.clear()
            self._condition.notify_all()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._executor.shutdown(wait=wait)

    def _push(self, task: ScheduledTask, when: float) -> None:
        task.next_run = when
        heapq.heappush(self._queue, (when, next(self._sequence), task))
        self._condition.notify_all()

    def _cancel(self, task: ScheduledTask) -> None:
        with self._condition:
            task._cancelled = True
            self._queue = [entry for entry in self._queue if entry[2] is not task]
            heapq.heapify(self._queue)
            self._condition.notify_all()

    def _ensure_thread(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._loop, daemon=True, name=f"{self._name}-timer")
            self._thread.start()

    def _loop(self) -> None:
        """Timer thread: wait for the earliest due task and dispatch it."""
        with self._condition:
            while not self._shutdown:
                if not self._queue:
                    self._condition.wait()
                    continue
                when, _, task = self._queue[0]
                delay = when - time.monotonic()
                if delay > 0:
                    self._condition.wait(timeout=delay)
                    continue
                heapq.heappop(self._queue)
                if task._cancelled:
                    continue
                if task._running:
                    logger.debug("Skipping tick of %s, previous run still in progress", task.name)
                else:
                    task._running = True
                    task.last_run = when
                    self._executor.submit(task._run)
                # fixed rate; catch up to now instead of replaying missed ticks
                next_run = when + task.interval
                now = time.monotonic()
                if next_run < now:
                    next_run = now + task.interval - ((now - when) % task.interval)
                self._push(task, next_run)
