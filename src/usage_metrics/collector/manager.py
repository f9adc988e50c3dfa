"""Scheduled collector: lifecycle, periodic scraping and summary statistics."""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Callable

from .. import metrics as m
from ..config import StoreConfig, UsageMetricsConfig
from ..errors import CollectionError, ConfigurationError, SourceUnavailableError
from ..metrics import Metric
from ..statistics import SummaryStatistics
from ..store.base import SeriesStore
from ..store.disk import DiskSeriesStore
from ..store.memory import MemorySeriesStore
from .base import Sample, Sampler
from .host import HostSampler
from .process import ProcessCounterSource, ProcessSampler
from .scheduler import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0

Listener = Callable[[Sample], None]


def root_cause_message(exc: BaseException) -> str:
    """Message of the innermost exception in the ``__cause__`` chain."""
    while exc.__cause__ is not None:
        exc = exc.__cause__
    return f"{type(exc).__name__}: {exc}"


class ScheduledCollector:
    """Drives a :class:`Sampler` on a fixed interval and stores its samples.

    Typical use::

        collector = host_collector()
        collector.start()
        ...
        collector.get_store().get_average(metrics.SERVER_CPU_TOTAL, 60)
        collector.stop()

    A collection cycle (read the previous snapshot, derive, keep the new
    snapshot, append to the store, update statistics) runs under one lock,
    so scheduled ticks and manual :meth:`scrape` calls never interleave.
    Lifecycle changes use a separate lock.
    """

    def __init__(
        self,
        sampler: Sampler,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        tracked: Iterable[Metric] = (),
        scheduler: Scheduler | None = None,
        store: StoreConfig | None = None,
    ) -> None:
        if interval <= 0:
            raise ConfigurationError(f"Interval must be positive, got {interval}")
        store = store or StoreConfig()
        self._sampler = sampler
        self._interval = float(interval)
        self._scheduler = scheduler
        self._memory = store.type != "disk"
        self._store_path: Path | None = None if self._memory else Path(store.path)
        self._retention_seconds = store.retention_seconds
        self._max_points = store.max_points
        self._store: SeriesStore | None = None
        self._listeners: list[Listener] = []
        self._task: ScheduledTask | None = None
        self._started = False
        self._generation = 0
        self._last: Sample | None = None
        self._statistics = {metric.name: SummaryStatistics() for metric in tracked}
        self._lifecycle_lock = threading.RLock()
        self._cycle_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._sampler.name

    @property
    def sampler(self) -> Sampler:
        return self._sampler

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_started(self) -> bool:
        with self._lifecycle_lock:
            return self._started

    @property
    def is_memory(self) -> bool:
        return self._memory

    @property
    def last(self) -> Sample | None:
        """The most recent accepted sample."""
        return self._last

    # -- configuration -----------------------------------------------------

    def use_memory(self) -> ScheduledCollector:
        """Keep samples in memory. Only allowed before :meth:`start`."""
        with self._lifecycle_lock:
            self._check_not_started()
            if not self._memory:
                self._replace_store()
            self._memory = True
            self._store_path = None
        return self

    def use_disk(self, path: str | Path) -> ScheduledCollector:
        """Persist samples under *path*. Only allowed before :meth:`start`."""
        if not str(path):
            raise ConfigurationError("A store path is required")
        with self._lifecycle_lock:
            self._check_not_started()
            self._replace_store()
            self._memory = False
            self._store_path = Path(path)
        return self

    def set_scheduler(self, scheduler: Scheduler) -> ScheduledCollector:
        with self._lifecycle_lock:
            self._check_not_started()
            self._scheduler = scheduler
        return self

    def set_interval(self, seconds: float) -> ScheduledCollector:
        """Change the scrape interval, rescheduling right away when running."""
        if seconds <= 0:
            raise ConfigurationError(f"Interval must be positive, got {seconds}")
        with self._lifecycle_lock:
            self._interval = float(seconds)
            if self._started and self._task is not None:
                self._task = self._get_scheduler().reschedule(self._task, self._interval)
                logger.info("%s collector rescheduled (interval=%.1fs)", self.name, self._interval)
        return self

    def add_listener(self, listener: Listener) -> None:
        """Register a callback receiving every accepted sample."""
        self._listeners.append(listener)

    def get_store(self) -> SeriesStore:
        """Return the series store, creating it on first use."""
        with self._lifecycle_lock:
            if self._store is None:
                self._store = self._create_store()
            return self._store

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Start periodic collection; the first tick fires immediately.

        Raises :class:`SourceUnavailableError` when the counter source
        cannot be reached. Calling it while running does nothing.
        """
        with self._lifecycle_lock:
            if self._started:
                return
            if not self._sampler.source.is_available():
                raise SourceUnavailableError(f"{self._sampler.source.name} is not available")
            self.get_store()
            self._generation += 1
            self._task = self._get_scheduler().schedule_at_fixed_rate(
                functools.partial(self._tick, self._generation),
                self._interval,
                initial_delay=0.0,
                name=f"Scraper {self.name}",
            )
            self._started = True
        logger.info("%s collector started (interval=%.1fs)", self.name, self._interval)

    def stop(self) -> None:
        """Stop periodic collection; a cycle already running completes."""
        with self._lifecycle_lock:
            if not self._started:
                return
            self._started = False
            if self._task is not None:
                self._task.cancel()
                self._task = None
        logger.info("%s collector stopped", self.name)

    def close(self) -> None:
        """Stop collecting and release the store."""
        self.stop()
        with self._lifecycle_lock:
            if self._store is not None:
                self._store.close()

    # -- collection --------------------------------------------------------

    def scrape(self) -> Sample | None:
        """Run one collection cycle inline.

        Returns the sample once the store has accepted it, or ``None`` when
        a transient source failure skipped the cycle. A
        :class:`SourceUnavailableError` propagates to the caller.
        """
        store = self.get_store()
        with self._cycle_lock:
            try:
                sample = self._sampler.sample()
            except CollectionError as exc:
                logger.warning(
                    "Failed to collect %s metrics, root cause: %s", self.name, root_cause_message(exc)
                )
                return None
            store.accept(sample, sample.timestamp)
            self._update_statistics(sample)
            self._last = sample
        self._notify(sample)
        return sample

    def clear(self) -> None:
        """Reset summary statistics and purge the store.

        The lifecycle state and the sampler's previous snapshot are kept.
        """
        with self._cycle_lock:
            for stats in self._statistics.values():
                stats.reset()
            with self._lifecycle_lock:
                store = self._store
            if store is not None:
                store.clear()

    def statistics(self, metric: Metric | str) -> SummaryStatistics | None:
        """A copy of the running statistics of a tracked metric."""
        with self._cycle_lock:
            stats = self._statistics.get(str(metric))
            return stats.copy() if stats is not None else None

    def average(self, metric: Metric | str) -> float | None:
        """Average of a tracked metric since start or the last :meth:`clear`."""
        stats = self.statistics(metric)
        return stats.average if stats is not None else None

    def _tick(self, generation: int) -> None:
        """Scheduled cycle of the run started as *generation*.

        Ticks of a stopped or replaced run are dropped; a tick that passed
        this check before :meth:`stop` still completes its cycle.
        """
        with self._lifecycle_lock:
            if not self._started or generation != self._generation:
                return
        try:
            self.scrape()
        except Exception as exc:
            logger.warning(
                "Failed to collect %s metrics, root cause: %s", self.name, root_cause_message(exc)
            )

    def _update_statistics(self, sample: Sample) -> None:
        for name, stats in self._statistics.items():
            value = sample.get(name)
            if value is not None:
                stats.accept(value)

    def _notify(self, sample: Sample) -> None:
        for listener in list(self._listeners):
            try:
                listener(sample)
            except Exception:
                logger.exception("Listener failed for %s sample", self.name)

    # -- helpers -----------------------------------------------------------

    def _check_not_started(self) -> None:
        if self._started:
            raise ConfigurationError(f"{self.name} collector already started")

    def _get_scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = Scheduler.shared()
        return self._scheduler

    def _create_store(self) -> SeriesStore:
        if self._memory:
            return MemorySeriesStore(self._retention_seconds, self._max_points)
        assert self._store_path is not None
        return DiskSeriesStore(self._store_path, self._retention_seconds, self._max_points)

    def _replace_store(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None

    def __repr__(self) -> str:
        state = "running" if self._started else "stopped"
        return f"ScheduledCollector({self.name}, {state}, interval={self._interval}s)"


HOST_TRACKED = (m.SERVER_CPU_TOTAL, m.SERVER_LOAD_1, m.SERVER_MEMORY_ACTUALLY_USED)
PROCESS_TRACKED = (m.PROCESS_CPU_TOTAL, m.PROCESS_MEMORY_RESIDENT, m.PROCESS_THREAD)


def _from_config(
    sampler: Sampler,
    tracked: Iterable[Metric],
    config: UsageMetricsConfig | None,
    scheduler: Scheduler | None,
) -> ScheduledCollector:
    config = config or UsageMetricsConfig()
    store = config.store
    if store.type == "disk":
        # each collector writes its own directory
        store = StoreConfig(
            type="disk",
            path=str(Path(store.path) / sampler.name),
            retention_seconds=store.retention_seconds,
            max_points=store.max_points,
        )
    return ScheduledCollector(
        sampler,
        interval=config.collector.interval_seconds,
        tracked=tracked,
        scheduler=scheduler,
        store=store,
    )


def host_collector(
    config: UsageMetricsConfig | None = None, scheduler: Scheduler | None = None
) -> ScheduledCollector:
    """Create a collector for host-wide metrics."""
    return _from_config(HostSampler(), HOST_TRACKED, config, scheduler)


def process_collector(
    config: UsageMetricsConfig | None = None,
    pid: int | None = None,
    scheduler: Scheduler | None = None,
) -> ScheduledCollector:
    """Create a collector for one process, the current one by default."""
    if pid is None and config is not None:
        pid = config.collector.pid
    sampler = ProcessSampler(ProcessCounterSource(pid))
    return _from_config(sampler, PROCESS_TRACKED, config, scheduler)


_defaults: dict[str, ScheduledCollector] = {}
_defaults_lock = threading.Lock()


def default_host_collector() -> ScheduledCollector:
    """Process-wide host collector, created on first call."""
    with _defaults_lock:
        if "host" not in _defaults:
            _defaults["host"] = host_collector()
        return _defaults["host"]


def default_process_collector() -> ScheduledCollector:
    """Process-wide collector for the current process, created on first call."""
    with _defaults_lock:
        if "process" not in _defaults:
            _defaults["process"] = process_collector()
        return _defaults["process"]
