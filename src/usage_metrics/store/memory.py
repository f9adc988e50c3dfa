"""In-memory series store with bounded retention."""

from __future__ import annotations

import statistics
import threading
import time
from collections import deque
from datetime import timedelta

from ..collector.base import Sample
from ..metrics import Metric, resolve
from .base import SeriesStore

DEFAULT_RETENTION_SECONDS = 3600.0
DEFAULT_MAX_POINTS = 10_000


def _window_millis(window: float | timedelta) -> float:
    if isinstance(window, timedelta):
        return window.total_seconds() * 1000
    return float(window) * 1000


def average_rate(points: list[tuple[int, float]]) -> float | None:
    """Per-second rate of a cumulative counter over *points*.

    Pairs where the counter went backwards or no time passed are left out
    of both the numerator and the denominator.
    """
    increase = 0.0
    duration_ms = 0
    for (prev_ts, prev_value), (ts, value) in zip(points, points[1:]):
        elapsed = ts - prev_ts
        delta = value - prev_value
        if elapsed <= 0 or delta < 0:
            continue
        increase += delta
        duration_ms += elapsed
    if duration_ms == 0:
        return None
    return increase * 1000 / duration_ms


class MemorySeriesStore(SeriesStore):
    """Keeps points in per-series deques.

    Each series is capped by *max_points* and points older than
    *retention_seconds* (relative to the newest point) are pruned on
    append, so a store fed at a fixed interval stays bounded.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        max_points: int = DEFAULT_MAX_POINTS,
    ) -> None:
        self._retention_ms = retention_seconds * 1000
        self._max_points = max_points
        self._lock = threading.RLock()
        self._series: dict[str, deque[tuple[int, float]]] = {}

    def accept(self, sample: Sample, timestamp_millis: int | None = None) -> None:
        timestamp = sample.timestamp if timestamp_millis is None else timestamp_millis
        with self._lock:
            for name, value in sample.known().items():
                self._append(name, timestamp, value)

    def _append(self, name: str, timestamp: int, value: float) -> None:
        series = self._series.get(name)
        if series is None:
            series = self._series[name] = deque(maxlen=self._max_points)
        series.append((timestamp, float(value)))
        cutoff = timestamp - self._retention_ms
        while series and series[0][0] < cutoff:
            series.popleft()

    def get_average(
        self,
        metric: Metric | str,
        window: float | timedelta,
        now_millis: int | None = None,
    ) -> float | None:
        metric = resolve(metric)
        now = int(time.time() * 1000) if now_millis is None else now_millis
        start = now - _window_millis(window)
        with self._lock:
            points = [p for p in self._series.get(metric.name, ()) if start <= p[0] <= now]
        if not points:
            return None
        if metric.is_counter:
            return average_rate(points)
        return statistics.fmean(value for _, value in points)

    def get_metrics(self) -> list[str]:
        with self._lock:
            return sorted(name for name, series in self._series.items() if series)

    def get_points(self, metric: Metric | str) -> list[tuple[int, float]]:
        with self._lock:
            return list(self._series.get(str(metric), ()))

    def clear(self) -> None:
        with self._lock:
            self._series.clear()
