"""Interface of the time-series store samples are written to."""

from __future__ import annotations

import abc
from datetime import timedelta

from ..collector.base import Sample
from ..metrics import Metric


class SeriesStore(abc.ABC):
    """Named numeric series appended once per collection cycle."""

    @abc.abstractmethod
    def accept(self, sample: Sample, timestamp_millis: int | None = None) -> None:
        """Append every known value of *sample* at *timestamp_millis*.

        Defaults to the sample's own timestamp. Unknown values are skipped.
        """

    @abc.abstractmethod
    def get_average(
        self,
        metric: Metric | str,
        window: float | timedelta,
        now_millis: int | None = None,
    ) -> float | None:
        """Average of *metric* over the last *window* (seconds or timedelta).

        Returns ``None`` when the window holds no usable points. Counter
        metrics are averaged as per-second rates.
        """

    @abc.abstractmethod
    def get_metrics(self) -> list[str]:
        """Names of the series holding at least one point."""

    @abc.abstractmethod
    def get_points(self, metric: Metric | str) -> list[tuple[int, float]]:
        """``(timestamp_millis, value)`` pairs of a series, oldest first."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Drop all stored points."""

    def close(self) -> None:
        """Release resources held by the store."""
