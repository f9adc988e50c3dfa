"""Base interfaces for counter sources and samplers."""

from __future__ import annotations

import abc
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from ..errors import CollectionError, SourceUnavailableError
from ..metrics import Metric


@dataclass(frozen=True)
class RawSnapshot:
    """Counters captured at one instant.

    ``monotonic_ns`` drives elapsed-time math, ``timestamp`` (wall clock,
    milliseconds) is only for display and storage.
    """

    monotonic_ns: int
    timestamp: int


@dataclass(frozen=True)
class Sample:
    """Derived values of one collection cycle.

    A value of ``None`` means "unknown": it could not be derived this cycle
    (no previous snapshot, counter reset, no elapsed time).
    """

    collector: str
    timestamp: int
    values: Mapping[str, float | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, metric: Metric | str) -> float | None:
        return self.values.get(str(metric))

    def is_known(self, metric: Metric | str) -> bool:
        return self.get(metric) is not None

    def known(self) -> dict[str, float]:
        """Values that could be computed this cycle."""
        return {name: value for name, value in self.values.items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        return {
            "collector": self.collector,
            "timestamp": self.timestamp,
            "values": dict(self.values),
        }


S = TypeVar("S", bound=RawSnapshot)


class CounterSource(abc.ABC, Generic[S]):
    """Reads instantaneous counters; one call, one snapshot."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Source name used in logs."""

    @abc.abstractmethod
    def read(self) -> S:
        """Capture the counters now.

        Raises :class:`SourceUnavailableError` when the target is gone.
        """

    def is_available(self) -> bool:
        return True


def elapsed_nanos(current: RawSnapshot, previous: RawSnapshot | None) -> int | None:
    """Strictly positive monotonic time between two snapshots, else ``None``."""
    if previous is None:
        return None
    elapsed = current.monotonic_ns - previous.monotonic_ns
    return elapsed if elapsed > 0 else None


class Sampler(abc.ABC, Generic[S]):
    """Turns consecutive snapshots of a :class:`CounterSource` into samples.

    The sampler owns the previous snapshot. It is not thread safe on its
    own: callers serialise :meth:`sample` (the collector holds a lock for
    the whole cycle).
    """

    def __init__(self, source: CounterSource[S]) -> None:
        self._source = source
        self._previous: S | None = None

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Collector name stamped on every sample."""

    @property
    def source(self) -> CounterSource[S]:
        return self._source

    @property
    def previous(self) -> S | None:
        return self._previous

    @abc.abstractmethod
    def derive(self, current: S, previous: S | None) -> dict[str, float | None]:
        """Compute metric values from the new snapshot and the previous one."""

    def sample(self) -> Sample:
        """Read the source once and derive a sample against the previous snapshot.

        On failure the previous snapshot is kept, so the next successful
        cycle still has a valid baseline. Malformed counters that break
        :meth:`derive` count as a transient :class:`CollectionError`.
        """
        try:
            snapshot = self._source.read()
            values = self.derive(snapshot, self._previous)
        except (SourceUnavailableError, CollectionError):
            raise
        except Exception as exc:
            raise CollectionError(f"Failed to sample {self._source.name}: {exc}") from exc
        self._previous = snapshot
        return Sample(self.name, snapshot.timestamp, values)

    def reset(self) -> None:
        """Forget the previous snapshot; derived values are unknown next cycle."""
        self._previous = None
