"""Running summary statistics kept by a collector."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SummaryStatistics:
    """Count, min, max and sum of every value accepted so far.

    Not thread safe; collectors mutate it under their cycle lock.
    """

    count: int = 0
    minimum: float | None = None
    maximum: float | None = None
    total: float = 0.0

    def accept(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.minimum is None or value < self.minimum:
            self.minimum = value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    @property
    def average(self) -> float | None:
        """Mean of the accepted values, ``None`` when nothing was accepted."""
        if self.count == 0:
            return None
        return self.total / self.count

    def reset(self) -> None:
        self.count = 0
        self.minimum = None
        self.maximum = None
        self.total = 0.0

    def copy(self) -> SummaryStatistics:
        return SummaryStatistics(self.count, self.minimum, self.maximum, self.total)
