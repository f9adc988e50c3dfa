"""Delta math turning two counter readings into usage percentages.

All functions here are pure: they never raise on odd input (non-positive
elapsed time, counters that went backwards, cores that came or went) and
never return NaN or a negative percentage.
"""

from __future__ import annotations

import enum
import time
from collections.abc import Sequence
from dataclasses import dataclass

NANOS_PER_MILLI = 1_000_000
NANOS_PER_SECOND = 1_000_000_000


class TickKind(enum.Enum):
    """CPU time categories tracked by the OS scheduler."""

    USER = "user"
    NICE = "nice"
    SYSTEM = "system"
    IDLE = "idle"
    IOWAIT = "iowait"
    IRQ = "irq"
    SOFTIRQ = "softirq"
    STEAL = "steal"


@dataclass(frozen=True, slots=True)
class CpuTicks:
    """Cumulative CPU time of one core, per tick kind."""

    user: float = 0.0
    nice: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    iowait: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    steal: float = 0.0

    def get(self, kind: TickKind) -> float:
        return getattr(self, kind.value)

    @property
    def total(self) -> float:
        return sum(self.get(kind) for kind in TickKind)


def compute_usage(elapsed_nanos: float, used: float) -> float:
    """Return ``100 * used / elapsed_nanos``.

    *used* must share the unit of *elapsed_nanos* (time based metrics are
    converted to nanoseconds by the caller). A non-positive elapsed time
    yields ``0.0``; callers that need "unknown" instead must check the
    elapsed time themselves. The result is not clamped, aggregates across
    several cores legitimately exceed 100.
    """
    if elapsed_nanos <= 0:
        return 0.0
    return 100.0 * used / elapsed_nanos


def compute_usage_at_now(start_nanos: int, used_millis: float) -> float:
    """Usage of *used_millis* spent since the monotonic instant *start_nanos*."""
    elapsed = time.monotonic_ns() - start_nanos
    return compute_usage(elapsed, used_millis * NANOS_PER_MILLI)


def counter_delta(current: float | None, previous: float | None) -> float | None:
    """Difference between two readings of a monotonic counter.

    Returns ``None`` when either reading is missing or the counter went
    backwards (restart or overflow).
    """
    if current is None or previous is None:
        return None
    delta = current - previous
    if delta < 0:
        return None
    return delta


def _core_usage(kind: TickKind, current: CpuTicks, previous: CpuTicks) -> float | None:
    elapsed = 0.0
    used = 0.0
    for tick_kind in TickKind:
        delta = current.get(tick_kind) - previous.get(tick_kind)
        if delta < 0:
            return None
        elapsed += delta
        if tick_kind is kind:
            used = delta
    if elapsed <= 0:
        return None
    return compute_usage(elapsed, used)


def compute_tick_usage(
    kind: TickKind,
    current_ticks: Sequence[CpuTicks | None],
    previous_ticks: Sequence[CpuTicks | None],
) -> float:
    """Average share of *kind* over all cores that reported in both readings.

    A core contributes only if it is present (not ``None``) in both
    sequences, none of its counters decreased and some time elapsed on it.
    The sum of per-core percentages is divided by the number of
    contributing cores, so the result stays a percentage of one core.
    """
    total = 0.0
    contributing = 0
    for current, previous in zip(current_ticks, previous_ticks):
        if current is None or previous is None:
            continue
        usage = _core_usage(kind, current, previous)
        if usage is None:
            continue
        total += usage
        contributing += 1
    if contributing == 0:
        return 0.0
    return total / contributing


def contributing_cores(
    current_ticks: Sequence[CpuTicks | None],
    previous_ticks: Sequence[CpuTicks | None],
) -> int:
    """Number of cores :func:`compute_tick_usage` would average over."""
    return sum(
        1
        for current, previous in zip(current_ticks, previous_ticks)
        if current is not None
        and previous is not None
        and _core_usage(TickKind.IDLE, current, previous) is not None
    )
