"""Stable metric identifiers for host and process series."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class MetricKind(enum.Enum):
    """Whether a series is a point-in-time gauge or a monotonic counter.

    Counters are rate-converted by the store before averaging, gauges are
    averaged directly.
    """

    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class Metric:
    """A named series with its display grouping."""

    name: str
    group: str
    display_name: str
    kind: MetricKind = MetricKind.GAUGE
    unit: str = "1"

    @property
    def is_counter(self) -> bool:
        return self.kind is MetricKind.COUNTER

    def __str__(self) -> str:
        return self.name


_REGISTRY: dict[str, Metric] = {}


def _metric(
    name: str,
    group: str,
    display_name: str,
    kind: MetricKind = MetricKind.GAUGE,
    unit: str = "1",
) -> Metric:
    metric = Metric(name, group, display_name, kind, unit)
    _REGISTRY[name] = metric
    return metric


def get_metric(name: str) -> Metric | None:
    """Look up a registered metric by name."""
    return _REGISTRY.get(name)


def resolve(metric: Metric | str) -> Metric:
    """Return the :class:`Metric` for *metric*; unknown names become gauges."""
    if isinstance(metric, Metric):
        return metric
    return _REGISTRY.get(metric) or Metric(metric, "Other", metric)


def all_metrics() -> list[Metric]:
    return list(_REGISTRY.values())


# -- host ------------------------------------------------------------------

SERVER_PREFIX = "server."

SERVER_CPU_TOTAL = _metric("server.cpu.total", "CPU", "Total", unit="%")
SERVER_CPU_USER = _metric("server.cpu.user", "CPU", "User", unit="%")
SERVER_CPU_SYSTEM = _metric("server.cpu.system", "CPU", "System", unit="%")
SERVER_CPU_NICE = _metric("server.cpu.nice", "CPU", "Nice", unit="%")
SERVER_CPU_IO_WAIT = _metric("server.cpu.io_wait", "CPU", "I/O Wait", unit="%")
SERVER_CPU_IDLE = _metric("server.cpu.idle", "CPU", "Idle", unit="%")
SERVER_CPU_IRQ = _metric("server.cpu.irq", "CPU", "IRQ", unit="%")
SERVER_CPU_SOFT_IRQ = _metric("server.cpu.soft_irq", "CPU", "Soft IRQ", unit="%")
SERVER_CPU_STOLEN = _metric("server.cpu.stolen", "CPU", "Stolen", unit="%")

SERVER_LOAD_1 = _metric("server.load.1", "Load", "1 Minute")
SERVER_LOAD_5 = _metric("server.load.5", "Load", "5 Minutes")
SERVER_LOAD_15 = _metric("server.load.15", "Load", "15 Minutes")

SERVER_MEMORY_MAX = _metric("server.memory.max", "Server / Memory", "Maximum", unit="bytes")
SERVER_MEMORY_USED = _metric("server.memory.used", "Server / Memory", "Used", unit="bytes")
SERVER_MEMORY_ACTUALLY_USED = _metric(
    "server.memory.actually.used", "Server / Memory", "Actually Used", unit="bytes"
)
SERVER_SWAP_MAX = _metric("server.swap.max", "Server / Swap", "Maximum", unit="bytes")
SERVER_SWAP_USED = _metric("server.swap.used", "Server / Swap", "Used", unit="bytes")
SERVER_SWAP_PAGE_IN = _metric(
    "server.swap.page.in", "Server / Swap", "Page In", MetricKind.COUNTER, "bytes"
)
SERVER_SWAP_PAGE_OUT = _metric(
    "server.swap.page.out", "Server / Swap", "Page Out", MetricKind.COUNTER, "bytes"
)

SERVER_DISK_MAX = _metric("server.disk.max", "Disk", "Maximum", unit="bytes")
SERVER_DISK_USED = _metric("server.disk.used", "Disk", "Used", unit="bytes")

SERVER_IO_READS = _metric("server.io.reads", "I/O", "Reads", MetricKind.COUNTER)
SERVER_IO_READ_BYTES = _metric(
    "server.io.read.bytes", "I/O", "Read Bytes", MetricKind.COUNTER, "bytes"
)
SERVER_IO_WRITES = _metric("server.io.writes", "I/O", "Writes", MetricKind.COUNTER)
SERVER_IO_WRITE_BYTES = _metric(
    "server.io.write.bytes", "I/O", "Write Bytes", MetricKind.COUNTER, "bytes"
)

SERVER_NETWORK_READ_BYTES = _metric(
    "server.network.read.bytes", "Network", "Read Bytes", MetricKind.COUNTER, "bytes"
)
SERVER_NETWORK_WRITE_BYTES = _metric(
    "server.network.write.bytes", "Network", "Write Bytes", MetricKind.COUNTER, "bytes"
)

SERVER_INTERRUPTS = _metric("server.interrupts", "Kernel", "Interrupts", MetricKind.COUNTER)
SERVER_CONTEXT_SWITCHES = _metric(
    "server.context.switches", "Kernel", "Context Switches", MetricKind.COUNTER
)

# -- process ---------------------------------------------------------------

PROCESS_PREFIX = "process."

PROCESS_CPU_TOTAL = _metric("process.cpu.total", "CPU", "Total", unit="%")
PROCESS_CPU_USER = _metric("process.cpu.user", "CPU", "User", unit="%")
PROCESS_CPU_SYSTEM = _metric("process.cpu.system", "CPU", "System", unit="%")
PROCESS_CPU_IO_WAIT = _metric("process.cpu.io_wait", "CPU", "I/O Wait", unit="%")

PROCESS_MEMORY_RESIDENT = _metric("process.memory.resident", "Memory", "Resident", unit="bytes")
PROCESS_MEMORY_VIRTUAL = _metric("process.memory.virtual", "Memory", "Virtual", unit="bytes")
PROCESS_MEMORY_SHARED = _metric("process.memory.shared", "Memory", "Shared", unit="bytes")

PROCESS_GC_GEN0_COUNT = _metric(
    "process.gc.gen0.count", "GC", "Generation 0 Count", MetricKind.COUNTER
)
PROCESS_GC_GEN1_COUNT = _metric(
    "process.gc.gen1.count", "GC", "Generation 1 Count", MetricKind.COUNTER
)
PROCESS_GC_GEN2_COUNT = _metric(
    "process.gc.gen2.count", "GC", "Generation 2 Count", MetricKind.COUNTER
)
PROCESS_GC_COLLECTED = _metric("process.gc.collected", "GC", "Collected", MetricKind.COUNTER)
PROCESS_GC_UNCOLLECTABLE = _metric(
    "process.gc.uncollectable", "GC", "Uncollectable", MetricKind.COUNTER
)
PROCESS_GC_DURATION = _metric(
    "process.gc.duration", "GC", "Duration", MetricKind.COUNTER, "ms"
)
PROCESS_GC_TIME = _metric("process.gc.time", "GC", "Time", unit="%")

PROCESS_THREAD = _metric("process.thread", "Thread", "OS")
PROCESS_THREAD_DAEMON = _metric("process.thread.daemon", "Thread", "Daemon")
PROCESS_THREAD_NON_DAEMON = _metric("process.thread.non_daemon", "Thread", "Non Daemon")

PROCESS_FILE_DESCRIPTORS = _metric("process.file.descriptors", "Files", "Descriptors")

PROCESS_IO_READ_BYTES = _metric(
    "process.io.read.bytes", "I/O", "Read Bytes", MetricKind.COUNTER, "bytes"
)
PROCESS_IO_WRITE_BYTES = _metric(
    "process.io.write.bytes", "I/O", "Write Bytes", MetricKind.COUNTER, "bytes"
)
