"""Host-wide counters (CPU ticks, memory, disk, network, kernel)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import psutil

from .. import metrics as m
from ..usage import CpuTicks, TickKind, compute_tick_usage, contributing_cores
from .base import CounterSource, RawSnapshot, Sampler, elapsed_nanos

logger = logging.getLogger(__name__)

_DISK_FS_TYPES = frozenset({"ext2", "ext3", "ext4", "xfs", "btrfs", "zfs", "apfs", "ntfs"})

_BUSY_TICKS = (
    TickKind.USER,
    TickKind.NICE,
    TickKind.SYSTEM,
    TickKind.IRQ,
    TickKind.SOFTIRQ,
    TickKind.STEAL,
)


@dataclass(frozen=True)
class HostSnapshot(RawSnapshot):
    """Raw host counters. I/O and kernel counters are cumulative."""

    cpu_ticks: tuple[CpuTicks | None, ...] = ()
    cores: int = 0
    threads: int = 0
    load: tuple[float, float, float] = (0.0, 0.0, 0.0)
    memory_total: int = 0
    memory_used: int = 0
    memory_actually_used: int = 0
    swap_total: int = 0
    swap_used: int = 0
    swap_page_in: int = 0
    swap_page_out: int = 0
    disk_total: int = 0
    disk_used: int = 0
    io_reads: int | None = None
    io_writes: int | None = None
    io_read_bytes: int | None = None
    io_write_bytes: int | None = None
    network_read_bytes: int | None = None
    network_write_bytes: int | None = None
    interrupts: int = 0
    context_switches: int = 0
    uptime: float = 0.0


def _to_ticks(times) -> CpuTicks:
    return CpuTicks(
        user=times.user,
        nice=getattr(times, "nice", 0.0),
        system=times.system,
        idle=times.idle,
        iowait=getattr(times, "iowait", 0.0),
        irq=getattr(times, "irq", 0.0),
        softirq=getattr(times, "softirq", 0.0),
        steal=getattr(times, "steal", 0.0),
    )


class HostCounterSource(CounterSource[HostSnapshot]):
    """Reads host counters through psutil."""

    @property
    def name(self) -> str:
        return "host"

    def read(self) -> HostSnapshot:
        monotonic_ns = time.monotonic_ns()
        now = time.time()

        ticks = tuple(_to_ticks(t) for t in psutil.cpu_times(percpu=True))
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        stats = psutil.cpu_stats()
        disk_total, disk_used = self._disk_usage()
        disk_io = psutil.disk_io_counters()
        net_io = psutil.net_io_counters()

        return HostSnapshot(
            monotonic_ns=monotonic_ns,
            timestamp=int(now * 1000),
            cpu_ticks=ticks,
            cores=psutil.cpu_count(logical=False) or 0,
            threads=psutil.cpu_count(logical=True) or 0,
            load=psutil.getloadavg(),
            memory_total=mem.total,
            memory_used=mem.total - mem.available,
            memory_actually_used=mem.used,
            swap_total=swap.total,
            swap_used=swap.used,
            swap_page_in=swap.sin,
            swap_page_out=swap.sout,
            disk_total=disk_total,
            disk_used=disk_used,
            io_reads=disk_io.read_count if disk_io else None,
            io_writes=disk_io.write_count if disk_io else None,
            io_read_bytes=disk_io.read_bytes if disk_io else None,
            io_write_bytes=disk_io.write_bytes if disk_io else None,
            network_read_bytes=net_io.bytes_recv if net_io else None,
            network_write_bytes=net_io.bytes_sent if net_io else None,
            interrupts=stats.interrupts,
            context_switches=stats.ctx_switches,
            uptime=max(0.0, now - psutil.boot_time()),
        )

    @staticmethod
    def _disk_usage() -> tuple[int, int]:
        """Total and used bytes over local disk file systems, each device once."""
        total = 0
        used = 0
        seen: set[str] = set()
        for part in psutil.disk_partitions(all=False):
            if part.fstype.lower() not in _DISK_FS_TYPES or part.device in seen:
                continue
            seen.add(part.device)
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError):
                logger.debug("Cannot read usage of %s", part.mountpoint)
                continue
            total += usage.total
            used += usage.used
        return total, used


class HostSampler(Sampler[HostSnapshot]):
    """Derives host CPU percentages from tick deltas.

    CPU shares come from ticks only; the OS load average is passed through
    as ``server.load.*`` and never used to derive a percentage. The total
    is the busy share (everything except idle and I/O wait).
    """

    def __init__(self, source: CounterSource[HostSnapshot] | None = None) -> None:
        super().__init__(source or HostCounterSource())

    @property
    def name(self) -> str:
        return "server"

    def derive(self, current: HostSnapshot, previous: HostSnapshot | None) -> dict[str, float | None]:
        values: dict[str, float | None] = {}
        values.update(self._cpu(current, previous))

        load1, load5, load15 = current.load
        values[m.SERVER_LOAD_1.name] = load1
        values[m.SERVER_LOAD_5.name] = load5
        values[m.SERVER_LOAD_15.name] = load15

        values[m.SERVER_MEMORY_MAX.name] = float(current.memory_total)
        values[m.SERVER_MEMORY_USED.name] = float(current.memory_used)
        values[m.SERVER_MEMORY_ACTUALLY_USED.name] = float(current.memory_actually_used)
        values[m.SERVER_SWAP_MAX.name] = float(current.swap_total)
        values[m.SERVER_SWAP_USED.name] = float(current.swap_used)
        values[m.SERVER_SWAP_PAGE_IN.name] = float(current.swap_page_in)
        values[m.SERVER_SWAP_PAGE_OUT.name] = float(current.swap_page_out)
        values[m.SERVER_DISK_MAX.name] = float(current.disk_total)
        values[m.SERVER_DISK_USED.name] = float(current.disk_used)

        values[m.SERVER_IO_READS.name] = _optional(current.io_reads)
        values[m.SERVER_IO_WRITES.name] = _optional(current.io_writes)
        values[m.SERVER_IO_READ_BYTES.name] = _optional(current.io_read_bytes)
        values[m.SERVER_IO_WRITE_BYTES.name] = _optional(current.io_write_bytes)
        values[m.SERVER_NETWORK_READ_BYTES.name] = _optional(current.network_read_bytes)
        values[m.SERVER_NETWORK_WRITE_BYTES.name] = _optional(current.network_write_bytes)

        values[m.SERVER_INTERRUPTS.name] = float(current.interrupts)
        values[m.SERVER_CONTEXT_SWITCHES.name] = float(current.context_switches)
        return values

    @staticmethod
    def _cpu(current: HostSnapshot, previous: HostSnapshot | None) -> dict[str, float | None]:
        kinds = {
            m.SERVER_CPU_USER.name: TickKind.USER,
            m.SERVER_CPU_NICE.name: TickKind.NICE,
            m.SERVER_CPU_SYSTEM.name: TickKind.SYSTEM,
            m.SERVER_CPU_IO_WAIT.name: TickKind.IOWAIT,
            m.SERVER_CPU_IDLE.name: TickKind.IDLE,
            m.SERVER_CPU_IRQ.name: TickKind.IRQ,
            m.SERVER_CPU_SOFT_IRQ.name: TickKind.SOFTIRQ,
            m.SERVER_CPU_STOLEN.name: TickKind.STEAL,
        }
        if (
            previous is None
            or elapsed_nanos(current, previous) is None
            # every core reset or came and went: unknown, not idle
            or contributing_cores(current.cpu_ticks, previous.cpu_ticks) == 0
        ):
            values: dict[str, float | None] = {name: None for name in kinds}
            values[m.SERVER_CPU_TOTAL.name] = None
            return values

        values = {
            name: compute_tick_usage(kind, current.cpu_ticks, previous.cpu_ticks)
            for name, kind in kinds.items()
        }
        values[m.SERVER_CPU_TOTAL.name] = sum(
            compute_tick_usage(kind, current.cpu_ticks, previous.cpu_ticks) for kind in _BUSY_TICKS
        )
        return values


def _optional(value: int | None) -> float | None:
    return None if value is None else float(value)
