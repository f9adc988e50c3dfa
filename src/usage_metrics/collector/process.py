"""Per-process counters – CPU time, memory, I/O, threads and GC.

The local interpreter additionally reports garbage collection and Python
thread counts. A foreign process (any other pid) only reports what the OS
exposes through psutil, and raises :class:`SourceUnavailableError` once it
is gone.
"""

from __future__ import annotations

import gc
import logging
import os
import threading
import time
from dataclasses import dataclass

import psutil

from .. import metrics as m
from ..errors import SourceUnavailableError
from ..usage import NANOS_PER_MILLI, NANOS_PER_SECOND, compute_usage, counter_delta
from .base import CounterSource, RawSnapshot, Sampler, elapsed_nanos

logger = logging.getLogger(__name__)


class GcClock:
    """Accumulates time spent in garbage collection via ``gc.callbacks``.

    The interpreter has one collector, so the clock is process-wide and
    guarded by its own lock, independent of any collector lock.
    """

    _instance: GcClock | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started: dict[int, int] = {}
        self._total_ns = 0

    @classmethod
    def install(cls) -> GcClock:
        """Return the process-wide clock, registering it on first use."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = GcClock()
                gc.callbacks.append(cls._instance._callback)
            return cls._instance

    def _callback(self, phase: str, info: dict) -> None:
        now = time.perf_counter_ns()
        with self._lock:
            if phase == "start":
                self._started[threading.get_ident()] = now
            elif phase == "stop":
                started = self._started.pop(threading.get_ident(), None)
                if started is not None:
                    self._total_ns += now - started

    @property
    def total_ns(self) -> int:
        with self._lock:
            return self._total_ns


@dataclass(frozen=True)
class ProcessSnapshot(RawSnapshot):
    """Raw process counters; CPU times are cumulative seconds."""

    pid: int = 0
    cpu_user: float = 0.0
    cpu_system: float = 0.0
    cpu_io_wait: float | None = None
    memory_resident: int = 0
    memory_virtual: int = 0
    memory_shared: int | None = None
    threads: int = 0
    daemon_threads: int | None = None
    non_daemon_threads: int | None = None
    file_descriptors: int | None = None
    io_read_bytes: int | None = None
    io_write_bytes: int | None = None
    gc_counts: tuple[int, ...] | None = None
    gc_collected: int | None = None
    gc_uncollectable: int | None = None
    gc_duration_ns: int | None = None


class ProcessCounterSource(CounterSource[ProcessSnapshot]):
    """Reads counters of one process, the current one by default."""

    def __init__(self, pid: int | None = None) -> None:
        self._pid = pid if pid is not None else os.getpid()
        self._local = self._pid == os.getpid()
        self._process: psutil.Process | None = None
        self._gc_clock = GcClock.install() if self._local else None

    @property
    def name(self) -> str:
        return f"process {self._pid}"

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def is_local(self) -> bool:
        return self._local

    def is_available(self) -> bool:
        return psutil.pid_exists(self._pid)

    def _get_process(self) -> psutil.Process:
        if self._process is None:
            try:
                self._process = psutil.Process(self._pid)
            except psutil.NoSuchProcess as exc:
                raise SourceUnavailableError(f"Process {self._pid} is not running") from exc
        return self._process

    def read(self) -> ProcessSnapshot:
        proc = self._get_process()
        monotonic_ns = time.monotonic_ns()
        now = time.time()
        try:
            with proc.oneshot():
                cpu = proc.cpu_times()
                mem = proc.memory_info()
                threads = proc.num_threads()
                fds = self._num_fds(proc)
                io = self._io_counters(proc)
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as exc:
            self._process = None
            raise SourceUnavailableError(f"Process {self._pid} is not running") from exc
        except psutil.AccessDenied as exc:
            raise SourceUnavailableError(f"Access denied to process {self._pid}") from exc

        snapshot = dict(
            monotonic_ns=monotonic_ns,
            timestamp=int(now * 1000),
            pid=self._pid,
            cpu_user=cpu.user,
            cpu_system=cpu.system,
            cpu_io_wait=getattr(cpu, "iowait", None),
            memory_resident=mem.rss,
            memory_virtual=mem.vms,
            memory_shared=getattr(mem, "shared", None),
            threads=threads,
            file_descriptors=fds,
            io_read_bytes=io.read_bytes if io else None,
            io_write_bytes=io.write_bytes if io else None,
        )
        if self._local:
            snapshot.update(self._interpreter_counters())
        return ProcessSnapshot(**snapshot)

    def _interpreter_counters(self) -> dict:
        stats = gc.get_stats()
        daemon = sum(1 for t in threading.enumerate() if t.daemon)
        total = threading.active_count()
        return {
            "gc_counts": tuple(s.get("collections", 0) for s in stats),
            "gc_collected": sum(s.get("collected", 0) for s in stats),
            "gc_uncollectable": sum(s.get("uncollectable", 0) for s in stats),
            "gc_duration_ns": self._gc_clock.total_ns if self._gc_clock else None,
            "daemon_threads": daemon,
            "non_daemon_threads": max(0, total - daemon),
        }

    @staticmethod
    def _num_fds(proc: psutil.Process) -> int | None:
        try:
            return proc.num_fds()
        except (AttributeError, psutil.AccessDenied):
            # num_fds() is POSIX only
            return None

    @staticmethod
    def _io_counters(proc: psutil.Process):
        try:
            return proc.io_counters()
        except (AttributeError, psutil.AccessDenied):
            # io_counters() is not available on every platform
            return None


class ProcessSampler(Sampler[ProcessSnapshot]):
    """Derives process CPU and GC time percentages from time deltas.

    CPU seconds are converted to nanoseconds and compared against the
    monotonic time elapsed between the two snapshots, so a process busy on
    several cores reports more than 100%.
    """

    def __init__(self, source: CounterSource[ProcessSnapshot] | None = None) -> None:
        super().__init__(source or ProcessCounterSource())

    @property
    def name(self) -> str:
        return "process"

    def derive(
        self, current: ProcessSnapshot, previous: ProcessSnapshot | None
    ) -> dict[str, float | None]:
        elapsed = elapsed_nanos(current, previous)
        prev = previous if elapsed is not None else None

        user = _percent(elapsed, current.cpu_user, prev.cpu_user if prev else None)
        system = _percent(elapsed, current.cpu_system, prev.cpu_system if prev else None)
        io_wait = _percent(elapsed, current.cpu_io_wait, prev.cpu_io_wait if prev else None)
        total = None if user is None or system is None else user + system

        values: dict[str, float | None] = {
            m.PROCESS_CPU_TOTAL.name: total,
            m.PROCESS_CPU_USER.name: user,
            m.PROCESS_CPU_SYSTEM.name: system,
            m.PROCESS_CPU_IO_WAIT.name: io_wait,
            m.PROCESS_MEMORY_RESIDENT.name: float(current.memory_resident),
            m.PROCESS_MEMORY_VIRTUAL.name: float(current.memory_virtual),
            m.PROCESS_MEMORY_SHARED.name: _optional(current.memory_shared),
            m.PROCESS_THREAD.name: float(current.threads),
            m.PROCESS_THREAD_DAEMON.name: _optional(current.daemon_threads),
            m.PROCESS_THREAD_NON_DAEMON.name: _optional(current.non_daemon_threads),
            m.PROCESS_FILE_DESCRIPTORS.name: _optional(current.file_descriptors),
            m.PROCESS_IO_READ_BYTES.name: _optional(current.io_read_bytes),
            m.PROCESS_IO_WRITE_BYTES.name: _optional(current.io_write_bytes),
            m.PROCESS_GC_COLLECTED.name: _optional(current.gc_collected),
            m.PROCESS_GC_UNCOLLECTABLE.name: _optional(current.gc_uncollectable),
        }

        gc_metrics = (m.PROCESS_GC_GEN0_COUNT, m.PROCESS_GC_GEN1_COUNT, m.PROCESS_GC_GEN2_COUNT)
        counts = current.gc_counts or ()
        for index, metric in enumerate(gc_metrics):
            values[metric.name] = float(counts[index]) if index < len(counts) else None

        if current.gc_duration_ns is None:
            values[m.PROCESS_GC_DURATION.name] = None
            values[m.PROCESS_GC_TIME.name] = None
        else:
            values[m.PROCESS_GC_DURATION.name] = current.gc_duration_ns / NANOS_PER_MILLI
            gc_delta = counter_delta(current.gc_duration_ns, prev.gc_duration_ns if prev else None)
            values[m.PROCESS_GC_TIME.name] = (
                None if gc_delta is None else compute_usage(elapsed, gc_delta)
            )
        return values


def _percent(elapsed: int | None, current: float | None, previous: float | None) -> float | None:
    """Share of *elapsed* spent in a cumulative CPU-seconds counter."""
    if elapsed is None:
        return None
    delta = counter_delta(current, previous)
    if delta is None:
        return None
    return compute_usage(elapsed, delta * NANOS_PER_SECOND)


def _optional(value: int | None) -> float | None:
    return None if value is None else float(value)
