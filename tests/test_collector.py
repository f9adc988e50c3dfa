"""Tests for the counter sources and samplers."""

import os
import threading

import pytest

from usage_metrics import metrics as m
from usage_metrics.collector.base import CounterSource, Sampler
from usage_metrics.collector.host import HostCounterSource, HostSampler, HostSnapshot
from usage_metrics.collector.process import (
    GcClock,
    ProcessCounterSource,
    ProcessSampler,
    ProcessSnapshot,
)
from usage_metrics.errors import CollectionError, SourceUnavailableError
from usage_metrics.usage import CpuTicks


class ScriptedSource(CounterSource):
    """Returns prepared snapshots in order; ``Exception`` items are raised."""

    def __init__(self, items):
        self._items = list(items)

    @property
    def name(self):
        return "scripted"

    def read(self):
        item = self._items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _host(monotonic_ns, ticks, io_reads=0):
    return HostSnapshot(
        monotonic_ns=monotonic_ns,
        timestamp=1_700_000_000_000 + monotonic_ns // 1_000_000,
        cpu_ticks=tuple(ticks),
        memory_total=1000,
        memory_used=600,
        memory_actually_used=400,
        io_reads=io_reads,
    )


def _process(monotonic_ns, user, system, gc_ns=None):
    return ProcessSnapshot(
        monotonic_ns=monotonic_ns,
        timestamp=1_700_000_000_000 + monotonic_ns // 1_000_000,
        cpu_user=user,
        cpu_system=system,
        memory_resident=2048,
        threads=3,
        gc_duration_ns=gc_ns,
    )


# ---------------------------------------------------------------------------
# HostSampler
# ---------------------------------------------------------------------------

class TestHostSampler:
    """Delta handling of the host sampler."""

    def test_first_sample_has_unknown_cpu(self):
        sampler = HostSampler(ScriptedSource([_host(1_000, [CpuTicks(user=10, idle=90)])]))
        sample = sampler.sample()
        assert sample.collector == "server"
        assert sample.get(m.SERVER_CPU_TOTAL) is None
        assert sample.get(m.SERVER_CPU_USER) is None
        # point-in-time values are known from the first cycle
        assert sample.get(m.SERVER_MEMORY_MAX) == 1000.0
        assert sample.get(m.SERVER_MEMORY_ACTUALLY_USED) == 400.0

    def test_second_sample_computes_cpu(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000, [CpuTicks(user=10, system=0, idle=90, iowait=0)]),
            _host(2_000, [CpuTicks(user=30, system=10, idle=150, iowait=10)]),
        ]))
        sampler.sample()
        sample = sampler.sample()
        assert sample.get(m.SERVER_CPU_USER) == pytest.approx(20.0)
        assert sample.get(m.SERVER_CPU_SYSTEM) == pytest.approx(10.0)
        assert sample.get(m.SERVER_CPU_IDLE) == pytest.approx(60.0)
        assert sample.get(m.SERVER_CPU_IO_WAIT) == pytest.approx(10.0)
        # busy share excludes idle and io wait
        assert sample.get(m.SERVER_CPU_TOTAL) == pytest.approx(30.0)

    def test_no_elapsed_time_is_unknown(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000, [CpuTicks(user=10, idle=90)]),
            _host(1_000, [CpuTicks(user=20, idle=90)]),
        ]))
        sampler.sample()
        assert sampler.sample().get(m.SERVER_CPU_TOTAL) is None

    def test_full_counter_reset_is_unknown(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000_000_000, [CpuTicks(user=500, idle=500)]),
            _host(3_000_000_000, [CpuTicks(user=5, idle=5)]),
        ]))
        sampler.sample()
        sample = sampler.sample()
        assert sample.get(m.SERVER_CPU_TOTAL) is None
        assert sample.get(m.SERVER_CPU_USER) is None
        assert sample.get(m.SERVER_CPU_IDLE) is None
        assert sample.get(m.SERVER_MEMORY_MAX) == 1000.0

    def test_no_shared_cores_is_unknown(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000_000_000, []),
            _host(2_000_000_000, [CpuTicks(user=10, idle=10)]),
        ]))
        sampler.sample()
        assert sampler.sample().get(m.SERVER_CPU_TOTAL) is None

    def test_partial_reset_still_known(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000_000_000, [CpuTicks(user=500, idle=500), CpuTicks(user=0, idle=0)]),
            _host(2_000_000_000, [CpuTicks(user=5, idle=5), CpuTicks(user=30, idle=70)]),
        ]))
        sampler.sample()
        assert sampler.sample().get(m.SERVER_CPU_TOTAL) == pytest.approx(30.0)

    def test_counters_passed_through(self):
        sampler = HostSampler(ScriptedSource([_host(1_000, [CpuTicks()], io_reads=42)]))
        assert sampler.sample().get(m.SERVER_IO_READS) == 42.0

    def test_failure_keeps_previous_snapshot(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000, [CpuTicks(user=0, idle=0)]),
            RuntimeError("boom"),
            _host(3_000, [CpuTicks(user=50, idle=50)]),
        ]))
        first = sampler.sample()
        with pytest.raises(CollectionError):
            sampler.sample()
        assert sampler.previous is not None
        assert sampler.previous.monotonic_ns == 1_000
        third = sampler.sample()
        assert first.get(m.SERVER_CPU_USER) is None
        assert third.get(m.SERVER_CPU_USER) == pytest.approx(50.0)

    def test_unavailable_propagates(self):
        sampler = HostSampler(ScriptedSource([SourceUnavailableError("gone")]))
        with pytest.raises(SourceUnavailableError):
            sampler.sample()

    def test_reset_forgets_previous(self):
        sampler = HostSampler(ScriptedSource([
            _host(1_000, [CpuTicks(user=0, idle=0)]),
            _host(2_000, [CpuTicks(user=50, idle=50)]),
        ]))
        sampler.sample()
        sampler.reset()
        assert sampler.previous is None
        assert sampler.sample().get(m.SERVER_CPU_USER) is None

    def test_real_host_source(self):
        sampler = HostSampler()
        first = sampler.sample()
        assert first.get(m.SERVER_CPU_TOTAL) is None
        assert first.get(m.SERVER_MEMORY_MAX) > 0
        second = sampler.sample()
        total = second.get(m.SERVER_CPU_TOTAL)
        if total is not None:
            assert 0.0 <= total <= 100.0 + 1e-6
        assert HostCounterSource().is_available()


# ---------------------------------------------------------------------------
# ProcessSampler
# ---------------------------------------------------------------------------

class TestProcessSampler:
    """Delta handling of the process sampler."""

    def test_first_then_second(self):
        sampler = ProcessSampler(ScriptedSource([
            _process(1_000_000_000, user=1.0, system=0.5),
            _process(2_000_000_000, user=1.5, system=0.75),
        ]))
        first = sampler.sample()
        assert first.get(m.PROCESS_CPU_TOTAL) is None
        assert first.get(m.PROCESS_MEMORY_RESIDENT) == 2048.0
        second = sampler.sample()
        assert second.get(m.PROCESS_CPU_USER) == pytest.approx(50.0)
        assert second.get(m.PROCESS_CPU_SYSTEM) == pytest.approx(25.0)
        assert second.get(m.PROCESS_CPU_TOTAL) == pytest.approx(75.0)

    def test_multi_core_exceeds_hundred(self):
        sampler = ProcessSampler(ScriptedSource([
            _process(0 + 1, user=0.0, system=0.0),
            _process(1_000_000_001, user=3.5, system=0.5),
        ]))
        sampler.sample()
        assert sampler.sample().get(m.PROCESS_CPU_TOTAL) == pytest.approx(400.0)

    def test_counter_reset_is_unknown(self):
        sampler = ProcessSampler(ScriptedSource([
            _process(1_000_000_000, user=10.0, system=1.0),
            _process(2_000_000_000, user=0.5, system=1.5),
        ]))
        sampler.sample()
        sample = sampler.sample()
        assert sample.get(m.PROCESS_CPU_USER) is None
        assert sample.get(m.PROCESS_CPU_SYSTEM) == pytest.approx(50.0)
        assert sample.get(m.PROCESS_CPU_TOTAL) is None

    def test_gc_time(self):
        sampler = ProcessSampler(ScriptedSource([
            _process(1_000_000_000, user=0.0, system=0.0, gc_ns=0),
            _process(2_000_000_000, user=0.0, system=0.0, gc_ns=100_000_000),
        ]))
        assert sampler.sample().get(m.PROCESS_GC_TIME) is None
        sample = sampler.sample()
        assert sample.get(m.PROCESS_GC_TIME) == pytest.approx(10.0)
        assert sample.get(m.PROCESS_GC_DURATION) == pytest.approx(100.0)

    def test_malformed_snapshot_is_collection_error(self):
        sampler = ProcessSampler(ScriptedSource([
            _process(1_000_000_000, user=1.0, system=0.0),
            _process(2_000_000_000, user="garbage", system=0.0),
            _process(3_000_000_000, user=2.0, system=0.0),
        ]))
        sampler.sample()
        with pytest.raises(CollectionError):
            sampler.sample()
        assert sampler.previous.monotonic_ns == 1_000_000_000
        # one cpu second over two seconds against the kept baseline
        assert sampler.sample().get(m.PROCESS_CPU_USER) == pytest.approx(50.0)

    def test_foreign_process_has_no_gc(self):
        sampler = ProcessSampler(ScriptedSource([_process(1, user=0.0, system=0.0)]))
        sample = sampler.sample()
        assert sample.get(m.PROCESS_GC_GEN0_COUNT) is None
        assert sample.get(m.PROCESS_THREAD_DAEMON) is None

    def test_real_local_process(self):
        worker = threading.Thread(target=lambda: None, daemon=True)
        worker.start()
        worker.join()
        sampler = ProcessSampler()
        first = sampler.sample()
        assert first.get(m.PROCESS_MEMORY_RESIDENT) > 0
        assert first.get(m.PROCESS_THREAD) >= 1
        assert first.get(m.PROCESS_THREAD_NON_DAEMON) >= 1
        assert first.get(m.PROCESS_GC_GEN0_COUNT) is not None
        second = sampler.sample()
        assert second.get(m.PROCESS_MEMORY_RESIDENT) > 0

    def test_missing_pid_unavailable(self):
        source = ProcessCounterSource(pid=2**22 + 12345)
        assert not source.is_available()
        with pytest.raises(SourceUnavailableError):
            source.read()

    def test_local_source(self):
        source = ProcessCounterSource()
        assert source.pid == os.getpid()
        assert source.is_local
        assert source.is_available()


def test_gc_clock_is_shared():
    assert GcClock.install() is GcClock.install()
    import gc

    before = GcClock.install().total_ns
    gc.collect()
    assert GcClock.install().total_ns >= before


def test_sampler_is_abstract():
    with pytest.raises(TypeError):
        Sampler(ScriptedSource([]))  # type: ignore[abstract]
