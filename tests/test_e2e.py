"""End-to-end functional tests for usage_metrics.

These tests run real collectors against the live host and the test
process itself, driven by a private scheduler:
  start → periodic scrape → store → average → clear
"""

import tempfile
import threading
import time
from pathlib import Path

import pytest

from usage_metrics import metrics as m
from usage_metrics.collector.manager import host_collector, process_collector
from usage_metrics.collector.scheduler import Scheduler
from usage_metrics.config import StoreConfig, UsageMetricsConfig


@pytest.fixture
def scheduler():
    sched = Scheduler(name="e2e")
    yield sched
    sched.shutdown()


def _config(interval, store=None):
    cfg = UsageMetricsConfig(store=store or StoreConfig())
    cfg.collector.interval_seconds = interval
    return cfg


class TestHostCollection:
    """Host-wide collection through the scheduled collector."""

    def test_collects_at_interval(self, scheduler):
        collector = host_collector(_config(1.0), scheduler=scheduler)
        collector.start()
        time.sleep(5)
        collector.stop()

        store = collector.get_store()
        assert len(store.get_points(m.SERVER_MEMORY_MAX)) >= 4
        total = store.get_average(m.SERVER_CPU_TOTAL, 60)
        assert total is not None
        assert 0.0 <= total <= 100.0 + 1e-6
        assert store.get_average(m.SERVER_MEMORY_ACTUALLY_USED, 60) > 0
        assert collector.statistics(m.SERVER_CPU_TOTAL).count >= 3

    def test_clear_empties_every_series(self, scheduler):
        collector = host_collector(_config(0.5), scheduler=scheduler)
        collector.start()
        time.sleep(1.5)
        collector.stop()
        time.sleep(0.2)

        store = collector.get_store()
        names = store.get_metrics()
        assert names
        collector.clear()
        for name in names:
            assert store.get_average(name, 3600) is None
        assert collector.average(m.SERVER_CPU_TOTAL) is None


class TestProcessCollection:
    """Collection of the test process itself."""

    def test_busy_thread_shows_cpu(self, scheduler):
        done = threading.Event()

        def spin():
            while not done.is_set():
                sum(range(1000))

        worker = threading.Thread(target=spin, daemon=True)
        worker.start()
        try:
            collector = process_collector(_config(0.5), scheduler=scheduler)
            collector.start()
            time.sleep(2)
            collector.stop()
        finally:
            done.set()
            worker.join()

        average = collector.get_store().get_average(m.PROCESS_CPU_TOTAL, 60)
        assert average is not None
        assert average > 10.0
        assert collector.last.get(m.PROCESS_THREAD) >= 1

    def test_set_interval_while_running(self, scheduler):
        collector = process_collector(_config(5.0), scheduler=scheduler)
        collector.start()
        time.sleep(0.2)
        collector.set_interval(1.0)
        time.sleep(3)
        collector.stop()

        points = collector.get_store().get_points(m.PROCESS_MEMORY_RESIDENT)
        # the initial tick plus roughly one per second afterwards
        assert 3 <= len(points) <= 5
        gaps = [b[0] - a[0] for a, b in zip(points[1:], points[2:])]
        for gap in gaps:
            assert 700 <= gap <= 1300

    def test_disk_store_survives_restart(self, scheduler):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg = _config(0.5, StoreConfig(type="disk", path=tmpdir))
            collector = process_collector(cfg, scheduler=scheduler)
            collector.start()
            time.sleep(1.2)
            collector.close()

            assert list((Path(tmpdir) / "process").glob("series-*.jsonl"))
            reopened = process_collector(cfg, scheduler=scheduler)
            points = reopened.get_store().get_points(m.PROCESS_MEMORY_RESIDENT)
            assert len(points) >= 2
            reopened.close()
