"""Series store persisted as JSONL files on disk."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from ..collector.base import Sample
from .memory import DEFAULT_MAX_POINTS, DEFAULT_RETENTION_SECONDS, MemorySeriesStore

logger = logging.getLogger(__name__)

_FILE_PATTERN = "series-*.jsonl"


class DiskSeriesStore(MemorySeriesStore):
    """A memory store that also appends every point to JSONL files.

    One file per day (``series-YYYY-MM-DD.jsonl``) is created inside
    *path*. Points still within retention are reloaded on construction, so
    averages survive a restart. A day file is deleted once its newest point
    falls out of retention, checked on construction and on every day
    rollover.
    """

    def __init__(
        self,
        path: str | Path,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        max_points: int = DEFAULT_MAX_POINTS,
    ) -> None:
        super().__init__(retention_seconds=retention_seconds, max_points=max_points)
        self._path = Path(path)
        self._path.mkdir(parents=True, exist_ok=True)
        self._fh = None
        self._current_date: str | None = None
        self._current_file: Path | None = None
        # newest timestamp written to each day file
        self._file_newest: dict[Path, int] = {}
        self._load()
        logger.info("DiskSeriesStore initialized → %s", self._path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        cutoff = time.time() * 1000 - self._retention_ms
        loaded = 0
        for filepath in sorted(self._path.glob(_FILE_PATTERN)):
            newest = None
            with open(filepath, encoding="utf-8") as fh:
                for line in fh:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                        name, timestamp, value = record["name"], int(record["timestamp"]), record["value"]
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                        logger.warning("Skipping malformed line in %s", filepath)
                        continue
                    newest = timestamp if newest is None else max(newest, timestamp)
                    if timestamp >= cutoff:
                        self._append(name, timestamp, value)
                        loaded += 1
            self._file_newest[filepath] = newest if newest is not None else 0
        if loaded:
            logger.debug("Loaded %d points from %s", loaded, self._path)
        self._prune_files(cutoff)

    def _prune_files(self, cutoff: float) -> None:
        """Delete day files whose newest point is older than *cutoff*."""
        for filepath, newest in list(self._file_newest.items()):
            if filepath == self._current_file or newest >= cutoff:
                continue
            try:
                filepath.unlink()
            except FileNotFoundError:
                pass
            del self._file_newest[filepath]
            logger.debug("Removed expired %s", filepath)

    def _ensure_file(self, timestamp: int) -> None:
        day = datetime.fromtimestamp(timestamp / 1000, timezone.utc).strftime("%Y-%m-%d")
        if self._current_date != day or self._fh is None:
            if self._fh is not None:
                self._fh.close()
            filepath = self._path / f"series-{day}.jsonl"
            self._fh = open(filepath, "a", encoding="utf-8")  # noqa: SIM115
            self._current_date = day
            self._current_file = filepath
            self._prune_files(timestamp - self._retention_ms)

    def accept(self, sample: Sample, timestamp_millis: int | None = None) -> None:
        timestamp = sample.timestamp if timestamp_millis is None else timestamp_millis
        with self._lock:
            known = sample.known()
            for name, value in known.items():
                self._append(name, timestamp, value)
            if not known:
                return
            self._ensure_file(timestamp)
            assert self._fh is not None and self._current_file is not None
            for name, value in known.items():
                record = {"name": name, "value": value, "timestamp": timestamp}
                self._fh.write(json.dumps(record) + "\n")
            self._fh.flush()
            previous = self._file_newest.get(self._current_file)
            self._file_newest[self._current_file] = (
                timestamp if previous is None else max(previous, timestamp)
            )

    def clear(self) -> None:
        with self._lock:
            super().clear()
            self.close()
            for filepath in self._path.glob(_FILE_PATTERN):
                filepath.unlink()
            self._file_newest.clear()

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None
                self._current_date = None
                self._current_file = None
