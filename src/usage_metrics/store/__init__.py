"""Time-series stores samples are written to."""

from .base import SeriesStore
from .disk import DiskSeriesStore
from .memory import MemorySeriesStore

__all__ = ["DiskSeriesStore", "MemorySeriesStore", "SeriesStore"]
