"""Exceptions raised by usage_metrics."""

from __future__ import annotations


class UsageMetricsError(Exception):
    """Base class for all usage_metrics errors."""


class ConfigurationError(UsageMetricsError):
    """Raised when a collector is misused, e.g. reconfigured after start."""


class SourceUnavailableError(UsageMetricsError):
    """Raised when the target behind a counter source cannot be reached."""


class CollectionError(UsageMetricsError):
    """A transient failure while reading counters for one cycle."""
