"""Base interface for exporters fed by collectors."""

from __future__ import annotations

import abc

from ..collector.base import Sample


class BaseExporter(abc.ABC):
    """Abstract base for exporters that receive accepted samples.

    Exporters are registered as collector listeners::

        collector.add_listener(exporter.export)
    """

    @abc.abstractmethod
    def export(self, sample: Sample) -> None:
        """Export one sample."""

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Flush and release resources."""
