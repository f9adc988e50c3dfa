"""OpenTelemetry exporter – pushes collected samples via OTLP/HTTP."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

from ..collector.base import Sample
from ..config import OtelExporterConfig
from ..metrics import resolve
from .base import BaseExporter

logger = logging.getLogger(__name__)


def _otlp_reader(config: OtelExporterConfig) -> MetricReader:
    exporter_kwargs: dict[str, Any] = {
        "endpoint": f"{config.endpoint.rstrip('/')}/v1/metrics",
    }
    if config.headers:
        exporter_kwargs["headers"] = config.headers
    return PeriodicExportingMetricReader(
        OTLPMetricExporter(**exporter_kwargs),
        export_interval_millis=config.export_interval_ms,
    )


class OtelExporter(BaseExporter):
    """Records every known sample value as an OpenTelemetry gauge.

    Counters are exported with their raw cumulative value, rate conversion
    is left to the backend. By default the SDK's
    ``PeriodicExportingMetricReader`` flushes to the configured OTLP/HTTP
    endpoint; tests pass their own *readers*.
    """

    def __init__(
        self,
        config: OtelExporterConfig,
        readers: Sequence[MetricReader] | None = None,
    ) -> None:
        self._config = config
        resource = Resource.create({SERVICE_NAME: config.service_name})
        if readers is None:
            readers = [_otlp_reader(config)]
        self._provider = MeterProvider(resource=resource, metric_readers=list(readers))
        self._meter = self._provider.get_meter("usage_metrics")
        self._gauges: dict[str, Any] = {}

        logger.info(
            "OtelExporter initialized → %s (service=%s)",
            config.endpoint,
            config.service_name,
        )

    def _get_gauge(self, name: str) -> Any:
        if name not in self._gauges:
            metric = resolve(name)
            self._gauges[name] = self._meter.create_gauge(
                name=metric.name,
                unit=metric.unit,
                description=f"{metric.group} / {metric.display_name}",
            )
        return self._gauges[name]

    def export(self, sample: Sample) -> None:
        attributes = {"collector": sample.collector}
        for name, value in sample.known().items():
            self._get_gauge(name).set(value, attributes=attributes)

    def shutdown(self) -> None:
        self._provider.shutdown()
        logger.info("OtelExporter shut down")
