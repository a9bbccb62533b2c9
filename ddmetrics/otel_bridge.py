"""Forward OpenTelemetry instrument data into the metrics pipeline."""
from typing import List
import logging

from opentelemetry import metrics
from opentelemetry.sdk.metrics import (
    Counter, Histogram as HistogramInstrument, MeterProvider, ObservableCounter,
)
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    Gauge,
    Histogram,
    MetricExporter,
    MetricExportResult,
    MetricsData,
    PeriodicExportingMetricReader,
    Sum,
)
from opentelemetry.sdk.resources import Resource

from ddmetrics.client import MetricsClient
from ddmetrics.series import MetricKind

logger = logging.getLogger(__name__)

# Counters and histograms report per-interval deltas; up-down counters keep
# their cumulative value, which is what a gauge wants.
DELTA_TEMPORALITY = {
    Counter: AggregationTemporality.DELTA,
    ObservableCounter: AggregationTemporality.DELTA,
    HistogramInstrument: AggregationTemporality.DELTA,
}


def attributes_to_tags(attributes) -> List[str]:
    """Convert OTEL attributes to ``key:value`` tags."""
    if not attributes:
        return []
    return [f"{k}:{v}" for k, v in attributes.items()]


class DatadogBridgeExporter(MetricExporter):
    """
    OTEL metric exporter that feeds every data point to ``MetricsClient.record``.

    Monotonic sums become counters, non-monotonic sums and gauges become
    gauges, and histogram points contribute their interval mean as one
    histogram sample.

    The SDK hands exporters pre-aggregated histogram points, so the resulting
    ``.count``, ``.min``, ``.max`` and percentile series describe export
    intervals, not individual measurements. Record through ``MetricsClient``
    directly when per-measurement statistics are needed.
    """

    def __init__(self, client: MetricsClient):
        super().__init__(preferred_temporality=DELTA_TEMPORALITY)
        self.client = client
        self._warned_histograms = set()

    def export(self, metrics_data: MetricsData, timeout_millis: float = 10_000, **kwargs) -> MetricExportResult:
        try:
            for resource_metrics in metrics_data.resource_metrics:
                for scope_metrics in resource_metrics.scope_metrics:
                    for metric in scope_metrics.metrics:
                        self._forward(metric)
        except Exception as e:
            logger.error(f"Error forwarding OTEL metrics: {e}", exc_info=True)
            return MetricExportResult.FAILURE
        return MetricExportResult.SUCCESS

    def _forward(self, metric):
        data = metric.data

        if isinstance(data, Sum):
            kind = MetricKind.COUNTER if data.is_monotonic else MetricKind.GAUGE
            for point in data.data_points:
                self.client.record(kind, metric.name, point.value,
                                   attributes_to_tags(point.attributes), point.time_unix_nano / 1e9)

        elif isinstance(data, Gauge):
            for point in data.data_points:
                self.client.record(MetricKind.GAUGE, metric.name, point.value,
                                   attributes_to_tags(point.attributes), point.time_unix_nano / 1e9)

        elif isinstance(data, Histogram):
            if metric.name not in self._warned_histograms:
                self._warned_histograms.add(metric.name)
                logger.warning(
                    f"OTEL histogram {metric.name} is forwarded as one interval mean per export; "
                    f"its count, min, max and percentiles describe export intervals, not measurements"
                )
            for point in data.data_points:
                if not point.count:
                    continue
                self.client.record(MetricKind.HISTOGRAM, metric.name, point.sum / point.count,
                                   attributes_to_tags(point.attributes), point.time_unix_nano / 1e9)

        else:
            logger.warning(f"Unknown OTEL data type {type(data).__name__} for {metric.name}")

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        pass


def install_meter_provider(client: MetricsClient, export_interval_s: int = 10,
                           set_global: bool = True) -> MeterProvider:
    """Create a MeterProvider whose instruments flow into ``client``."""
    reader = PeriodicExportingMetricReader(
        DatadogBridgeExporter(client),
        export_interval_millis=export_interval_s * 1000
    )
    meter_provider = MeterProvider(
        resource=Resource.create({"service.name": "ddmetrics"}),
        metric_readers=[reader]
    )

    if set_global:
        metrics.set_meter_provider(meter_provider)

    logger.info(f"Started OpenTelemetry integration (export interval {export_interval_s}s)")
    return meter_provider
