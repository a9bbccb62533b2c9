"""Self-monitoring metrics for the pipeline using prometheus_client."""
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, start_http_server
import logging

from ddmetrics.config import SelfMetricsConfig

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Self-monitoring metrics for buffering and submission."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            # Use a custom registry to avoid exporting default Python/process metrics
            registry = CollectorRegistry()
        self.registry = registry

        self.measurements_total = Counter(
            f"{prefix}measurements_total",
            "Total number of measurements recorded",
            ["kind"],
            registry=registry
        )

        self.series_flushed_total = Counter(
            f"{prefix}series_flushed_total",
            "Total number of series handed to the submission client",
            ["endpoint"],
            registry=registry
        )

        self.submit_failures_total = Counter(
            f"{prefix}submit_failures_total",
            "Total number of failed submissions",
            ["endpoint"],
            registry=registry
        )

        self.flush_duration_seconds = Histogram(
            f"{prefix}flush_duration_seconds",
            "Duration of each drain and submit cycle in seconds",
            buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry
        )

        self.buffer_keys = Gauge(
            f"{prefix}buffer_keys",
            "Number of live aggregation keys in the buffer",
            registry=registry
        )

    def record_measurement(self, kind: str):
        """Record one ingested measurement."""
        self.measurements_total.labels(kind=kind).inc()

    def record_series(self, endpoint: str, count: int):
        """Record series submitted to an endpoint."""
        self.series_flushed_total.labels(endpoint=endpoint).inc(count)

    def record_submit_failure(self, endpoint: str):
        """Record a failed submission."""
        self.submit_failures_total.labels(endpoint=endpoint).inc()

    def record_flush_duration(self, duration: float):
        """Record flush duration."""
        self.flush_duration_seconds.observe(duration)

    def record_key_created(self):
        """Count a new live aggregation key."""
        self.buffer_keys.inc()

    def record_keys_drained(self, count: int):
        """Remove drained aggregation keys from the live count."""
        self.buffer_keys.dec(count)


def start_self_metrics_server(config: SelfMetricsConfig) -> SelfMetrics:
    """Create self-metrics and expose them over HTTP for scraping."""
    self_metrics = SelfMetrics(prefix=config.prefix)
    try:
        start_http_server(
            config.port,
            addr=config.bind_address,
            registry=self_metrics.registry
        )
        logger.info(
            f"Self-metrics listening on "
            f"{config.bind_address}:{config.port}/metrics"
        )
    except Exception as e:
        logger.error(f"Failed to start self-metrics HTTP server: {e}")
        raise
    return self_metrics
