"""Application-facing entry point for recording metrics."""
from typing import List, Optional, Sequence

from ddmetrics.buffer import MetricsBuffer
from ddmetrics.config import HistogramConfig
from ddmetrics.series import MetricKind, Series, Timestamp


class MetricsClient:
    """Records gauges, counters, histograms and distributions into the buffer."""

    def __init__(self, buffer: MetricsBuffer):
        self.buffer = buffer

    def record(
        self,
        kind: MetricKind,
        name: str,
        value: float,
        tags: Optional[Sequence[str]] = None,
        timestamp: Optional[Timestamp] = None
    ):
        """Generic ingestion call used by instrumentation bridges."""
        self.buffer.record(kind, name, value, tags, timestamp)

    def gauge(self, name: str, value: float, tags: Optional[Sequence[str]] = None,
              timestamp: Optional[Timestamp] = None):
        """Record a gauge value. Latest value wins."""
        self.buffer.record(MetricKind.GAUGE, name, value, tags, timestamp)

    def counter(self, name: str, value: float, tags: Optional[Sequence[str]] = None,
                timestamp: Optional[Timestamp] = None):
        """Record a counter value. Values are summed."""
        self.buffer.record(MetricKind.COUNTER, name, value, tags, timestamp)

    def increment(self, name: str, tags: Optional[Sequence[str]] = None,
                  timestamp: Optional[Timestamp] = None):
        """Increment a counter by 1."""
        self.counter(name, 1, tags, timestamp)

    def histogram(self, name: str, value: float, tags: Optional[Sequence[str]] = None,
                  timestamp: Optional[Timestamp] = None,
                  histogram_config: Optional[HistogramConfig] = None):
        """Record a histogram sample, aggregated client-side."""
        self.buffer.record(MetricKind.HISTOGRAM, name, value, tags, timestamp, histogram_config)

    def distribution(self, name: str, value: float, tags: Optional[Sequence[str]] = None,
                     timestamp: Optional[Timestamp] = None):
        """Record a distribution value, aggregated server-side."""
        self.buffer.record(MetricKind.DISTRIBUTION, name, value, tags, timestamp)

    def flush(self) -> List[Series]:
        """Drain buffered metrics without submitting them."""
        return self.buffer.drain()
