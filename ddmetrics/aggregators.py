"""Per-kind metric aggregators."""
from typing import Dict, List, Optional
from abc import ABC, abstractmethod
import time

import numpy as np

from ddmetrics.config import HistogramConfig
from ddmetrics.series import (
    DistributionPoint, MetricKind, Point, Series, SeriesType, Timestamp, to_unix_seconds
)


class MetricAggregator(ABC):
    """Base class for metric aggregators."""

    def __init__(self, name: str, tags: Optional[List[str]], host: str):
        self.name = name
        self.tags = list(tags) if tags else []
        self.host = host

        # Unix seconds of the most recently accumulated measurement
        self.timestamp = int(time.time())

    @abstractmethod
    def accumulate(self, value: float, timestamp: Timestamp):
        """Fold one measurement into the aggregate."""
        pass

    @abstractmethod
    def flush(self) -> List[Series]:
        """Produce the series for everything accumulated so far."""
        pass

    def _series(self, value: float, series_type: SeriesType, suffix: Optional[str] = None) -> Series:
        """Build a single-point series, optionally with a name suffix."""
        metric = f"{self.name}.{suffix}" if suffix else self.name
        return Series(
            metric=metric,
            type=series_type,
            points=[Point(self.timestamp, float(value))],
            tags=list(self.tags),
            host=self.host,
        )


class GaugeAggregator(MetricAggregator):
    """Latest value wins."""

    def __init__(self, name: str, tags: Optional[List[str]], host: str):
        super().__init__(name, tags, host)
        self.value = 0.0

    def accumulate(self, value: float, timestamp: Timestamp):
        self.value = value
        self.timestamp = to_unix_seconds(timestamp)

    def flush(self) -> List[Series]:
        return [self._series(self.value, SeriesType.GAUGE)]


class CounterAggregator(MetricAggregator):
    """Sums integral increments over the flush interval."""

    def __init__(self, name: str, tags: Optional[List[str]], host: str):
        super().__init__(name, tags, host)
        self.total = 0

    def accumulate(self, value: float, timestamp: Timestamp):
        # Fractional parts are dropped per increment, not on the sum
        self.total += int(value)
        self.timestamp = to_unix_seconds(timestamp)

    def flush(self) -> List[Series]:
        return [self._series(self.total, SeriesType.COUNT)]


class HistogramAggregator(MetricAggregator):
    """
    Client-side statistics over raw samples.

    Emits one series per enabled aggregate (min, max, sum, count, avg, median)
    and one per configured percentile, named ``<metric>.<suffix>``.
    """

    def __init__(self, name: str, tags: Optional[List[str]], host: str, config: HistogramConfig):
        super().__init__(name, tags, host)
        self.config = config
        self.samples: List[float] = []

    def accumulate(self, value: float, timestamp: Timestamp):
        self.samples.append(value)
        self.timestamp = to_unix_seconds(timestamp)

    def flush(self) -> List[Series]:
        if not self.samples:
            return []

        samples = np.sort(np.asarray(self.samples, dtype=float))
        count = len(samples)
        total = float(np.sum(samples))
        aggregates = set(self.config.aggregates)

        result = []
        if "min" in aggregates:
            result.append(self._series(samples[0], SeriesType.GAUGE, "min"))
        if "max" in aggregates:
            result.append(self._series(samples[-1], SeriesType.GAUGE, "max"))
        if "sum" in aggregates:
            result.append(self._series(total, SeriesType.GAUGE, "sum"))
        if "count" in aggregates:
            result.append(self._series(count, SeriesType.COUNT, "count"))
        if "avg" in aggregates:
            result.append(self._series(total / count, SeriesType.GAUGE, "avg"))
        if "median" in aggregates:
            result.append(self._series(percentile(samples, 0.5), SeriesType.GAUGE, "median"))

        for p in self.config.percentiles:
            label = f"{p * 100:.0f}percentile"
            result.append(self._series(percentile(samples, p), SeriesType.GAUGE, label))

        return result


class DistributionAggregator(MetricAggregator):
    """Collects raw values per second for server-side aggregation."""

    def __init__(self, name: str, tags: Optional[List[str]], host: str):
        super().__init__(name, tags, host)
        self.buckets: Dict[int, List[float]] = {}

    def accumulate(self, value: float, timestamp: Timestamp):
        second = to_unix_seconds(timestamp)
        self.buckets.setdefault(second, []).append(value)
        self.timestamp = second

    def flush(self) -> List[Series]:
        points = [
            DistributionPoint(ts, list(values))
            for ts, values in sorted(self.buckets.items())
        ]
        return [
            Series(
                metric=self.name,
                type=SeriesType.GAUGE,  # not sent on the distribution endpoint
                points=points,
                tags=list(self.tags),
                host=self.host,
                is_distribution=True,
            )
        ]


def percentile(sorted_samples, p: float) -> float:
    """
    Nearest-rank percentile: index = round(p * n) - 1, clamped to [0, n - 1].

    ``round`` rounds half to even. This is not linear interpolation.
    """
    n = len(sorted_samples)
    index = round(p * n) - 1
    index = max(0, min(n - 1, index))
    return float(sorted_samples[index])


def create_aggregator(
    kind: MetricKind,
    name: str,
    tags: Optional[List[str]],
    host: str,
    histogram_config: Optional[HistogramConfig] = None
) -> MetricAggregator:
    """Factory function to create the aggregator for a metric kind."""
    if kind == MetricKind.GAUGE:
        return GaugeAggregator(name, tags, host)
    elif kind == MetricKind.COUNTER:
        return CounterAggregator(name, tags, host)
    elif kind == MetricKind.HISTOGRAM:
        return HistogramAggregator(name, tags, host, histogram_config or HistogramConfig())
    elif kind == MetricKind.DISTRIBUTION:
        return DistributionAggregator(name, tags, host)
    else:
        raise ValueError(f"Unknown metric kind: {kind}")
