"""Concurrent aggregation buffer keyed by (metric name, tag set)."""
import logging
import threading
import time
from contextlib import ExitStack
from typing import Dict, List, Optional, Sequence

from ddmetrics.aggregators import MetricAggregator, create_aggregator
from ddmetrics.config import HistogramConfig
from ddmetrics.keys import apply_prefix, make_buffer_key
from ddmetrics.self_metrics import SelfMetrics
from ddmetrics.series import MetricKind, Series, Timestamp

logger = logging.getLogger(__name__)

DEFAULT_STRIPES = 16


class _Stripe:
    """One lock-guarded slice of the buffer."""

    __slots__ = ("lock", "aggregators")

    def __init__(self):
        self.lock = threading.Lock()
        self.aggregators: Dict[str, MetricAggregator] = {}


class MetricsBuffer:
    """
    Lock-striped map from aggregation key to aggregator.

    ``record`` creates or updates an aggregator under its stripe's lock.
    ``drain`` takes every stripe lock, swaps all maps for empty ones, and
    flushes the detached generation after releasing them. A measurement either
    lands in the drained generation or in the next one, never neither, and
    nothing recorded after the swap is part of the drained generation. An
    aggregator whose flush fails is logged and skipped; the rest still flush.
    """

    def __init__(
        self,
        host: str,
        prefix: Optional[str] = None,
        default_tags: Optional[Sequence[str]] = None,
        max_buffer_size: int = 10000,
        histogram_config: Optional[HistogramConfig] = None,
        self_metrics: Optional[SelfMetrics] = None,
        stripes: int = DEFAULT_STRIPES
    ):
        self.host = host
        self.prefix = prefix
        self.default_tags = list(default_tags or [])
        self.max_buffer_size = max_buffer_size
        self.histogram_config = histogram_config or HistogramConfig()
        self.self_metrics = self_metrics

        self._stripes = [_Stripe() for _ in range(max(1, stripes))]
        self._overflow_warned = False

    def record(
        self,
        kind: MetricKind,
        name: str,
        value: float,
        tags: Optional[Sequence[str]] = None,
        timestamp: Optional[Timestamp] = None,
        histogram_config: Optional[HistogramConfig] = None
    ):
        """Fold one measurement into the aggregator for its key."""
        full_name = apply_prefix(name, self.prefix)
        key = make_buffer_key(full_name, tags)
        if timestamp is None:
            timestamp = time.time()

        created = False
        stripe = self._stripe_for(key)
        with stripe.lock:
            aggregator = stripe.aggregators.get(key)
            if aggregator is None:
                aggregator = create_aggregator(
                    kind,
                    full_name,
                    list(tags) if tags else None,
                    self.host,
                    histogram_config or self.histogram_config
                )
                stripe.aggregators[key] = aggregator
                created = True
            aggregator.accumulate(value, timestamp)

        if self.self_metrics:
            self.self_metrics.record_measurement(kind.value)
            if created:
                self.self_metrics.record_key_created()

        # Safety check: warn once per generation if the buffer grows too large
        if not self._overflow_warned:
            size = len(self)
            if size > self.max_buffer_size:
                self._overflow_warned = True
                logger.warning(
                    f"Metrics buffer holds {size} keys, above the configured "
                    f"maximum of {self.max_buffer_size}; check tag cardinality"
                )

    def drain(self) -> List[Series]:
        """Detach the current generation and return its series with default tags applied."""
        generation = self._detach_generation()
        self._overflow_warned = False

        if self.self_metrics:
            self.self_metrics.record_keys_drained(len(generation))

        series: List[Series] = []
        for aggregator in generation:
            try:
                flushed = aggregator.flush()
            except Exception as e:
                logger.error(f"Failed to flush aggregator for {aggregator.name}: {e}", exc_info=True)
                continue
            for s in flushed:
                s.tags = self.default_tags + list(s.tags or [])
                series.append(s)

        logger.debug(f"Drained {len(generation)} aggregators into {len(series)} series")
        return series

    def _detach_generation(self) -> List[MetricAggregator]:
        # Every stripe lock is held at once so the cut is a single instant.
        # Locks are taken in stripe order; record only ever holds one.
        with ExitStack() as stack:
            for stripe in self._stripes:
                stack.enter_context(stripe.lock)
            detached = [stripe.aggregators for stripe in self._stripes]
            for stripe in self._stripes:
                stripe.aggregators = {}

        return [aggregator for aggregators in detached for aggregator in aggregators.values()]

    def _stripe_for(self, key: str) -> _Stripe:
        return self._stripes[hash(key) % len(self._stripes)]

    def __len__(self) -> int:
        return sum(len(stripe.aggregators) for stripe in self._stripes)
