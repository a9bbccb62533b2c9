"""Tests for the concurrent aggregation buffer."""
import logging
import threading

from ddmetrics.buffer import MetricsBuffer
from ddmetrics.config import HistogramConfig
from ddmetrics.keys import make_buffer_key
from ddmetrics.self_metrics import SelfMetrics
from ddmetrics.series import MetricKind


def make_buffer(**kwargs):
    kwargs.setdefault("host", "testhost")
    return MetricsBuffer(**kwargs)


def test_tag_permutations_aggregate_together():
    buffer = make_buffer()
    buffer.record(MetricKind.GAUGE, "test.metric", 10, ["tag:a", "tag:b"], 1000)
    buffer.record(MetricKind.GAUGE, "test.metric", 20, ["tag:b", "tag:a"], 1001)

    result = buffer.drain()
    assert len(result) == 1
    assert result[0].points[0].value == 20


def test_different_tags_are_separate_series():
    buffer = make_buffer()
    buffer.record(MetricKind.GAUGE, "test.metric", 10, ["env:prod"])
    buffer.record(MetricKind.GAUGE, "test.metric", 20, ["env:dev"])

    values = sorted(s.points[0].value for s in buffer.drain())
    assert values == [10, 20]


def test_none_tags_same_as_empty_tags():
    buffer = make_buffer()
    buffer.record(MetricKind.GAUGE, "test.metric", 10, None)
    buffer.record(MetricKind.GAUGE, "test.metric", 20, [])

    result = buffer.drain()
    assert len(result) == 1
    assert result[0].points[0].value == 20


def test_prefix_and_default_tags():
    buffer = make_buffer(prefix="myapp.", default_tags=["env:prod", "service:api"])
    buffer.record(MetricKind.GAUGE, "memory.used", 100, ["custom:tag"])
    buffer.record(MetricKind.COUNTER, "requests", 1)

    result = {s.metric: s for s in buffer.drain()}
    assert set(result) == {"myapp.memory.used", "myapp.requests"}
    assert result["myapp.memory.used"].tags == ["env:prod", "service:api", "custom:tag"]
    assert result["myapp.requests"].tags == ["env:prod", "service:api"]


def test_default_tags_applied_once_per_drain():
    buffer = make_buffer(default_tags=["env:prod"])
    buffer.record(MetricKind.GAUGE, "m", 1, ["a:1"])
    assert buffer.drain()[0].tags == ["env:prod", "a:1"]
    buffer.record(MetricKind.GAUGE, "m", 2, ["a:1"])
    assert buffer.drain()[0].tags == ["env:prod", "a:1"]


def test_second_drain_is_empty():
    buffer = make_buffer()
    buffer.record(MetricKind.GAUGE, "test.metric", 100)

    assert len(buffer.drain()) == 1
    assert buffer.drain() == []
    assert len(buffer) == 0


def test_counter_accumulates():
    buffer = make_buffer()
    buffer.record(MetricKind.COUNTER, "test.counter", 5)
    buffer.record(MetricKind.COUNTER, "test.counter", 3)
    assert buffer.drain()[0].points[0].value == 8


def test_histogram_config_per_record():
    buffer = make_buffer()
    config = HistogramConfig(aggregates=["min", "max", "count"], percentiles=[])
    for v in (1.0, 5.0, 3.0):
        buffer.record(MetricKind.HISTOGRAM, "test.histogram", v, None, 1000, config)

    result = {s.metric: s.points[0].value for s in buffer.drain()}
    assert result == {"test.histogram.min": 1.0, "test.histogram.max": 5.0, "test.histogram.count": 3}


def test_distribution_values_grouped():
    buffer = make_buffer()
    for v in (100, 250, 500):
        buffer.record(MetricKind.DISTRIBUTION, "request.size", v, None, 1234.5)

    result = buffer.drain()
    assert len(result) == 1
    assert result[0].is_distribution
    assert len(result[0].points) == 1
    assert sorted(result[0].points[0].values) == [100, 250, 500]


def test_overflow_logs_warning_without_dropping(caplog):
    buffer = make_buffer(max_buffer_size=3)
    with caplog.at_level(logging.WARNING, logger="ddmetrics.buffer"):
        for i in range(10):
            buffer.record(MetricKind.GAUGE, f"metric.{i}", i)

    assert len(buffer) == 10
    warnings = [r for r in caplog.records if "above the configured maximum" in r.getMessage()]
    assert len(warnings) == 1
    assert len(buffer.drain()) == 10


def test_self_metrics_track_measurements():
    self_metrics = SelfMetrics()
    buffer = make_buffer(self_metrics=self_metrics)
    buffer.record(MetricKind.COUNTER, "c", 1)
    buffer.record(MetricKind.COUNTER, "c", 1)
    buffer.record(MetricKind.GAUGE, "g", 1, ["a:1"])
    buffer.record(MetricKind.GAUGE, "g", 1, ["a:2"])

    assert self_metrics.registry.get_sample_value("measurements_total", {"kind": "counter"}) == 2
    assert self_metrics.registry.get_sample_value("buffer_keys") == 3

    buffer.drain()
    assert self_metrics.registry.get_sample_value("buffer_keys") == 0

    buffer.record(MetricKind.GAUGE, "g", 2, ["a:1"])
    assert self_metrics.registry.get_sample_value("buffer_keys") == 1


def test_failing_aggregator_does_not_lose_others(caplog):
    buffer = make_buffer()
    buffer.record(MetricKind.GAUGE, "ok.gauge", 1.0)
    # The integral total outgrows a float and cannot be serialized
    buffer.record(MetricKind.COUNTER, "big.counter", 1e308)
    buffer.record(MetricKind.COUNTER, "big.counter", 1e308)

    with caplog.at_level(logging.ERROR, logger="ddmetrics.buffer"):
        result = buffer.drain()

    assert [s.metric for s in result] == ["ok.gauge"]
    assert any("big.counter" in r.getMessage() for r in caplog.records)
    assert buffer.drain() == []


def test_drain_is_a_single_cut_across_stripes():
    """A drain never sees a later record without every earlier one."""
    buffer = make_buffer(stripes=8)
    first = "first"
    first_stripe = buffer._stripe_for(make_buffer_key(first, None))
    second = next(
        f"second.{i}" for i in range(1000)
        if buffer._stripe_for(make_buffer_key(f"second.{i}", None)) is not first_stripe
    )
    done = threading.Event()
    totals = {first: 0, second: 0}
    violations = []

    def produce():
        for _ in range(20000):
            buffer.record(MetricKind.COUNTER, first, 1)
            buffer.record(MetricKind.COUNTER, second, 1)
        done.set()

    producer = threading.Thread(target=produce)
    producer.start()
    while not done.is_set():
        for s in buffer.drain():
            totals[s.metric] += s.points[0].value
        if not totals[second] <= totals[first] <= totals[second] + 1:
            violations.append(dict(totals))
    producer.join()
    for s in buffer.drain():
        totals[s.metric] += s.points[0].value

    assert violations == []
    assert totals == {first: 20000, second: 20000}


def test_concurrent_record_and_drain_loses_nothing():
    """Counts recorded from many threads add up across all drains."""
    buffer = make_buffer(stripes=4)
    threads_n, per_thread = 8, 2000
    drained = []
    done = threading.Event()

    def produce(idx):
        for i in range(per_thread):
            buffer.record(MetricKind.COUNTER, "hits", 1, [f"key:{i % 5}"])

    def drain_loop():
        while not done.is_set():
            drained.extend(buffer.drain())

    drainer = threading.Thread(target=drain_loop)
    drainer.start()
    producers = [threading.Thread(target=produce, args=(i,)) for i in range(threads_n)]
    for t in producers:
        t.start()
    for t in producers:
        t.join()
    done.set()
    drainer.join()
    drained.extend(buffer.drain())

    assert sum(s.points[0].value for s in drained) == threads_n * per_thread
