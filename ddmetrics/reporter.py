"""Periodic drain-and-submit loop."""
import time
import logging
import threading
from typing import Optional

from ddmetrics.buffer import MetricsBuffer
from ddmetrics.self_metrics import SelfMetrics
from ddmetrics.transport import HttpApi

logger = logging.getLogger(__name__)


class Reporter:
    """Flushes the buffer to Datadog on a fixed interval."""

    def __init__(
        self,
        buffer: MetricsBuffer,
        http_api: HttpApi,
        flush_interval_s: float,
        self_metrics: Optional[SelfMetrics] = None
    ):
        self.buffer = buffer
        self.http_api = http_api
        self.flush_interval_s = flush_interval_s
        self.self_metrics = self_metrics

        self.running = False
        self.flush_count = 0
        self.start_time = time.time()
        self.last_flush_time: Optional[float] = None
        self.last_flush_success: Optional[bool] = None

        self._stop_event = threading.Event()
        # One flush at a time
        self._flush_lock = threading.Lock()

    def flush(self) -> int:
        """Drain the buffer and submit the result. Returns the series count."""
        with self._flush_lock:
            flush_start = time.time()
            series = self.buffer.drain()

            if not series:
                logger.debug("No metrics to flush")
                return 0

            logger.debug(f"Flushing {len(series)} metric series to Datadog")
            success = self.http_api.submit(series)

            if success:
                logger.debug(f"Successfully flushed {len(series)} metric series")
            else:
                logger.warning(f"Failed to flush {len(series)} metric series")

            self.flush_count += 1
            self.last_flush_time = time.time()
            self.last_flush_success = success

            if self.self_metrics:
                self.self_metrics.record_flush_duration(time.time() - flush_start)

            return len(series)

    def run(self):
        """Run the flush loop until stopped."""
        self.running = True
        self.start_time = time.time()

        logger.info(
            f"Starting Datadog metrics reporter with flush interval of {self.flush_interval_s} seconds"
        )

        # Wait for the first interval before flushing
        while not self._stop_event.wait(self.flush_interval_s):
            try:
                self.flush()
            except Exception as e:
                logger.error(f"Error flushing metrics to Datadog: {e}", exc_info=True)

        self.running = False
        logger.info("Datadog metrics reporter is stopping")

    def stop(self):
        """Stop the loop, abort pending retries, and perform a final flush."""
        logger.info("Stopping metrics reporter")
        self.running = False
        self._stop_event.set()
        self.http_api.cancel()

        logger.info("Performing final metrics flush before shutdown")
        try:
            self.flush()
        except Exception as e:
            logger.error(f"Error during final metrics flush: {e}", exc_info=True)


def run_reporter_thread(reporter: Reporter):
    """Run reporter in a separate thread."""
    try:
        reporter.run()
    except Exception as e:
        logger.error(f"Reporter thread error: {e}", exc_info=True)
        reporter.stop()
