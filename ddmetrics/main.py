"""Main entry point for the Datadog metrics pipeline."""
import argparse
import json
import logging
import random
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Optional

from ddmetrics.buffer import MetricsBuffer
from ddmetrics.client import MetricsClient
from ddmetrics.config import Config, load_config
from ddmetrics.control_api import ControlAPI
from ddmetrics.otel_bridge import install_meter_provider
from ddmetrics.reporter import Reporter, run_reporter_thread
from ddmetrics.self_metrics import SelfMetrics, start_self_metrics_server
from ddmetrics.transport import HttpApi


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    datefmt = "%Y-%m-%d %H:%M:%S"

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter(datefmt=datefmt))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt=datefmt
        ))

    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@dataclass
class Pipeline:
    """Wired components of a running pipeline."""
    buffer: MetricsBuffer
    client: MetricsClient
    http_api: HttpApi
    reporter: Reporter
    self_metrics: Optional[SelfMetrics] = None
    meter_provider: Optional[object] = None


def build_pipeline(config: Config, transport=None) -> Pipeline:
    """Create buffer, client, transport and reporter from configuration."""
    dd = config.datadog

    self_metrics = None
    if config.self_metrics.enabled:
        self_metrics = start_self_metrics_server(config.self_metrics)

    buffer = MetricsBuffer(
        host=dd.resolved_host(),
        prefix=dd.prefix,
        default_tags=dd.default_tags,
        max_buffer_size=dd.max_buffer_size,
        histogram_config=dd.histogram,
        self_metrics=self_metrics
    )
    client = MetricsClient(buffer)
    http_api = HttpApi(dd, transport=transport, self_metrics=self_metrics)
    reporter = Reporter(buffer, http_api, dd.flush_interval_s, self_metrics=self_metrics)

    meter_provider = None
    if config.otel.enabled:
        meter_provider = install_meter_provider(client, config.otel.export_interval_s)

    return Pipeline(buffer, client, http_api, reporter, self_metrics, meter_provider)


def run_demo(client: MetricsClient, stop_event: threading.Event, interval_s: float = 1.0):
    """Emit one metric of every kind until stopped."""
    rng = random.Random(42)
    while not stop_event.wait(interval_s):
        client.gauge("demo.queue.depth", rng.randint(0, 100), ["queue:default"])
        client.increment("demo.requests", ["endpoint:/api", "method:GET"])
        client.histogram("demo.request.latency", rng.lognormvariate(-2.0, 0.5), ["endpoint:/api"])
        client.distribution("demo.payload.size", rng.randint(100, 5000), ["endpoint:/api"])


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Datadog metrics pipeline - aggregate locally, flush to Datadog"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Emit sample metrics of every kind"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    dd = config.datadog
    logger.info("=" * 60)
    logger.info("Datadog metrics pipeline")
    logger.info("=" * 60)
    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Site: {dd.site}")
    logger.info(f"Flush interval: {dd.flush_interval_s}s")
    logger.info(f"Prefix: {dd.prefix or '(none)'}")
    logger.info(f"Default tags: {', '.join(dd.default_tags) or '(none)'}")
    logger.info(f"Max retries: {dd.max_retries}")

    try:
        pipeline = build_pipeline(config)
    except Exception as e:
        logger.error(f"Failed to initialize pipeline: {e}", exc_info=True)
        sys.exit(1)

    reporter = pipeline.reporter

    # Start reporter in separate thread
    reporter_thread = threading.Thread(
        target=run_reporter_thread,
        args=(reporter,),
        daemon=True
    )
    reporter_thread.start()
    logger.info("Metrics reporter started")

    demo_stop = threading.Event()
    if args.demo:
        threading.Thread(target=run_demo, args=(pipeline.client, demo_stop), daemon=True).start()
        logger.info("Demo metrics enabled")

    def shutdown():
        demo_stop.set()
        if pipeline.meter_provider:
            pipeline.meter_provider.shutdown()
        reporter.stop()
        pipeline.http_api.close()

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not config.global_.control_api_enabled:
        reporter_thread.join()
        return

    # Run control API (blocking)
    control_api = ControlAPI(reporter, dd.site)
    logger.info(f"Starting control API on port {config.global_.control_api_port}")
    try:
        control_api.run(
            host="0.0.0.0",
            port=config.global_.control_api_port
        )
    except Exception as e:
        logger.error(f"Control API error: {e}", exc_info=True)
        shutdown()
        sys.exit(1)

    # uvicorn handles SIGINT/SIGTERM itself and returns here
    logger.info("Control API stopped, shutting down...")
    shutdown()


if __name__ == "__main__":
    main()
