"""HTTPS submission of aggregated series to the Datadog intake API."""
from typing import Any, Dict, List, Optional
import logging
import threading

import httpx

from ddmetrics import __version__
from ddmetrics.config import DatadogConfig
from ddmetrics.self_metrics import SelfMetrics
from ddmetrics.series import Series

logger = logging.getLogger(__name__)

USER_AGENT = f"ddmetrics/{__version__} (Python)"


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    """Omit optional fields that are not set."""
    return {k: v for k, v in data.items() if v is not None}


def series_to_v2(series: Series) -> Dict[str, Any]:
    """Serialize a regular series for the v2 series endpoint."""
    return _drop_none({
        "metric": series.metric,
        "type": int(series.type),
        "points": [{"timestamp": p.timestamp, "value": p.value} for p in series.points],
        "resources": [{"name": series.host, "type": "host"}] if series.host else None,
        "tags": list(series.tags) if series.tags else None,
    })


def series_to_distribution(series: Series) -> Dict[str, Any]:
    """Serialize a distribution series as [[timestamp, [values]]] tuples."""
    return _drop_none({
        "metric": series.metric,
        "host": series.host,
        "points": [[p.timestamp, list(p.values)] for p in series.points],
        "tags": list(series.tags) if series.tags else None,
        "type": "distribution",
    })


class HttpApi:
    """Posts series payloads with retry and exponential backoff."""

    def __init__(self, config: DatadogConfig, transport: Optional[httpx.BaseTransport] = None,
                 self_metrics: Optional[SelfMetrics] = None):
        if not config.api_key:
            raise ValueError("Datadog API key is required to submit metrics")

        self.config = config
        self.self_metrics = self_metrics

        base_url = f"https://api.{config.site}"
        self.distribution_url = f"{base_url}/api/v1/distribution_points"
        self.series_url = f"{base_url}/api/v2/series"

        self.client = httpx.Client(
            timeout=httpx.Timeout(config.http_timeout_s),
            headers={"DD-API-KEY": config.api_key, "User-Agent": USER_AGENT},
            transport=transport,
        )

        # Set on shutdown to abort backoff waits
        self._cancelled = threading.Event()

    def submit(self, series: List[Series]) -> bool:
        """
        Submit series, routing distributions and regular metrics separately.

        Returns True only if every non-empty partition was accepted. An empty
        list is a success without any request.
        """
        if not series:
            return True

        distributions = [s for s in series if s.is_distribution]
        regular = [s for s in series if not s.is_distribution]

        success = True

        if distributions:
            payload = {"series": [series_to_distribution(s) for s in distributions]}
            success &= self._submit_partition("distribution", self.distribution_url, payload, len(distributions))

        if regular:
            payload = {"series": [series_to_v2(s) for s in regular]}
            success &= self._submit_partition("series", self.series_url, payload, len(regular))

        return success

    def _submit_partition(self, endpoint: str, url: str, payload: Dict[str, Any], count: int) -> bool:
        ok = self._submit_with_retry(url, payload)
        if self.self_metrics:
            self.self_metrics.record_series(endpoint, count)
            if not ok:
                self.self_metrics.record_submit_failure(endpoint)
        return ok

    def _submit_with_retry(self, url: str, payload: Dict[str, Any]) -> bool:
        max_retries = self.config.max_retries
        attempt = 0

        while attempt <= max_retries:
            try:
                logger.debug(f"Submitting metrics to {url} (attempt {attempt + 1}/{max_retries + 1})")
                response = self.client.post(url, json=payload)

                if response.is_success:
                    logger.debug(f"Successfully submitted metrics to {url}")
                    return True

                logger.warning(
                    f"Failed to submit metrics to {url}. "
                    f"Status: {response.status_code}, Body: {response.text}"
                )

                # Don't retry on client errors (4xx)
                if response.is_client_error:
                    logger.error(f"Client error {response.status_code}, not retrying")
                    return False

            except httpx.TimeoutException as e:
                # Timeouts are not retried
                logger.warning(f"Request timeout submitting metrics to {url}: {e}")
                return False

            except httpx.TransportError as e:
                logger.warning(
                    f"Network error submitting metrics to {url} "
                    f"(attempt {attempt + 1}/{max_retries + 1}): {e}"
                )

            except Exception as e:
                logger.error(f"Unexpected error submitting metrics to {url}: {e}", exc_info=True)
                return False

            if attempt < max_retries:
                delay = self.config.retry_backoff_s * (2 ** attempt)
                logger.info(f"Retrying in {delay} seconds (attempt {attempt + 1}/{max_retries})")
                if not self._sleep(delay):
                    logger.warning(f"Retry of {url} aborted by shutdown")
                    return False

            attempt += 1

        logger.error(f"Failed to submit metrics to {url} after {max_retries + 1} attempts")
        return False

    def _sleep(self, seconds: float) -> bool:
        """Wait out a backoff delay; False if cancelled meanwhile."""
        return not self._cancelled.wait(seconds)

    def cancel(self):
        """Abort any in-progress retry loop; later submissions get a single attempt."""
        self._cancelled.set()

    def close(self):
        """Cancel pending retries and release the HTTP connection pool."""
        self.cancel()
        self.client.close()
