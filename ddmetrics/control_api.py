"""Control API for runtime management using FastAPI."""
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import logging
import time

logger = logging.getLogger(__name__)


class LogLevelRequest(BaseModel):
    """Request to change log level."""
    level: str


class ControlAPI:
    """FastAPI-based control API for the metrics reporter."""

    def __init__(self, reporter, site: str):
        """
        Initialize control API.

        Args:
            reporter: Reference to the running reporter
            site: Datadog site metrics are submitted to
        """
        self.reporter = reporter
        self.site = site
        self.app = FastAPI(title="ddmetrics Control API")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        async def status():
            """Get current reporter status."""
            return {
                "uptime_seconds": time.time() - self.reporter.start_time,
                "running": self.reporter.running,
                "flush_count": self.reporter.flush_count,
                "last_flush_time": self.reporter.last_flush_time,
                "last_flush_success": self.reporter.last_flush_success,
                "buffer_keys": len(self.reporter.buffer),
                "flush_interval_s": self.reporter.flush_interval_s,
                "site": self.site,
            }

        # Plain def: runs in the threadpool since flushing blocks on I/O
        @self.app.post("/control/flush")
        def flush():
            """Force an immediate drain and submit."""
            try:
                logger.info("Manual flush requested")
                count = self.reporter.flush()
                return {
                    "status": "flushed",
                    "series": count,
                    "success": self.reporter.last_flush_success if count else True,
                    "timestamp": time.time()
                }
            except Exception as e:
                logger.error(f"Error flushing metrics: {e}")
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/control/loglevel")
        async def set_log_level(request: LogLevelRequest):
            """Change log level at runtime."""
            level = request.level.upper()

            if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid log level: {level}"
                )

            logging.getLogger().setLevel(getattr(logging, level))
            logger.info(f"Log level changed to: {level}")

            return {
                "status": "log_level_changed",
                "level": level,
                "timestamp": time.time()
            }

    def run(self, host: str = "0.0.0.0", port: int = 8081):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
