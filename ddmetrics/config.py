"""Configuration models using Pydantic for validation."""
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator
import os
import socket

# Site aliases accepted in configuration
SITES: Dict[str, str] = {
    "us": "datadoghq.com",
    "eu": "datadoghq.eu",
    "us3": "us3.datadoghq.com",
    "us5": "us5.datadoghq.com",
    "ap1": "ap1.datadoghq.com",
    "gov": "ddog-gov.com",
}

HistogramAggregate = Literal["min", "max", "avg", "count", "sum", "median"]


class HistogramConfig(BaseModel):
    """Statistics emitted for histogram metrics."""
    aggregates: List[HistogramAggregate] = Field(
        default_factory=lambda: ["min", "max", "avg", "count", "sum", "median"]
    )
    percentiles: List[float] = Field(default_factory=lambda: [0.75, 0.85, 0.95, 0.99])

    @field_validator('percentiles')
    @classmethod
    def validate_percentiles(cls, v):
        for p in v:
            if not 0.0 < p <= 1.0:
                raise ValueError(f"Percentile {p} must be in (0, 1]")
        return v


class DatadogConfig(BaseModel):
    """Upstream site, credentials and flush behaviour."""
    api_key: Optional[str] = Field(default=None, validate_default=True)
    site: str = SITES["us"]
    host: Optional[str] = None
    prefix: Optional[str] = None
    default_tags: List[str] = Field(default_factory=list)
    flush_interval_s: float = Field(default=15, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_backoff_s: float = Field(default=1.0, ge=0)
    http_timeout_s: float = Field(default=30, gt=0)
    max_buffer_size: int = Field(default=10000, gt=0)
    histogram: HistogramConfig = Field(default_factory=HistogramConfig)

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        """An API key is required before anything can be submitted."""
        if v is None or not v.strip():
            raise ValueError(
                "Datadog API key not found. Set datadog.api_key or the DD_API_KEY environment variable"
            )
        return v.strip()

    @field_validator('site')
    @classmethod
    def resolve_site(cls, v):
        return SITES.get(v.lower(), v)

    def resolved_host(self) -> str:
        """Configured host name, falling back to the machine name."""
        return self.host or socket.gethostname()


class SelfMetricsConfig(BaseModel):
    """Prometheus self-monitoring exposition."""
    enabled: bool = False
    port: int = 9102
    bind_address: str = "0.0.0.0"
    prefix: str = "ddmetrics_"


class OTELBridgeConfig(BaseModel):
    """Forward OpenTelemetry instruments into the pipeline."""
    enabled: bool = False
    export_interval_s: int = 10


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"
    control_api_enabled: bool = True
    control_api_port: int = 8081


class Config(BaseModel):
    """Root configuration model."""
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    datadog: DatadogConfig = Field(default_factory=DatadogConfig)
    self_metrics: SelfMetricsConfig = Field(default_factory=SelfMetricsConfig)
    otel: OTELBridgeConfig = Field(default_factory=OTELBridgeConfig)

    model_config = {"populate_by_name": True}


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    datadog = raw_config.setdefault('datadog', {})
    if env_api_key := os.getenv('DD_API_KEY') or os.getenv('DATADOG_API_KEY'):
        datadog['api_key'] = env_api_key

    if env_site := os.getenv('DD_SITE'):
        datadog['site'] = env_site

    if env_host := os.getenv('DD_HOST'):
        datadog['host'] = env_host

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
