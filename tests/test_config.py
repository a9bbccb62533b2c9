"""Tests for configuration loading."""
import pytest
import yaml

from ddmetrics.config import Config, DatadogConfig, HistogramConfig, load_config


def write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DD_API_KEY", "DATADOG_API_KEY", "DD_SITE", "DD_HOST", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = DatadogConfig(api_key="abc")
    assert config.site == "datadoghq.com"
    assert config.flush_interval_s == 15
    assert config.max_retries == 2
    assert config.retry_backoff_s == 1.0
    assert config.http_timeout_s == 30
    assert config.max_buffer_size == 10000
    assert config.histogram.aggregates == ["min", "max", "avg", "count", "sum", "median"]
    assert config.histogram.percentiles == [0.75, 0.85, 0.95, 0.99]


def test_site_alias_resolves():
    assert DatadogConfig(api_key="abc", site="EU").site == "datadoghq.eu"
    assert DatadogConfig(api_key="abc", site="example.test").site == "example.test"


def test_host_falls_back_to_machine_name():
    assert DatadogConfig(api_key="abc", host="web-1").resolved_host() == "web-1"
    assert DatadogConfig(api_key="abc").resolved_host()


def test_missing_api_key_is_fatal():
    with pytest.raises(ValueError):
        DatadogConfig()


def test_invalid_percentile_rejected():
    with pytest.raises(ValueError):
        HistogramConfig(percentiles=[1.5])


def test_load_config_from_yaml(tmp_path):
    path = write_config(tmp_path, {
        "global": {"log_level": "DEBUG"},
        "datadog": {"api_key": "file-key", "prefix": "myapp.", "default_tags": ["env:prod"]},
    })
    config = load_config(path)
    assert isinstance(config, Config)
    assert config.global_.log_level == "DEBUG"
    assert config.datadog.prefix == "myapp."
    assert config.datadog.default_tags == ["env:prod"]


def test_environment_overrides(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"datadog": {"api_key": "file-key"}})
    monkeypatch.setenv("DD_API_KEY", "env-key")
    monkeypatch.setenv("DD_SITE", "us5")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    config = load_config(path)
    assert config.datadog.api_key == "env-key"
    assert config.datadog.site == "us5.datadoghq.com"
    assert config.global_.log_level == "WARNING"


def test_load_config_without_api_key_fails(tmp_path):
    path = write_config(tmp_path, {"datadog": {"site": "eu"}})
    with pytest.raises(ValueError, match="Configuration validation failed"):
        load_config(path)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))
