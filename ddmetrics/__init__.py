"""Client-side Datadog metrics pipeline: aggregate in memory, flush over HTTPS."""

__version__ = "0.1.0"
