"""Minimal echo HTTP service with API-key auth and Prometheus metrics."""

__version__ = "0.1.0"
